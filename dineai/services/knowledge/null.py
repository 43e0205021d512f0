"""
Null Knowledge Base

Used when no search backend is configured: every search returns nothing,
and the tool tells the user the feature is not available yet.
"""

import logging
from typing import Optional

from dineai.services.knowledge.base import KnowledgeBase, KnowledgeHit

logger = logging.getLogger(__name__)


class NullKnowledgeBase(KnowledgeBase):

    @property
    def provider_name(self) -> str:
        return "null"

    async def search(
        self,
        restaurant_id: str,
        query: str,
        category: Optional[str] = None,
        limit: int = 5,
    ) -> list[KnowledgeHit]:
        logger.debug(f'Knowledge search "{query}" ignored for {restaurant_id}: no backend')
        return []
