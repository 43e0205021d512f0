"""
Knowledge Base Factory

Usage:
    from dineai.services.knowledge import get_knowledge_base

    kb = get_knowledge_base()
    hits = await kb.search("R1", "corkage fee")

Only the null backend ships with this package; a deployment with a search
service provides its own KnowledgeBase implementation to the dispatcher.
"""

import logging
from functools import lru_cache

from dineai.services.knowledge.base import KnowledgeBase, KnowledgeHit
from dineai.services.knowledge.null import NullKnowledgeBase

logger = logging.getLogger(__name__)


@lru_cache()
def get_knowledge_base() -> KnowledgeBase:
    logger.info("Knowledge Base: Using NullKnowledgeBase (no search backend configured)")
    return NullKnowledgeBase()


__all__ = [
    "get_knowledge_base",
    "KnowledgeBase",
    "KnowledgeHit",
    "NullKnowledgeBase",
]
