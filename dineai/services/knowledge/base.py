"""
Knowledge Base Abstract Base Class

Interface for the restaurant knowledge search used by the search_knowledge
tool (policies, recipes, FAQs uploaded by the owner). The search backend
itself lives outside this package.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class KnowledgeHit:
    """
    One search result.

    Attributes:
        title: Document or section title
        content: Matching passage
        category: Document category (menu, policy, faq, ...)
        score: Backend relevance score, higher is better
    """
    title: str
    content: str
    category: Optional[str] = None
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "score": self.score,
            "metadata": self.metadata,
        }


class KnowledgeBase(ABC):
    """Abstract base class for knowledge search backends."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def search(
        self,
        restaurant_id: str,
        query: str,
        category: Optional[str] = None,
        limit: int = 5,
    ) -> list[KnowledgeHit]:
        pass
