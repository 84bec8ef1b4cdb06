"""Static badge definitions."""

from dataclasses import dataclass, field
from typing import Any

from .achievement import BadgeCategory, Tier


@dataclass(frozen=True)
class BadgeDefinition:
    """Catalog entry for one achievement id."""

    id: str
    name: str
    description: str
    tier: Tier
    category: BadgeCategory
    requirements: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tier": self.tier.value,
            "category": self.category.value,
            "requirements": dict(self.requirements),
        }
