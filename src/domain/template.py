"""Template domain model."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Template:
    """
    Named snapshot of the prompt builder fields.

    ``data`` is persisted as JSONB and returned exactly as stored.
    ``created_at`` is assigned by the database on first insert and never
    changes afterwards, neither on upsert nor on rename.
    """

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    id: int | None = None  # Set by database

    def snapshot(self) -> "Template":
        """Return an independent copy safe to hand out to callers."""
        return Template(
            name=self.name,
            data=copy.deepcopy(self.data),
            created_at=self.created_at,
            id=self.id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing representation."""
        return {
            "id": self.id,
            "name": self.name,
            "data": copy.deepcopy(self.data),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_legacy(cls, item: Any) -> "Template | None":
        """
        Build a Template from an entry of the legacy templates.json file.

        Args:
            item: Parsed JSON object with ``name`` and ``data`` keys

        Returns:
            Template or None if the entry has no usable name
        """
        if not isinstance(item, dict):
            return None
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            return None
        data = item.get("data")
        if not isinstance(data, dict):
            data = {}
        return cls(name=name, data=data)
