"""
Explicit operator context.

Every core operation that mutates state takes an ``OperatorContext`` so the
ledger transactions, holds, and batch events can be attributed to a person
(or to the system for background work). Routes build it from request
headers; services never look at the request themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Any, Optional


SYSTEM_ACTOR_ID = "system"


@dataclass(frozen=True)
class OperatorContext:
    """Who is performing an operation."""

    actor_id: str
    """Stable identifier of the staff member or service."""

    username: str = ""
    """Display name used in log messages."""

    @classmethod
    def system(cls, username: str = "system") -> "OperatorContext":
        """Context for background jobs and automated actions."""
        return cls(actor_id=SYSTEM_ACTOR_ID, username=username)

    @classmethod
    def from_headers(cls, headers) -> Optional["OperatorContext"]:
        """
        Build a context from ``X-Operator-Id`` / ``X-Operator-Name`` headers.

        Returns:
            OperatorContext, or None if no operator id header is present
        """
        actor_id = (headers.get("X-Operator-Id") or "").strip()
        if not actor_id:
            return None
        username = (headers.get("X-Operator-Name") or "").strip()
        return cls(actor_id=actor_id, username=username or actor_id)

    @property
    def display(self) -> str:
        return self.username or self.actor_id

    def to_dict(self) -> Dict[str, Any]:
        return {"actor_id": self.actor_id, "username": self.username}
