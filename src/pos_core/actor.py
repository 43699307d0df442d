"""
Authenticated employee performing an engine operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Actor:
    employee_id: int
    role: str
    name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Actor:
        """Build an actor from decoded JWT claims."""
        return cls(
            employee_id=int(claims["employee_id"]),
            role=str(claims.get("employee_role") or "").upper(),
            name=claims.get("employee_name"),
        )

    def has_role(self, roles) -> bool:
        return self.role in roles
