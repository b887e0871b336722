from __future__ import annotations

from sqlalchemy.orm import Session

from allocator.models.allocation_event import AllocationEvent
from allocator.models.user import User


def record_event(
    db: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id: int,
    details: dict | None = None,
) -> None:
    db.add(
        AllocationEvent(
            actor_id=actor.id if actor is not None else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
        )
    )
