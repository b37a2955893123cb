# Overview: Service-layer operations for the audit ledger; encapsulates database work.

from __future__ import annotations

import json
from typing import Any, Optional
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import LedgerEvent
from barberpos.time_utils import utcnow
"""
Ledger Event Invariants (authoritative)

- Append-only audit log for every committed ledger mutation.
- No domain/business logic in the event log itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back settlement leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
- The highest event id is the inventory version: it changes iff the ledger did.
"""


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: Any,
    actor_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Caller owns the transaction; this only flushes.
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=actor_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def current_inventory_version() -> int:
    """Max ledger event id; 0 on an empty ledger."""
    return int(db.session.query(func.coalesce(func.max(LedgerEvent.id), 0)).scalar() or 0)


def list_ledger_events(
    *,
    since_id: int | None = None,
    category: str | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent)
    if since_id is not None:
        q = q.filter(LedgerEvent.id > since_id)
    if category:
        q = q.filter(LedgerEvent.event_category == category)
    return q.order_by(LedgerEvent.id.asc()).limit(limit).all()
