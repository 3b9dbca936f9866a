"""
订单事件（审计记录）
"""
from typing import Optional

from sqlalchemy.orm import Session

from app.core.actor import Actor
from app.models.order import OrderEvent


def record_event(db: Session, order_id: int, kind: str, payload: Optional[dict], actor: Actor) -> OrderEvent:
    event = OrderEvent(
        order_id=order_id,
        kind=kind,
        payload=payload or {},
        actor_id=actor.user_id,
        actor_name=actor.username,
    )
    db.add(event)
    return event
