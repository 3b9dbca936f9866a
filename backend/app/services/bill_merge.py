"""
合并账单

合并方式：付款组。被合并的订单保留各自的明细，共享同一个 payment_group_id，
由付款方订单（is_primary_payer）统一结账；结账时其余订单记录 paid_by_order_id。
所有校验在修改任何数据之前完成，校验失败时不做任何修改。
"""
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.actor import SYSTEM, Actor
from app.core.exceptions import InvalidState, NotFound
from app.models.order import Order
from app.models.seat_session import SeatSession, SessionState
from app.services.order_events import record_event
from app.services.orders import UNPAID_STATUSES
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    payment_group_id: str
    primary_order_id: int
    order_ids: List[int]
    combined_total_minor: int


def group_orders(db: Session, order: Order) -> List[Order]:
    """订单所在付款组中未结账的订单（付款方在前）；未合并时只有自己"""
    if not order.payment_group_id:
        return [order]
    members = db.query(Order).filter(
        Order.payment_group_id == order.payment_group_id,
        Order.status.in_(UNPAID_STATUSES),
    ).order_by(Order.id).with_for_update().all()
    return sorted(members, key=lambda o: (not o.is_primary_payer, o.id))


def _unique_ids(primary_id: int, ids: Sequence[int]) -> List[int]:
    result = [primary_id]
    for i in ids:
        if i not in result:
            result.append(i)
    return result


def _validate(db: Session, order_ids: List[int]) -> List[Order]:
    if len(order_ids) < 2:
        raise InvalidState("至少需要两个订单才能合并", order_ids=order_ids)

    orders = db.query(Order).filter(
        Order.id.in_(order_ids)
    ).order_by(Order.id).with_for_update().populate_existing().all()
    by_id = {o.id: o for o in orders}
    missing = [i for i in order_ids if i not in by_id]
    if missing:
        raise NotFound("订单不存在", order_ids=missing)

    for order_id in order_ids:
        order = by_id[order_id]
        if order.status != "awaiting_payment":
            raise InvalidState("只能合并已停表、待付款的订单", order_id=order.id, status=order.status)
        if order.payment_group_id:
            raise InvalidState("订单已在其他付款组中，请先拆分",
                               order_id=order.id, payment_group_id=order.payment_group_id)
        running = [s.id for s in order.seat_sessions if s.state == SessionState.RUNNING]
        if running:
            raise InvalidState("订单还有计时中的座位", order_id=order.id, session_ids=running)
    return [by_id[i] for i in order_ids]


def _link(db: Session, orders: List[Order], actor: Actor) -> MergeResult:
    primary = orders[0]
    group_id = f"pg_{uuid.uuid4().hex[:16]}"
    for order in orders:
        order.payment_group_id = group_id
        order.is_primary_payer = order.id == primary.id
        order.paid_by_order_id = None

    order_ids = [o.id for o in orders]
    combined = sum(o.total_minor for o in orders)
    record_event(db, primary.id, "bills.merged", {
        "payment_group_id": group_id,
        "order_ids": order_ids,
        "combined_total_minor": combined,
    }, actor)
    for order in orders[1:]:
        record_event(db, order.id, "bills.merged.secondary", {
            "payment_group_id": group_id,
            "primary_order_id": primary.id,
        }, actor)
    return MergeResult(group_id, primary.id, order_ids, combined)


def merge_bills(
    db: Session,
    primary_order_id: int,
    member_order_ids: Sequence[int],
    actor: Actor = SYSTEM,
) -> MergeResult:
    """合并订单，primary_order_id 为付款方"""
    order_ids = _unique_ids(primary_order_id, member_order_ids)
    with UnitOfWork(db):
        orders = _validate(db, order_ids)
        result = _link(db, orders, actor)
    logger.info("合并账单 %s：%s", result.payment_group_id, result.order_ids)
    return result


def merge_sessions(
    db: Session,
    primary_session_id: int,
    session_ids: Sequence[int],
    actor: Actor = SYSTEM,
) -> MergeResult:
    """
    按座位会话合并：找出各会话所属订单后合并
    其余会话记录 merged_to_session_id
    """
    ids = _unique_ids(primary_session_id, session_ids)
    if len(ids) < 2:
        raise InvalidState("至少需要两个座位会话才能合并", session_ids=ids)

    with UnitOfWork(db):
        sessions = db.query(SeatSession).filter(SeatSession.id.in_(ids)).all()
        by_id = {s.id: s for s in sessions}
        missing = [i for i in ids if i not in by_id]
        if missing:
            raise NotFound("座位会话不存在", session_ids=missing)
        for session in sessions:
            if session.state != SessionState.STOPPED:
                raise InvalidState("只能合并已停表的座位会话",
                                   session_id=session.id, state=session.state.value)

        order_ids = _unique_ids(by_id[primary_session_id].order_id, [by_id[i].order_id for i in ids])
        orders = _validate(db, order_ids)
        for session_id in ids[1:]:
            by_id[session_id].merged_to_session_id = primary_session_id
        result = _link(db, orders, actor)
    logger.info("按会话合并账单 %s：会话 %s", result.payment_group_id, ids)
    return result


def unmerge_bills(
    db: Session,
    payment_group_id: str,
    actor: Actor = SYSTEM,
) -> List[int]:
    """拆分付款组，恢复为各自结账；返回被拆分的订单ID"""
    with UnitOfWork(db):
        orders = db.query(Order).filter(
            Order.payment_group_id == payment_group_id,
            Order.status.in_(UNPAID_STATUSES),
        ).order_by(Order.id).with_for_update().all()
        if not orders:
            raise NotFound("付款组不存在或已结账", payment_group_id=payment_group_id)

        order_ids = [o.id for o in orders]
        for order in orders:
            order.payment_group_id = None
            order.is_primary_payer = False
            order.paid_by_order_id = None
            for session in order.seat_sessions:
                session.merged_to_session_id = None
            record_event(db, order.id, "bills.unmerged", {
                "payment_group_id": payment_group_id,
                "order_ids": order_ids,
            }, actor)

    logger.info("拆分付款组 %s：%s", payment_group_id, order_ids)
    return order_ids


def find_group(db: Session, payment_group_id: str) -> Optional[List[Order]]:
    orders = db.query(Order).filter(Order.payment_group_id == payment_group_id).order_by(Order.id).all()
    return orders or None
