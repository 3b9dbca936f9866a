"""
结账

1. 按当前明细重新计算应付金额（付款方订单包含整个付款组）
2. 支付合计不足时拒绝
3. 使用积分支付时要求订单有客户，且积分余额足够
   刷卡金额在开始事务前向终端申请授权
4. 在同一事务中：记录支付、扣除积分、订单改为已付款、发放消费积分、
   结束座位会话并释放座位、更新桌台状态、记录游戏历史（允许失败）
5. 记录 payment.completed 事件

第1-3步失败时不做任何修改；第4步除游戏历史外要么全部提交要么全部回滚。
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.actor import SYSTEM, Actor
from app.core.exceptions import (
    CustomerRequired, InsufficientPayment, InsufficientPoints, InvalidState, NotFound, TenderNotApproved,
)
from app.core.timeutil import elapsed_minutes, utcnow
from app.models.game import CustomerGameHistory, TableGameSession
from app.models.order import Order
from app.models.payment_attempt import PaymentAttempt
from app.models.table import Seat
from app.services import points_service, table_status
from app.services.bill_merge import group_orders
from app.services.orders import UNPAID_STATUSES
from app.services.order_events import record_event
from app.services.tender_gateway import TenderGateway, get_tender_gateway
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

TENDER_METHODS = ("cash", "card", "points")
POINTS_INELIGIBLE_KINDS = ("membership", "game")


@dataclass
class Tender:
    method: str
    amount_minor: int
    reference: Optional[str] = None


@dataclass
class SettlementResult:
    order_id: int
    order_ids: List[int]
    total_minor: int
    tendered_minor: int
    change_minor: int
    points_redeemed: int = 0
    points_awarded: int = 0
    payment_ids: List[int] = field(default_factory=list)


def _validate_tenders(tenders: Sequence[Tender]):
    for tender in tenders:
        if tender.method not in TENDER_METHODS:
            raise InvalidState("不支持的支付方式", method=tender.method)
        if tender.amount_minor < 0:
            raise InvalidState("支付金额不能为负数", method=tender.method, amount_minor=tender.amount_minor)


def _authorize_cards(gateway: TenderGateway, order: Order, tenders: Sequence[Tender]) -> List[Optional[str]]:
    """向终端申请刷卡授权，返回每笔支付对应的交易引用"""
    references = []
    for index, tender in enumerate(tenders):
        if tender.method != "card" or tender.amount_minor == 0:
            references.append(tender.reference)
            continue
        reference = tender.reference or f"order-{order.id}-card-{index + 1}-{tender.amount_minor}"
        result = gateway.authorize(tender.amount_minor, reference)
        if not result.approved:
            raise TenderNotApproved(
                result.message or "刷卡未完成授权",
                reference=reference, status=result.status, amount_minor=tender.amount_minor,
            )
        references.append(reference)
    return references


def _record_game_history(db: Session, orders: List[Order], customer_id: int, sessions, now: datetime) -> int:
    """
    把订单上的桌游明细写入客户游戏历史
    同一客户、同一桌台游戏记录、同一订单只记录一次
    """
    recorded = 0
    for order in orders:
        for item in order.items:
            if item.kind != "game" or not item.meta:
                continue
            game_session = db.query(TableGameSession).filter(
                TableGameSession.id == item.meta.get("table_game_session_id")
            ).first()
            if game_session is None:
                continue
            exists = db.query(CustomerGameHistory).filter(
                CustomerGameHistory.customer_id == customer_id,
                CustomerGameHistory.table_game_session_id == game_session.id,
                CustomerGameHistory.order_id == order.id,
            ).first()
            if exists:
                continue

            co_players = sorted({
                s.customer.display_name for s in sessions
                if s.customer is not None and s.customer_id != customer_id
                and s.seat.table_id == game_session.table_id
            })
            db.add(CustomerGameHistory(
                customer_id=customer_id,
                game_id=game_session.game_id,
                table_id=game_session.table_id,
                table_game_session_id=game_session.id,
                order_id=order.id,
                played_at=game_session.started_at,
                duration_minutes=elapsed_minutes(game_session.started_at, game_session.ended_at or now),
                co_player_names=co_players,
            ))
            recorded += 1
    return recorded


def settle_order(
    db: Session,
    order_id: int,
    tenders: Sequence[Tender],
    actor: Actor = SYSTEM,
    gateway: Optional[TenderGateway] = None,
    now: Optional[datetime] = None,
) -> SettlementResult:
    """结账（付款方订单一并结清付款组中的其他订单）"""
    now = now or utcnow()
    gateway = gateway or get_tender_gateway()

    # 锁定订单行，并发结账或合并时后到者读到最新状态
    order = db.query(Order).filter(
        Order.id == order_id
    ).with_for_update().populate_existing().first()
    if not order:
        raise NotFound("订单不存在", order_id=order_id)
    if order.status not in UNPAID_STATUSES:
        raise InvalidState("订单已结账或已取消", order_id=order_id, status=order.status)
    if order.payment_group_id and not order.is_primary_payer:
        payer = db.query(Order).filter(
            Order.payment_group_id == order.payment_group_id,
            Order.is_primary_payer.is_(True),
        ).first()
        raise InvalidState("该订单已合并，请在付款方订单结账",
                           order_id=order_id, primary_order_id=payer.id if payer else None)

    _validate_tenders(tenders)
    orders = group_orders(db, order)

    # 1. 重新计算应付金额
    total = sum(o.total_minor for o in orders)

    # 2. 支付合计
    tendered = sum(t.amount_minor for t in tenders)
    if tendered < total:
        raise InsufficientPayment(
            f"支付金额不足：应付 {total}，实付 {tendered}",
            order_id=order_id, total_minor=total, tendered_minor=tendered, shortfall_minor=total - tendered,
        )

    # 3. 积分支付
    points_minor = sum(t.amount_minor for t in tenders if t.method == "points")
    points = 0
    customer_id = order.customer_id
    if points_minor > 0:
        if customer_id is None:
            raise CustomerRequired("使用积分支付需要先关联客户", order_id=order_id)
        if points_minor % points_service.MINOR_PER_POINT:
            raise InvalidState("积分支付金额必须是整数积分", order_id=order_id, amount_minor=points_minor)
        if points_minor > total:
            raise InvalidState("积分支付金额不能超过应付金额", order_id=order_id,
                               amount_minor=points_minor, total_minor=total)
        points = points_minor // points_service.MINOR_PER_POINT
        current = points_service.balance(db, customer_id)
        if current < points:
            raise InsufficientPoints(
                f"积分不足：余额 {current}，需要 {points}",
                customer_id=customer_id, balance=current, requested=points,
            )

    references = _authorize_cards(gateway, order, tenders)

    # 4. 结账事务
    change = tendered - total
    with UnitOfWork(db) as uow:
        payments = []
        for tender, reference in zip(tenders, references):
            if tender.amount_minor == 0:
                continue
            payment = PaymentAttempt(
                order_id=order.id,
                method=tender.method,
                amount_minor=tender.amount_minor,
                status="succeeded",
                tender_ref=reference,
            )
            db.add(payment)
            payments.append(payment)

        if points > 0:
            points_service.redeem(db, customer_id, points, order.id)

        closed_by = actor.user_id or actor.username
        for o in orders:
            o.status = "paid"
            o.closed_at = now
            o.closed_by_user_id = closed_by
            if o.id != order.id:
                o.paid_by_order_id = order.id

        awarded = 0
        if customer_id is not None:
            cash_card = sum(t.amount_minor for t in tenders if t.method in ("cash", "card"))
            eligible_items = sum(
                item.total_minor for o in orders for item in o.items
                if item.kind not in POINTS_INELIGIBLE_KINDS
            )
            eligible = max(0, min(cash_card - change, eligible_items))
            awarded = points_service.points_earned_for(db, eligible, customer_id, now)
            points_service.award(db, customer_id, awarded, order.id)

        sessions = [s for o in orders for s in o.seat_sessions]
        table_ids = set()
        for session in sessions:
            if session.closed_at is not None:
                continue
            if session.ended_at is None:
                session.ended_at = now
            session.closed_at = now
            seat = db.query(Seat).filter(Seat.id == session.seat_id).first()
            seat.status = "open"
            table_ids.add(seat.table_id)
        uow.flush()

        for table_id in sorted(table_ids):
            if table_status.refresh_after_release(db, table_id, "available"):
                table_status.end_table_games(db, table_id, now)

        if customer_id is not None:
            with uow.best_effort("记录游戏历史"):
                _record_game_history(db, orders, customer_id, sessions, now)

        uow.flush()
        payment_ids = [p.id for p in payments]
        order_ids = [o.id for o in orders]

        # 5. 审计事件
        record_event(db, order.id, "payment.completed", {
            "payment_ids": payment_ids,
            "tenders": [{"method": p.method, "amount_minor": p.amount_minor, "tender_ref": p.tender_ref}
                        for p in payments],
            "total_minor": total,
            "tendered_minor": tendered,
            "change_minor": change,
            "points_redeemed": points,
            "points_awarded": awarded,
            "order_ids": order_ids,
        }, actor)
        for o in orders:
            if o.id != order.id:
                record_event(db, o.id, "payment.completed.by_group", {
                    "paid_by_order_id": order.id,
                    "payment_ids": payment_ids,
                }, actor)

    logger.info("订单 %s 结账完成，应付 %s，实付 %s，订单 %s", order_id, total, tendered, order_ids)
    return SettlementResult(
        order_id=order.id,
        order_ids=order_ids,
        total_minor=total,
        tendered_minor=tendered,
        change_minor=change,
        points_redeemed=points,
        points_awarded=awarded,
        payment_ids=payment_ids,
    )
