"""
座位会话

状态：未开台 -> 计时中 -> 已停表（待付款，座位仍占用）-> 已结束（结账后释放座位）
不计时的挂单：开台时不记录开始时间，结束时直接释放座位，不计时费。

停表只生成/更新计时费明细并把订单改为待付款，不释放座位；
座位只在结账（或结束不计时挂单）时释放。
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.actor import SYSTEM, Actor
from app.core.config import REGULAR_HOURLY_RATE_MINOR
from app.core.exceptions import Conflict, InvalidState, NotFound
from app.core.timeutil import as_utc, elapsed_minutes, utcnow
from app.models.customer import Customer
from app.models.game import Game
from app.models.order import Order, OrderItem
from app.models.seat_session import SeatSession, SessionState
from app.models.table import Seat
from app.services import membership_service, settings_service, table_status, time_billing
from app.services.item_meta import GameMeta, MembershipUsageMeta, SeatTimeMeta, dump_meta
from app.services.order_events import record_event
from app.services.orders import UNPAID_STATUSES
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def get_seat(db: Session, seat_id: int) -> Seat:
    seat = db.query(Seat).filter(Seat.id == seat_id).with_for_update().first()
    if not seat:
        raise NotFound("座位不存在", seat_id=seat_id)
    return seat


def get_session(db: Session, session_id: int) -> SeatSession:
    session = db.query(SeatSession).filter(SeatSession.id == session_id).first()
    if not session:
        raise NotFound("座位使用记录不存在", session_id=session_id)
    return session


def open_session_for_seat(db: Session, seat_id: int) -> Optional[SeatSession]:
    """座位上未释放的会话（计时中、已停表待付款或不计时挂单）"""
    return db.query(SeatSession).filter(
        SeatSession.seat_id == seat_id,
        SeatSession.closed_at.is_(None),
    ).first()


def get_payable_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if not order:
        raise NotFound("订单不存在", order_id=order_id)
    if order.status not in UNPAID_STATUSES:
        raise InvalidState("订单已结账或已取消", order_id=order_id, status=order.status)
    return order


def list_active_sessions(db: Session) -> List[SeatSession]:
    return db.query(SeatSession).filter(SeatSession.closed_at.is_(None)).order_by(SeatSession.id).all()


def _copy_table_games(db: Session, seat: Seat, order: Order):
    """桌台上正在玩的桌游作为0元明细加入新订单"""
    existing = {
        item.meta.get("table_game_session_id")
        for item in order.items if item.kind == "game" and item.meta
    }
    for game_session in table_status.active_game_sessions(db, seat.table_id):
        if game_session.id in existing:
            continue
        game = db.query(Game).filter(Game.id == game_session.game_id).first()
        db.add(OrderItem(
            order_id=order.id,
            kind="game",
            name=f"桌游 {game.name if game else game_session.game_id}",
            qty=1,
            unit_price_minor=0,
            tax_minor=0,
            total_minor=0,
            meta=dump_meta(GameMeta(
                game_id=game_session.game_id,
                table_id=seat.table_id,
                table_game_session_id=game_session.id,
            )),
        ))


def start_session(
    db: Session,
    seat_id: int,
    order_id: int,
    customer_id: Optional[int] = None,
    actor: Actor = SYSTEM,
    now: Optional[datetime] = None,
    timed: bool = True,
) -> SeatSession:
    """
    开台
    - 座位已有未释放的会话时返回 Conflict（检查与插入在同一事务内，并由部分唯一索引兜底）
    - 座位改为占用，桌台改为就座
    - 桌台上已有进行中的桌游时，复制到新订单作为0元明细
    """
    now = now or utcnow()
    with UnitOfWork(db):
        seat = get_seat(db, seat_id)
        if seat.status == "closed":
            raise InvalidState("座位已关闭", seat_id=seat_id)

        existing = open_session_for_seat(db, seat_id)
        if existing is not None:
            raise Conflict("座位已有进行中的会话", seat_id=seat_id, session_id=existing.id)

        order = get_payable_order(db, order_id)
        if order.payment_group_id:
            raise InvalidState("订单已合并，请先拆分再开台", order_id=order_id,
                               payment_group_id=order.payment_group_id)
        if customer_id is not None:
            if not db.query(Customer).filter(Customer.id == customer_id).first():
                raise NotFound("客户不存在", customer_id=customer_id)

        session = SeatSession(
            seat_id=seat_id,
            order_id=order_id,
            customer_id=customer_id or order.customer_id,
            is_timed=timed,
            started_at=now if timed else None,
        )
        db.add(session)
        try:
            db.flush()
        except IntegrityError:
            raise Conflict("座位已有进行中的会话", seat_id=seat_id)

        seat.status = "occupied"
        table_status.mark_seated(db, seat.table_id)
        if order.status == "awaiting_payment":
            order.status = "open"
        _copy_table_games(db, seat, order)

        record_event(db, order.id, "seat.timer.started" if timed else "seat.session.started", {
            "seat_id": seat_id,
            "session_id": session.id,
            "started_at": now.isoformat() if timed else None,
            "has_timer": timed,
        }, actor)

    logger.info("座位 %s 开台，会话 %s，订单 %s，计时=%s", seat_id, session.id, order_id, timed)
    return session


def _charge_name(seat: Seat, charge: membership_service.SeatTimeCharge) -> str:
    if charge.membership is not None:
        m = charge.membership
        desc = (f"会员计时 {time_billing.format_duration(charge.minutes)}，"
                f"抵扣{m.included_hours:.2f}小时，超时{m.overage_hours:.2f}小时")
    else:
        desc = time_billing.describe(charge.billing)
    return f"座位 {seat.label}（{desc}）"


def _bill_session(
    db: Session,
    session: SeatSession,
    duration_minutes: int,
    now: datetime,
    regular_hourly_rate_minor: int,
    editor: Optional[Actor] = None,
) -> Optional[OrderItem]:
    """
    计算计时费并写入唯一的计时费明细
    已有明细时更新，不重复创建；会员卡用时按与上次记录的差额累加
    """
    order = session.order
    seat = session.seat
    customer_id = session.customer_id or order.customer_id
    prior_membership, prior_hours = membership_service.session_usage(db, session.id)
    elapsed_hours = duration_minutes / 60

    charge = membership_service.resolve(
        db, customer_id, elapsed_hours, regular_hourly_rate_minor, now,
        membership=prior_membership, hours_already_counted=prior_hours,
    )
    if charge.membership is not None:
        membership_service.record_usage(
            db, charge.membership, elapsed_hours - prior_hours, session.id,
            entry_type="adjustment" if prior_membership is not None else "usage",
            description=f"座位 {seat.label} 计时",
        )

    meta = SeatTimeMeta(
        seat_id=seat.id,
        session_id=session.id,
        duration_minutes=duration_minutes,
        tier=charge.billing.tier if charge.billing else None,
        breakdown=charge.billing.breakdown if charge.billing else None,
        membership=MembershipUsageMeta(**vars(charge.membership)) if charge.membership else None,
        edited_by=editor.username if editor else None,
        edited_at=now if editor else None,
    )
    tax_minor = settings_service.included_tax_minor(db, charge.total_minor)

    item = None
    if session.billed_item_id is not None:
        item = db.query(OrderItem).filter(OrderItem.id == session.billed_item_id).first()
    if item is None and charge.total_minor <= 0 and charge.membership is None:
        return None
    if item is None:
        item = OrderItem(order_id=order.id, kind="seat_time", qty=1)
        db.add(item)

    item.name = _charge_name(seat, charge)
    item.unit_price_minor = charge.total_minor - tax_minor
    item.tax_minor = tax_minor
    item.total_minor = charge.total_minor
    item.meta = dump_meta(meta)
    db.flush()
    session.billed_item_id = item.id
    return item


def stop_session(
    db: Session,
    seat_id: int,
    actor: Actor = SYSTEM,
    now: Optional[datetime] = None,
    regular_hourly_rate_minor: int = REGULAR_HOURLY_RATE_MINOR,
) -> SeatSession:
    """
    停表
    计算计时费（会员走会员抵扣，否则走阶梯计价），订单改为待付款，座位保持占用
    """
    now = now or utcnow()
    with UnitOfWork(db):
        seat = get_seat(db, seat_id)
        session = open_session_for_seat(db, seat_id)
        if session is None or session.state != SessionState.RUNNING:
            raise NotFound("该座位没有计时中的会话", seat_id=seat_id)

        duration = max(0, elapsed_minutes(session.started_at, now))
        session.ended_at = now
        session.billed_minutes = duration
        item = _bill_session(db, session, duration, now, regular_hourly_rate_minor)

        order = session.order
        if order.status == "open":
            order.status = "awaiting_payment"

        record_event(db, order.id, "seat.timer.stopped", {
            "seat_id": seat.id,
            "session_id": session.id,
            "ended_at": now.isoformat(),
            "duration_minutes": duration,
            "total_minor": item.total_minor if item else 0,
            "order_item_id": item.id if item else None,
        }, actor)

    logger.info("座位 %s 停表，会话 %s，计费 %s 分钟", seat_id, session.id, duration)
    return session


def edit_session_times(
    db: Session,
    session_id: int,
    started_at: Optional[datetime] = None,
    ended_at: Optional[datetime] = None,
    actor: Actor = SYSTEM,
    now: Optional[datetime] = None,
    regular_hourly_rate_minor: int = REGULAR_HOURLY_RATE_MINOR,
) -> SeatSession:
    """
    修改计时时间（管理员更正）
    只允许计时会话；已停表的会话按停表的规则重新计费，并更新原有的计时费明细
    """
    now = now or utcnow()
    with UnitOfWork(db):
        session = get_session(db, session_id)
        if not session.is_timed or session.started_at is None:
            raise InvalidState("不计时的会话不能修改时间", session_id=session_id)

        order = session.order
        if order.status not in UNPAID_STATUSES:
            raise InvalidState("订单已结账或已取消，不能修改时间", session_id=session_id, order_id=order.id)

        original_start = as_utc(session.started_at)
        original_end = as_utc(session.ended_at)
        original_minutes = session.billed_minutes
        new_start = as_utc(started_at) or original_start
        new_end = as_utc(ended_at) or original_end
        if new_end is not None and new_end < new_start:
            raise InvalidState("结束时间不能早于开始时间", session_id=session_id)

        session.started_at = new_start
        session.ended_at = new_end
        if new_end is not None:
            duration = elapsed_minutes(new_start, new_end)
            session.billed_minutes = duration
            _bill_session(db, session, duration, now, regular_hourly_rate_minor, editor=actor)
            if order.status == "open" and original_end is None and session.closed_at is None:
                order.status = "awaiting_payment"

        record_event(db, order.id, "seat.session.edited", {
            "session_id": session.id,
            "edited_by": actor.username,
            "original_started_at": original_start.isoformat() if original_start else None,
            "original_ended_at": original_end.isoformat() if original_end else None,
            "new_started_at": new_start.isoformat(),
            "new_ended_at": new_end.isoformat() if new_end else None,
            "original_billed_minutes": original_minutes,
            "new_billed_minutes": session.billed_minutes,
        }, actor)

    logger.info("会话 %s 时间已由 %s 修改", session_id, actor.username)
    return session


def transfer_seat(
    db: Session,
    source_seat_id: int,
    target_seat_id: int,
    actor: Actor = SYSTEM,
    now: Optional[datetime] = None,
) -> SeatSession:
    """换座：会话整体移到目标座位，不影响计费"""
    now = now or utcnow()
    if source_seat_id == target_seat_id:
        raise InvalidState("不能换到同一个座位", seat_id=source_seat_id)

    with UnitOfWork(db):
        source = get_seat(db, source_seat_id)
        session = open_session_for_seat(db, source_seat_id)
        if session is None:
            raise NotFound("原座位没有进行中的会话", seat_id=source_seat_id)

        target = get_seat(db, target_seat_id)
        if target.status in ("occupied", "closed") or open_session_for_seat(db, target_seat_id) is not None:
            raise Conflict("目标座位不可用", seat_id=target_seat_id)

        session.seat_id = target.id
        source.status = "open"
        target.status = "occupied"
        db.flush()

        table_status.refresh_after_release(db, source.table_id, "available")
        table_status.mark_seated(db, target.table_id)

        record_event(db, session.order_id, "seat.transferred", {
            "session_id": session.id,
            "from_seat_id": source.id,
            "from_seat": source.label,
            "to_seat_id": target.id,
            "to_seat": target.label,
            "transferred_at": now.isoformat(),
        }, actor)

    logger.info("会话 %s 从座位 %s 换到 %s", session.id, source_seat_id, target_seat_id)
    return session


def end_untimed_session(
    db: Session,
    seat_id: int,
    actor: Actor = SYSTEM,
    now: Optional[datetime] = None,
) -> SeatSession:
    """结束不计时挂单：释放座位，桌台空了则标记为待清理"""
    now = now or utcnow()
    with UnitOfWork(db):
        seat = get_seat(db, seat_id)
        session = open_session_for_seat(db, seat_id)
        if session is None:
            raise NotFound("该座位没有进行中的会话", seat_id=seat_id)
        if session.is_timed:
            raise InvalidState("计时会话请停表后结账", seat_id=seat_id, session_id=session.id)

        session.ended_at = now
        session.closed_at = now
        seat.status = "open"
        db.flush()
        table_status.refresh_after_release(db, seat.table_id, "dirty")

        record_event(db, session.order_id, "seat.session.ended", {
            "seat_id": seat.id,
            "session_id": session.id,
            "ended_at": now.isoformat(),
        }, actor)

    return session


def estimate_session(
    db: Session,
    seat_id: int,
    now: Optional[datetime] = None,
    regular_hourly_rate_minor: int = REGULAR_HOURLY_RATE_MINOR,
) -> membership_service.SeatTimeCharge:
    """计时中座位的预估费用（不写入任何数据）"""
    now = now or utcnow()
    session = open_session_for_seat(db, seat_id)
    if session is None or session.state != SessionState.RUNNING:
        raise NotFound("该座位没有计时中的会话", seat_id=seat_id)
    minutes = max(0, elapsed_minutes(session.started_at, now))
    customer_id = session.customer_id or session.order.customer_id
    return membership_service.resolve(db, customer_id, minutes / 60, regular_hourly_rate_minor, now)
