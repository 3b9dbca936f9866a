"""
会员卡服务

会员停表时按剩余包含时长抵扣，超出部分按方案的超时费率（默认 ¥300/小时）计费，
不走非会员的阶梯计价；合计金额只在最后取整一次。
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import MEMBERSHIP_TERM_MONTHS, REGULAR_HOURLY_RATE_MINOR
from app.core.exceptions import InvalidState, NotFound
from app.core.timeutil import as_utc, utcnow
from app.models.customer import Customer
from app.models.membership import CustomerMembership, MembershipPlan, MembershipUsage
from app.models.order import Order, OrderItem
from app.services import points_service, settings_service
from app.services import time_billing
from app.services.item_meta import MembershipItemMeta, dump_meta
from app.services.orders import UNPAID_STATUSES

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"


@dataclass
class MembershipCharge:
    """会员抵扣结果"""
    membership_id: int
    plan_name: str
    included_hours: float
    overage_hours: float
    overage_rate_minor: int
    total_minor: int
    included_value_minor: int
    remaining_hours: float


@dataclass
class SeatTimeCharge:
    """一次停表的计费结果：非会员走阶梯计价，会员走抵扣"""
    minutes: int
    total_minor: int
    billing: Optional[time_billing.TimeBilling] = None
    membership: Optional[MembershipCharge] = None


def active_membership(db: Session, customer_id: int, now: Optional[datetime] = None) -> Optional[CustomerMembership]:
    """客户当前有效的会员卡"""
    now = now or utcnow()
    memberships = db.query(CustomerMembership).filter(
        CustomerMembership.customer_id == customer_id,
        CustomerMembership.status == ACTIVE,
    ).order_by(CustomerMembership.end_date.desc()).all()
    for membership in memberships:
        if as_utc(membership.end_date) >= now:
            return membership
    return None


def round_to_unit(amount_minor: float, unit: int) -> int:
    if unit <= 1:
        return int(round(amount_minor))
    return int(round(amount_minor / unit)) * unit


def apply_membership(
    db: Session,
    membership: CustomerMembership,
    elapsed_hours: float,
    regular_hourly_rate_minor: int = REGULAR_HOURLY_RATE_MINOR,
    hours_already_counted: float = 0.0,
) -> MembershipCharge:
    """
    计算会员抵扣
    hours_already_counted: 本次会话此前已计入会员卡的时长（修改时间时重新计算用）
    """
    plan = membership.plan
    hours_used = max(0.0, (membership.hours_used or 0.0) - hours_already_counted)
    remaining = max(0.0, plan.hours_included - hours_used)
    included_hours = min(elapsed_hours, remaining)
    overage_hours = max(0.0, elapsed_hours - included_hours)
    unit = settings_service.get_int_setting(db, "membership_rounding_minor")
    total_minor = round_to_unit(overage_hours * plan.overage_rate_minor, unit)
    return MembershipCharge(
        membership_id=membership.id,
        plan_name=plan.name,
        included_hours=included_hours,
        overage_hours=overage_hours,
        overage_rate_minor=plan.overage_rate_minor,
        total_minor=total_minor,
        included_value_minor=int(round(included_hours * regular_hourly_rate_minor)),
        remaining_hours=remaining - included_hours,
    )


def resolve(
    db: Session,
    customer_id: Optional[int],
    elapsed_hours: float,
    regular_hourly_rate_minor: int = REGULAR_HOURLY_RATE_MINOR,
    now: Optional[datetime] = None,
    membership: Optional[CustomerMembership] = None,
    hours_already_counted: float = 0.0,
) -> SeatTimeCharge:
    """
    计算一次计时的费用
    没有客户或没有有效会员卡时，按完整分钟数走阶梯计价
    """
    minutes = int(round(elapsed_hours * 60))
    if membership is None and customer_id:
        membership = active_membership(db, customer_id, now)
    if membership is None:
        billing = time_billing.charge(minutes)
        return SeatTimeCharge(minutes=minutes, total_minor=billing.total_minor, billing=billing)

    member_charge = apply_membership(
        db, membership, elapsed_hours, regular_hourly_rate_minor, hours_already_counted
    )
    return SeatTimeCharge(minutes=minutes, total_minor=member_charge.total_minor, membership=member_charge)


def record_usage(
    db: Session,
    charge: MembershipCharge,
    hours: float,
    seat_session_id: Optional[int] = None,
    entry_type: str = "usage",
    description: Optional[str] = None,
) -> MembershipUsage:
    """
    记录会员用时流水并累加会员卡已用时长
    修改时间时 hours 为与上次记录的差额
    """
    membership = db.query(CustomerMembership).filter(CustomerMembership.id == charge.membership_id).first()
    if not membership:
        raise NotFound("会员卡不存在", membership_id=charge.membership_id)
    membership.hours_used = (membership.hours_used or 0.0) + hours
    usage = MembershipUsage(
        membership_id=membership.id,
        seat_session_id=seat_session_id,
        hours_used=hours,
        included_hours=charge.included_hours,
        overage_hours=charge.overage_hours,
        overage_charge_minor=charge.total_minor,
        entry_type=entry_type,
        description=description or "座位计时",
    )
    db.add(usage)
    return usage


def session_usage(db: Session, seat_session_id: int):
    """
    某座位会话已计入会员卡的记录
    返回 (会员卡, 已计入小时数)，没有记录时返回 (None, 0)
    """
    usages = db.query(MembershipUsage).filter(
        MembershipUsage.seat_session_id == seat_session_id
    ).order_by(MembershipUsage.id).all()
    if not usages:
        return None, 0.0
    membership = db.query(CustomerMembership).filter(
        CustomerMembership.id == usages[-1].membership_id
    ).first()
    return membership, sum(u.hours_used for u in usages)


def add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def purchase(
    db: Session,
    customer_id: int,
    plan_id: int,
    order_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CustomerMembership:
    """
    购买会员卡
    - 同一客户同时只能有一张有效会员卡
    - 指定订单时，把会员卡费用作为 membership 明细加入订单（会员卡消费不积分）
    - 方案有赠送积分时立即发放
    """
    now = now or utcnow()
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFound("客户不存在", customer_id=customer_id)

    plan = db.query(MembershipPlan).filter(MembershipPlan.id == plan_id).first()
    if not plan or not plan.is_active:
        raise NotFound("会员方案不存在或已停用", plan_id=plan_id)

    if active_membership(db, customer_id, now) is not None:
        raise InvalidState("客户已有有效的会员卡", customer_id=customer_id)

    order = None
    if order_id is not None:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFound("订单不存在", order_id=order_id)
        if order.status not in UNPAID_STATUSES:
            raise InvalidState("订单已结账或已取消", order_id=order_id, status=order.status)

    membership = CustomerMembership(
        customer_id=customer_id,
        plan_id=plan.id,
        start_date=now,
        end_date=add_months(now, MEMBERSHIP_TERM_MONTHS),
        hours_used=0.0,
        status=ACTIVE,
    )
    db.add(membership)
    db.flush()

    if order is not None:
        tax_minor = settings_service.included_tax_minor(db, plan.price_minor)
        db.add(OrderItem(
            order_id=order.id,
            kind="membership",
            name=f"会员卡 {plan.name}",
            qty=1,
            unit_price_minor=plan.price_minor - tax_minor,
            tax_minor=tax_minor,
            total_minor=plan.price_minor,
            meta=dump_meta(MembershipItemMeta(plan_id=plan.id, membership_id=membership.id)),
        ))

    if plan.points_on_purchase > 0:
        points_service.add_bonus(db, customer_id, plan.points_on_purchase, f"购买会员卡 {plan.name} 赠送")

    logger.info("客户 %s 购买会员卡 %s（方案 %s）", customer_id, membership.id, plan.name)
    return membership
