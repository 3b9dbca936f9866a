"""
积分服务

积分流水只追加不修改，客户的 points_balance 与流水的 balance_after 同步更新。
这里的函数不提交事务，由调用方的 UnitOfWork 统一提交。
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientPoints, NotFound
from app.models.customer import Customer
from app.models.points_transaction import PointsTransaction
from app.services import settings_service

logger = logging.getLogger(__name__)

EARNED = "EARNED"
REDEEMED = "REDEEMED"
BONUS = "BONUS"
MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"

# 1积分 = ¥1 = 100最小货币单位
MINOR_PER_POINT = 100


def _get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFound("客户不存在", customer_id=customer_id)
    return customer


def _append(db: Session, customer: Customer, type_: str, amount: int,
            order_id: Optional[int], description: str) -> PointsTransaction:
    customer.points_balance = (customer.points_balance or 0) + amount
    transaction = PointsTransaction(
        customer_id=customer.id,
        order_id=order_id,
        type=type_,
        amount=amount,
        balance_after=customer.points_balance,
        description=description,
    )
    db.add(transaction)
    return transaction


def balance(db: Session, customer_id: int) -> int:
    return _get_customer(db, customer_id).points_balance or 0


def points_earned_for(db: Session, amount_minor: int, customer_id: Optional[int] = None,
                      now: Optional[datetime] = None) -> int:
    """
    消费金额可获得的积分
    会员按会员比例计算（例如 ¥5000 / 40 = 125分），非会员按普通比例
    """
    from app.services import membership_service

    earn_rate = settings_service.get_int_setting(db, "points_regular_earn_rate")
    if customer_id and membership_service.active_membership(db, customer_id, now) is not None:
        earn_rate = settings_service.get_int_setting(db, "points_member_earn_rate")
    if earn_rate <= 0 or amount_minor <= 0:
        return 0
    amount_major = amount_minor // 100
    return amount_major // earn_rate


def redeem(db: Session, customer_id: int, points: int, order_id: Optional[int] = None,
           description: Optional[str] = None) -> PointsTransaction:
    """兑换积分（用于付款）"""
    customer = _get_customer(db, customer_id)
    current = customer.points_balance or 0
    if current < points:
        raise InsufficientPoints(
            f"积分不足：余额 {current}，需要 {points}",
            customer_id=customer_id, balance=current, requested=points,
        )
    return _append(db, customer, REDEEMED, -points, order_id,
                   description or f"订单 {order_id} 积分抵扣")


def award(db: Session, customer_id: int, points: int, order_id: Optional[int] = None,
          description: Optional[str] = None) -> Optional[PointsTransaction]:
    """消费积分"""
    if points <= 0:
        return None
    customer = _get_customer(db, customer_id)
    return _append(db, customer, EARNED, points, order_id,
                   description or f"订单 {order_id} 消费积分")


def add_bonus(db: Session, customer_id: int, points: int, description: str) -> Optional[PointsTransaction]:
    """赠送积分（如购买会员卡）"""
    if points <= 0:
        return None
    customer = _get_customer(db, customer_id)
    return _append(db, customer, BONUS, points, None, description)


def adjust(db: Session, customer_id: int, amount: int, reason: str) -> PointsTransaction:
    """
    管理员手动调整
    余额不会被调整到负数，流水记录实际变动值
    """
    customer = _get_customer(db, customer_id)
    current = customer.points_balance or 0
    actual = max(amount, -current)
    logger.info("手动调整积分 customer=%s 请求=%s 实际=%s", customer_id, amount, actual)
    return _append(db, customer, MANUAL_ADJUSTMENT, actual, None, f"手动调整：{reason}")


def history(db: Session, customer_id: int, limit: int = 50) -> List[PointsTransaction]:
    _get_customer(db, customer_id)
    return db.query(PointsTransaction).filter(
        PointsTransaction.customer_id == customer_id
    ).order_by(PointsTransaction.id.desc()).limit(limit).all()
