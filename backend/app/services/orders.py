"""
订单与订单明细

商品类明细（fnb、retail、租赁费、押金）由调用方传入含税单价，不校验库存；
计时费、桌游、会员卡明细只由对应的服务生成。
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.actor import SYSTEM, Actor
from app.core.exceptions import InvalidState, NotFound
from app.models.customer import Customer
from app.models.order import Order, OrderItem
from app.services import settings_service
from app.services.item_meta import ItemMeta, dump_meta
from app.services.order_events import record_event
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

CATALOG_KINDS = ("fnb", "retail", "rental_fee", "rental_deposit")
UNPAID_STATUSES = ("open", "awaiting_payment")


def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFound("订单不存在", order_id=order_id)
    return order


def _get_unpaid_order(db: Session, order_id: int) -> Order:
    order = get_order(db, order_id)
    if order.status not in UNPAID_STATUSES:
        raise InvalidState("订单已结账或已取消", order_id=order_id, status=order.status)
    return order


def create_order(db: Session, customer_id: Optional[int] = None, notes: Optional[str] = None,
                 actor: Actor = SYSTEM) -> Order:
    with UnitOfWork(db):
        if customer_id is not None and not db.query(Customer).filter(Customer.id == customer_id).first():
            raise NotFound("客户不存在", customer_id=customer_id)
        order = Order(customer_id=customer_id, notes=notes, status="open")
        db.add(order)
        db.flush()
        record_event(db, order.id, "order.created", {"customer_id": customer_id}, actor)
    return order


def set_customer(db: Session, order_id: int, customer_id: Optional[int], actor: Actor = SYSTEM) -> Order:
    """关联或取消关联客户"""
    with UnitOfWork(db):
        order = _get_unpaid_order(db, order_id)
        if customer_id is not None and not db.query(Customer).filter(Customer.id == customer_id).first():
            raise NotFound("客户不存在", customer_id=customer_id)
        previous = order.customer_id
        order.customer_id = customer_id
        record_event(db, order.id, "order.customer.changed",
                     {"from_customer_id": previous, "to_customer_id": customer_id}, actor)
    return order


def add_item(
    db: Session,
    order_id: int,
    kind: str,
    name: str,
    unit_price_minor: int,
    qty: int = 1,
    catalog_ref: Optional[str] = None,
    meta: Optional[dict] = None,
    actor: Actor = SYSTEM,
) -> OrderItem:
    """
    添加商品明细
    unit_price_minor 为含税单价；明细保存不含税单价和税额
    """
    if kind not in CATALOG_KINDS:
        raise InvalidState("该类型的明细不能手动添加", kind=kind)
    if qty <= 0:
        raise InvalidState("数量必须大于0", qty=qty)

    with UnitOfWork(db):
        order = _get_unpaid_order(db, order_id)
        total = unit_price_minor * qty
        tax = settings_service.included_tax_minor(db, total)
        item = OrderItem(
            order_id=order.id,
            kind=kind,
            name=name,
            catalog_ref=catalog_ref,
            qty=qty,
            unit_price_minor=(total - tax) // qty,
            tax_minor=tax,
            total_minor=total,
            meta=dump_meta(ItemMeta(**meta)) if meta else None,
        )
        db.add(item)
        db.flush()
        record_event(db, order.id, "order.item.added", {
            "item_id": item.id, "kind": kind, "name": name, "qty": qty, "total_minor": total,
        }, actor)
    return item


def remove_item(db: Session, order_id: int, item_id: int, actor: Actor = SYSTEM) -> Order:
    """删除商品明细（计时费、桌游、会员卡明细不能删除）"""
    with UnitOfWork(db):
        order = _get_unpaid_order(db, order_id)
        item = db.query(OrderItem).filter(OrderItem.id == item_id, OrderItem.order_id == order_id).first()
        if not item:
            raise NotFound("订单明细不存在", order_id=order_id, item_id=item_id)
        if item.kind not in CATALOG_KINDS:
            raise InvalidState("该类型的明细不能删除", item_id=item_id, kind=item.kind)
        record_event(db, order.id, "order.item.removed", {
            "item_id": item.id, "kind": item.kind, "name": item.name, "total_minor": item.total_minor,
        }, actor)
        db.delete(item)
    return order


def cancel_order(db: Session, order_id: int, actor: Actor = SYSTEM) -> Order:
    """取消订单：不能有未释放的座位，也不能在付款组中"""
    with UnitOfWork(db):
        order = _get_unpaid_order(db, order_id)
        open_sessions = [s.id for s in order.seat_sessions if s.closed_at is None]
        if open_sessions:
            raise InvalidState("订单还有未释放的座位", order_id=order_id, session_ids=open_sessions)
        if order.payment_group_id:
            raise InvalidState("订单已合并，请先拆分", order_id=order_id,
                               payment_group_id=order.payment_group_id)
        order.status = "canceled"
        record_event(db, order.id, "order.canceled", {}, actor)
    logger.info("订单 %s 已取消", order_id)
    return order
