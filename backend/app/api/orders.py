"""
订单与结账API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from app.api.deps import get_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.order import (
    OrderCreate, OrderCustomerUpdate, OrderItemCreate, OrderResponse, OrderEventResponse,
    SettleRequest, SettlementResponse,
)
from app.services import orders as order_service
from app.services.settlement import Tender, settle_order
from app.services.tender_gateway import TenderGateway, get_tender_gateway

router = APIRouter(prefix="/api/orders", tags=["订单"])


@router.post("", response_model=OrderResponse)
def create_order(order: OrderCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """创建订单"""
    return order_service.create_order(db, customer_id=order.customer_id, notes=order.notes, actor=actor)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db)):
    """获取订单详情"""
    return order_service.get_order(db, order_id)


@router.get("/{order_id}/events", response_model=List[OrderEventResponse])
def get_order_events(order_id: int, db: Session = Depends(get_db)):
    """获取订单事件记录"""
    return order_service.get_order(db, order_id).events


@router.put("/{order_id}/customer", response_model=OrderResponse)
def update_order_customer(
    order_id: int,
    request: OrderCustomerUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """修改订单关联的客户"""
    return order_service.set_customer(db, order_id, request.customer_id, actor=actor)


@router.post("/{order_id}/items", response_model=OrderResponse)
def add_order_item(
    order_id: int,
    item: OrderItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """添加商品明细"""
    order_service.add_item(
        db, order_id,
        kind=item.kind,
        name=item.name,
        unit_price_minor=item.unit_price_minor,
        qty=item.qty,
        catalog_ref=item.catalog_ref,
        meta=item.meta,
        actor=actor,
    )
    return order_service.get_order(db, order_id)


@router.delete("/{order_id}/items/{item_id}", response_model=OrderResponse)
def remove_order_item(
    order_id: int,
    item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """删除商品明细"""
    return order_service.remove_item(db, order_id, item_id, actor=actor)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """取消订单"""
    return order_service.cancel_order(db, order_id, actor=actor)


@router.post("/{order_id}/settle", response_model=SettlementResponse)
def settle(
    order_id: int,
    request: SettleRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    gateway: TenderGateway = Depends(get_tender_gateway),
):
    """结账（付款方订单同时结清付款组中的其他订单）"""
    tenders = [Tender(method=t.method, amount_minor=t.amount_minor, reference=t.reference) for t in request.tenders]
    return settle_order(db, order_id, tenders, actor=actor, gateway=gateway)
