"""
客户管理API
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import List, Optional
from app.api.deps import get_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.models.customer import Customer
from app.models.game import CustomerGameHistory
from app.schemas.customer import (
    CustomerCreate, CustomerUpdate, CustomerResponse,
    PointsTransactionResponse, PointsAdjustRequest, GameHistoryResponse,
)
from app.schemas.membership import MembershipPurchaseRequest, CustomerMembershipResponse
from app.services import membership_service, points_service
from app.services.unit_of_work import UnitOfWork

router = APIRouter(prefix="/api/customers", tags=["客户管理"])


def _get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="客户不存在")
    return customer


@router.get("", response_model=List[CustomerResponse])
def get_customers(
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """获取客户列表"""
    query = db.query(Customer)
    if search:
        query = query.filter(
            or_(
                Customer.display_name.like(f"%{search}%"),
                Customer.phone.like(f"%{search}%")
            )
        )
    return query.order_by(Customer.id).offset(skip).limit(limit).all()


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    """获取客户详情"""
    return _get_customer(db, customer_id)


@router.post("", response_model=CustomerResponse)
def create_customer(customer: CustomerCreate, db: Session = Depends(get_db)):
    """创建客户"""
    if customer.phone:
        existing = db.query(Customer).filter(Customer.phone == customer.phone).first()
        if existing:
            raise HTTPException(status_code=400, detail=f"电话 '{customer.phone}' 已被其他客户使用")

    db_customer = Customer(
        display_name=customer.display_name,
        phone=customer.phone,
        points_balance=0,
    )
    db.add(db_customer)
    db.commit()
    db.refresh(db_customer)
    return db_customer


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: int,
    customer_update: CustomerUpdate,
    db: Session = Depends(get_db)
):
    """更新客户"""
    db_customer = _get_customer(db, customer_id)
    update_data = customer_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_customer, field, value)
    db.commit()
    db.refresh(db_customer)
    return db_customer


@router.get("/{customer_id}/points", response_model=List[PointsTransactionResponse])
def get_points_history(customer_id: int, limit: int = 50, db: Session = Depends(get_db)):
    """获取积分流水"""
    return points_service.history(db, customer_id, limit=limit)


@router.post("/{customer_id}/points/adjust", response_model=PointsTransactionResponse)
def adjust_points(
    customer_id: int,
    request: PointsAdjustRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """手动调整积分（余额不会低于0）"""
    with UnitOfWork(db) as uow:
        transaction = points_service.adjust(db, customer_id, request.amount, f"{request.reason}（{actor.username}）")
        uow.flush()
    db.refresh(transaction)
    return transaction


@router.get("/{customer_id}/games", response_model=List[GameHistoryResponse])
def get_game_history(customer_id: int, limit: int = 50, db: Session = Depends(get_db)):
    """获取客户游戏历史"""
    _get_customer(db, customer_id)
    records = db.query(CustomerGameHistory).filter(
        CustomerGameHistory.customer_id == customer_id
    ).order_by(CustomerGameHistory.played_at.desc()).limit(limit).all()
    return [
        GameHistoryResponse(
            id=r.id,
            game_id=r.game_id,
            game_name=r.game.name if r.game else None,
            table_id=r.table_id,
            order_id=r.order_id,
            played_at=r.played_at,
            duration_minutes=r.duration_minutes,
            co_player_names=r.co_player_names or [],
        )
        for r in records
    ]


@router.get("/{customer_id}/membership", response_model=Optional[CustomerMembershipResponse])
def get_active_membership(customer_id: int, db: Session = Depends(get_db)):
    """获取客户当前有效的会员卡"""
    _get_customer(db, customer_id)
    return membership_service.active_membership(db, customer_id)


@router.post("/{customer_id}/memberships", response_model=CustomerMembershipResponse)
def purchase_membership(
    customer_id: int,
    request: MembershipPurchaseRequest,
    db: Session = Depends(get_db),
):
    """购买会员卡"""
    with UnitOfWork(db):
        membership = membership_service.purchase(db, customer_id, request.plan_id, order_id=request.order_id)
    return membership
