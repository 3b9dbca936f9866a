"""
会员方案API
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from app.db.database import get_db
from app.models.membership import MembershipPlan
from app.schemas.membership import MembershipPlanCreate, MembershipPlanResponse

router = APIRouter(prefix="/api/membership-plans", tags=["会员方案"])


@router.get("", response_model=List[MembershipPlanResponse])
def get_membership_plans(include_inactive: bool = False, db: Session = Depends(get_db)):
    """获取会员方案列表"""
    query = db.query(MembershipPlan)
    if not include_inactive:
        query = query.filter(MembershipPlan.is_active.is_(True))
    return query.order_by(MembershipPlan.price_minor).all()


@router.post("", response_model=MembershipPlanResponse)
def create_membership_plan(plan: MembershipPlanCreate, db: Session = Depends(get_db)):
    """创建会员方案"""
    existing = db.query(MembershipPlan).filter(MembershipPlan.name == plan.name).first()
    if existing:
        raise HTTPException(status_code=400, detail="方案名称已存在")

    db_plan = MembershipPlan(**plan.model_dump(), is_active=True)
    try:
        db.add(db_plan)
        db.commit()
        db.refresh(db_plan)
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=f"创建会员方案失败: {str(e)}")
    return db_plan


@router.delete("/{plan_id}", response_model=MembershipPlanResponse)
def deactivate_membership_plan(plan_id: int, db: Session = Depends(get_db)):
    """停用会员方案（已售出的会员卡不受影响）"""
    db_plan = db.query(MembershipPlan).filter(MembershipPlan.id == plan_id).first()
    if not db_plan:
        raise HTTPException(status_code=404, detail="会员方案不存在")
    db_plan.is_active = False
    db.commit()
    db.refresh(db_plan)
    return db_plan
