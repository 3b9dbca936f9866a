"""
合并账单API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api.deps import get_actor
from app.core.actor import Actor
from app.core.exceptions import NotFound
from app.db.database import get_db
from app.schemas.order import (
    MergeBillsRequest, MergeSessionsRequest, MergeResponse, UnmergeResponse, PaymentGroupResponse, OrderResponse,
)
from app.services import bill_merge

router = APIRouter(prefix="/api/bills", tags=["合并账单"])


@router.post("/merge", response_model=MergeResponse)
def merge_bills(request: MergeBillsRequest, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """合并订单，由付款方订单统一结账"""
    return bill_merge.merge_bills(db, request.primary_order_id, request.order_ids, actor=actor)


@router.post("/merge-sessions", response_model=MergeResponse)
def merge_sessions(request: MergeSessionsRequest, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """按座位会话合并账单"""
    return bill_merge.merge_sessions(db, request.primary_session_id, request.session_ids, actor=actor)


@router.get("/groups/{payment_group_id}", response_model=PaymentGroupResponse)
def get_payment_group(payment_group_id: str, db: Session = Depends(get_db)):
    """获取付款组"""
    orders = bill_merge.find_group(db, payment_group_id)
    if not orders:
        raise NotFound("付款组不存在", payment_group_id=payment_group_id)
    primary = next((o for o in orders if o.is_primary_payer), None)
    return PaymentGroupResponse(
        payment_group_id=payment_group_id,
        primary_order_id=primary.id if primary else None,
        combined_total_minor=sum(o.total_minor for o in orders),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@router.post("/groups/{payment_group_id}/unmerge", response_model=UnmergeResponse)
def unmerge_bills(payment_group_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """拆分付款组"""
    order_ids = bill_merge.unmerge_bills(db, payment_group_id, actor=actor)
    return UnmergeResponse(payment_group_id=payment_group_id, order_ids=order_ids)
