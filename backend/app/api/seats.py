"""
座位计时API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from app.api.deps import get_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.seat_session import (
    StartSessionRequest, TransferSeatRequest, SeatSessionResponse,
    SeatEstimateResponse, MembershipChargeResponse,
)
from app.services import seat_sessions, time_billing

router = APIRouter(prefix="/api/seats", tags=["座位计时"])


@router.get("/sessions/active", response_model=List[SeatSessionResponse])
def get_active_sessions(db: Session = Depends(get_db)):
    """获取所有未释放的座位会话"""
    return seat_sessions.list_active_sessions(db)


@router.post("/{seat_id}/start", response_model=SeatSessionResponse)
def start_timer(
    seat_id: int,
    request: StartSessionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """开台并开始计时"""
    return seat_sessions.start_session(
        db, seat_id, request.order_id, customer_id=request.customer_id, actor=actor, timed=True
    )


@router.post("/{seat_id}/start-untimed", response_model=SeatSessionResponse)
def start_untimed(
    seat_id: int,
    request: StartSessionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """开台（不计时）"""
    return seat_sessions.start_session(
        db, seat_id, request.order_id, customer_id=request.customer_id, actor=actor, timed=False
    )


@router.post("/{seat_id}/stop", response_model=SeatSessionResponse)
def stop_timer(seat_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """停表（生成计时费，座位保持占用直到结账）"""
    return seat_sessions.stop_session(db, seat_id, actor=actor)


@router.post("/{seat_id}/end-untimed", response_model=SeatSessionResponse)
def end_untimed(seat_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """结束不计时的会话并释放座位"""
    return seat_sessions.end_untimed_session(db, seat_id, actor=actor)


@router.post("/{seat_id}/transfer", response_model=SeatSessionResponse)
def transfer(
    seat_id: int,
    request: TransferSeatRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """换座"""
    return seat_sessions.transfer_seat(db, seat_id, request.target_seat_id, actor=actor)


@router.get("/{seat_id}/estimate", response_model=SeatEstimateResponse)
def estimate(seat_id: int, db: Session = Depends(get_db)):
    """计时中座位的预估费用"""
    charge = seat_sessions.estimate_session(db, seat_id)
    if charge.membership is not None:
        return SeatEstimateResponse(
            seat_id=seat_id,
            minutes=charge.minutes,
            total_minor=charge.total_minor,
            description=f"会员计时 {time_billing.format_duration(charge.minutes)}",
            membership=MembershipChargeResponse(**vars(charge.membership)),
        )
    return SeatEstimateResponse(
        seat_id=seat_id,
        minutes=charge.minutes,
        total_minor=charge.total_minor,
        tier=charge.billing.tier,
        description=time_billing.describe(charge.billing),
    )
