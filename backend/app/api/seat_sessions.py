"""
座位会话管理API（管理员）
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api.deps import get_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.seat_session import EditSessionTimesRequest, SeatSessionResponse
from app.services import seat_sessions

router = APIRouter(prefix="/api/admin/seat-sessions", tags=["座位会话管理"])


@router.get("/{session_id}", response_model=SeatSessionResponse)
def get_seat_session(session_id: int, db: Session = Depends(get_db)):
    """获取座位会话"""
    return seat_sessions.get_session(db, session_id)


@router.put("/{session_id}/times", response_model=SeatSessionResponse)
def edit_times(
    session_id: int,
    request: EditSessionTimesRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """修改计时的开始/停表时间并重新计费"""
    return seat_sessions.edit_session_times(
        db, session_id, started_at=request.started_at, ended_at=request.ended_at, actor=actor
    )
