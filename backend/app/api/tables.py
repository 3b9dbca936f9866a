"""
桌台与楼面API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from app.api.deps import get_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.table import (
    TableCreate, TableStatusUpdate, TableResponse, FloorTableResponse, FloorSeatResponse,
    AssignGameRequest, TableGameSessionResponse,
)
from app.services import floor as floor_service
from app.services.table_status import active_game_sessions

router = APIRouter(prefix="/api/tables", tags=["桌台管理"])


@router.get("/floor", response_model=List[FloorTableResponse])
def get_floor(db: Session = Depends(get_db)):
    """楼面状态：所有桌台、座位及当前会话"""
    sessions = floor_service.open_sessions_by_seat(db)
    result = []
    for table in floor_service.floor(db):
        seats = []
        for seat in table.seats:
            session = sessions.get(seat.id)
            seats.append(FloorSeatResponse(
                id=seat.id,
                table_id=seat.table_id,
                number=seat.number,
                status=seat.status,
                label=seat.label,
                session_id=session.id if session else None,
                order_id=session.order_id if session else None,
                session_state=session.state.value if session else None,
                started_at=session.started_at if session else None,
            ))
        result.append(FloorTableResponse(
            id=table.id,
            name=table.name,
            capacity=table.capacity,
            status=table.status,
            seats=seats,
            game_session_ids=[g.id for g in active_game_sessions(db, table.id)],
        ))
    return result


@router.post("", response_model=TableResponse)
def create_table(table: TableCreate, db: Session = Depends(get_db)):
    """创建桌台及座位"""
    return floor_service.create_table(db, table.name, table.seat_count, capacity=table.capacity)


@router.put("/{table_id}/status", response_model=TableResponse)
def update_table_status(table_id: int, request: TableStatusUpdate, db: Session = Depends(get_db)):
    """修改桌台状态（清理完毕、预约、停用）"""
    return floor_service.set_table_status(db, table_id, request.status)


@router.get("/{table_id}/games", response_model=List[TableGameSessionResponse])
def get_table_games(table_id: int, db: Session = Depends(get_db)):
    """获取桌台进行中的桌游"""
    return floor_service.table_games(db, table_id)


@router.post("/{table_id}/games", response_model=TableGameSessionResponse)
def assign_game(
    table_id: int,
    request: AssignGameRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """桌台开始桌游"""
    return floor_service.assign_game(db, table_id, request.game_id, actor=actor)


@router.delete("/{table_id}/games/{game_session_id}", response_model=TableGameSessionResponse)
def remove_game(table_id: int, game_session_id: int, db: Session = Depends(get_db)):
    """结束桌台上的桌游"""
    return floor_service.remove_game(db, table_id, game_session_id)
