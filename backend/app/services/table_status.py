"""
桌台状态
桌台状态由座位占用情况推导
"""
import logging
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from app.models.game import Game, TableGameSession
from app.models.table import Seat, Table

logger = logging.getLogger(__name__)


def occupied_seat_count(db: Session, table_id: int) -> int:
    db.flush()
    return db.query(Seat).filter(Seat.table_id == table_id, Seat.status == "occupied").count()


def mark_seated(db: Session, table_id: int):
    table = db.query(Table).filter(Table.id == table_id).first()
    if table is not None:
        table.status = "seated"


def refresh_after_release(db: Session, table_id: int, empty_status: str = "available") -> bool:
    """
    座位释放后更新桌台状态
    没有占用座位时改为 empty_status（结账为 available，不计时挂单结束为 dirty），返回 True
    """
    table = db.query(Table).filter(Table.id == table_id).first()
    if table is None:
        return False
    if occupied_seat_count(db, table_id) > 0:
        table.status = "seated"
        return False
    table.status = empty_status
    return True


def active_game_sessions(db: Session, table_id: int) -> List[TableGameSession]:
    return db.query(TableGameSession).filter(
        TableGameSession.table_id == table_id,
        TableGameSession.ended_at.is_(None),
    ).order_by(TableGameSession.id).all()


def end_table_games(db: Session, table_id: int, now: datetime) -> List[TableGameSession]:
    """结束桌台上进行中的游戏并归还桌游"""
    ended = active_game_sessions(db, table_id)
    for game_session in ended:
        game_session.ended_at = now
        game = db.query(Game).filter(Game.id == game_session.game_id).first()
        if game is not None:
            game.available = True
    if ended:
        logger.info("桌台 %s 空闲，结束游戏 %s", table_id, [g.id for g in ended])
    return ended
