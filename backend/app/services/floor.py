"""
桌台、座位与桌游
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.actor import SYSTEM, Actor
from app.core.exceptions import Conflict, InvalidState, NotFound
from app.core.timeutil import utcnow
from app.models.game import Game, TableGameSession
from app.models.order import OrderItem
from app.models.seat_session import SeatSession
from app.models.table import Seat, Table
from app.services.item_meta import GameMeta, dump_meta
from app.services.order_events import record_event
from app.services.table_status import active_game_sessions
from app.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def get_table(db: Session, table_id: int) -> Table:
    table = db.query(Table).filter(Table.id == table_id).first()
    if not table:
        raise NotFound("桌台不存在", table_id=table_id)
    return table


def create_table(db: Session, name: str, seat_count: int, capacity: Optional[int] = None) -> Table:
    """创建桌台并生成座位（座位号从1开始）"""
    if seat_count <= 0:
        raise InvalidState("座位数必须大于0", seat_count=seat_count)
    with UnitOfWork(db):
        if db.query(Table).filter(Table.name == name).first():
            raise Conflict("桌台名称已存在", name=name)
        table = Table(name=name, capacity=capacity or seat_count, status="available")
        db.add(table)
        db.flush()
        for number in range(1, seat_count + 1):
            db.add(Seat(table_id=table.id, number=number, status="open"))
    return table


def set_table_status(db: Session, table_id: int, status: str) -> Table:
    """手动设置桌台状态（清理完毕、预约、停用）；有人就座时不能修改"""
    if status not in ("available", "dirty", "reserved", "offline"):
        raise InvalidState("不支持的桌台状态", status=status)
    with UnitOfWork(db):
        table = get_table(db, table_id)
        occupied = db.query(Seat).filter(Seat.table_id == table_id, Seat.status == "occupied").count()
        if occupied:
            raise InvalidState("桌台有人就座，不能修改状态", table_id=table_id, occupied_seats=occupied)
        table.status = status
    return table


def floor(db: Session) -> List[Table]:
    return db.query(Table).order_by(Table.id).all()


def open_sessions_by_seat(db: Session) -> dict:
    sessions = db.query(SeatSession).filter(SeatSession.closed_at.is_(None)).all()
    return {s.seat_id: s for s in sessions}


def create_game(db: Session, name: str) -> Game:
    with UnitOfWork(db):
        game = Game(name=name, available=True)
        db.add(game)
    return game


def list_games(db: Session, available_only: bool = False) -> List[Game]:
    query = db.query(Game)
    if available_only:
        query = query.filter(Game.available.is_(True))
    return query.order_by(Game.name).all()


def assign_game(
    db: Session,
    table_id: int,
    game_id: int,
    actor: Actor = SYSTEM,
    now: Optional[datetime] = None,
) -> TableGameSession:
    """
    桌台开始玩桌游
    桌游同时只能在一个桌台上；当前就座的订单各加一条0元桌游明细
    """
    now = now or utcnow()
    with UnitOfWork(db):
        table = get_table(db, table_id)
        game = db.query(Game).filter(Game.id == game_id).first()
        if not game:
            raise NotFound("桌游不存在", game_id=game_id)
        in_use = db.query(TableGameSession).filter(
            TableGameSession.game_id == game_id,
            TableGameSession.ended_at.is_(None),
        ).first()
        if in_use is not None:
            raise Conflict("桌游正在其他桌台使用", game_id=game_id, table_id=in_use.table_id)

        game_session = TableGameSession(table_id=table.id, game_id=game.id, started_at=now)
        db.add(game_session)
        game.available = False
        db.flush()

        sessions = db.query(SeatSession).join(Seat, SeatSession.seat_id == Seat.id).filter(
            Seat.table_id == table.id,
            SeatSession.closed_at.is_(None),
        ).all()
        for order_id in sorted({s.order_id for s in sessions}):
            db.add(OrderItem(
                order_id=order_id,
                kind="game",
                name=f"桌游 {game.name}",
                qty=1,
                unit_price_minor=0,
                tax_minor=0,
                total_minor=0,
                meta=dump_meta(GameMeta(game_id=game.id, table_id=table.id,
                                        table_game_session_id=game_session.id)),
            ))
            record_event(db, order_id, "table.game.assigned",
                         {"table_id": table.id, "game_id": game.id, "table_game_session_id": game_session.id},
                         actor)

    logger.info("桌台 %s 开始桌游 %s", table_id, game_id)
    return game_session


def remove_game(
    db: Session,
    table_id: int,
    game_session_id: int,
    now: Optional[datetime] = None,
) -> TableGameSession:
    """结束桌台上的桌游并归还"""
    now = now or utcnow()
    with UnitOfWork(db):
        game_session = db.query(TableGameSession).filter(TableGameSession.id == game_session_id).first()
        if not game_session:
            raise NotFound("桌台游戏记录不存在", table_game_session_id=game_session_id)
        if game_session.table_id != table_id:
            raise InvalidState("该游戏不属于此桌台", table_id=table_id, table_game_session_id=game_session_id)
        if game_session.ended_at is None:
            game_session.ended_at = now
            game = db.query(Game).filter(Game.id == game_session.game_id).first()
            if game is not None:
                game.available = True
    return game_session


def table_games(db: Session, table_id: int) -> List[TableGameSession]:
    get_table(db, table_id)
    return active_game_sessions(db, table_id)
