"""
桌游管理API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from app.db.database import get_db
from app.schemas.table import GameCreate, GameResponse
from app.services import floor as floor_service

router = APIRouter(prefix="/api/games", tags=["桌游管理"])


@router.get("", response_model=List[GameResponse])
def get_games(available_only: bool = False, db: Session = Depends(get_db)):
    """获取桌游列表"""
    return floor_service.list_games(db, available_only=available_only)


@router.post("", response_model=GameResponse)
def create_game(game: GameCreate, db: Session = Depends(get_db)):
    """添加桌游"""
    return floor_service.create_game(db, game.name)
