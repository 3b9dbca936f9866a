"""
桌台、座位与桌游相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer
from typing import Optional, List
from datetime import datetime
from app.core.timeutil import format_datetime_local


class TableCreate(BaseModel):
    """创建桌台模型"""
    name: str = Field(..., description="名称", max_length=100)
    seat_count: int = Field(..., gt=0, le=20, description="座位数")
    capacity: Optional[int] = Field(None, gt=0, description="容纳人数（默认等于座位数）")


class TableStatusUpdate(BaseModel):
    """修改桌台状态"""
    status: str = Field(..., description="状态：available, dirty, reserved, offline")


class SeatResponse(BaseModel):
    """座位响应模型"""
    id: int
    table_id: int
    number: int
    status: str
    label: str

    class Config:
        from_attributes = True


class FloorSeatResponse(SeatResponse):
    """楼面座位（含当前会话）"""
    session_id: Optional[int] = Field(None, description="当前会话ID")
    order_id: Optional[int] = Field(None, description="当前订单ID")
    session_state: Optional[str] = Field(None, description="当前会话状态")
    started_at: Optional[datetime] = None

    @field_serializer('started_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)


class TableResponse(BaseModel):
    """桌台响应模型"""
    id: int
    name: str
    capacity: int
    status: str
    seats: List[SeatResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)


class FloorTableResponse(BaseModel):
    """楼面桌台"""
    id: int
    name: str
    capacity: int
    status: str
    seats: List[FloorSeatResponse] = []
    game_session_ids: List[int] = []


class GameCreate(BaseModel):
    """创建桌游模型"""
    name: str = Field(..., description="名称", max_length=200)


class GameResponse(BaseModel):
    """桌游响应模型"""
    id: int
    name: str
    available: bool

    class Config:
        from_attributes = True


class AssignGameRequest(BaseModel):
    """桌台开始桌游请求"""
    game_id: int = Field(..., description="桌游ID")


class TableGameSessionResponse(BaseModel):
    """桌台游戏记录响应模型"""
    id: int
    table_id: int
    game_id: int
    started_at: datetime
    ended_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_serializer('started_at', 'ended_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)
