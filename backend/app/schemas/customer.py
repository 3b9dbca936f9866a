"""
客户与积分相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer
from typing import Optional, List
from datetime import datetime
from app.core.timeutil import format_datetime_local


class CustomerCreate(BaseModel):
    """创建客户模型"""
    display_name: str = Field(..., description="姓名", max_length=100)
    phone: Optional[str] = Field(None, description="电话", max_length=20)


class CustomerUpdate(BaseModel):
    """更新客户模型"""
    display_name: Optional[str] = Field(None, description="姓名", max_length=100)
    phone: Optional[str] = Field(None, description="电话", max_length=20)


class CustomerResponse(BaseModel):
    """客户响应模型"""
    id: int
    display_name: str
    phone: Optional[str] = None
    points_balance: int
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)


class PointsTransactionResponse(BaseModel):
    """积分流水响应模型"""
    id: int
    customer_id: int
    order_id: Optional[int] = None
    type: str
    amount: int
    balance_after: int
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)


class PointsAdjustRequest(BaseModel):
    """手动调整积分请求"""
    amount: int = Field(..., description="调整值（正数增加，负数扣减）")
    reason: str = Field(..., description="原因", max_length=200)


class GameHistoryResponse(BaseModel):
    """客户游戏历史响应模型"""
    id: int
    game_id: int
    game_name: Optional[str] = None
    table_id: int
    order_id: int
    played_at: datetime
    duration_minutes: Optional[int] = None
    co_player_names: List[str] = []

    class Config:
        from_attributes = True

    @field_serializer('played_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)
