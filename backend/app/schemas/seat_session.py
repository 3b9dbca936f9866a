"""
座位会话相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer
from typing import Optional
from datetime import datetime
from app.core.timeutil import format_datetime_local
from app.models.seat_session import SessionState


class StartSessionRequest(BaseModel):
    """开台请求"""
    order_id: int = Field(..., description="订单ID")
    customer_id: Optional[int] = Field(None, description="客户ID（默认使用订单的客户）")


class TransferSeatRequest(BaseModel):
    """换座请求"""
    target_seat_id: int = Field(..., description="目标座位ID")


class EditSessionTimesRequest(BaseModel):
    """修改计时时间请求（不带时区的时间按UTC处理）"""
    started_at: Optional[datetime] = Field(None, description="开始时间")
    ended_at: Optional[datetime] = Field(None, description="停表时间")


class SeatSessionResponse(BaseModel):
    """座位会话响应模型"""
    id: int
    seat_id: int
    order_id: int
    customer_id: Optional[int] = None
    is_timed: bool
    state: SessionState
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    billed_minutes: Optional[int] = None
    billed_item_id: Optional[int] = None
    merged_to_session_id: Optional[int] = None
    closed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('started_at', 'ended_at', 'closed_at', 'created_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)


class MembershipChargeResponse(BaseModel):
    """会员抵扣明细"""
    membership_id: int
    plan_name: str
    included_hours: float
    overage_hours: float
    overage_rate_minor: int
    total_minor: int
    included_value_minor: int
    remaining_hours: float


class SeatEstimateResponse(BaseModel):
    """计时中座位的预估费用"""
    seat_id: int
    minutes: int
    total_minor: int
    tier: Optional[str] = Field(None, description="阶梯（会员为空）")
    description: str
    membership: Optional[MembershipChargeResponse] = None
