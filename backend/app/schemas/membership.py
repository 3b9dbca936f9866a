"""
会员卡相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer
from typing import Optional
from datetime import datetime
from app.core.timeutil import format_datetime_local


class MembershipPlanCreate(BaseModel):
    """创建会员方案模型"""
    name: str = Field(..., description="名称", max_length=100)
    price_minor: int = Field(..., ge=0, description="价格（含税）")
    hours_included: float = Field(..., ge=0, description="包含时长（小时）")
    overage_rate_minor: int = Field(30000, ge=0, description="超时费率（每小时）")
    points_on_purchase: int = Field(0, ge=0, description="购买赠送积分")


class MembershipPlanResponse(BaseModel):
    """会员方案响应模型"""
    id: int
    name: str
    price_minor: int
    hours_included: float
    overage_rate_minor: int
    points_on_purchase: int
    is_active: bool

    class Config:
        from_attributes = True


class MembershipPurchaseRequest(BaseModel):
    """购买会员卡请求"""
    plan_id: int = Field(..., description="会员方案ID")
    order_id: Optional[int] = Field(None, description="计入的订单ID（为空则不生成订单明细）")


class CustomerMembershipResponse(BaseModel):
    """客户会员卡响应模型"""
    id: int
    customer_id: int
    plan_id: int
    start_date: datetime
    end_date: datetime
    hours_used: float
    status: str

    class Config:
        from_attributes = True

    @field_serializer('start_date', 'end_date')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)
