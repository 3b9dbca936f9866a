"""
订单、合并账单与结账相关的Pydantic模型
"""
from pydantic import BaseModel, Field, field_serializer
from typing import Optional, List
from datetime import datetime
from app.core.timeutil import format_datetime_local


class OrderCreate(BaseModel):
    """创建订单模型"""
    customer_id: Optional[int] = Field(None, description="客户ID")
    notes: Optional[str] = Field(None, description="备注", max_length=500)


class OrderCustomerUpdate(BaseModel):
    """修改订单客户"""
    customer_id: Optional[int] = Field(None, description="客户ID（为空表示取消关联）")


class OrderItemCreate(BaseModel):
    """添加订单明细模型"""
    kind: str = Field(..., description="类型：fnb, retail, rental_fee, rental_deposit")
    name: str = Field(..., description="名称", max_length=200)
    unit_price_minor: int = Field(..., ge=0, description="含税单价（最小货币单位）")
    qty: int = Field(1, gt=0, description="数量")
    catalog_ref: Optional[str] = Field(None, description="商品目录引用", max_length=100)
    meta: Optional[dict] = Field(None, description="附加信息")


class OrderItemResponse(BaseModel):
    """订单明细响应模型"""
    id: int
    kind: str
    name: str
    catalog_ref: Optional[str] = None
    qty: int
    unit_price_minor: int
    tax_minor: int
    total_minor: int
    meta: Optional[dict] = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    """支付记录响应模型"""
    id: int
    method: str
    amount_minor: int
    status: str
    tender_ref: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)


class OrderEventResponse(BaseModel):
    """订单事件响应模型"""
    id: int
    kind: str
    payload: Optional[dict] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)


class OrderResponse(BaseModel):
    """订单响应模型"""
    id: int
    customer_id: Optional[int] = None
    status: str
    notes: Optional[str] = None
    total_minor: int = Field(..., description="应付金额（按明细重新计算）")
    payment_group_id: Optional[str] = None
    is_primary_payer: bool
    paid_by_order_id: Optional[int] = None
    closed_at: Optional[datetime] = None
    closed_by_user_id: Optional[str] = None
    items: List[OrderItemResponse] = []
    payments: List[PaymentResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('closed_at', 'created_at')
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return format_datetime_local(dt)


class MergeBillsRequest(BaseModel):
    """合并账单请求"""
    primary_order_id: int = Field(..., description="付款方订单ID")
    order_ids: List[int] = Field(..., description="要合并的其他订单ID")


class MergeSessionsRequest(BaseModel):
    """按座位会话合并账单请求"""
    primary_session_id: int = Field(..., description="付款方座位会话ID")
    session_ids: List[int] = Field(..., description="要合并的其他座位会话ID")


class MergeResponse(BaseModel):
    """合并账单结果"""
    payment_group_id: str
    primary_order_id: int
    order_ids: List[int]
    combined_total_minor: int


class UnmergeResponse(BaseModel):
    """拆分付款组结果"""
    payment_group_id: str
    order_ids: List[int]


class PaymentGroupResponse(BaseModel):
    """付款组"""
    payment_group_id: str
    primary_order_id: Optional[int] = None
    combined_total_minor: int
    orders: List[OrderResponse]


class TenderRequest(BaseModel):
    """支付方式"""
    method: str = Field(..., description="支付方式：cash, card, points")
    amount_minor: int = Field(..., ge=0, description="金额（最小货币单位）")
    reference: Optional[str] = Field(None, description="刷卡交易引用（重试时保持不变）")


class SettleRequest(BaseModel):
    """结账请求"""
    tenders: List[TenderRequest] = Field(..., description="支付方式列表")


class SettlementResponse(BaseModel):
    """结账结果"""
    order_id: int
    order_ids: List[int]
    total_minor: int
    tendered_minor: int
    change_minor: int
    points_redeemed: int
    points_awarded: int
    payment_ids: List[int]


class TenderStatusResponse(BaseModel):
    """刷卡授权状态"""
    reference: str
    amount_minor: int
    status: str
    checkout_id: Optional[str] = None
    message: Optional[str] = None
