"""
订单、订单明细与订单事件模型
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class Order(Base):
    """订单表"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, comment="客户ID")
    status = Column(String(20), nullable=False, default="open",
                    comment="状态：open=进行中, awaiting_payment=待付款, paid=已付款, canceled=已取消")
    notes = Column(String(500), comment="备注")
    payment_group_id = Column(String(64), nullable=True, comment="合并付款组ID")
    is_primary_payer = Column(Boolean, nullable=False, default=False, comment="是否为付款组的付款方")
    paid_by_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, comment="由哪个订单代付")
    closed_at = Column(DateTime(timezone=True), nullable=True, comment="结账时间")
    closed_by_user_id = Column(String(100), nullable=True, comment="结账人")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    customer = relationship("Customer")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    seat_sessions = relationship("SeatSession", back_populates="order")
    events = relationship("OrderEvent", back_populates="order", order_by="OrderEvent.id")
    payments = relationship("PaymentAttempt", back_populates="order")

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_payment_group_id", "payment_group_id"),
    )

    @property
    def total_minor(self) -> int:
        """按当前明细重新计算的应付金额"""
        return sum(item.total_minor for item in self.items if item.kind != "game")


class OrderItem(Base):
    """订单明细表"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, comment="订单ID")
    kind = Column(String(20), nullable=False,
                  comment="类型：fnb, retail, seat_time, rental_fee, rental_deposit, membership, game")
    name = Column(String(200), nullable=False, comment="名称")
    catalog_ref = Column(String(100), nullable=True, comment="商品目录引用")
    qty = Column(Integer, nullable=False, default=1, comment="数量")
    unit_price_minor = Column(Integer, nullable=False, default=0, comment="单价（不含税）")
    tax_minor = Column(Integer, nullable=False, default=0, comment="税额")
    total_minor = Column(Integer, nullable=False, default=0, comment="合计（含税）")
    meta = Column(JSON, nullable=True, comment="计费来源等附加信息")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    order = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("idx_order_items_order_id", "order_id"),
    )


class OrderEvent(Base):
    """订单事件表（审计）"""
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, comment="订单ID")
    kind = Column(String(50), nullable=False, comment="事件类型")
    payload = Column(JSON, nullable=True, comment="事件内容")
    actor_id = Column(String(100), nullable=True, comment="操作人ID")
    actor_name = Column(String(100), nullable=True, comment="操作人")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    # 关系
    order = relationship("Order", back_populates="events")

    __table_args__ = (
        Index("idx_order_events_order_id", "order_id"),
        Index("idx_order_events_kind", "kind"),
    )
