"""
支付记录模型
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class PaymentAttempt(Base):
    """支付记录表"""
    __tablename__ = "payment_attempts"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, comment="订单ID")
    method = Column(String(20), nullable=False, comment="支付方式：cash, card, points")
    amount_minor = Column(Integer, nullable=False, comment="金额")
    status = Column(String(20), nullable=False, default="succeeded", comment="状态")
    tender_ref = Column(String(100), nullable=True, comment="刷卡终端交易引用")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    # 关系
    order = relationship("Order", back_populates="payments")

    __table_args__ = (
        Index("idx_payment_attempts_order_id", "order_id"),
    )
