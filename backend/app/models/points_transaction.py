"""
积分流水模型
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class PointsTransaction(Base):
    """积分流水表（只追加）"""
    __tablename__ = "points_transactions"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, comment="客户ID")
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, comment="订单ID")
    type = Column(String(30), nullable=False, comment="类型：EARNED, REDEEMED, BONUS, MANUAL_ADJUSTMENT")
    amount = Column(Integer, nullable=False, comment="变动积分（兑换为负数）")
    balance_after = Column(Integer, nullable=False, comment="变动后余额")
    description = Column(String(200), comment="说明")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    # 关系
    customer = relationship("Customer", back_populates="points_transactions")

    __table_args__ = (
        Index("idx_points_transactions_customer_id", "customer_id"),
    )
