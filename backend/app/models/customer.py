"""
客户模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class Customer(Base):
    """客户表"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String(100), nullable=False, comment="姓名")
    phone = Column(String(20), comment="电话")
    points_balance = Column(Integer, nullable=False, default=0, comment="积分余额")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    memberships = relationship("CustomerMembership", back_populates="customer")
    points_transactions = relationship("PointsTransaction", back_populates="customer")

    __table_args__ = (
        Index("idx_customers_display_name", "display_name"),
        Index("idx_customers_phone", "phone"),
    )
