"""
会员卡模型
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class MembershipPlan(Base):
    """会员方案表"""
    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="名称")
    price_minor = Column(Integer, nullable=False, comment="价格")
    hours_included = Column(Float, nullable=False, comment="包含小时数")
    overage_rate_minor = Column(Integer, nullable=False, default=30000, comment="超时费率（每小时）")
    points_on_purchase = Column(Integer, nullable=False, default=0, comment="购买赠送积分")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")


class CustomerMembership(Base):
    """客户会员卡表"""
    __tablename__ = "customer_memberships"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, comment="客户ID")
    plan_id = Column(Integer, ForeignKey("membership_plans.id"), nullable=False, comment="方案ID")
    start_date = Column(DateTime(timezone=True), nullable=False, comment="开始日期")
    end_date = Column(DateTime(timezone=True), nullable=False, comment="结束日期")
    hours_used = Column(Float, nullable=False, default=0, comment="已用小时数（累计）")
    status = Column(String(20), nullable=False, default="ACTIVE", comment="状态：ACTIVE, EXPIRED, CANCELLED")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    customer = relationship("Customer", back_populates="memberships")
    plan = relationship("MembershipPlan")
    usages = relationship("MembershipUsage", back_populates="membership", order_by="MembershipUsage.id")

    __table_args__ = (
        Index("idx_customer_memberships_customer_id", "customer_id"),
    )


class MembershipUsage(Base):
    """会员用时流水表（只追加）"""
    __tablename__ = "membership_usages"

    id = Column(Integer, primary_key=True, index=True)
    membership_id = Column(Integer, ForeignKey("customer_memberships.id"), nullable=False, comment="会员卡ID")
    seat_session_id = Column(Integer, ForeignKey("seat_sessions.id"), nullable=True, comment="座位使用记录ID")
    hours_used = Column(Float, nullable=False, comment="本次计入的小时数（修正记录为差额）")
    included_hours = Column(Float, nullable=False, default=0, comment="会员覆盖小时数")
    overage_hours = Column(Float, nullable=False, default=0, comment="超出小时数")
    overage_charge_minor = Column(Integer, nullable=False, default=0, comment="超时费用")
    entry_type = Column(String(20), nullable=False, default="usage", comment="类型：usage=停表, adjustment=修改时间")
    description = Column(String(200), comment="说明")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    # 关系
    membership = relationship("CustomerMembership", back_populates="usages")

    __table_args__ = (
        Index("idx_membership_usages_session_id", "seat_session_id"),
    )
