"""
座位使用记录模型
"""
import enum
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class SessionState(str, enum.Enum):
    """座位会话状态（由字段推导，不单独存储）"""
    UNTIMED = "untimed"    # 不计时的挂单
    RUNNING = "running"    # 计时中
    STOPPED = "stopped"    # 已停表，等待付款，座位仍占用
    CLOSED = "closed"      # 已结束，座位已释放


class SeatSession(Base):
    """座位使用记录表"""
    __tablename__ = "seat_sessions"

    id = Column(Integer, primary_key=True, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), nullable=False, comment="座位ID")
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, comment="订单ID")
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, comment="客户ID")
    is_timed = Column(Boolean, nullable=False, default=True, comment="是否计时")
    started_at = Column(DateTime(timezone=True), nullable=True, comment="开始计时时间")
    ended_at = Column(DateTime(timezone=True), nullable=True, comment="停表时间")
    billed_minutes = Column(Integer, nullable=True, comment="计费分钟数")
    billed_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=True, comment="计时费订单明细ID")
    merged_to_session_id = Column(Integer, ForeignKey("seat_sessions.id"), nullable=True, comment="合并账单的主会话ID")
    closed_at = Column(DateTime(timezone=True), nullable=True, comment="释放座位时间")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    seat = relationship("Seat", back_populates="sessions")
    order = relationship("Order", back_populates="seat_sessions")
    customer = relationship("Customer")
    billed_item = relationship("OrderItem", foreign_keys=[billed_item_id])

    __table_args__ = (
        # 同一座位同时只能有一条未释放的会话
        Index(
            "uq_seat_sessions_open_seat", "seat_id", unique=True,
            sqlite_where=text("closed_at IS NULL"),
            postgresql_where=text("closed_at IS NULL"),
        ),
        Index("idx_seat_sessions_order_id", "order_id"),
    )

    @property
    def state(self) -> SessionState:
        if self.closed_at is not None:
            return SessionState.CLOSED
        if not self.is_timed:
            return SessionState.UNTIMED
        if self.ended_at is None:
            return SessionState.RUNNING
        return SessionState.STOPPED
