"""
桌游、桌台游戏记录与客户游戏历史模型
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class Game(Base):
    """桌游表"""
    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, comment="名称")
    available = Column(Boolean, nullable=False, default=True, comment="是否可用（未被桌台占用）")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")


class TableGameSession(Base):
    """桌台游戏记录表"""
    __tablename__ = "table_game_sessions"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, comment="桌台ID")
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, comment="桌游ID")
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="开始时间")
    ended_at = Column(DateTime(timezone=True), nullable=True, comment="结束时间")

    # 关系
    table = relationship("Table", back_populates="game_sessions")
    game = relationship("Game")

    __table_args__ = (
        Index("idx_table_game_sessions_table_id", "table_id"),
    )


class CustomerGameHistory(Base):
    """客户游戏历史表"""
    __tablename__ = "customer_game_history"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, comment="客户ID")
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, comment="桌游ID")
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, comment="桌台ID")
    table_game_session_id = Column(Integer, ForeignKey("table_game_sessions.id"), nullable=False, comment="桌台游戏记录ID")
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, comment="订单ID")
    played_at = Column(DateTime(timezone=True), nullable=False, comment="游戏时间")
    duration_minutes = Column(Integer, nullable=True, comment="时长（分钟）")
    co_player_names = Column(JSON, nullable=True, comment="同桌玩家")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    # 关系
    game = relationship("Game")
    table = relationship("Table")

    __table_args__ = (
        UniqueConstraint("customer_id", "table_game_session_id", "order_id", name="uq_customer_game_history_session_order"),
        Index("idx_customer_game_history_customer_id", "customer_id"),
    )
