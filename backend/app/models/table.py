"""
桌台与座位模型
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.database import Base


class Table(Base):
    """桌台表"""
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True, comment="名称")
    capacity = Column(Integer, nullable=False, default=4, comment="座位数")
    status = Column(String(20), nullable=False, default="available",
                    comment="状态：available=空闲, seated=就座, dirty=待清理, reserved=已预约, offline=停用")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    seats = relationship("Seat", back_populates="table", order_by="Seat.number")
    game_sessions = relationship("TableGameSession", back_populates="table")

    __table_args__ = (
        Index("idx_tables_status", "status"),
    )


class Seat(Base):
    """座位表"""
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, comment="桌台ID")
    number = Column(Integer, nullable=False, comment="座位号")
    status = Column(String(20), nullable=False, default="open", comment="状态：open=空闲, occupied=占用, closed=关闭")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, comment="更新时间")

    # 关系
    table = relationship("Table", back_populates="seats")
    sessions = relationship("SeatSession", back_populates="seat")

    __table_args__ = (
        UniqueConstraint("table_id", "number", name="uq_seats_table_number"),
        Index("idx_seats_table_id", "table_id"),
    )

    @property
    def label(self) -> str:
        """显示名，例如 A-2"""
        table_name = self.table.name if self.table else str(self.table_id)
        return f"{table_name}-{self.number}"
