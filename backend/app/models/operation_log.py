"""
操作日志模型
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from sqlalchemy.sql import func
from app.db.database import Base


class OperationLog(Base):
    """操作日志表（每个修改数据的API请求一条）"""
    __tablename__ = "operation_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=True, comment="操作人ID")
    username = Column(String(100), nullable=False, comment="操作人")
    action = Column(String(100), nullable=False, comment="操作：开台、停表、结账、合并账单等")
    module = Column(String(50), nullable=False, comment="模块：座位计时、订单、合并账单等")
    method = Column(String(10), nullable=False, comment="HTTP方法")
    path = Column(String(500), nullable=False, comment="请求路径")
    order_id = Column(Integer, nullable=True, comment="路径中的订单ID")
    seat_id = Column(Integer, nullable=True, comment="路径中的座位ID")
    ip_address = Column(String(50), comment="IP地址")
    request_data = Column(Text, comment="请求内容")
    status_code = Column(Integer, comment="HTTP状态码")
    error_message = Column(Text, comment="错误信息")
    execution_time = Column(Integer, comment="耗时（毫秒）")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间")

    __table_args__ = (
        Index("idx_operation_logs_username", "username"),
        Index("idx_operation_logs_order_id", "order_id"),
        Index("idx_operation_logs_seat_id", "seat_id"),
        Index("idx_operation_logs_created_at", "created_at"),
    )
