"""
数据库模型
"""
from app.models.table import Table, Seat
from app.models.customer import Customer
from app.models.order import Order, OrderItem, OrderEvent
from app.models.seat_session import SeatSession, SessionState
from app.models.membership import MembershipPlan, CustomerMembership, MembershipUsage
from app.models.points_transaction import PointsTransaction
from app.models.payment_attempt import PaymentAttempt
from app.models.game import Game, TableGameSession, CustomerGameHistory
from app.models.system_config import SystemConfig
from app.models.operation_log import OperationLog

__all__ = [
    "Table",
    "Seat",
    "Customer",
    "Order",
    "OrderItem",
    "OrderEvent",
    "SeatSession",
    "SessionState",
    "MembershipPlan",
    "CustomerMembership",
    "MembershipUsage",
    "PointsTransaction",
    "PaymentAttempt",
    "Game",
    "TableGameSession",
    "CustomerGameHistory",
    "SystemConfig",
    "OperationLog",
]
