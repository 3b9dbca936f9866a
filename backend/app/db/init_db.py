"""
数据库初始化脚本
建表，并在空库中写入示例楼面、桌游和会员方案
"""
import logging
from app.db.database import engine, Base, SessionLocal
from app.models import Table, Seat, Game, MembershipPlan

logger = logging.getLogger(__name__)

# (名称, 座位数)
DEFAULT_TABLES = [
    ("Bar-1", 1), ("Bar-2", 1), ("Bar-3", 1),
    ("T-1", 4), ("T-2", 4), ("T-3", 2),
    ("Booth-1", 6), ("Booth-2", 6),
]

DEFAULT_GAMES = ["Catan", "Carcassonne", "Ticket to Ride", "Codenames", "Azul"]

# (名称, 价格, 包含小时数, 购买赠送积分)
DEFAULT_PLANS = [
    ("月卡 10小时", 400000, 10.0, 100),
    ("月卡 30小时", 1000000, 30.0, 300),
]


def init_db(bind=None):
    """初始化数据库，创建所有表"""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("数据库表创建完成")


def seed(db) -> bool:
    """空库时写入示例数据，已有桌台时不做任何事；返回是否写入"""
    if db.query(Table).count() > 0:
        return False

    for name, seat_count in DEFAULT_TABLES:
        table = Table(name=name, capacity=seat_count, status="available")
        db.add(table)
        db.flush()
        for number in range(1, seat_count + 1):
            db.add(Seat(table_id=table.id, number=number, status="open"))

    for name in DEFAULT_GAMES:
        db.add(Game(name=name, available=True))

    for name, price_minor, hours, points in DEFAULT_PLANS:
        db.add(MembershipPlan(
            name=name,
            price_minor=price_minor,
            hours_included=hours,
            overage_rate_minor=30000,
            points_on_purchase=points,
            is_active=True,
        ))

    db.commit()
    logger.info("示例数据写入完成：%s 张桌台，%s 个桌游", len(DEFAULT_TABLES), len(DEFAULT_GAMES))
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
    session = SessionLocal()
    try:
        seed(session)
    finally:
        session.close()
