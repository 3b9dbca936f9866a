"""
数据库配置和连接
"""
from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from app.core.config import DATABASE_URL, SQL_ECHO


def enable_sqlite_transactions(engine):
    """
    让pysqlite由SQLAlchemy控制BEGIN，SAVEPOINT（部分步骤允许失败）才能正常工作
    使用WAL日志：请求会话的读事务不阻塞操作日志中间件另开会话写入
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(url: str = DATABASE_URL, **kwargs):
    """创建数据库引擎（SQLite 额外处理线程与事务参数）"""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})  # SQLite需要这个参数
        engine = create_engine(url, echo=SQL_ECHO, **kwargs)
        return enable_sqlite_transactions(engine)
    return create_engine(url, echo=SQL_ECHO, **kwargs)


# 创建数据库引擎
engine = build_engine()

# 创建会话工厂
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 创建基础模型类
Base = declarative_base()


def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
