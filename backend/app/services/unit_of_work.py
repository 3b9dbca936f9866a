"""
事务单元

    with UnitOfWork(db) as uow:
        ...                         # 任一步骤抛出异常，整体回滚
        with uow.best_effort("记录游戏历史"):
            ...                     # 在SAVEPOINT中执行，失败只记录日志

正常退出时提交，异常退出时回滚并继续抛出。
"""
import logging
from contextlib import contextmanager

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class UnitOfWork:

    def __init__(self, db: Session):
        self.db = db

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.db.rollback()
            return False
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return False

    def flush(self):
        self.db.flush()

    @contextmanager
    def best_effort(self, label: str):
        """允许失败的步骤：失败时回滚到SAVEPOINT并记录日志，不影响外层事务"""
        savepoint = self.db.begin_nested()
        try:
            yield
            self.db.flush()
        except Exception:
            savepoint.rollback()
            logger.exception("%s失败，已跳过", label)
        else:
            savepoint.commit()
