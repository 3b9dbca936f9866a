"""
时间工具
数据库（SQLite）读回的时间不带时区，统一按UTC处理
"""
from datetime import datetime, timezone, timedelta
from typing import Optional

# 店铺本地时区 UTC+9
LOCAL_TZ = timezone(timedelta(hours=9))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """如果时间没有时区信息，假设它是 UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime_local(dt: Optional[datetime]) -> Optional[str]:
    """将UTC时间转换为本地时间字符串"""
    if dt is None:
        return None
    return as_utc(dt).astimezone(LOCAL_TZ).strftime("%Y-%m-%d %H:%M:%S")


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """两个时间之间的整分钟数（向下取整）"""
    return int((as_utc(end) - as_utc(start)).total_seconds() // 60)
