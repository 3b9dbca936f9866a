"""
计时计费

价格均为含税价，以主货币单位计算，由调用方乘以100换算为最小货币单位。

- 0分钟及以下不收费
- 前两小时：第一个小时 ¥500；第二个小时按半小时计，1-30分钟 +¥250，31-60分钟 +¥500
- 两小时以上：前两小时固定 ¥1000，之后每30分钟 ¥200，不足30分钟按30分钟计
- 满5小时（300分钟）及以上一律封顶 ¥2200
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from app.core.timeutil import elapsed_minutes, utcnow

FIRST_HOUR_CHARGE = 500
HALF_HOUR_CHARGE = 250
TWO_HOUR_CHARGE = 1000
EXTENDED_BLOCK_MINUTES = 30
EXTENDED_BLOCK_CHARGE = 200
CAP_MINUTES = 300
CAP_CHARGE = 2200

# 封顶前最多计5个加时段，271-299分钟与270分钟同价，保证封顶前始终低于封顶价
MAX_EXTENDED_BLOCKS = (CAP_CHARGE - TWO_HOUR_CHARGE) // EXTENDED_BLOCK_CHARGE - 1

TIER_NONE = "none"
TIER_STANDARD = "standard"
TIER_EXTENDED = "extended"
TIER_CAPPED = "capped"


@dataclass
class TimeBilling:
    minutes: int
    total: int
    tier: str
    breakdown: dict = field(default_factory=dict)

    @property
    def total_minor(self) -> int:
        return self.total * 100


def charge(minutes: int) -> TimeBilling:
    """按分钟数计算计时费"""
    if minutes <= 0:
        return TimeBilling(minutes, 0, TIER_NONE, {"hours": 0, "half_hours": 0, "extended_blocks": 0})

    if minutes >= CAP_MINUTES:
        return TimeBilling(minutes, CAP_CHARGE, TIER_CAPPED, {"hours": 5, "half_hours": 0, "extended_blocks": 0})

    if minutes <= 120:
        half_hours = 0
        if minutes > 60:
            half_hours = math.ceil((minutes - 60) / 30)
        total = FIRST_HOUR_CHARGE + half_hours * HALF_HOUR_CHARGE
        return TimeBilling(minutes, total, TIER_STANDARD, {"hours": 1, "half_hours": half_hours, "extended_blocks": 0})

    blocks = min(math.ceil((minutes - 120) / EXTENDED_BLOCK_MINUTES), MAX_EXTENDED_BLOCKS)
    total = TWO_HOUR_CHARGE + blocks * EXTENDED_BLOCK_CHARGE
    return TimeBilling(minutes, total, TIER_EXTENDED, {"hours": 2, "half_hours": 0, "extended_blocks": blocks})


def format_duration(minutes: int) -> str:
    hours, mins = divmod(max(minutes, 0), 60)
    if hours:
        return f"{hours}小时{mins}分"
    return f"{mins}分"


def describe(billing: TimeBilling) -> str:
    """计时费说明（用于订单明细名称）"""
    if billing.total == 0:
        return "不收计时费"
    duration = format_duration(billing.minutes)
    if billing.tier == TIER_CAPPED:
        return f"计时 {duration}（5小时封顶）"
    if billing.tier == TIER_EXTENDED:
        return f"计时 {duration}（2小时以上按半小时加收）"
    return f"计时 {duration}"


def estimate(started_at: datetime, now: Optional[datetime] = None) -> TimeBilling:
    """计时中的座位当前预估费用"""
    return charge(elapsed_minutes(started_at, now or utcnow()))
