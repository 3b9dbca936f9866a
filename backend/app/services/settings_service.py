"""
业务参数读取
配置不存在时使用默认值
"""
from sqlalchemy.orm import Session
from app.models.system_config import SystemConfig

# key: (默认值, 说明)
DEFAULT_SETTINGS = {
    "points_regular_earn_rate": ("50", "非会员每消费多少元积1分"),
    "points_member_earn_rate": ("40", "会员每消费多少元积1分"),
    "tax_rate_percent": ("10", "含税价中的消费税率（%）"),
    "membership_rounding_minor": ("10", "会员计时费取整单位（最小货币单位）"),
}


def get_setting(db: Session, key: str) -> str:
    config = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if config is not None and config.value not in (None, ""):
        return config.value
    default = DEFAULT_SETTINGS.get(key)
    return default[0] if default else ""


def get_int_setting(db: Session, key: str) -> int:
    return int(get_setting(db, key))


def included_tax_minor(db: Session, total_minor: int) -> int:
    """含税价中包含的税额"""
    rate = get_int_setting(db, "tax_rate_percent")
    if rate <= 0 or total_minor <= 0:
        return 0
    return round(total_minor * rate / (100 + rate))
