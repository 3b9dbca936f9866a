"""
进程级配置（环境变量）
业务参数（积分比例、税率等）保存在 system_configs 表中，见 app.services.settings_service
"""
import os

# 数据库
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./database.db")
SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"

# 日志
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# 计时计费：会员未覆盖时段之外的常规时价（最小货币单位，¥500/小时）
REGULAR_HOURLY_RATE_MINOR = int(os.getenv("REGULAR_HOURLY_RATE_MINOR", "50000"))

# 刷卡终端（沙箱）：授权在发起后多少秒变为 approved，0 表示立即通过
TENDER_SANDBOX_DELAY_SECONDS = float(os.getenv("TENDER_SANDBOX_DELAY_SECONDS", "0"))

# 会员卡有效期（月）
MEMBERSHIP_TERM_MONTHS = int(os.getenv("MEMBERSHIP_TERM_MONTHS", "1"))
