"""
操作日志中间件
记录所有修改数据的API操作（GET请求不记录）
"""
import logging
import re
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from app.api.deps import decode_username
from app.db.database import SessionLocal
from app.models.operation_log import OperationLog

logger = logging.getLogger(__name__)


class OperationLogMiddleware(BaseHTTPMiddleware):
    """操作日志中间件"""

    # 不需要记录日志的路径
    EXCLUDED_PATHS = [
        "/",
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/api/operation-logs",  # 操作日志本身不记录
    ]

    # 模块映射：根据路径判断操作模块
    MODULE_MAP = {
        "/api/seats": "座位计时",
        "/api/admin/seat-sessions": "座位会话管理",
        "/api/orders": "订单",
        "/api/bills": "合并账单",
        "/api/tables": "桌台管理",
        "/api/games": "桌游管理",
        "/api/customers": "客户管理",
        "/api/membership-plans": "会员方案",
        "/api/payments": "支付",
        "/api/system-configs": "系统配置",
    }

    # 操作类型映射：根据HTTP方法判断操作类型
    ACTION_MAP = {
        "POST": "创建",
        "PUT": "更新",
        "DELETE": "删除",
        "PATCH": "修改",
    }

    # 路径关键字对应的具体操作，按顺序匹配
    PATH_ACTIONS = [
        ("/start-untimed", "开台（不计时）"),
        ("/start", "开台计时"),
        ("/stop", "停表"),
        ("/end-untimed", "结束不计时会话"),
        ("/transfer", "换座"),
        ("/times", "修改计时时间"),
        ("/settle", "结账"),
        ("/merge", "合并账单"),
        ("/unmerge", "拆分付款组"),
        ("/points/adjust", "调整积分"),
        ("/memberships", "购买会员卡"),
        ("/games", "桌游"),
        ("/items", "订单明细"),
        ("/cancel", "取消订单"),
    ]

    # 路径中的订单ID和座位ID
    ORDER_PATH = re.compile(r"^/api/orders/(\d+)")
    SEAT_PATH = re.compile(r"^/api/seats/(\d+)")

    def __init__(self, app, session_factory=None):
        super().__init__(app)
        self.session_factory = session_factory or SessionLocal

    def action_for(self, method: str, path: str) -> str:
        action = self.ACTION_MAP.get(method, method)
        for keyword, name in self.PATH_ACTIONS:
            if keyword in path:
                return f"{name}（{action}）" if method == "DELETE" else name
        return action

    @staticmethod
    def path_id(pattern, path: str):
        match = pattern.match(path)
        return int(match.group(1)) if match else None

    def module_for(self, path: str) -> str:
        for path_prefix, module_name in self.MODULE_MAP.items():
            if path.startswith(path_prefix):
                return module_name
        return "未知模块"

    async def dispatch(self, request: Request, call_next):
        """处理请求并记录日志"""
        method = request.method
        path = request.url.path
        if method in ("GET", "HEAD", "OPTIONS") or path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.time()
        username = decode_username(
            request.headers.get("x-username"), request.headers.get("x-username-encoded")
        )

        request_data = None
        body = await request.body()
        if body:
            request_data = body.decode("utf-8", errors="replace")[:2000]  # 限制长度

        response = await call_next(request)

        status_code = response.status_code
        log = OperationLog(
            user_id=request.headers.get("x-user-id"),
            username=username,
            action=self.action_for(method, path),
            module=self.module_for(path),
            method=method,
            path=path,
            order_id=self.path_id(self.ORDER_PATH, path),
            seat_id=self.path_id(self.SEAT_PATH, path),
            ip_address=request.client.host if request.client else None,
            request_data=request_data,
            status_code=status_code,
            error_message=f"HTTP {status_code} 错误" if status_code >= 400 else None,
            execution_time=int((time.time() - start_time) * 1000),
        )

        db = self.session_factory()
        try:
            db.add(log)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("记录操作日志失败: %s %s", method, path)
        finally:
            db.close()

        return response
