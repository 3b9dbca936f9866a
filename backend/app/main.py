"""
FastAPI主应用入口
"""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import LOG_LEVEL
from app.core.exceptions import BillingError
from app.db.init_db import init_db
from app.middleware.operation_log import OperationLogMiddleware
from app.api import (
    seats, seat_sessions, orders, bills, tables, games,
    customers, memberships, payments, system_configs, operation_logs,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


def create_app(session_factory=None) -> FastAPI:
    """创建FastAPI应用；session_factory 用于操作日志中间件（测试时替换）"""
    app = FastAPI(
        title="座位计时收银系统API",
        description="咖啡桌游店座位计时、合并账单与结账后端API",
        version="1.0.0"
    )

    # 配置CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 开发环境允许所有来源，生产环境需要限制
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(OperationLogMiddleware, session_factory=session_factory)

    @app.exception_handler(BillingError)
    async def billing_error_handler(request: Request, exc: BillingError):
        """业务异常：返回错误码和上下文（ID、差额等）"""
        logger.info("业务异常 %s %s: %s %s", request.method, request.url.path, exc.code, exc.context)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=CORS_HEADERS)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """全局异常处理器，确保所有错误都返回CORS头"""
        logger.exception("未处理的异常: %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": f"内部服务器错误: {exc}"},
            headers=CORS_HEADERS,
        )

    @app.get("/")
    async def root():
        """根路径"""
        return {"message": "座位计时收银系统API", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        """健康检查"""
        return {"status": "ok"}

    # 注册API路由
    for module in (seats, seat_sessions, orders, bills, tables, games,
                   customers, memberships, payments, system_configs, operation_logs):
        app.include_router(module.router)

    return app


# 创建数据库表
init_db()

app = create_app()
