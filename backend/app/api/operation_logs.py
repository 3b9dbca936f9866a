"""
操作日志API
按订单、座位、操作人查看谁在什么时候做了什么（开台、停表、改时间、结账等）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List, Optional
from datetime import datetime, date
from app.db.database import get_db
from app.models.operation_log import OperationLog
from app.core.timeutil import format_datetime_local
from pydantic import BaseModel, field_serializer

router = APIRouter(prefix="/api/operation-logs", tags=["操作日志"])


class OperationLogResponse(BaseModel):
    """操作日志响应模型"""
    id: int
    user_id: Optional[str] = None
    username: str
    action: str
    module: str
    method: str
    path: str
    order_id: Optional[int] = None
    seat_id: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    request_data: Optional[str] = None
    execution_time: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer('created_at')
    def serialize_datetime(self, dt: datetime) -> str:
        return format_datetime_local(dt)


@router.get("", response_model=List[OperationLogResponse])
def get_operation_logs(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=1000),
    order_id: Optional[int] = Query(None, description="订单ID"),
    seat_id: Optional[int] = Query(None, description="座位ID"),
    username: Optional[str] = Query(None, description="操作人（模糊匹配）"),
    action: Optional[str] = Query(None, description="操作（模糊匹配）"),
    failed_only: bool = Query(False, description="只看失败的请求"),
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    db: Session = Depends(get_db)
):
    """操作日志列表（最新的在前）"""
    query = db.query(OperationLog)
    if order_id is not None:
        query = query.filter(OperationLog.order_id == order_id)
    if seat_id is not None:
        query = query.filter(OperationLog.seat_id == seat_id)
    if username:
        query = query.filter(OperationLog.username.like(f"%{username}%"))
    if action:
        query = query.filter(OperationLog.action.like(f"%{action}%"))
    if failed_only:
        query = query.filter(OperationLog.status_code >= 400)
    if start_date:
        query = query.filter(OperationLog.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        query = query.filter(OperationLog.created_at <= datetime.combine(end_date, datetime.max.time()))

    return query.order_by(desc(OperationLog.id)).offset(skip).limit(limit).all()


@router.get("/{log_id}", response_model=OperationLogResponse)
def get_operation_log(log_id: int, db: Session = Depends(get_db)):
    log = db.query(OperationLog).filter(OperationLog.id == log_id).first()
    if not log:
        raise HTTPException(status_code=404, detail="操作日志不存在")
    return log
