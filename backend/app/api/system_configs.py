"""
系统配置管理API
积分比例、税率、会员计时费取整单位等业务参数
"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from app.api.deps import get_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.models.system_config import SystemConfig
from app.schemas.system_config import (
    SystemConfigCreate, SystemConfigUpdate, SystemConfigResponse
)
from app.services.settings_service import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system-configs", tags=["系统配置"])


def _validate_value(key: str, value: str):
    """内置参数必须是非负整数"""
    if key in DEFAULT_SETTINGS and value is not None:
        if not value.isdigit():
            raise HTTPException(status_code=400, detail=f"配置 '{key}' 必须是非负整数")


def _default_response(key: str) -> SystemConfigResponse:
    value, description = DEFAULT_SETTINGS[key]
    return SystemConfigResponse(id=0, key=key, value=value, description=description, is_default=True)


@router.get("", response_model=List[SystemConfigResponse])
def get_system_configs(db: Session = Depends(get_db)):
    """获取所有系统配置（未保存的内置参数返回默认值）"""
    configs = db.query(SystemConfig).order_by(SystemConfig.key).all()
    saved = {c.key for c in configs}
    defaults = [_default_response(key) for key in DEFAULT_SETTINGS if key not in saved]
    return [SystemConfigResponse.model_validate(c) for c in configs] + defaults


@router.get("/{config_key}", response_model=SystemConfigResponse)
def get_system_config(config_key: str, db: Session = Depends(get_db)):
    """获取系统配置（内置参数不存在时返回默认值）"""
    config = db.query(SystemConfig).filter(SystemConfig.key == config_key).first()
    if not config:
        if config_key in DEFAULT_SETTINGS:
            return _default_response(config_key)
        raise HTTPException(status_code=404, detail="配置不存在")
    return config


@router.post("", response_model=SystemConfigResponse)
def create_system_config(
    config: SystemConfigCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """创建系统配置"""
    existing = db.query(SystemConfig).filter(SystemConfig.key == config.key).first()
    if existing:
        raise HTTPException(status_code=400, detail="配置键已存在")
    _validate_value(config.key, config.value)

    db_config = SystemConfig(
        key=config.key,
        value=config.value,
        description=config.description,
        updated_by=actor.username,
    )
    db.add(db_config)
    db.commit()
    db.refresh(db_config)
    return db_config


@router.put("/{config_key}", response_model=SystemConfigResponse)
def update_system_config(
    config_key: str,
    config: SystemConfigUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """更新系统配置（如果不存在则创建）"""
    _validate_value(config_key, config.value)
    db_config = db.query(SystemConfig).filter(SystemConfig.key == config_key).first()
    if not db_config:
        default = DEFAULT_SETTINGS.get(config_key)
        db_config = SystemConfig(
            key=config_key,
            value=config.value if config.value is not None else (default[0] if default else ""),
            description=config.description or (default[1] if default else None),
            updated_by=actor.username,
        )
        db.add(db_config)
    else:
        if config.value is not None:
            db_config.value = config.value
        if config.description is not None:
            db_config.description = config.description
        db_config.updated_by = actor.username

    db.commit()
    db.refresh(db_config)
    logger.info("%s 修改配置 %s = %s", actor.username, config_key, db_config.value)
    return db_config


@router.delete("/{config_key}")
def delete_system_config(config_key: str, db: Session = Depends(get_db)):
    """删除系统配置（内置参数恢复默认值）"""
    config = db.query(SystemConfig).filter(SystemConfig.key == config_key).first()
    if not config:
        raise HTTPException(status_code=404, detail="配置不存在")

    db.delete(config)
    db.commit()
    if config_key in DEFAULT_SETTINGS:
        return {"message": f"配置已恢复默认值 {DEFAULT_SETTINGS[config_key][0]}"}
    return {"message": "配置已删除"}
