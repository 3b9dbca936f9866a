"""
API公共依赖
"""
import base64
import binascii
import logging
from typing import Optional
from urllib.parse import unquote

from fastapi import Header

from app.core.actor import Actor

logger = logging.getLogger(__name__)

UNKNOWN_USER = "未知用户"


def decode_username(value: Optional[str], encoding: Optional[str] = None) -> str:
    """
    解析请求头中的用户名
    前端对中文用户名先URI编码再Base64编码，并在 x-username-encoded 中标记 base64
    """
    if not value:
        return UNKNOWN_USER
    if encoding != "base64":
        return value
    try:
        return unquote(base64.b64decode(value).decode("utf-8")) or UNKNOWN_USER
    except (binascii.Error, UnicodeDecodeError) as e:
        logger.warning("解码用户名失败: %s, 原始值: %s", e, value)
        return UNKNOWN_USER


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_username: Optional[str] = Header(None),
    x_username_encoded: Optional[str] = Header(None),
) -> Actor:
    """当前操作人（从请求头获取）"""
    return Actor(user_id=x_user_id, username=decode_username(x_username, x_username_encoded))
