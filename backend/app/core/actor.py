"""
操作人
每个修改数据的操作都显式传入，用于审计
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str] = None
    username: str = "system"


SYSTEM = Actor()
