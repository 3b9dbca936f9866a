"""
订单明细 meta 的类型定义
按明细类型（kind）选择对应的模型校验
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ItemMeta(BaseModel):
    """普通商品明细（fnb、retail、租赁等），保留调用方传入的字段"""
    model_config = ConfigDict(extra="allow")


class MembershipUsageMeta(BaseModel):
    membership_id: int
    plan_name: str
    included_hours: float
    overage_hours: float
    overage_rate_minor: int
    included_value_minor: int
    remaining_hours: float


class SeatTimeMeta(BaseModel):
    seat_id: int
    session_id: int
    duration_minutes: int
    tier: Optional[str] = None
    breakdown: Optional[dict] = None
    membership: Optional[MembershipUsageMeta] = None
    edited_by: Optional[str] = None
    edited_at: Optional[datetime] = None


class GameMeta(BaseModel):
    game_id: int
    table_id: int
    table_game_session_id: int


class MembershipItemMeta(BaseModel):
    plan_id: int
    membership_id: int


META_MODELS = {
    "seat_time": SeatTimeMeta,
    "game": GameMeta,
    "membership": MembershipItemMeta,
}


def parse_meta(kind: str, meta: Optional[dict]) -> Optional[BaseModel]:
    if meta is None:
        return None
    return META_MODELS.get(kind, ItemMeta).model_validate(meta)


def dump_meta(meta: BaseModel) -> dict:
    return meta.model_dump(mode="json", exclude_none=True)
