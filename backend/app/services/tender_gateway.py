"""
刷卡终端授权

结账前对每笔刷卡金额向终端申请授权，授权通过后才开始结账事务。
同一个交易引用重复申请时返回同一结果（幂等），可以通过 status 轮询。

SandboxTerminalGateway 是不连接真实终端的实现：
- delay_seconds > 0 时，申请后先处于 pending，到时间后变为 approved
- declined_amounts 中的金额直接拒绝
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Protocol

from app.core.config import TENDER_SANDBOX_DELAY_SECONDS

logger = logging.getLogger(__name__)

APPROVED = "approved"
PENDING = "pending"
DECLINED = "declined"
UNKNOWN = "unknown"


@dataclass
class TenderResult:
    reference: str
    amount_minor: int
    status: str
    checkout_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.status == APPROVED


class TenderGateway(Protocol):

    def authorize(self, amount_minor: int, reference: str) -> TenderResult:
        ...

    def status(self, reference: str) -> TenderResult:
        ...


@dataclass
class _Checkout:
    result: TenderResult
    ready_at: float = field(default=0.0)


class SandboxTerminalGateway:
    """不连接真实终端的刷卡授权"""

    def __init__(self, delay_seconds: float = 0, declined_amounts: Iterable[int] = ()):
        self.delay_seconds = delay_seconds
        self.declined_amounts = set(declined_amounts)
        self._checkouts: Dict[str, _Checkout] = {}
        self._lock = threading.Lock()
        self._counter = 0

    def authorize(self, amount_minor: int, reference: str) -> TenderResult:
        with self._lock:
            checkout = self._checkouts.get(reference)
            if checkout is None:
                self._counter += 1
                status = PENDING if self.delay_seconds > 0 else APPROVED
                message = None
                if amount_minor in self.declined_amounts:
                    status, message = DECLINED, "卡片被拒绝"
                checkout = _Checkout(
                    result=TenderResult(
                        reference=reference,
                        amount_minor=amount_minor,
                        status=status,
                        checkout_id=f"sandbox-{self._counter}",
                        message=message,
                    ),
                    ready_at=time.monotonic() + self.delay_seconds,
                )
                self._checkouts[reference] = checkout
                logger.info("终端授权申请 %s 金额 %s 状态 %s", reference, amount_minor, status)
            elif checkout.result.amount_minor != amount_minor:
                return TenderResult(reference, amount_minor, DECLINED,
                                    checkout.result.checkout_id, "交易引用已用于其他金额")
            return self._advance(checkout)

    def status(self, reference: str) -> TenderResult:
        with self._lock:
            checkout = self._checkouts.get(reference)
            if checkout is None:
                return TenderResult(reference, 0, UNKNOWN)
            return self._advance(checkout)

    def _advance(self, checkout: _Checkout) -> TenderResult:
        if checkout.result.status == PENDING and time.monotonic() >= checkout.ready_at:
            checkout.result.status = APPROVED
        r = checkout.result
        return TenderResult(r.reference, r.amount_minor, r.status, r.checkout_id, r.message)


_default_gateway = SandboxTerminalGateway(delay_seconds=TENDER_SANDBOX_DELAY_SECONDS)


def get_tender_gateway() -> TenderGateway:
    """FastAPI 依赖，测试中可覆盖"""
    return _default_gateway
