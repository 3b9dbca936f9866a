"""
业务异常
服务层抛出，main.py 中统一转换为JSON错误响应
"""


class BillingError(Exception):
    """业务异常基类"""
    code = "billing_error"
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, **self.context}


class NotFound(BillingError):
    """座位/会话/订单/会员等不存在"""
    code = "not_found"
    status_code = 404


class Conflict(BillingError):
    """座位已有未结束的会话，或目标座位被占用"""
    code = "conflict"
    status_code = 409


class InvalidState(BillingError):
    """当前状态不允许该操作"""
    code = "invalid_state"
    status_code = 400


class InsufficientPayment(BillingError):
    code = "insufficient_payment"
    status_code = 402


class InsufficientPoints(BillingError):
    code = "insufficient_points"
    status_code = 402


class CustomerRequired(BillingError):
    code = "customer_required"
    status_code = 400


class TenderNotApproved(BillingError):
    """刷卡授权未通过（拒绝或仍在处理中）"""
    code = "tender_not_approved"
    status_code = 402
