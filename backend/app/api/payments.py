"""
刷卡授权API
"""
from fastapi import APIRouter, Depends
from app.schemas.order import TenderStatusResponse
from app.services.tender_gateway import TenderGateway, get_tender_gateway

router = APIRouter(prefix="/api/payments", tags=["支付"])


@router.get("/tenders/{reference}", response_model=TenderStatusResponse)
def get_tender_status(reference: str, gateway: TenderGateway = Depends(get_tender_gateway)):
    """查询刷卡授权状态（可重复轮询）"""
    return gateway.status(reference)
