from typing import Any, Optional
from fastapi import APIRouter, Body, Depends, Header, Request, status
from core.dependencies import get_order_ingress
from core.utils.correlation import get_correlation_id
from core.utils.response import Response
from schemas.orders import OrderAcceptedResponse
from services.orders import OrderIngressService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    request: Request,
    body: Any = Body(...),
    order_ingress: OrderIngressService = Depends(get_order_ingress),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
):
    """
    Accept an order and publish an order.created event.

    Responds 201 only after the broker acknowledged the event. A repeated
    Idempotency-Key replays the original acceptance without publishing again.
    """
    accepted = await order_ingress.handle_create(
        body,
        idempotency_key=idempotency_key,
        correlation_id=get_correlation_id(request),
    )
    headers = {"Idempotent-Replayed": "true"} if accepted.replayed else None
    return Response(
        success=True,
        data=OrderAcceptedResponse(identifier=accepted.identifier),
        message="Order accepted",
        status_code=status.HTTP_201_CREATED,
        headers=headers,
    )
