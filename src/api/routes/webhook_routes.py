"""웹훅 수신 엔드포인트"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from src.api.dependencies import get_webhook_service
from src.core.config import settings
from src.core.exceptions import AuthenticationException, ValidationException
from src.core.logging import logger
from src.core.security import SecurityValidator
from src.schemas.market_schema import WebhookAckResponse, WebhookEvent
from src.services.impl.webhook_service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/alias", response_model=WebhookAckResponse)
async def receive_alias_webhook(
    request: Request,
    x_alias_signature: Optional[str] = Header(default=None),
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookAckResponse:
    """
    Alias 웹훅 수신

    - X-Alias-Signature: sha256=<hex> (HMAC-SHA256, 상수 시간 비교)
    - event id 기준 멱등 처리
    """
    body = await request.body()
    if not SecurityValidator.verify_webhook_signature(body, x_alias_signature, settings.webhook_secret):
        logger.warning("[Webhook] Signature verification failed")
        raise AuthenticationException("invalid webhook signature")

    try:
        event = WebhookEvent.model_validate_json(body)
    except ValidationError as e:
        raise ValidationException("body", f"invalid event payload ({e.error_count()} error(s))")

    return service.handle(event)
