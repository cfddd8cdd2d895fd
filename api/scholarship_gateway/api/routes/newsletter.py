from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import EmailStr, TypeAdapter, ValidationError

from scholarship_gateway.api.errors import http_error_for
from scholarship_gateway.schemas.newsletter import NewsletterEmailRequest, SubscriberEnvelope, SubscriberOut
from scholarship_gateway.services.repository import RepositoryError, get_repository

router = APIRouter()

SUBSCRIBE_MESSAGES = {
    "created": "Successfully subscribed to newsletter",
    "reactivated": "Welcome back! Your subscription has been reactivated",
    "already_active": "You are already subscribed",
}

_EMAIL_ADAPTER = TypeAdapter(EmailStr)


@router.post("/subscribe", response_model=SubscriberEnvelope)
async def subscribe(payload: NewsletterEmailRequest, repository=Depends(get_repository)) -> SubscriberEnvelope:
    email = _normalize_email(payload.email)
    try:
        row, outcome = await repository.subscribe_newsletter(email)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to subscribe") from exc
    return SubscriberEnvelope(message=SUBSCRIBE_MESSAGES[outcome], data=SubscriberOut(**row))


@router.post("/unsubscribe", response_model=SubscriberEnvelope)
async def unsubscribe(payload: NewsletterEmailRequest, repository=Depends(get_repository)) -> SubscriberEnvelope:
    email = _normalize_email(payload.email)
    try:
        row = await repository.unsubscribe_newsletter(email)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to unsubscribe") from exc
    return SubscriberEnvelope(message="Successfully unsubscribed from newsletter", data=SubscriberOut(**row))


def _normalize_email(raw: str | None) -> str:
    email = (raw or "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")
    try:
        validated = _EMAIL_ADAPTER.validate_python(email)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid email address is required") from exc
    return validated.lower()
