from datetime import datetime

from pydantic import BaseModel


class NewsletterEmailRequest(BaseModel):
    """Raw address; the routes validate it as ``EmailStr`` so failures map to 400, not 422."""

    email: str | None = None


class SubscriberOut(BaseModel):
    id: str
    email: str
    is_active: bool
    subscribed_at: datetime
    unsubscribed_at: datetime | None = None


class SubscriberEnvelope(BaseModel):
    success: bool = True
    message: str
    data: SubscriberOut
