from datetime import datetime

from pydantic import BaseModel


class LookupRef(BaseModel):
    id: str
    name: str
    slug: str
    flag_emoji: str | None = None


class TagRef(BaseModel):
    id: str
    name: str
    slug: str


class MessageOut(BaseModel):
    success: bool = True
    message: str


class HealthOut(BaseModel):
    status: str
    message: str | None = None
    timestamp: datetime | None = None
