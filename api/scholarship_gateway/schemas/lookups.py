from datetime import datetime

from pydantic import BaseModel, ConfigDict

from scholarship_gateway.schemas.posts import PostOut


class LookupWriteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    slug: str | None = None
    description: str | None = None
    code: str | None = None
    flag_emoji: str | None = None
    region: str | None = None


class LookupOut(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    code: str | None = None
    flag_emoji: str | None = None
    region: str | None = None
    created_at: datetime | None = None


class LookupEnvelope(BaseModel):
    success: bool = True
    message: str | None = None
    data: LookupOut


class LookupListEnvelope(BaseModel):
    success: bool = True
    data: list[LookupOut]


class CategoryPostsEnvelope(BaseModel):
    success: bool = True
    category: LookupOut
    data: list[PostOut]


class CountryPostsEnvelope(BaseModel):
    success: bool = True
    country: LookupOut
    data: list[PostOut]


class QuoteOut(BaseModel):
    id: str
    text: str
    author: str | None = None
    created_at: datetime


class QuoteEnvelope(BaseModel):
    success: bool = True
    data: QuoteOut | None = None


class UploadOut(BaseModel):
    success: bool = True
    url: str
