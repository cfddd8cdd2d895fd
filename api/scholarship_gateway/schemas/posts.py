from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from scholarship_gateway.schemas.common import LookupRef, TagRef

ContentStatus = Literal["draft", "published"]


class PostAttributes(BaseModel):
    featured_image: str | None = None
    is_featured: bool | None = None
    category_id: str | None = None
    country_id: str | None = None
    meta_description: str | None = None
    meta_keywords: str | None = None
    seo_title: str | None = None
    scholarship_provider: str | None = None
    university_name: str | None = None
    funding_type_id: str | None = None
    application_deadline: datetime | None = None
    program_duration: str | None = None
    eligible_nationalities: str | None = None
    application_fee: bool | None = None
    application_fee_amount: str | None = None
    official_website: str | None = None
    apply_link: str | None = None
    scholarship_benefits: str | None = None
    eligibility_criteria: str | None = None
    required_documents: str | None = None
    how_to_apply: str | None = None
    notes: str | None = None
    contact_email: str | None = None
    application_mode: str | None = None
    available_seats: int | None = None
    host_university_logo: str | None = None
    scholarship_brochure_pdf: str | None = None
    video_embed: str | None = None
    faq_data: list[dict[str, Any]] | None = None
    scheduled_publish_at: datetime | None = None


class PostWriteRequest(PostAttributes):
    """Create and update payload; unset fields are left untouched on update."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    slug: str | None = None
    excerpt: str | None = None
    content: str | None = None
    status: ContentStatus | None = None
    tags: list[str] | None = None
    degree_level_ids: list[str] | None = None


class PostStatusPatchRequest(BaseModel):
    status: ContentStatus


class PostOut(PostAttributes):
    id: str
    title: str
    slug: str
    excerpt: str | None = None
    content: str
    status: ContentStatus = "draft"
    author_id: str | None = None
    views: int = 0
    category: LookupRef | None = None
    country: LookupRef | None = None
    funding_type: LookupRef | None = None
    tags: list[TagRef] = Field(default_factory=list)
    degree_levels: list[LookupRef] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PostEnvelope(BaseModel):
    success: bool = True
    message: str | None = None
    data: PostOut
    warnings: list[str] = Field(default_factory=list)


class PostListEnvelope(BaseModel):
    success: bool = True
    data: list[PostOut]
