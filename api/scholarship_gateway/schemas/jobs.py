from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from scholarship_gateway.schemas.common import LookupRef
from scholarship_gateway.schemas.posts import ContentStatus


class JobAttributes(BaseModel):
    company_name: str | None = None
    company_logo: str | None = None
    location: str | None = None
    country_id: str | None = None
    employment_type_id: str | None = None
    salary_range: str | None = None
    experience_level: str | None = None
    application_deadline: datetime | None = None
    apply_link: str | None = None
    contact_email: str | None = None
    requirements: str | None = None
    responsibilities: str | None = None
    benefits: str | None = None
    is_featured: bool | None = None


class JobWriteRequest(JobAttributes):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    slug: str | None = None
    excerpt: str | None = None
    description: str | None = None
    status: ContentStatus | None = None


class JobStatusPatchRequest(BaseModel):
    status: ContentStatus


class JobOut(JobAttributes):
    id: str
    title: str
    slug: str
    excerpt: str | None = None
    description: str
    status: ContentStatus = "draft"
    country: LookupRef | None = None
    employment_type: LookupRef | None = None
    created_at: datetime
    updated_at: datetime


class JobEnvelope(BaseModel):
    success: bool = True
    message: str | None = None
    data: JobOut


class JobListEnvelope(BaseModel):
    success: bool = True
    data: list[JobOut]
    limit: int
    offset: int
