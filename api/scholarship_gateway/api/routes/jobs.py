from fastapi import APIRouter, Depends, Query

from scholarship_gateway.api.errors import http_error_for
from scholarship_gateway.schemas.common import MessageOut
from scholarship_gateway.schemas.jobs import JobEnvelope, JobListEnvelope, JobOut, JobStatusPatchRequest, JobWriteRequest
from scholarship_gateway.schemas.posts import ContentStatus
from scholarship_gateway.services.repository import RepositoryError, get_repository
from scholarship_gateway.services.workflow import ContentValidationError, ContentWorkflow, get_content_workflow

router = APIRouter()


@router.get("", response_model=JobListEnvelope)
async def list_jobs(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    job_status: ContentStatus | None = Query(default=None, alias="status"),
    repository=Depends(get_repository),
) -> JobListEnvelope:
    try:
        rows = await repository.list_jobs(limit=limit, offset=offset, status=job_status)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch jobs") from exc
    return JobListEnvelope(data=[JobOut(**row) for row in rows], limit=limit, offset=offset)


@router.get("/{job_id}", response_model=JobEnvelope)
async def get_job(job_id: str, repository=Depends(get_repository)) -> JobEnvelope:
    try:
        row = await repository.get_job(job_id)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch job") from exc
    return JobEnvelope(data=JobOut(**row))


@router.post("", response_model=JobEnvelope)
async def create_job(payload: JobWriteRequest, workflow: ContentWorkflow = Depends(get_content_workflow)) -> JobEnvelope:
    try:
        result = await workflow.create_job(payload.model_dump(exclude_unset=True))
    except (ContentValidationError, RepositoryError) as exc:
        raise http_error_for(exc, failure_message="Failed to create job") from exc
    return JobEnvelope(message="Job created successfully", data=JobOut(**result.item))


@router.put("/{job_id}", response_model=JobEnvelope)
async def update_job(
    job_id: str,
    payload: JobWriteRequest,
    workflow: ContentWorkflow = Depends(get_content_workflow),
) -> JobEnvelope:
    try:
        result = await workflow.update_job(job_id, payload.model_dump(exclude_unset=True))
    except (ContentValidationError, RepositoryError) as exc:
        raise http_error_for(exc, failure_message="Failed to update job") from exc
    return JobEnvelope(message="Job updated successfully", data=JobOut(**result.item))


@router.patch("/{job_id}/status", response_model=JobEnvelope)
async def patch_job_status(
    job_id: str,
    payload: JobStatusPatchRequest,
    workflow: ContentWorkflow = Depends(get_content_workflow),
) -> JobEnvelope:
    try:
        result = await workflow.update_job_status(job_id, payload.status)
    except (ContentValidationError, RepositoryError) as exc:
        raise http_error_for(exc, failure_message="Failed to update job status") from exc
    return JobEnvelope(message="Job status updated successfully", data=JobOut(**result.item))


@router.delete("/{job_id}", response_model=MessageOut)
async def delete_job(job_id: str, workflow: ContentWorkflow = Depends(get_content_workflow)) -> MessageOut:
    try:
        await workflow.delete_job(job_id)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to delete job") from exc
    return MessageOut(message="Job deleted successfully")
