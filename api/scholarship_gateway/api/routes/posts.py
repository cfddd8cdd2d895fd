from fastapi import APIRouter, Depends, Query

from scholarship_gateway.api.errors import http_error_for
from scholarship_gateway.schemas.common import MessageOut
from scholarship_gateway.schemas.posts import (
    ContentStatus,
    PostEnvelope,
    PostListEnvelope,
    PostOut,
    PostStatusPatchRequest,
    PostWriteRequest,
)
from scholarship_gateway.services.repository import RepositoryError, get_repository
from scholarship_gateway.services.workflow import ContentValidationError, ContentWorkflow, get_content_workflow

router = APIRouter()


@router.get("", response_model=PostListEnvelope)
async def list_posts(
    post_status: ContentStatus | None = Query(default=None, alias="status"),
    repository=Depends(get_repository),
) -> PostListEnvelope:
    try:
        rows = await repository.list_posts(status=post_status)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch posts") from exc
    return PostListEnvelope(data=[PostOut(**row) for row in rows])


@router.get("/{post_id}", response_model=PostEnvelope)
async def get_post(post_id: str, repository=Depends(get_repository)) -> PostEnvelope:
    try:
        row = await repository.get_post(post_id)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch post") from exc
    return PostEnvelope(data=PostOut(**row))


@router.post("", response_model=PostEnvelope)
async def create_post(
    payload: PostWriteRequest,
    workflow: ContentWorkflow = Depends(get_content_workflow),
) -> PostEnvelope:
    try:
        result = await workflow.create_post(payload.model_dump(exclude_unset=True))
    except (ContentValidationError, RepositoryError) as exc:
        raise http_error_for(exc, failure_message="Failed to create post") from exc
    return PostEnvelope(message="Post created successfully", data=PostOut(**result.item), warnings=result.warnings)


@router.put("/{post_id}", response_model=PostEnvelope)
async def update_post(
    post_id: str,
    payload: PostWriteRequest,
    workflow: ContentWorkflow = Depends(get_content_workflow),
) -> PostEnvelope:
    try:
        result = await workflow.update_post(post_id, payload.model_dump(exclude_unset=True))
    except (ContentValidationError, RepositoryError) as exc:
        raise http_error_for(exc, failure_message="Failed to update post") from exc
    return PostEnvelope(message="Post updated successfully", data=PostOut(**result.item), warnings=result.warnings)


@router.patch("/{post_id}/status", response_model=PostEnvelope)
async def patch_post_status(
    post_id: str,
    payload: PostStatusPatchRequest,
    workflow: ContentWorkflow = Depends(get_content_workflow),
) -> PostEnvelope:
    try:
        result = await workflow.update_post_status(post_id, payload.status)
    except (ContentValidationError, RepositoryError) as exc:
        raise http_error_for(exc, failure_message="Failed to update post status") from exc
    return PostEnvelope(message="Post status updated successfully", data=PostOut(**result.item))


@router.delete("/{post_id}", response_model=MessageOut)
async def delete_post(post_id: str, workflow: ContentWorkflow = Depends(get_content_workflow)) -> MessageOut:
    try:
        await workflow.delete_post(post_id)
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to delete post") from exc
    return MessageOut(message="Post deleted successfully")
