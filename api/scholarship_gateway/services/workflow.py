from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import Depends

from scholarship_gateway.core.config import Settings, get_settings
from scholarship_gateway.core.slugs import slugify
from scholarship_gateway.services.mailer import MailTransport, get_mail_transport
from scholarship_gateway.services.newsletter import (
    DispatchResult,
    NewsletterDispatcher,
    NewsletterRenderer,
    get_newsletter_renderer,
)
from scholarship_gateway.services.publishing import DRAFT, just_published
from scholarship_gateway.services.relations import RelationError, RelationReconciler
from scholarship_gateway.services.repository import POST_STATUSES, RepositoryError, get_repository
from scholarship_gateway.services.tasks import BackgroundTaskRunner, get_task_runner

logger = logging.getLogger(__name__)

RELATION_FIELDS = ("tags", "degree_level_ids")
BOOLEAN_FIELDS = {"is_featured", "application_fee"}
DEFAULT_AUTHOR_ID = "admin"


class ContentValidationError(Exception):
    """Raised when a create/update payload is missing a required field."""


@dataclass(slots=True)
class WorkflowResult:
    item: dict[str, Any]
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _ContentKind:
    name: str
    body_field: str
    required: tuple[str, ...]


POST_KIND = _ContentKind(name="post", body_field="content", required=("title", "content"))
JOB_KIND = _ContentKind(name="job", body_field="description", required=("title", "description"))


class ContentWorkflow:
    """Create/update orchestration for posts and jobs.

    Posts reconcile tags and degree levels and announce the move into
    ``published`` to newsletter subscribers. Jobs only get slugs and plain
    persistence.
    """

    def __init__(
        self,
        repository: Any,
        reconciler: RelationReconciler,
        dispatcher: NewsletterDispatcher,
        task_runner: BackgroundTaskRunner,
        *,
        excerpt_length: int = 200,
    ) -> None:
        self.repository = repository
        self.reconciler = reconciler
        self.dispatcher = dispatcher
        self.task_runner = task_runner
        self.excerpt_length = excerpt_length

    async def create_post(self, payload: dict[str, Any]) -> WorkflowResult:
        values = self._prepare_create(POST_KIND, payload)
        values["author_id"] = DEFAULT_AUTHOR_ID
        post = await self.repository.insert_post(values)
        logger.info("post created id=%s slug=%s status=%s", post["id"], post.get("slug"), post.get("status"))

        warnings = await self._reconcile_relations(post["id"], payload)
        post = await self._reload_post(post, warnings)
        if just_published(None, post.get("status")):
            self._schedule_newsletter(post)
        return WorkflowResult(item=post, warnings=warnings)

    async def update_post(self, post_id: str, payload: dict[str, Any]) -> WorkflowResult:
        # Read before writing: the caller cannot know whether the post was already live.
        previous_status = await self.repository.get_post_status(post_id)
        values = self._prepare_update(POST_KIND, payload)
        post = await self.repository.update_post(post_id, values)
        logger.info("post updated id=%s fields=%s", post_id, sorted(values))

        warnings = await self._reconcile_relations(post_id, payload)
        post = await self._reload_post(post, warnings)
        if just_published(previous_status, post.get("status")):
            self._schedule_newsletter(post)
        return WorkflowResult(item=post, warnings=warnings)

    async def update_post_status(self, post_id: str, status: str) -> WorkflowResult:
        return await self.update_post(post_id, {"status": status})

    async def delete_post(self, post_id: str) -> None:
        await self.repository.delete_post(post_id)
        logger.info("post deleted id=%s", post_id)

    async def create_job(self, payload: dict[str, Any]) -> WorkflowResult:
        values = self._prepare_create(JOB_KIND, payload)
        job = await self.repository.insert_job(values)
        logger.info("job created id=%s slug=%s status=%s", job["id"], job.get("slug"), job.get("status"))
        return WorkflowResult(item=job)

    async def update_job(self, job_id: str, payload: dict[str, Any]) -> WorkflowResult:
        values = self._prepare_update(JOB_KIND, payload)
        job = await self.repository.update_job(job_id, values)
        logger.info("job updated id=%s fields=%s", job_id, sorted(values))
        return WorkflowResult(item=job)

    async def update_job_status(self, job_id: str, status: str) -> WorkflowResult:
        return await self.update_job(job_id, {"status": status})

    async def delete_job(self, job_id: str) -> None:
        await self.repository.delete_job(job_id)
        logger.info("job deleted id=%s", job_id)

    def _prepare_create(self, kind: _ContentKind, payload: dict[str, Any]) -> dict[str, Any]:
        for field_name in kind.required:
            if not _has_text(payload.get(field_name)):
                raise ContentValidationError(f"{' and '.join(kind.required)} are required")

        values = {
            key: value
            for key, value in payload.items()
            if key not in RELATION_FIELDS and value is not None and value != ""
        }
        values["slug"] = self._derive_slug(payload.get("slug"), fallback=payload["title"])
        body = str(payload[kind.body_field])
        values["excerpt"] = payload.get("excerpt") or body[: self.excerpt_length]
        status = payload.get("status") or DRAFT
        self._require_status(status)
        values["status"] = status
        for field_name in BOOLEAN_FIELDS & values.keys():
            values[field_name] = bool(values[field_name])
        return values

    def _prepare_update(self, kind: _ContentKind, payload: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key, value in payload.items():
            if key in RELATION_FIELDS:
                continue
            if key in kind.required or key == "status":
                if not _has_text(value):
                    raise ContentValidationError(f"{key} cannot be cleared")
                values[key] = value
            elif key == "slug":
                values[key] = self._derive_slug(value, fallback=None)
            elif key in BOOLEAN_FIELDS:
                values[key] = bool(value)
            else:
                values[key] = None if value == "" else value

        if "status" in values:
            self._require_status(values["status"])
        return values

    @staticmethod
    def _derive_slug(explicit: Any, *, fallback: Any) -> str:
        source = explicit if _has_text(explicit) else fallback
        slug = slugify(source if isinstance(source, str) else None)
        if not slug:
            raise ContentValidationError("a title or slug containing letters or digits is required")
        return slug

    @staticmethod
    def _require_status(status: Any) -> None:
        if status not in POST_STATUSES:
            raise ContentValidationError("valid status (draft or published) is required")

    async def _reconcile_relations(self, post_id: str, payload: dict[str, Any]) -> list[str]:
        warnings: list[str] = []
        try:
            outcome = await self.reconciler.reconcile_tags(post_id, payload.get("tags"))
            warnings.extend(outcome.warnings)
        except RelationError as exc:
            logger.warning("tag reconciliation failed post_id=%s: %s", post_id, exc)
            warnings.append("tags could not be updated")

        try:
            await self.reconciler.reconcile_degree_levels(post_id, payload.get("degree_level_ids"))
        except RelationError as exc:
            logger.warning("degree level reconciliation failed post_id=%s: %s", post_id, exc)
            warnings.append("degree levels could not be updated")
        return warnings

    async def _reload_post(self, post: dict[str, Any], warnings: list[str]) -> dict[str, Any]:
        try:
            return await self.repository.get_post(post["id"])
        except RepositoryError as exc:
            logger.warning("post reload failed id=%s: %s", post["id"], exc)
            warnings.append("relations could not be loaded")
            return post

    def _schedule_newsletter(self, post: dict[str, Any]) -> None:
        logger.info("post published id=%s; scheduling newsletter", post["id"])
        self.task_runner.submit(self._notify_subscribers(post), name=f"newsletter:{post['id']}")

    async def _notify_subscribers(self, post: dict[str, Any]) -> DispatchResult:
        emails = await self.repository.list_active_subscriber_emails()
        return await self.dispatcher.dispatch(post, emails)


def _has_text(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def get_content_workflow(
    repository=Depends(get_repository),
    transport: MailTransport = Depends(get_mail_transport),
    renderer: NewsletterRenderer = Depends(get_newsletter_renderer),
    task_runner: BackgroundTaskRunner = Depends(get_task_runner),
    settings: Settings = Depends(get_settings),
) -> ContentWorkflow:
    dispatcher = NewsletterDispatcher(
        transport,
        renderer,
        frontend_url=settings.resolved_frontend_url,
        batch_size=settings.newsletter_batch_size,
        batch_delay_seconds=settings.newsletter_batch_delay_seconds,
    )
    return ContentWorkflow(
        repository,
        RelationReconciler(repository),
        dispatcher,
        task_runner,
        excerpt_length=settings.excerpt_length,
    )
