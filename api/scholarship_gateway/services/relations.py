from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from scholarship_gateway.core.slugs import slugify
from scholarship_gateway.services.repository import RepositoryConflictError, RepositoryError

logger = logging.getLogger(__name__)


class RelationError(Exception):
    """Raised when a relation set could not be replaced at all."""


@dataclass(slots=True)
class ReconcileOutcome:
    applied: bool
    linked_ids: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [f"tag '{name}' could not be linked" for name in self.skipped]


class RelationReconciler:
    """Replaces a post's tag and degree-level links wholesale.

    ``None`` means the caller did not ask for a change and leaves links alone;
    an empty list clears them. Link deletion and re-insertion are separate
    statements, so a crash in between leaves the post with no links.
    """

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def reconcile_tags(self, post_id: str, desired_names: list[str] | None) -> ReconcileOutcome:
        if desired_names is None:
            return ReconcileOutcome(applied=False)

        try:
            await self.repository.delete_post_tags(post_id)
        except RepositoryError as exc:
            raise RelationError(f"could not clear tags for post {post_id}") from exc

        outcome = ReconcileOutcome(applied=True)
        seen_slugs: set[str] = set()
        seen_tag_ids: set[str] = set()
        for raw_name in desired_names:
            name = raw_name.strip() if isinstance(raw_name, str) else ""
            if not name:
                continue
            slug = slugify(name)
            if not slug:
                logger.warning("skipping tag without alphanumerics post_id=%s tag=%r", post_id, name)
                outcome.skipped.append(name)
                continue
            if slug in seen_slugs:
                continue
            seen_slugs.add(slug)

            try:
                tag_id = await self._resolve_tag_id(name=name, slug=slug)
                if tag_id is None:
                    logger.warning("tag could not be resolved post_id=%s slug=%s", post_id, slug)
                    outcome.skipped.append(name)
                    continue
                if tag_id in seen_tag_ids:
                    continue
                await self.repository.insert_post_tag(post_id, tag_id)
            except RepositoryError as exc:
                logger.warning("tag link failed post_id=%s slug=%s: %s", post_id, slug, exc)
                outcome.skipped.append(name)
                continue

            seen_tag_ids.add(tag_id)
            outcome.linked_ids.append(tag_id)

        return outcome

    async def reconcile_degree_levels(self, post_id: str, desired_ids: list[str] | None) -> ReconcileOutcome:
        if desired_ids is None:
            return ReconcileOutcome(applied=False)

        degree_level_ids = list(dict.fromkeys(str(item) for item in desired_ids if item))
        try:
            await self.repository.delete_post_degree_levels(post_id)
            await self.repository.insert_post_degree_levels(post_id, degree_level_ids)
        except RepositoryError as exc:
            raise RelationError(f"could not replace degree levels for post {post_id}") from exc
        return ReconcileOutcome(applied=True, linked_ids=degree_level_ids)

    async def _resolve_tag_id(self, *, name: str, slug: str) -> str | None:
        existing = await self.repository.get_tag_by_slug(slug)
        if existing:
            return str(existing["id"])

        try:
            created = await self.repository.create_tag(name=name, slug=slug)
        except RepositoryConflictError:
            # Lost a create race; the winner's row is the one to link.
            existing = await self.repository.get_tag_by_slug(slug)
            return str(existing["id"]) if existing else None
        created_id = created.get("id")
        return str(created_id) if created_id else None
