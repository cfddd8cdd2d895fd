from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from scholarship_gateway.services.mailer import MailDeliveryError
from scholarship_gateway.services.newsletter import DispatchResult
from scholarship_gateway.services.repository import (
    JOB_COLUMNS,
    LOOKUP_COLUMNS,
    POST_COLUMNS,
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
)


class InMemoryRepository:
    """Mirrors the PostgresRepository surface the routes and workflow use."""

    def __init__(self) -> None:
        self.posts: dict[str, dict[str, Any]] = {}
        self.jobs: dict[str, dict[str, Any]] = {}
        self.post_tags: list[tuple[str, str]] = []
        self.post_degree_levels: list[tuple[str, str]] = []
        self.subscribers: dict[str, dict[str, Any]] = {}
        self.lookups: dict[str, dict[str, dict[str, Any]]] = {table: {} for table in LOOKUP_COLUMNS}
        self.quotes: list[dict[str, Any]] = []
        self.created_tag_slugs: list[str] = []
        self.failing_tag_slugs: set[str] = set()
        self.fail_tag_clear = False
        self.fail_subscriber_read = False

    # Posts

    async def list_posts(
        self,
        *,
        category_id: str | None = None,
        country_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = list(self.posts.values())
        if category_id:
            rows = [row for row in rows if row.get("category_id") == category_id]
        if country_id:
            rows = [row for row in rows if row.get("country_id") == country_id]
        if status:
            rows = [row for row in rows if row["status"] == status]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._expand_post(row) for row in rows]

    async def get_post(self, post_id: str) -> dict[str, Any]:
        if post_id not in self.posts:
            raise RepositoryNotFoundError("post not found")
        return self._expand_post(self.posts[post_id])

    async def get_post_status(self, post_id: str) -> str:
        if post_id not in self.posts:
            raise RepositoryNotFoundError("post not found")
        return self.posts[post_id]["status"]

    async def insert_post(self, values: dict[str, Any]) -> dict[str, Any]:
        row = self._new_row(self.posts, "post", values, POST_COLUMNS)
        row.setdefault("views", 0)
        row.setdefault("is_featured", False)
        row.setdefault("application_fee", False)
        return dict(row)

    async def update_post(self, post_id: str, values: dict[str, Any]) -> dict[str, Any]:
        return dict(self._apply_update(self.posts, "post", post_id, values, POST_COLUMNS))

    async def delete_post(self, post_id: str) -> None:
        if self.posts.pop(post_id, None) is None:
            raise RepositoryNotFoundError("post not found")
        self.post_tags = [link for link in self.post_tags if link[0] != post_id]
        self.post_degree_levels = [link for link in self.post_degree_levels if link[0] != post_id]

    # Tags and relations

    async def get_tag_by_slug(self, slug: str) -> dict[str, Any] | None:
        for tag in self.lookups["tags"].values():
            if tag["slug"] == slug:
                return dict(tag)
        return None

    async def create_tag(self, *, name: str, slug: str) -> dict[str, Any]:
        if slug in self.failing_tag_slugs:
            raise RepositoryError("tag query failed")
        self.created_tag_slugs.append(slug)
        return await self.create_lookup("tags", {"name": name, "slug": slug})

    async def delete_post_tags(self, post_id: str) -> int:
        if self.fail_tag_clear:
            raise RepositoryError("post tag query failed")
        before = len(self.post_tags)
        self.post_tags = [link for link in self.post_tags if link[0] != post_id]
        return before - len(self.post_tags)

    async def insert_post_tag(self, post_id: str, tag_id: str) -> bool:
        if (post_id, tag_id) in self.post_tags:
            return False
        self.post_tags.append((post_id, tag_id))
        return True

    async def delete_post_degree_levels(self, post_id: str) -> int:
        before = len(self.post_degree_levels)
        self.post_degree_levels = [link for link in self.post_degree_levels if link[0] != post_id]
        return before - len(self.post_degree_levels)

    async def insert_post_degree_levels(self, post_id: str, degree_level_ids: list[str]) -> None:
        for degree_level_id in degree_level_ids:
            if (post_id, degree_level_id) not in self.post_degree_levels:
                self.post_degree_levels.append((post_id, degree_level_id))

    def tag_slugs_for(self, post_id: str) -> list[str]:
        tags = self.lookups["tags"]
        return sorted(tags[tag_id]["slug"] for linked_post_id, tag_id in self.post_tags if linked_post_id == post_id)

    # Jobs

    async def list_jobs(self, *, limit: int, offset: int, status: str | None = None) -> list[dict[str, Any]]:
        rows = sorted(self.jobs.values(), key=lambda row: row["created_at"], reverse=True)
        if status:
            rows = [row for row in rows if row["status"] == status]
        return [dict(row) for row in rows[offset : offset + limit]]

    async def get_job(self, job_id: str) -> dict[str, Any]:
        if job_id not in self.jobs:
            raise RepositoryNotFoundError("job not found")
        return dict(self.jobs[job_id])

    async def insert_job(self, values: dict[str, Any]) -> dict[str, Any]:
        row = self._new_row(self.jobs, "job", values, JOB_COLUMNS)
        row.setdefault("is_featured", False)
        return dict(row)

    async def update_job(self, job_id: str, values: dict[str, Any]) -> dict[str, Any]:
        return dict(self._apply_update(self.jobs, "job", job_id, values, JOB_COLUMNS))

    async def delete_job(self, job_id: str) -> None:
        if self.jobs.pop(job_id, None) is None:
            raise RepositoryNotFoundError("job not found")

    # Subscribers

    async def subscribe_newsletter(self, email: str) -> tuple[dict[str, Any], str]:
        existing = self.subscribers.get(email)
        if existing is None:
            row = {
                "id": str(uuid4()),
                "email": email,
                "is_active": True,
                "subscribed_at": _now(),
                "unsubscribed_at": None,
            }
            self.subscribers[email] = row
            return dict(row), "created"
        if existing["is_active"]:
            return dict(existing), "already_active"
        existing.update({"is_active": True, "unsubscribed_at": None, "subscribed_at": _now()})
        return dict(existing), "reactivated"

    async def unsubscribe_newsletter(self, email: str) -> dict[str, Any]:
        existing = self.subscribers.get(email)
        if existing is None:
            raise RepositoryNotFoundError("subscriber not found")
        existing["is_active"] = False
        existing["unsubscribed_at"] = existing["unsubscribed_at"] or _now()
        return dict(existing)

    async def list_active_subscriber_emails(self) -> list[str]:
        if self.fail_subscriber_read:
            raise RepositoryError("subscriber query failed")
        return [row["email"] for row in self.subscribers.values() if row["is_active"]]

    def add_subscribers(self, emails: list[str], *, active: bool = True) -> None:
        for email in emails:
            self.subscribers[email] = {
                "id": str(uuid4()),
                "email": email,
                "is_active": active,
                "subscribed_at": _now(),
                "unsubscribed_at": None if active else _now(),
            }

    # Lookups

    async def list_lookups(self, table: str) -> list[dict[str, Any]]:
        return sorted((dict(row) for row in self.lookups[table].values()), key=lambda row: row["name"])

    async def get_lookup_by_slug(self, table: str, slug: str) -> dict[str, Any]:
        for row in self.lookups[table].values():
            if row["slug"] == slug:
                return dict(row)
        raise RepositoryNotFoundError("not found")

    async def create_lookup(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        rows = self.lookups[table]
        if any(row["slug"] == values.get("slug") for row in rows.values()):
            raise RepositoryConflictError(f"{table} already exists")
        row = {column: values.get(column) for column in LOOKUP_COLUMNS[table]}
        row["id"] = str(uuid4())
        row["created_at"] = _now()
        rows[row["id"]] = row
        return dict(row)

    async def update_lookup(self, table: str, lookup_id: str, values: dict[str, Any]) -> dict[str, Any]:
        rows = self.lookups[table]
        if lookup_id not in rows:
            raise RepositoryNotFoundError("not found")
        rows[lookup_id].update({key: value for key, value in values.items() if key in LOOKUP_COLUMNS[table]})
        return dict(rows[lookup_id])

    async def delete_lookup(self, table: str, lookup_id: str) -> None:
        if self.lookups[table].pop(lookup_id, None) is None:
            raise RepositoryNotFoundError("not found")

    async def get_latest_quote(self) -> dict[str, Any] | None:
        if not self.quotes:
            return None
        return dict(max(self.quotes, key=lambda row: row["created_at"]))

    # Helpers

    def _new_row(
        self,
        table: dict[str, dict[str, Any]],
        entity: str,
        values: dict[str, Any],
        allowed: tuple[str, ...],
    ) -> dict[str, Any]:
        if any(row["slug"] == values.get("slug") for row in table.values()):
            raise RepositoryConflictError(f"{entity} already exists")
        row = {key: value for key, value in values.items() if key in allowed}
        now = _now()
        row.update({"id": str(uuid4()), "created_at": now, "updated_at": now})
        table[row["id"]] = row
        return row

    @staticmethod
    def _apply_update(
        table: dict[str, dict[str, Any]],
        entity: str,
        row_id: str,
        values: dict[str, Any],
        allowed: tuple[str, ...],
    ) -> dict[str, Any]:
        if row_id not in table:
            raise RepositoryNotFoundError(f"{entity} not found")
        row = table[row_id]
        row.update({key: value for key, value in values.items() if key in allowed})
        row["updated_at"] = _now()
        return row

    def _expand_post(self, row: dict[str, Any]) -> dict[str, Any]:
        tags = self.lookups["tags"]
        degree_levels = self.lookups["degree_levels"]
        expanded = dict(row)
        expanded["tags"] = sorted(
            (dict(tags[tag_id]) for post_id, tag_id in self.post_tags if post_id == row["id"] and tag_id in tags),
            key=lambda tag: tag["name"],
        )
        expanded["degree_levels"] = [
            dict(degree_levels[level_id])
            for post_id, level_id in self.post_degree_levels
            if post_id == row["id"] and level_id in degree_levels
        ]
        return expanded


class RecordingMailTransport:
    def __init__(self, failing: set[str] | None = None, gate: asyncio.Event | None = None) -> None:
        self.failing = failing or set()
        self.gate = gate
        self.sent: list[dict[str, str]] = []
        self.attempts = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, to: str, subject: str, html_body: str) -> None:
        self.attempts += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.gate is not None:
                await self.gate.wait()
            if to in self.failing:
                raise MailDeliveryError(f"mailbox unavailable: {to}")
            self.sent.append({"to": to, "subject": subject, "html": html_body})
        finally:
            self.in_flight -= 1


class RecordingDispatcher:
    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.gate = gate
        self.calls: list[tuple[dict[str, Any], list[str]]] = []

    async def dispatch(self, post: dict[str, Any], subscriber_emails: list[str]) -> DispatchResult:
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append((post, list(subscriber_emails)))
        return DispatchResult(sent=len(subscriber_emails), failed=0, total=len(subscriber_emails))


def _now() -> datetime:
    return datetime.now(timezone.utc)
