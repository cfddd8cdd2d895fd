from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from scholarship_gateway.core.config import get_settings


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write collides with a unique constraint."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before or during persistence."""


POST_STATUSES = {"draft", "published"}
POST_COLUMNS = (
    "title",
    "slug",
    "excerpt",
    "content",
    "status",
    "author_id",
    "views",
    "featured_image",
    "is_featured",
    "category_id",
    "country_id",
    "meta_description",
    "meta_keywords",
    "seo_title",
    "scholarship_provider",
    "university_name",
    "funding_type_id",
    "application_deadline",
    "program_duration",
    "eligible_nationalities",
    "application_fee",
    "application_fee_amount",
    "official_website",
    "apply_link",
    "scholarship_benefits",
    "eligibility_criteria",
    "required_documents",
    "how_to_apply",
    "notes",
    "contact_email",
    "application_mode",
    "available_seats",
    "host_university_logo",
    "scholarship_brochure_pdf",
    "video_embed",
    "faq_data",
    "scheduled_publish_at",
)
JOB_COLUMNS = (
    "title",
    "slug",
    "excerpt",
    "description",
    "status",
    "company_name",
    "company_logo",
    "location",
    "country_id",
    "employment_type_id",
    "salary_range",
    "experience_level",
    "application_deadline",
    "apply_link",
    "contact_email",
    "requirements",
    "responsibilities",
    "benefits",
    "is_featured",
)
JSON_COLUMNS = {"faq_data", "category", "country", "funding_type", "employment_type", "tags", "degree_levels"}

# Writable columns per lookup table, in insert order.
LOOKUP_COLUMNS: dict[str, tuple[str, ...]] = {
    "categories": ("name", "slug", "description"),
    "countries": ("name", "slug", "code", "flag_emoji", "region", "description"),
    "funding_types": ("name", "slug", "description"),
    "employment_types": ("name", "slug", "description"),
    "degree_levels": ("name", "slug", "description"),
    "tags": ("name", "slug"),
}

_POST_SELECT_SQL = """
    select
      p.*,
      case when c.id is null then null
        else json_build_object('id', c.id::text, 'name', c.name, 'slug', c.slug) end as category,
      case when co.id is null then null
        else json_build_object('id', co.id::text, 'name', co.name, 'slug', co.slug, 'flag_emoji', co.flag_emoji)
      end as country,
      case when ft.id is null then null
        else json_build_object('id', ft.id::text, 'name', ft.name, 'slug', ft.slug) end as funding_type,
      coalesce(
        (
          select json_agg(json_build_object('id', t.id::text, 'name', t.name, 'slug', t.slug) order by t.name)
          from post_tags pt
          join tags t on t.id = pt.tag_id
          where pt.post_id = p.id
        ),
        '[]'::json
      ) as tags,
      coalesce(
        (
          select json_agg(json_build_object('id', dl.id::text, 'name', dl.name, 'slug', dl.slug) order by dl.name)
          from post_degree_levels pdl
          join degree_levels dl on dl.id = pdl.degree_level_id
          where pdl.post_id = p.id
        ),
        '[]'::json
      ) as degree_levels
    from posts p
    left join categories c on c.id = p.category_id
    left join countries co on co.id = p.country_id
    left join funding_types ft on ft.id = p.funding_type_id
"""

_JOB_SELECT_SQL = """
    select
      j.*,
      case when co.id is null then null
        else json_build_object('id', co.id::text, 'name', co.name, 'slug', co.slug, 'flag_emoji', co.flag_emoji)
      end as country,
      case when et.id is null then null
        else json_build_object('id', et.id::text, 'name', et.name, 'slug', et.slug) end as employment_type
    from jobs j
    left join countries co on co.id = j.country_id
    left join employment_types et on et.id = j.employment_type_id
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # Posts

    async def list_posts(
        self,
        *,
        category_id: str | None = None,
        country_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if category_id:
            conditions.append(f"p.category_id = {bind(category_id)}::uuid")
        if country_id:
            conditions.append(f"p.country_id = {bind(country_id)}::uuid")
        if status:
            conditions.append(f"p.status = {bind(status)}")

        where_sql = " and ".join(conditions) if conditions else "true"
        with self._store_errors("post"):
            rows = await pool.fetch(
                f"""
                {_POST_SELECT_SQL}
                where {where_sql}
                order by p.created_at desc, p.id asc
                """,
                *params,
            )
        return [self._row_to_dict(row) for row in rows]

    async def get_post(self, post_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        with self._store_errors("post", missing_on_bad_id=True):
            row = await pool.fetchrow(f"{_POST_SELECT_SQL} where p.id = $1::uuid", post_id)
        if not row:
            raise RepositoryNotFoundError("post not found")
        return self._row_to_dict(row)

    async def get_post_status(self, post_id: str) -> str:
        pool = await self._get_pool()
        with self._store_errors("post", missing_on_bad_id=True):
            status = await pool.fetchval("select status from posts where id = $1::uuid", post_id)
        if status is None:
            raise RepositoryNotFoundError("post not found")
        return str(status)

    async def insert_post(self, values: dict[str, Any]) -> dict[str, Any]:
        return await self._insert_row("posts", "post", values, allowed=POST_COLUMNS)

    async def update_post(self, post_id: str, values: dict[str, Any]) -> dict[str, Any]:
        return await self._update_row("posts", "post", post_id, values, allowed=POST_COLUMNS, touch=True)

    async def delete_post(self, post_id: str) -> None:
        await self._delete_row("posts", "post", post_id)

    # Tags and post relations

    async def get_tag_by_slug(self, slug: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        with self._store_errors("tag"):
            row = await pool.fetchrow("select id, name, slug from tags where slug = $1", slug)
        return self._row_to_dict(row) if row else None

    async def create_tag(self, *, name: str, slug: str) -> dict[str, Any]:
        return await self._insert_row("tags", "tag", {"name": name, "slug": slug}, allowed=LOOKUP_COLUMNS["tags"])

    async def delete_post_tags(self, post_id: str) -> int:
        pool = await self._get_pool()
        with self._store_errors("post tag"):
            result = await pool.execute("delete from post_tags where post_id = $1::uuid", post_id)
        return _affected_rows(result)

    async def insert_post_tag(self, post_id: str, tag_id: str) -> bool:
        pool = await self._get_pool()
        with self._store_errors("post tag"):
            result = await pool.execute(
                """
                insert into post_tags (post_id, tag_id)
                values ($1::uuid, $2::uuid)
                on conflict (post_id, tag_id) do nothing
                """,
                post_id,
                tag_id,
            )
        return _affected_rows(result) > 0

    async def delete_post_degree_levels(self, post_id: str) -> int:
        pool = await self._get_pool()
        with self._store_errors("post degree level"):
            result = await pool.execute("delete from post_degree_levels where post_id = $1::uuid", post_id)
        return _affected_rows(result)

    async def insert_post_degree_levels(self, post_id: str, degree_level_ids: list[str]) -> None:
        if not degree_level_ids:
            return
        pool = await self._get_pool()
        with self._store_errors("post degree level"):
            await pool.execute(
                """
                insert into post_degree_levels (post_id, degree_level_id)
                select $1::uuid, degree_level_id
                from unnest($2::uuid[]) as requested(degree_level_id)
                on conflict (post_id, degree_level_id) do nothing
                """,
                post_id,
                degree_level_ids,
            )

    # Jobs

    async def list_jobs(self, *, limit: int, offset: int, status: str | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        where_sql = "true"
        if status:
            params.append(status)
            where_sql = "j.status = $1"
        params.extend([limit, offset])
        with self._store_errors("job"):
            rows = await pool.fetch(
                f"""
                {_JOB_SELECT_SQL}
                where {where_sql}
                order by j.created_at desc, j.id asc
                limit ${len(params) - 1}
                offset ${len(params)}
                """,
                *params,
            )
        return [self._row_to_dict(row) for row in rows]

    async def get_job(self, job_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        with self._store_errors("job", missing_on_bad_id=True):
            row = await pool.fetchrow(f"{_JOB_SELECT_SQL} where j.id = $1::uuid", job_id)
        if not row:
            raise RepositoryNotFoundError("job not found")
        return self._row_to_dict(row)

    async def insert_job(self, values: dict[str, Any]) -> dict[str, Any]:
        return await self._insert_row("jobs", "job", values, allowed=JOB_COLUMNS)

    async def update_job(self, job_id: str, values: dict[str, Any]) -> dict[str, Any]:
        return await self._update_row("jobs", "job", job_id, values, allowed=JOB_COLUMNS, touch=True)

    async def delete_job(self, job_id: str) -> None:
        await self._delete_row("jobs", "job", job_id)

    # Newsletter subscribers

    async def subscribe_newsletter(self, email: str) -> tuple[dict[str, Any], str]:
        """Create, reactivate or confirm a subscriber; returns the row and which of those happened."""
        pool = await self._get_pool()
        with self._store_errors("subscriber"):
            async with pool.acquire() as conn:
                async with conn.transaction():
                    # A concurrent first subscribe makes this a no-op instead of a unique violation.
                    row = await conn.fetchrow(
                        """
                        insert into newsletter_subscribers (email)
                        values ($1)
                        on conflict (email) do nothing
                        returning id, email, is_active, subscribed_at, unsubscribed_at
                        """,
                        email,
                    )
                    if row is not None:
                        return self._row_to_dict(row), "created"

                    existing = await conn.fetchrow(
                        """
                        select id, email, is_active, subscribed_at, unsubscribed_at
                        from newsletter_subscribers
                        where email = $1
                        for update
                        """,
                        email,
                    )
                    if existing is None:
                        raise RepositoryError("subscriber row disappeared during subscribe")
                    if existing["is_active"]:
                        return self._row_to_dict(existing), "already_active"

                    row = await conn.fetchrow(
                        """
                        update newsletter_subscribers
                        set is_active = true, unsubscribed_at = null, subscribed_at = now()
                        where id = $1
                        returning id, email, is_active, subscribed_at, unsubscribed_at
                        """,
                        existing["id"],
                    )
        return self._row_to_dict(row), "reactivated"

    async def unsubscribe_newsletter(self, email: str) -> dict[str, Any]:
        pool = await self._get_pool()
        with self._store_errors("subscriber"):
            row = await pool.fetchrow(
                """
                update newsletter_subscribers
                set
                  is_active = false,
                  unsubscribed_at = coalesce(unsubscribed_at, now())
                where email = $1
                returning id, email, is_active, subscribed_at, unsubscribed_at
                """,
                email,
            )
        if not row:
            raise RepositoryNotFoundError("subscriber not found")
        return self._row_to_dict(row)

    async def list_active_subscriber_emails(self) -> list[str]:
        pool = await self._get_pool()
        with self._store_errors("subscriber"):
            rows = await pool.fetch(
                "select email from newsletter_subscribers where is_active = true order by subscribed_at asc, id asc"
            )
        return [row["email"] for row in rows]

    # Lookup tables

    async def list_lookups(self, table: str) -> list[dict[str, Any]]:
        self._require_lookup_table(table)
        pool = await self._get_pool()
        with self._store_errors(table):
            rows = await pool.fetch(f"select * from {table} order by name asc")
        return [self._row_to_dict(row) for row in rows]

    async def get_lookup_by_slug(self, table: str, slug: str) -> dict[str, Any]:
        self._require_lookup_table(table)
        pool = await self._get_pool()
        with self._store_errors(table):
            row = await pool.fetchrow(f"select * from {table} where slug = $1", slug)
        if not row:
            raise RepositoryNotFoundError(f"{_entity_label(table)} not found")
        return self._row_to_dict(row)

    async def create_lookup(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        self._require_lookup_table(table)
        return await self._insert_row(table, _entity_label(table), values, allowed=LOOKUP_COLUMNS[table])

    async def update_lookup(self, table: str, lookup_id: str, values: dict[str, Any]) -> dict[str, Any]:
        self._require_lookup_table(table)
        return await self._update_row(
            table,
            _entity_label(table),
            lookup_id,
            values,
            allowed=LOOKUP_COLUMNS[table],
            touch=False,
        )

    async def delete_lookup(self, table: str, lookup_id: str) -> None:
        self._require_lookup_table(table)
        await self._delete_row(table, _entity_label(table), lookup_id)

    async def get_latest_quote(self) -> dict[str, Any] | None:
        pool = await self._get_pool()
        with self._store_errors("quote"):
            row = await pool.fetchrow("select * from quotes order by created_at desc limit 1")
        return self._row_to_dict(row) if row else None

    # Shared row helpers

    async def _insert_row(
        self,
        table: str,
        entity: str,
        values: dict[str, Any],
        *,
        allowed: tuple[str, ...],
    ) -> dict[str, Any]:
        columns = [column for column in allowed if column in values]
        if not columns:
            raise RepositoryValidationError(f"no writable {entity} fields supplied")
        params = [self._encode_value(column, values[column]) for column in columns]
        placeholders = ", ".join(f"${index}" for index in range(1, len(columns) + 1))
        pool = await self._get_pool()
        with self._store_errors(entity):
            row = await pool.fetchrow(
                f"insert into {table} ({', '.join(columns)}) values ({placeholders}) returning *",
                *params,
            )
        if not row:
            raise RepositoryError(f"failed to create {entity}")
        return self._row_to_dict(row)

    async def _update_row(
        self,
        table: str,
        entity: str,
        row_id: str,
        values: dict[str, Any],
        *,
        allowed: tuple[str, ...],
        touch: bool,
    ) -> dict[str, Any]:
        columns = [column for column in allowed if column in values]
        params: list[Any] = [row_id]
        assignments: list[str] = []
        for column in columns:
            params.append(self._encode_value(column, values[column]))
            assignments.append(f"{column} = ${len(params)}")
        if touch:
            assignments.append("updated_at = now()")
        if not assignments:
            raise RepositoryValidationError(f"no writable {entity} fields supplied")

        pool = await self._get_pool()
        with self._store_errors(entity, missing_on_bad_id=True):
            row = await pool.fetchrow(
                f"update {table} set {', '.join(assignments)} where id = $1::uuid returning *",
                *params,
            )
        if not row:
            raise RepositoryNotFoundError(f"{entity} not found")
        return self._row_to_dict(row)

    async def _delete_row(self, table: str, entity: str, row_id: str) -> None:
        pool = await self._get_pool()
        with self._store_errors(entity, missing_on_bad_id=True):
            result = await pool.execute(f"delete from {table} where id = $1::uuid", row_id)
        if _affected_rows(result) == 0:
            raise RepositoryNotFoundError(f"{entity} not found")

    @contextmanager
    def _store_errors(self, entity: str, *, missing_on_bad_id: bool = False) -> Iterator[None]:
        try:
            yield
        except RepositoryError:
            raise
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(f"{entity} already exists") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryValidationError(f"{entity} references a record that does not exist") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            if missing_on_bad_id:
                raise RepositoryNotFoundError(f"{entity} not found") from exc
            raise RepositoryValidationError(f"invalid {entity} value: {exc}") from exc
        except (pg_exc.NotNullViolationError, pg_exc.CheckViolationError) as exc:
            raise RepositoryValidationError(f"invalid {entity} value: {exc}") from exc
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryError(f"{entity} query failed") from exc
        except OSError as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("SG_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _require_lookup_table(table: str) -> None:
        if table not in LOOKUP_COLUMNS:
            raise RepositoryValidationError(f"unknown lookup table: {table}")

    @staticmethod
    def _encode_value(column: str, value: Any) -> Any:
        if column in JSON_COLUMNS and value is not None:
            return json.dumps(value)
        return value

    @staticmethod
    def _row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in row.items():
            if isinstance(value, UUID):
                value = str(value)
            elif key in JSON_COLUMNS and isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    value = None
            result[key] = value
        return result


def _affected_rows(status: str) -> int:
    # asyncpg returns command tags such as "DELETE 3" or "INSERT 0 1".
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except (AttributeError, ValueError):
        return 0


def _entity_label(table: str) -> str:
    if table == "categories":
        return "category"
    if table == "countries":
        return "country"
    return table.removesuffix("s").replace("_", " ")


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
