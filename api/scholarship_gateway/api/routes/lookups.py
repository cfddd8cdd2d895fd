from fastapi import APIRouter, Depends, HTTPException, status

from scholarship_gateway.api.errors import http_error_for
from scholarship_gateway.core.slugs import slugify
from scholarship_gateway.schemas.common import MessageOut
from scholarship_gateway.schemas.lookups import (
    CategoryPostsEnvelope,
    CountryPostsEnvelope,
    LookupEnvelope,
    LookupListEnvelope,
    LookupOut,
    LookupWriteRequest,
)
from scholarship_gateway.schemas.posts import PostOut
from scholarship_gateway.services.repository import RepositoryError, get_repository


def build_lookup_router(
    table: str,
    *,
    label: str,
    required: tuple[str, ...] = ("name",),
    slug_follows_name: bool = False,
) -> APIRouter:
    """CRUD routes for a name/slug lookup table.

    With ``slug_follows_name`` the slug is always derived from the name and
    re-derived on rename; otherwise an explicit slug wins and renames keep it.
    """
    router = APIRouter()
    title = label.capitalize()

    @router.get("", response_model=LookupListEnvelope)
    async def list_lookups(repository=Depends(get_repository)) -> LookupListEnvelope:
        try:
            rows = await repository.list_lookups(table)
        except RepositoryError as exc:
            raise http_error_for(exc, failure_message=f"Failed to fetch {table.replace('_', ' ')}") from exc
        return LookupListEnvelope(data=[LookupOut(**row) for row in rows])

    @router.post("", response_model=LookupEnvelope)
    async def create_lookup(payload: LookupWriteRequest, repository=Depends(get_repository)) -> LookupEnvelope:
        values = payload.model_dump(exclude_unset=True)
        if any(not values.get(field_name) for field_name in required):
            fields = " and ".join(required)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{fields.capitalize()} {'is' if len(required) == 1 else 'are'} required",
            )
        slug_source = values["name"] if slug_follows_name else values.get("slug") or values["name"]
        values["slug"] = _require_slug(slug_source)
        try:
            row = await repository.create_lookup(table, values)
        except RepositoryError as exc:
            raise http_error_for(exc, failure_message=f"Failed to create {label}") from exc
        return LookupEnvelope(message=f"{title} created", data=LookupOut(**row))

    @router.put("/{lookup_id}", response_model=LookupEnvelope)
    async def update_lookup(
        lookup_id: str,
        payload: LookupWriteRequest,
        repository=Depends(get_repository),
    ) -> LookupEnvelope:
        values = payload.model_dump(exclude_unset=True)
        if slug_follows_name:
            values.pop("slug", None)
            if "name" in values:
                values["slug"] = _require_slug(values["name"])
        elif "slug" in values:
            values["slug"] = _require_slug(values["slug"])
        try:
            row = await repository.update_lookup(table, lookup_id, values)
        except RepositoryError as exc:
            raise http_error_for(exc, failure_message=f"Failed to update {label}") from exc
        return LookupEnvelope(message=f"{title} updated", data=LookupOut(**row))

    @router.delete("/{lookup_id}", response_model=MessageOut)
    async def delete_lookup(lookup_id: str, repository=Depends(get_repository)) -> MessageOut:
        try:
            await repository.delete_lookup(table, lookup_id)
        except RepositoryError as exc:
            raise http_error_for(exc, failure_message=f"Failed to delete {label}") from exc
        return MessageOut(message=f"{title} deleted")

    return router


def _require_slug(source: str | None) -> str:
    slug = slugify(source)
    if not slug:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name or slug must contain letters or digits")
    return slug


categories_router = build_lookup_router("categories", label="category")
countries_router = build_lookup_router("countries", label="country", required=("name", "code"), slug_follows_name=True)
funding_types_router = build_lookup_router("funding_types", label="funding type")
employment_types_router = build_lookup_router("employment_types", label="employment type")
degree_levels_router = build_lookup_router("degree_levels", label="degree level")
tags_router = build_lookup_router("tags", label="tag")


@categories_router.get("/{slug}/posts", response_model=CategoryPostsEnvelope)
async def list_category_posts(slug: str, repository=Depends(get_repository)) -> CategoryPostsEnvelope:
    try:
        category = await repository.get_lookup_by_slug("categories", slug)
        rows = await repository.list_posts(category_id=category["id"])
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch posts by category") from exc
    return CategoryPostsEnvelope(category=LookupOut(**category), data=[PostOut(**row) for row in rows])


@countries_router.get("/{slug}/posts", response_model=CountryPostsEnvelope)
async def list_country_posts(slug: str, repository=Depends(get_repository)) -> CountryPostsEnvelope:
    try:
        country = await repository.get_lookup_by_slug("countries", slug)
        rows = await repository.list_posts(country_id=country["id"], status="published")
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch posts by country") from exc
    return CountryPostsEnvelope(country=LookupOut(**country), data=[PostOut(**row) for row in rows])
