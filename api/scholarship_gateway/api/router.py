from fastapi import APIRouter

from scholarship_gateway.api.routes import content_extras, health, jobs, lookups, newsletter, posts

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(posts.router, prefix="/posts", tags=["posts"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(newsletter.router, prefix="/newsletter", tags=["newsletter"])
api_router.include_router(lookups.categories_router, prefix="/categories", tags=["lookups"])
api_router.include_router(lookups.countries_router, prefix="/countries", tags=["lookups"])
api_router.include_router(lookups.funding_types_router, prefix="/funding-types", tags=["lookups"])
api_router.include_router(lookups.employment_types_router, prefix="/employment-types", tags=["lookups"])
api_router.include_router(lookups.degree_levels_router, prefix="/degree-levels", tags=["lookups"])
api_router.include_router(lookups.tags_router, prefix="/tags", tags=["lookups"])
api_router.include_router(content_extras.router, tags=["content"])
