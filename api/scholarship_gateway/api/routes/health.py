from datetime import datetime, timezone

from fastapi import APIRouter

from scholarship_gateway.schemas.common import HealthOut

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    return HealthOut(
        status="ok",
        message="Scholarship Gateway API is running",
        timestamp=datetime.now(timezone.utc),
    )
