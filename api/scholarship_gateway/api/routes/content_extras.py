from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from scholarship_gateway.api.errors import http_error_for
from scholarship_gateway.schemas.lookups import QuoteEnvelope, QuoteOut, UploadOut
from scholarship_gateway.services.repository import RepositoryError, get_repository
from scholarship_gateway.services.storage import StorageError, StorageUnavailableError, build_upload_path, get_storage

router = APIRouter()


@router.get("/quotes/daily", response_model=QuoteEnvelope)
async def daily_quote(repository=Depends(get_repository)) -> QuoteEnvelope:
    try:
        row = await repository.get_latest_quote()
    except RepositoryError as exc:
        raise http_error_for(exc, failure_message="Failed to fetch daily quote") from exc
    return QuoteEnvelope(data=QuoteOut(**row) if row else None)


@router.post("/upload", response_model=UploadOut)
async def upload_image(file: UploadFile | None = File(default=None), storage=Depends(get_storage)) -> UploadOut:
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    data = await file.read()
    path = build_upload_path(file.filename)
    try:
        url = await storage.put(path, data, file.content_type or "image/jpeg")
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return UploadOut(url=url)
