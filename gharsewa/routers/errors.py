from fastapi import HTTPException

from gharsewa.services.directory_store import (
    DirectoryStoreConflictError,
    DirectoryStoreError,
    DirectoryStoreNotFoundError,
    DirectoryStorePermissionError,
    StoreUnavailableError,
)


def raise_directory_http_error(exc: DirectoryStoreError) -> None:
    if isinstance(exc, DirectoryStoreNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DirectoryStorePermissionError):
        raise HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, DirectoryStoreConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))
