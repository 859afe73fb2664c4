import os
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from gharsewa.models import GeoPoint, NearbyProvider, NearbyProvidersResponse, RankedResult
from gharsewa.routers.errors import raise_directory_http_error
from gharsewa.services.directory_store import DirectoryStoreError
from gharsewa.services.runtime import directory_store, proximity_ranker

router = APIRouter(prefix="/providers", tags=["providers"])

NEARBY_MAX_LIMIT = int(os.getenv("NEARBY_MAX_LIMIT", "100"))


def _check_limit(limit: Optional[int]) -> None:
    if limit is not None and limit > NEARBY_MAX_LIMIT:
        raise HTTPException(status_code=400, detail=f"Limit must be between 1 and {NEARBY_MAX_LIMIT}")


def _to_view(results: List[RankedResult]) -> List[NearbyProvider]:
    providers: List[NearbyProvider] = []
    for item in results:
        attributes = item.candidate.attributes
        providers.append(
            NearbyProvider(
                id=item.candidate.id,
                name=item.candidate.name,
                distance_km=item.distance_km,
                skills=str(attributes.get("skills") or ""),
                average_rating=attributes.get("average_rating"),
                total_reviews=int(attributes.get("total_reviews") or 0),
            )
        )
    return providers


def _nearby_response(origin: GeoPoint, limit: Optional[int], exclude_id: Optional[str]) -> NearbyProvidersResponse:
    try:
        ranked = proximity_ranker.nearby(origin, role_filter="provider", exclude_id=exclude_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)
    window = ranked if limit is None else ranked[:limit]
    return NearbyProvidersResponse(origin=origin, providers=_to_view(window), total_found=len(ranked))


@router.get("/nearby", response_model=NearbyProvidersResponse)
def nearby_by_coordinates(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    limit: Optional[int] = Query(default=None, ge=1),
    exclude_user_id: Optional[str] = Query(default=None),
):
    _check_limit(limit)
    return _nearby_response(GeoPoint(latitude=lat, longitude=lng), limit=limit, exclude_id=exclude_user_id)


@router.get("/nearby/{user_id}", response_model=NearbyProvidersResponse)
def nearby_for_user(
    user_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    exclude_self: bool = Query(default=False),
):
    _check_limit(limit)
    try:
        profile = directory_store.get_profile(user_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    if profile.latitude is None or profile.longitude is None:
        raise HTTPException(status_code=404, detail="User has not shared a location yet")
    origin = GeoPoint(latitude=profile.latitude, longitude=profile.longitude)
    return _nearby_response(origin, limit=limit, exclude_id=user_id if exclude_self else None)
