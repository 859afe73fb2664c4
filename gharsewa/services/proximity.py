import logging
import math
from typing import Iterable, List, Optional, Protocol

from gharsewa.models import Candidate, GeoPoint, LocationAck, RankedResult

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class CandidateSource(Protocol):
    def fetch_all(self, role: Optional[str] = None) -> List[Candidate]: ...

    def write_location(self, entity_id: str, point: GeoPoint) -> LocationAck: ...


def haversine_km(origin: GeoPoint, target: GeoPoint) -> float:
    phi1 = math.radians(origin.latitude)
    phi2 = math.radians(target.latitude)
    dphi = math.radians(target.latitude - origin.latitude)
    dlambda = math.radians(target.longitude - origin.longitude)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding near antipodes and unvalidated out-of-range input can leave a outside [0, 1].
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def rank(
    origin: GeoPoint,
    candidates: Iterable[Candidate],
    role_filter: Optional[str] = None,
    limit: Optional[int] = None,
    exclude_id: Optional[str] = None,
) -> List[RankedResult]:
    """Rank candidates by great-circle distance from ``origin``, nearest first.

    Candidates without a location are dropped, as are those whose role differs
    from ``role_filter`` and the one whose id equals ``exclude_id``. Equal
    distances keep their input order. Nothing is mutated and no I/O happens.
    """
    result: List[RankedResult] = []
    for candidate in candidates:
        if role_filter is not None and candidate.role != role_filter:
            continue
        if exclude_id is not None and candidate.id == exclude_id:
            continue
        if candidate.location is None:
            continue
        result.append(
            RankedResult(candidate=candidate, distance_km=haversine_km(origin, candidate.location))
        )

    # list.sort is stable, so ties stay in input order.
    result.sort(key=lambda item: item.distance_km)
    if limit is not None:
        result = result[: max(limit, 0)]
    return result


class ProximityRanker:
    """Pull-based ranking over a fresh directory snapshot on every call."""

    def __init__(self, store: CandidateSource) -> None:
        self.store = store

    def rank(
        self,
        origin: GeoPoint,
        candidates: Iterable[Candidate],
        role_filter: Optional[str] = None,
        limit: Optional[int] = None,
        exclude_id: Optional[str] = None,
    ) -> List[RankedResult]:
        return rank(origin, candidates, role_filter=role_filter, limit=limit, exclude_id=exclude_id)

    def nearby(
        self,
        origin: GeoPoint,
        role_filter: Optional[str] = "provider",
        limit: Optional[int] = None,
        exclude_id: Optional[str] = None,
    ) -> List[RankedResult]:
        snapshot = self.store.fetch_all(role=role_filter)
        return rank(origin, snapshot, role_filter=role_filter, limit=limit, exclude_id=exclude_id)

    def record_location(self, entity_id: str, point: GeoPoint) -> LocationAck:
        # Store errors surface unchanged; retry policy belongs to the caller.
        ack = self.store.write_location(entity_id, point)
        logger.info("Recorded location for %s", entity_id)
        return ack
