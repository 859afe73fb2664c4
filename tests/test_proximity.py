import math
import os
import sys
from typing import List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from gharsewa.models import Candidate, GeoPoint, LocationAck
from gharsewa.services.directory_store import StoreUnavailableError
from gharsewa.services.proximity import EARTH_RADIUS_KM, ProximityRanker, haversine_km, rank

KATHMANDU = GeoPoint(latitude=27.7172, longitude=85.3240)


def _candidate(
    candidate_id: str,
    lat: Optional[float],
    lon: Optional[float],
    role: str = "provider",
    **attributes,
) -> Candidate:
    location = GeoPoint(latitude=lat, longitude=lon) if lat is not None and lon is not None else None
    return Candidate(id=candidate_id, name=candidate_id.upper(), role=role, location=location, attributes=attributes)


class FakeStore:
    def __init__(self, candidates: List[Candidate], fail_writes: bool = False):
        self.candidates = candidates
        self.fail_writes = fail_writes
        self.fetch_calls: List[Optional[str]] = []
        self.writes: List[tuple] = []

    def fetch_all(self, role: Optional[str] = None) -> List[Candidate]:
        self.fetch_calls.append(role)
        return list(self.candidates)

    def write_location(self, entity_id: str, point: GeoPoint) -> LocationAck:
        if self.fail_writes:
            raise StoreUnavailableError("store offline")
        self.writes.append((entity_id, point))
        return LocationAck(entity_id=entity_id, point=point, recorded_at="2026-01-01T00:00:00+00:00")


def test_distance_to_self_is_zero():
    points = [KATHMANDU, GeoPoint(latitude=-33.8889, longitude=151.2111), GeoPoint(latitude=89.9, longitude=-179.9)]
    for point in points:
        assert haversine_km(point, point) == pytest.approx(0.0, abs=1e-9)


def test_distance_is_symmetric():
    london = GeoPoint(latitude=51.5074, longitude=-0.1278)
    paris = GeoPoint(latitude=48.8566, longitude=2.3522)
    assert haversine_km(london, paris) == pytest.approx(haversine_km(paris, london), abs=1e-9)
    assert haversine_km(london, paris) == pytest.approx(343.5, abs=1.0)


def test_distance_half_circumference_for_opposite_points():
    distance = haversine_km(GeoPoint(latitude=0, longitude=0), GeoPoint(latitude=0, longitude=180))
    assert distance == pytest.approx(math.pi * EARTH_RADIUS_KM, rel=1e-9)


def test_out_of_range_coordinates_do_not_crash():
    results = rank(GeoPoint(latitude=120.0, longitude=400.0), [_candidate("a", -95.0, 10.0)])
    assert len(results) == 1
    assert math.isfinite(results[0].distance_km)
    assert results[0].distance_km >= 0


def test_kathmandu_scenario_orders_and_drops_missing_coordinates():
    candidates = [
        _candidate("a", 27.7172, 85.3240),
        _candidate("b", 27.6710, 85.4298),
        _candidate("c", None, None),
    ]

    results = rank(KATHMANDU, candidates)

    assert [item.candidate.id for item in results] == ["a", "b"]
    assert results[0].distance_km == pytest.approx(0.0, abs=1e-9)
    assert results[1].distance_km == pytest.approx(11.61, abs=0.05)


def test_empty_candidates_give_empty_result():
    assert rank(KATHMANDU, []) == []


def test_role_filter_excludes_customers_even_when_geolocated():
    candidates = [
        _candidate("cust", 27.7172, 85.3240, role="customer"),
        _candidate("prov", 27.70, 85.33),
    ]
    results = rank(KATHMANDU, candidates, role_filter="provider")
    assert [item.candidate.id for item in results] == ["prov"]
    assert rank(KATHMANDU, candidates, role_filter="") == []


def test_output_is_sorted_and_never_negative():
    candidates = [
        _candidate("far", 27.0, 84.0),
        _candidate("none", None, None),
        _candidate("near", 27.72, 85.32),
        _candidate("mid", 27.6, 85.5),
        _candidate("none2", None, None),
    ]
    results = rank(KATHMANDU, candidates)
    distances = [item.distance_km for item in results]
    assert distances == sorted(distances)
    assert all(distance >= 0 for distance in distances)
    assert {item.candidate.id for item in results} == {"far", "near", "mid"}


def test_limit_truncates_after_sorting():
    candidates = [_candidate(f"p{i}", 27.7172 + i * 0.01, 85.3240) for i in range(5, 0, -1)]
    candidates.append(_candidate("hidden", None, None))

    top_two = rank(KATHMANDU, candidates, limit=2)
    assert [item.candidate.id for item in top_two] == ["p1", "p2"]
    assert len(rank(KATHMANDU, candidates, limit=10)) == 5
    assert rank(KATHMANDU, candidates, limit=0) == []


def test_equal_distances_keep_input_order():
    first = _candidate("x", 27.70, 85.30)
    second = _candidate("y", 27.70, 85.30)

    assert [item.candidate.id for item in rank(KATHMANDU, [first, second])] == ["x", "y"]
    assert [item.candidate.id for item in rank(KATHMANDU, [second, first])] == ["y", "x"]


def test_exclude_id_is_explicit():
    candidates = [_candidate("me", 27.7172, 85.3240), _candidate("other", 27.70, 85.30)]

    assert [item.candidate.id for item in rank(KATHMANDU, candidates)] == ["me", "other"]
    assert [item.candidate.id for item in rank(KATHMANDU, candidates, exclude_id="me")] == ["other"]


def test_rank_does_not_mutate_inputs_and_passes_attributes_through():
    origin = GeoPoint(latitude=27.7172, longitude=85.3240)
    candidates = [
        _candidate("b", 27.6710, 85.4298, skills="painting", average_rating=4.2, total_reviews=17),
        _candidate("a", 27.7172, 85.3240, skills="plumbing"),
    ]
    snapshot = [candidate.model_copy(deep=True) for candidate in candidates]

    results = rank(origin, candidates)

    assert origin == GeoPoint(latitude=27.7172, longitude=85.3240)
    assert candidates == snapshot
    assert results[1].candidate.attributes == {"skills": "painting", "average_rating": 4.2, "total_reviews": 17}


def test_ranker_nearby_uses_fresh_snapshot_each_call():
    store = FakeStore([_candidate("a", 27.7172, 85.3240), _candidate("cust", 27.7, 85.3, role="customer")])
    ranker = ProximityRanker(store=store)

    first = ranker.nearby(KATHMANDU)
    store.candidates.append(_candidate("late", 27.72, 85.33))
    second = ranker.nearby(KATHMANDU, limit=1)

    assert [item.candidate.id for item in first] == ["a"]
    assert [item.candidate.id for item in second] == ["a"]
    assert store.fetch_calls == ["provider", "provider"]


def test_record_location_delegates_and_propagates_failures():
    store = FakeStore([])
    ranker = ProximityRanker(store=store)
    point = GeoPoint(latitude=27.7, longitude=85.3)

    ack = ranker.record_location("prv_1", point)
    assert ack.entity_id == "prv_1"
    assert store.writes == [("prv_1", point)]

    failing = ProximityRanker(store=FakeStore([], fail_writes=True))
    with pytest.raises(StoreUnavailableError):
        failing.record_location("prv_1", point)
