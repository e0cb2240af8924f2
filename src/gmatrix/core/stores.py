"""Store sightings: merging reports into a product and distance filtering."""

from __future__ import annotations

import math
from datetime import datetime

from gmatrix.core.errors import ValidationError
from gmatrix.core.models import GeoPoint, StoreEntry, StoreReport

EARTH_RADIUS_KM = 6371.0


def merge_store_report(stores: list[StoreEntry], report: StoreReport, seen_at: datetime) -> list[StoreEntry]:
    """
    Fold a store report into a product's store list.

    Stores are keyed by name, case-insensitively. A repeat report refreshes
    last_seen_at (never moving it backwards) and replaces price and geo point
    when the report carries them.
    """
    name = report.name.strip()
    if not name:
        raise ValidationError("Store name must not be empty")
    key = name.lower()
    merged: list[StoreEntry] = []
    found = False
    for entry in stores:
        if entry.key != key:
            merged.append(entry)
            continue
        found = True
        merged.append(
            StoreEntry(
                name=entry.name,
                last_seen_at=max(entry.last_seen_at, seen_at),
                geo_point=report.geo_point or entry.geo_point,
                price=report.price if report.price is not None else entry.price,
            )
        )
    if not found:
        merged.append(StoreEntry(name=name, last_seen_at=seen_at, geo_point=report.geo_point, price=report.price))
    return merged


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def nearest_store_km(stores: list[StoreEntry], origin: GeoPoint) -> float | None:
    """Distance to the closest geo-tagged store, or None if no store has a location."""
    distances = [haversine_km(origin, s.geo_point) for s in stores if s.geo_point is not None]
    return min(distances) if distances else None
