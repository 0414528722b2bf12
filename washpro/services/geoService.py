"""
Geo Service
===========

Geographic utility functions for distance calculations, radius filtering
and geofence containment.  Used to match customers with nearby on-duty
cleaners and to check whether a booking falls inside a company's service
area.

Uses the haversine formula for great-circle distance between two points
on Earth's surface. Accurate enough for the short radii involved here
(error < 0.5% for distances under 100 km).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

# Earth's mean radius
EARTH_RADIUS_KM: float = 6371.0
EARTH_RADIUS_M: float = 6371e3


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points using the
    haversine formula.

    Args:
        lat1: Latitude of point 1 in decimal degrees.
        lon1: Longitude of point 1 in decimal degrees.
        lat2: Latitude of point 2 in decimal degrees.
        lon2: Longitude of point 2 in decimal degrees.

    Returns:
        Distance in kilometres.
    """
    return haversine_distance_m(lat1, lon1, lat2, lon2) / 1000.0


def haversine_distance_m(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Same as ``haversine_distance`` but in metres."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0


def point_in_polygon(
    lat: float,
    lng: float,
    polygon: Optional[Sequence[Sequence[float]]],
) -> bool:
    """Ray-casting containment test.

    ``polygon`` is a list of ``[lat, lng]`` vertices; the closing edge is
    implicit.  Polygons with fewer than three vertices contain nothing.
    """
    if not polygon or len(polygon) < 3:
        return False

    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        lat_i, lng_i = float(polygon[i][0]), float(polygon[i][1])
        lat_j, lng_j = float(polygon[j][0]), float(polygon[j][1])
        if (lng_i > lng) != (lng_j > lng):
            crossing_lat = (lat_j - lat_i) * (lng - lng_i) / (lng_j - lng_i) + lat_i
            if lat < crossing_lat:
                inside = not inside
        j = i
    return inside


# ---------------------------------------------------------------------------
# Radius filtering
# ---------------------------------------------------------------------------

@dataclass
class LocationDistance:
    """An object paired with its distance from a reference point."""

    item: Any
    distance_m: float


def _cleaner_coordinates(item: Any) -> tuple[Any, Any]:
    return item.current_latitude, item.current_longitude


def filter_by_radius(
    items: Sequence[Any],
    center_lat: float,
    center_lon: float,
    radius_m: float,
    coordinates: Callable[[Any], tuple[Any, Any]] = _cleaner_coordinates,
) -> list[LocationDistance]:
    """Filter objects to those within ``radius_m`` metres of a center point.

    Args:
        items: Objects to filter.  By default they are expected to expose
            ``current_latitude`` / ``current_longitude`` (cleaners).
        center_lat: Latitude of the reference point.
        center_lon: Longitude of the reference point.
        radius_m: Inclusive radius in metres.
        coordinates: Extracts ``(lat, lng)`` from an item.

    Returns:
        List of ``LocationDistance`` sorted by distance (closest first).
    """
    results: list[LocationDistance] = []

    for item in items:
        lat, lng = coordinates(item)
        # Skip items without location data
        if lat is None or lng is None:
            continue

        distance = haversine_distance_m(
            center_lat, center_lon, float(lat), float(lng)
        )
        if distance <= radius_m:
            results.append(LocationDistance(item=item, distance_m=distance))

    results.sort(key=lambda ld: ld.distance_m)
    return results


def find_closest(
    items: Sequence[Any],
    center_lat: float,
    center_lon: float,
    radius_m: float,
    coordinates: Callable[[Any], tuple[Any, Any]] = _cleaner_coordinates,
) -> Optional[LocationDistance]:
    """Return the closest item within ``radius_m``, or ``None``."""
    matches = filter_by_radius(items, center_lat, center_lon, radius_m, coordinates)
    return matches[0] if matches else None
