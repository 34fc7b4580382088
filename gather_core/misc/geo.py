"""
Gather library for geographic distance calculations
"""

import math
from typing import NamedTuple


EARTH_RADIUS: float = 6371.0088
"""
mean radius of the earth in kilometers
"""


class BoundingBox(NamedTuple):
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Return the great-circle distance between two points in kilometers

    :param lat1: latitude of the first point in degrees
    :param lon1: longitude of the first point in degrees
    :param lat2: latitude of the second point in degrees
    :param lon2: longitude of the second point in degrees
    :return: haversine distance along the surface of the earth
    """

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lat: float, lon: float, radius: float) -> BoundingBox:
    """
    Return a latitude/longitude box that contains the whole circle around the point

    The box is only a coarse pre-filter for database queries, the exact
    check has to be done using ``distance`` afterwards. Near the poles or
    when the circle crosses the antimeridian, the full longitude range
    is used instead of a split box.

    :param lat: latitude of the center in degrees
    :param lon: longitude of the center in degrees
    :param radius: radius of the circle in kilometers
    :return: bounding box of the circle
    """

    if radius < 0:
        raise ValueError(f"Negative radius {radius!r} is not allowed")

    d_lat = math.degrees(radius / EARTH_RADIUS)
    min_lat, max_lat = lat - d_lat, lat + d_lat
    if min_lat <= -90 or max_lat >= 90:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), -180.0, 180.0)

    d_lon = math.degrees(math.asin(min(1.0, math.sin(radius / EARTH_RADIUS) / math.cos(math.radians(lat)))))
    min_lon, max_lon = lon - d_lon, lon + d_lon
    if min_lon < -180 or max_lon > 180:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)
    return BoundingBox(min_lat, max_lat, min_lon, max_lon)
