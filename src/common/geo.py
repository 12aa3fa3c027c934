"""Web-Mercator quadtree tiling for latitude/longitude pairs."""

from __future__ import annotations

import math
from typing import Tuple

from .errors import InvalidCoordinate
from .models import BoundingBox, TileKey

PIXELS_PER_TILE = 256
MIN_LATITUDE = -85.0511287798
MAX_LATITUDE = 85.0511287798
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
EARTH_RADIUS_METERS = 6378137
EARTH_CIRCUMFERENCE_METERS = 2 * math.pi * EARTH_RADIUS_METERS
DEFAULT_LEVEL_OF_DETAIL = 20
# Tile ids travel as signed 64-bit integers, so 4^L must stay below 2^63.
MAX_LEVEL_OF_DETAIL = 31


def clip(value: float, min_value: float, max_value: float) -> float:
    return min(max(value, min_value), max_value)


def check_level(level_of_detail: int) -> int:
    level = int(level_of_detail)
    if not 0 <= level <= MAX_LEVEL_OF_DETAIL:
        raise ValueError(f"Level of detail must be between 0 and {MAX_LEVEL_OF_DETAIL}, got {level_of_detail}.")
    return level


def map_size(level_of_detail: int) -> int:
    """Width (and height) of the world square in pixels."""

    return PIXELS_PER_TILE << level_of_detail


def lat_lon_to_pixel(latitude: float, longitude: float, level_of_detail: int) -> Tuple[int, int]:
    """Project a coordinate onto the pixel grid, saturating instead of failing."""

    lat_rad = math.radians(clip(latitude, MIN_LATITUDE, MAX_LATITUDE))
    lon_rad = math.radians(clip(longitude, MIN_LONGITUDE, MAX_LONGITUDE))
    sin_lat = math.sin(lat_rad)
    x_meters = EARTH_RADIUS_METERS * lon_rad
    y_meters = EARTH_RADIUS_METERS / 2 * math.log((1 + sin_lat) / (1 - sin_lat))

    num_pixels = map_size(level_of_detail)
    meters_per_pixel = EARTH_CIRCUMFERENCE_METERS / num_pixels
    half_circumference = EARTH_CIRCUMFERENCE_METERS / 2
    # round half up: add 0.5, then truncate
    x_pixel = int(clip((half_circumference + x_meters) / meters_per_pixel + 0.5, 0, num_pixels - 1))
    y_pixel = int(clip((half_circumference - y_meters) / meters_per_pixel + 0.5, 0, num_pixels - 1))
    return x_pixel, y_pixel


def pixel_to_lat_lon(x_pixel: float, y_pixel: float, level_of_detail: int) -> Tuple[float, float]:
    meters_per_pixel = EARTH_CIRCUMFERENCE_METERS / map_size(level_of_detail)
    half_circumference = EARTH_CIRCUMFERENCE_METERS / 2
    x_meters = x_pixel * meters_per_pixel - half_circumference
    y_meters = half_circumference - y_pixel * meters_per_pixel
    latitude = 90.0 - math.degrees(2 * math.atan(math.exp(-y_meters / EARTH_RADIUS_METERS)))
    longitude = math.degrees(x_meters / EARTH_RADIUS_METERS)
    return latitude, longitude


def pixel_to_tile(x_pixel: int, y_pixel: int, level_of_detail: int) -> TileKey:
    """Walk the quadtree from the root, halving the square once per level."""

    xmin = ymin = 0
    xmax = ymax = map_size(level_of_detail)
    digits = []
    for _ in range(level_of_detail):
        x_mid = (xmin + xmax) >> 1
        y_mid = (ymin + ymax) >> 1
        digit = 0
        if x_pixel > x_mid:
            digit += 1
            xmin = x_mid
        else:
            xmax = x_mid
        if y_pixel > y_mid:
            digit += 2
            ymin = y_mid
        else:
            ymax = y_mid
        digits.append(str(digit))
    return TileKey("".join(digits))


def tile_to_pixel_bounds(key: TileKey) -> Tuple[int, int, int, int]:
    """Return ``(xmin, ymin, xmax, ymax)`` of the tile in pixel space."""

    xmin = ymin = 0
    xmax = ymax = map_size(key.level)
    for symbol in key.digits:
        digit = int(symbol)
        if digit & 1:
            xmin = (xmin + xmax) >> 1
        else:
            xmax = (xmin + xmax) >> 1
        if digit & 2:
            ymin = (ymin + ymax) >> 1
        else:
            ymax = (ymin + ymax) >> 1
    return xmin, ymin, xmax, ymax


def encode(latitude: float, longitude: float, level_of_detail: int = DEFAULT_LEVEL_OF_DETAIL) -> TileKey:
    level = check_level(level_of_detail)
    x_pixel, y_pixel = lat_lon_to_pixel(latitude, longitude, level)
    return pixel_to_tile(x_pixel, y_pixel, level)


def decode(key: TileKey) -> BoundingBox:
    """Geographic bounds of a tile. Pixel y grows southwards."""

    xmin, ymin, xmax, ymax = tile_to_pixel_bounds(key)
    north, west = pixel_to_lat_lon(xmin, ymin, key.level)
    south, east = pixel_to_lat_lon(xmax, ymax, key.level)
    return BoundingBox(north=north, south=south, east=east, west=west)


def to_integer(key: TileKey) -> int:
    return key.to_integer()


def from_integer(value: int, level_of_detail: int) -> TileKey:
    return TileKey.from_integer(value, level_of_detail)


class TileCoder:
    """Maps validated latitude/longitude pairs into tiles of one level of detail."""

    def __init__(self, level_of_detail: int = DEFAULT_LEVEL_OF_DETAIL) -> None:
        self.level_of_detail = check_level(level_of_detail)

    def tile(self, latitude: float | None, longitude: float | None) -> TileKey:
        if latitude is None or longitude is None:
            raise InvalidCoordinate("Latitude and longitude must be provided for tiling.")
        try:
            lat = float(latitude)
            lon = float(longitude)
        except (TypeError, ValueError) as exc:
            raise InvalidCoordinate(f"Non-numeric coordinate ({latitude!r}, {longitude!r}).") from exc
        if not -90.0 <= lat <= 90.0:
            raise InvalidCoordinate(f"Illegal latitude value [{lat}].")
        if not -180.0 <= lon <= 180.0:
            raise InvalidCoordinate(f"Illegal longitude value [{lon}].")
        return encode(lat, lon, self.level_of_detail)

    def bounds(self, key: TileKey) -> BoundingBox:
        return decode(key)

    def from_integer(self, value: int) -> TileKey:
        return TileKey.from_integer(value, self.level_of_detail)
