from shapely.geometry import LineString, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform
from shapely.validation import explain_validity
import pyproj
from typing import Iterable, Optional


class Projection:
    """
    Converts between WGS84 and a local planar coordinate system.

    Uses an azimuthal equidistant projection centred on the study area, so
    planar units are meters and distortion is negligible at neighbourhood
    scale.
    """

    def __init__(self, center_lon: float, center_lat: float):
        self.center_lon = center_lon
        self.center_lat = center_lat
        self.crs = pyproj.CRS.from_proj4(
            f"+proj=aeqd +lat_0={center_lat} +lon_0={center_lon} "
            "+x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
        )
        self._to_planar = pyproj.Transformer.from_crs(
            "EPSG:4326", self.crs, always_xy=True
        ).transform
        self._to_wgs84 = pyproj.Transformer.from_crs(
            self.crs, "EPSG:4326", always_xy=True
        ).transform

    @classmethod
    def from_bounds(
        cls, west: float, south: float, east: float, north: float
    ) -> "Projection":
        """Create a projection centred on a WGS84 bounding box."""
        return cls((west + east) / 2, (south + north) / 2)

    @classmethod
    def from_coordinates(cls, coords: Iterable[tuple[float, float]]) -> "Projection":
        """Create a projection centred on the bounds of (lon, lat) pairs."""
        lons, lats = [], []
        for lon, lat, *_ in coords:
            lons.append(lon)
            lats.append(lat)
        if not lons:
            raise ValueError("Cannot build a projection from no coordinates")
        return cls.from_bounds(min(lons), min(lats), max(lons), max(lats))

    def to_planar(self, geometry: BaseGeometry) -> BaseGeometry:
        """Project a WGS84 geometry (lon, lat order) to planar meters."""
        return transform(self._to_planar, geometry)

    def to_wgs84(self, geometry: BaseGeometry) -> BaseGeometry:
        """Project a planar geometry back to WGS84 (lon, lat order)."""
        return transform(self._to_wgs84, geometry)

    def pt_to_planar(self, lon: float, lat: float) -> Point:
        x, y = self._to_planar(lon, lat)
        return Point(x, y)

    def pt_to_wgs84(self, point: Point) -> tuple[float, float]:
        lon, lat = self._to_wgs84(point.x, point.y)
        return lon, lat

    def to_dict(self) -> dict:
        return {"center_lon": self.center_lon, "center_lat": self.center_lat}


def percent_along(line: LineString, point: Point) -> float:
    """Fraction of the line's length at which the point projects onto it."""
    if line.length == 0:
        return 0.0
    return min(1.0, max(0.0, line.project(point, normalized=True)))


def point_along(line: LineString, percent: float) -> Point:
    """Point at the given fraction of the line's length."""
    return line.interpolate(percent, normalized=True)


def first_crossing(line: LineString, other: BaseGeometry) -> Optional[Point]:
    """
    Find where `other` crosses `line`, closest to the start of `other`.

    Returns None when the geometries do not intersect. Collinear overlaps are
    reduced to their first coordinate.
    """
    crossing = line.intersection(other)
    if crossing.is_empty:
        return None

    points: list[Point] = []
    for part in getattr(crossing, "geoms", [crossing]):
        if part.geom_type == "Point":
            points.append(part)
        else:
            points.append(Point(part.coords[0]))

    if not points:
        return None
    return min(points, key=lambda p: other.project(p))


def polygon_problem(polygon: BaseGeometry, min_area: float = 1e-9) -> Optional[str]:
    """
    Describe why a geometry is not a usable boundary polygon.

    Returns None for a valid polygon with positive area.
    """
    if not isinstance(polygon, Polygon):
        return f"expected a Polygon, got {polygon.geom_type}"
    if polygon.is_empty:
        return "polygon is empty"
    if not polygon.is_valid:
        return explain_validity(polygon)
    if polygon.area <= min_area:
        return "polygon has zero area"
    return None
