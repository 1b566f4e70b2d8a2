"""
Savefile encoding and decoding.

A savefile is a GeoJSON FeatureCollection:
- one Point feature per filtered road, at the filter's position, with
  properties `kind: "modal_filter"`, `filter_kind`, `road`, `percent_along`
- optionally one Polygon feature with `kind: "boundary"`

Roads are matched back by geometry, so a savefile stays usable as long as the
same map is loaded. Unknown properties and unknown feature kinds are ignored.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from shapely.geometry import Point, Polygon, mapping, shape
from shapely.errors import ShapelyError

from ltn.core.errors import InvalidInput, MalformedSavefile
from ltn.services.neighbourhood.neighbourhood import Neighbourhood
from ltn.services.network.filters import FilterKind, ModalFilter
from ltn.services.network.map_model import MapModel
from ltn.utils.geo import Projection, percent_along, polygon_problem

logger = logging.getLogger(__name__)


SAVEFILE_VERSION = 1
KIND_MODAL_FILTER = "modal_filter"
KIND_BOUNDARY = "boundary"

DEFAULT_MATCH_TOLERANCE = 1.0  # meters


@dataclass
class Savefile:
    """Decoded savefile contents, not yet applied to any map."""
    filters: dict[int, ModalFilter]
    boundary: Optional[Polygon]


def encode(
    map_model: MapModel,
    neighbourhood: Optional[Neighbourhood] = None,
    projection: Optional[Projection] = None,
) -> dict:
    """
    Serialize the filter set and optional boundary.

    Args:
        map_model: Map whose current filters are saved
        neighbourhood: Active neighbourhood, if any
        projection: When given, coordinates are written in WGS84

    Returns:
        GeoJSON FeatureCollection dict
    """
    features = []

    for road_id in sorted(map_model.modal_filters):
        modal_filter = map_model.modal_filters[road_id]
        point = map_model.filter_point(road_id)
        if projection is not None:
            point = projection.to_wgs84(point)
        features.append({
            "type": "Feature",
            "geometry": mapping(point),
            "properties": {
                "kind": KIND_MODAL_FILTER,
                "filter_kind": modal_filter.kind.value,
                "road": road_id,
                "percent_along": modal_filter.percent_along,
            },
        })

    if neighbourhood is not None:
        boundary = neighbourhood.boundary
        if projection is not None:
            boundary = projection.to_wgs84(boundary)
        features.append({
            "type": "Feature",
            "geometry": mapping(boundary),
            "properties": {"kind": KIND_BOUNDARY},
        })

    return {
        "type": "FeatureCollection",
        "ltn_savefile_version": SAVEFILE_VERSION,
        "features": features,
    }


def _geometry(feature: dict, index: int, projection: Optional[Projection]):
    try:
        geometry = shape(feature["geometry"])
    except (KeyError, TypeError, ValueError, AttributeError, ShapelyError) as e:
        raise MalformedSavefile(f"Feature {index} has unreadable geometry: {e}")
    if projection is not None:
        geometry = projection.to_planar(geometry)
    return geometry


def _decode_filter(
    map_model: MapModel,
    feature: dict,
    props: dict,
    index: int,
    projection: Optional[Projection],
    tolerance: float,
) -> tuple[int, ModalFilter]:
    point = _geometry(feature, index, projection)
    if not isinstance(point, Point) or point.is_empty:
        raise MalformedSavefile(f"Modal filter feature {index} is not a Point")

    try:
        kind = FilterKind.parse(props.get("filter_kind"))
    except InvalidInput as e:
        raise MalformedSavefile(f"Modal filter feature {index}: {e}")

    road_id = props.get("road")
    if road_id is not None:
        if (
            not isinstance(road_id, int)
            or isinstance(road_id, bool)
            or road_id not in map_model.roads
        ):
            raise MalformedSavefile(
                f"Modal filter feature {index} references unknown road {road_id!r}"
            )
        if map_model.roads[road_id].linestring.distance(point) > tolerance:
            raise MalformedSavefile(
                f"Modal filter feature {index} does not lie on road {road_id}"
            )
    else:
        road_id = map_model.closest_road(point, max_distance=tolerance)
        if road_id is None:
            raise MalformedSavefile(
                f"Modal filter feature {index} does not match any road"
            )

    percent = props.get("percent_along")
    if percent is None:
        percent = percent_along(map_model.roads[road_id].linestring, point)

    try:
        return road_id, ModalFilter(kind=kind, percent_along=percent)
    except InvalidInput as e:
        raise MalformedSavefile(f"Modal filter feature {index}: {e}")


def decode(
    map_model: MapModel,
    collection: Any,
    projection: Optional[Projection] = None,
    tolerance: float = DEFAULT_MATCH_TOLERANCE,
) -> Savefile:
    """
    Parse a savefile against a map without changing anything.

    Args:
        map_model: Map the filters are matched against
        collection: GeoJSON FeatureCollection dict
        projection: When given, coordinates are read as WGS84
        tolerance: Max distance between a filter point and its road

    Raises:
        MalformedSavefile: Any record that cannot be applied to this map
    """
    if not isinstance(collection, dict) or collection.get("type") != "FeatureCollection":
        raise MalformedSavefile("Savefile must be a GeoJSON FeatureCollection")
    features = collection.get("features")
    if not isinstance(features, list):
        raise MalformedSavefile("Savefile has no features list")

    version = collection.get("ltn_savefile_version", SAVEFILE_VERSION)
    if isinstance(version, int) and version > SAVEFILE_VERSION:
        logger.warning(
            "Savefile version %d is newer than supported %d; reading known records",
            version,
            SAVEFILE_VERSION,
        )

    filters: dict[int, ModalFilter] = {}
    boundary: Optional[Polygon] = None

    for index, feature in enumerate(features):
        if not isinstance(feature, dict):
            raise MalformedSavefile(f"Feature {index} is not an object")
        props = feature.get("properties")
        if props is None:
            props = {}
        elif not isinstance(props, dict):
            raise MalformedSavefile(f"Feature {index} properties are not an object")
        kind = props.get("kind")

        if kind == KIND_MODAL_FILTER:
            road_id, modal_filter = _decode_filter(
                map_model, feature, props, index, projection, tolerance
            )
            if road_id in filters:
                raise MalformedSavefile(f"Road {road_id} is filtered more than once")
            filters[road_id] = modal_filter

        elif kind == KIND_BOUNDARY:
            if boundary is not None:
                raise MalformedSavefile("Savefile has more than one boundary")
            polygon = _geometry(feature, index, projection)
            problem = polygon_problem(polygon)
            if problem is not None:
                raise MalformedSavefile(f"Boundary is not a valid polygon: {problem}")
            boundary = polygon

        else:
            logger.warning("Ignoring savefile feature %d of unknown kind %r", index, kind)

    logger.info(
        "Decoded savefile (filters=%d boundary=%s)", len(filters), boundary is not None
    )
    return Savefile(filters=filters, boundary=boundary)
