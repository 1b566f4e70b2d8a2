"""
Builds a MapModel from street network data produced upstream.

Two input shapes are accepted:
- A GeoJSON FeatureCollection of road LineStrings in WGS84, as produced by the
  street network endpoint (properties `u`, `v`, `osmid`, `name`, `highway`,
  `oneway`, ...)
- An OSMnx-style networkx MultiDiGraph (nodes with `x`/`y`, edges with optional
  `geometry`)

Both are projected to a local planar system centred on the data.
"""

import logging
from typing import Any, Optional

import networkx as nx
from shapely.geometry import LineString, Point, shape

from ltn.core.errors import InvalidInput, InvariantViolation
from ltn.services.network.filters import FilterKind, ModalFilter
from ltn.services.network.map_model import (
    DEFAULT_GEOMETRY_TOLERANCE,
    DEFAULT_SNAP_DISTANCE,
    Intersection,
    MapModel,
    Road,
)
from ltn.utils.geo import Projection

logger = logging.getLogger(__name__)


# Properties that describe graph structure rather than the road itself
STRUCTURAL_PROPERTIES = {"u", "v", "key", "geometry", "modal_filter"}


def _normalize_tag(value: Any) -> Optional[str]:
    """Flatten an OSM-ish attribute into a single tag string."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple, set)):
        items = sorted(str(v) for v in value) if isinstance(value, set) else [str(v) for v in value]
        return ";".join(items) if items else None
    if isinstance(value, float) and value != value:  # NaN from dataframes
        return None
    return str(value)


def _tags_from(properties: dict) -> dict[str, str]:
    tags = {}
    for key, value in properties.items():
        if key in STRUCTURAL_PROPERTIES:
            continue
        tag = _normalize_tag(value)
        if tag is not None:
            tags[str(key)] = tag
    return tags


def _parse_filter(value: Any, road_id: int) -> Optional[ModalFilter]:
    """Existing barriers may be supplied as a kind string or a dict."""
    if value is None:
        return None
    try:
        if isinstance(value, dict):
            return ModalFilter(
                kind=FilterKind.parse(value.get("kind")),
                percent_along=value.get("percent_along", 0.5),
            )
        return ModalFilter(kind=FilterKind.parse(value))
    except InvalidInput as e:
        raise InvariantViolation(f"Road {road_id} has an unusable modal filter: {e}")


def from_street_network(
    collection: dict,
    geometry_tolerance: float = DEFAULT_GEOMETRY_TOLERANCE,
    snap_distance: float = DEFAULT_SNAP_DISTANCE,
) -> MapModel:
    """
    Build a MapModel from a GeoJSON road FeatureCollection in WGS84.

    Roads get ids in feature order. Intersection ids come from the `u`/`v`
    properties; their points are taken from the road geometry ends. Two-way
    streets arrive as a `u -> v` feature plus a reversed twin with the same
    `key` and `osmid`; only the first of each pair becomes a Road.

    Raises:
        InvalidInput: The collection is not a usable road network
        InvariantViolation: Roads disagree about where an intersection is
    """
    if collection.get("type") != "FeatureCollection":
        raise InvalidInput("Street network must be a GeoJSON FeatureCollection")

    features = [
        f for f in collection.get("features", [])
        if (f.get("geometry") or {}).get("type") == "LineString"
    ]
    if not features:
        raise InvalidInput("Street network contains no LineString roads")

    projection = Projection.from_coordinates(
        coord for f in features for coord in f["geometry"]["coordinates"]
    )

    intersections: dict[int, Intersection] = {}
    roads: list[Road] = []
    filters: dict[int, ModalFilter] = {}
    seen: set[tuple] = set()

    for index, feature in enumerate(features):
        props = feature.get("properties") or {}
        try:
            u = int(props["u"])
            v = int(props["v"])
        except (KeyError, TypeError, ValueError):
            raise InvalidInput(
                f"Road feature {index} lacks integer u/v intersection ids",
                subject=index,
            )

        pair = (
            min(u, v),
            max(u, v),
            _normalize_tag(props.get("key", 0)),
            _normalize_tag(props.get("osmid")),
        )
        if pair in seen:
            continue
        seen.add(pair)
        road_id = len(roads)

        linestring = projection.to_planar(shape(feature["geometry"]))
        for i, coord in ((u, linestring.coords[0]), (v, linestring.coords[-1])):
            point = Point(coord)
            existing = intersections.get(i)
            if existing is None:
                intersections[i] = Intersection(id=i, point=point)
            elif existing.point.distance(point) > geometry_tolerance:
                raise InvariantViolation(
                    f"Road feature {index} places intersection {i} "
                    f"{existing.point.distance(point):.1f}m from other roads"
                )

        roads.append(Road(
            id=road_id,
            src_i=u,
            dst_i=v,
            linestring=linestring,
            tags=_tags_from(props),
        ))

        modal_filter = _parse_filter(props.get("modal_filter"), road_id)
        if modal_filter is not None:
            filters[road_id] = modal_filter

    logger.info(
        "Parsed street network (roads=%d intersections=%d)",
        len(roads),
        len(intersections),
    )

    return MapModel(
        intersections=intersections.values(),
        roads=roads,
        modal_filters=filters,
        projection=projection,
        geometry_tolerance=geometry_tolerance,
        snap_distance=snap_distance,
    )


def from_graph(
    G: nx.MultiDiGraph,
    projection: Optional[Projection] = None,
    geometry_tolerance: float = DEFAULT_GEOMETRY_TOLERANCE,
    snap_distance: float = DEFAULT_SNAP_DISTANCE,
) -> MapModel:
    """
    Build a MapModel from an OSMnx-style MultiDiGraph.

    OSMnx stores two-way streets as a pair of opposing edges; only the first
    of each pair becomes a Road. If the graph is unprojected (node x/y are
    lon/lat) a projection is created around it.

    Args:
        G: Street network graph
        projection: Projection to use; defaults to one centred on the nodes
        geometry_tolerance: Passed to MapModel
        snap_distance: Passed to MapModel
    """
    if G.number_of_edges() == 0:
        raise InvalidInput("Street network graph has no edges")

    crs = str(G.graph.get("crs", "epsg:4326")).lower()
    geographic = crs in ("epsg:4326", "wgs84", "+proj=longlat +datum=wgs84 +no_defs")
    if geographic and projection is None:
        projection = Projection.from_coordinates(
            (data["x"], data["y"]) for _, data in G.nodes(data=True)
        )

    def to_planar(geometry):
        if geographic:
            return projection.to_planar(geometry)
        return geometry

    intersections: dict[int, Intersection] = {}
    for node, data in G.nodes(data=True):
        if "x" not in data or "y" not in data:
            raise InvariantViolation(f"Graph node {node} has no coordinates")
        intersections[int(node)] = Intersection(
            id=int(node), point=to_planar(Point(data["x"], data["y"]))
        )

    roads: list[Road] = []
    filters: dict[int, ModalFilter] = {}
    seen: set[tuple] = set()

    for u, v, key, data in sorted(G.edges(keys=True, data=True), key=lambda e: (e[0], e[1], e[2])):
        pair = (min(u, v), max(u, v), key, _normalize_tag(data.get("osmid")))
        if pair in seen:
            continue
        seen.add(pair)

        geometry = data.get("geometry")
        if geometry is None:
            geometry = LineString([
                (G.nodes[u]["x"], G.nodes[u]["y"]),
                (G.nodes[v]["x"], G.nodes[v]["y"]),
            ])

        road_id = len(roads)
        roads.append(Road(
            id=road_id,
            src_i=int(u),
            dst_i=int(v),
            linestring=to_planar(geometry),
            tags=_tags_from(data),
        ))

        modal_filter = _parse_filter(data.get("modal_filter"), road_id)
        if modal_filter is not None:
            filters[road_id] = modal_filter

    logger.info(
        "Converted graph (roads=%d intersections=%d)", len(roads), len(intersections)
    )

    return MapModel(
        intersections=intersections.values(),
        roads=roads,
        modal_filters=filters,
        projection=projection,
        geometry_tolerance=geometry_tolerance,
        snap_distance=snap_distance,
    )
