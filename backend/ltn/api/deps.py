"""
Shared helpers for the API routes: session lookup, error translation and
conversion between request coordinates and the map's planar system.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import HTTPException
from shapely.geometry import LineString, MultiLineString, Point, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.errors import ShapelyError

from ltn.core.errors import (
    InvalidInput,
    InvariantViolation,
    MalformedSavefile,
    NoRoute,
)
from ltn.models.schemas import (
    CellInfo,
    Coordinates,
    FilterInfo,
    NeighbourhoodState,
    NetworkResponse,
)
from ltn.services.network.filters import TravelMode
from ltn.services.session import LTNSession, get_session_registry

logger = logging.getLogger(__name__)


def get_session_or_404(session_id: str) -> LTNSession:
    session = get_session_registry().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return session


@contextmanager
def translate_errors(action: str):
    """Turn planner errors into HTTP responses."""
    try:
        yield
    except HTTPException:
        raise
    except NoRoute as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MalformedSavefile as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (InvalidInput, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvariantViolation as e:
        logger.exception("Invariant violated while %s", action)
        raise HTTPException(status_code=500, detail=f"Inconsistent map data: {str(e)}")
    except Exception as e:
        logger.exception("Unhandled error while %s", action)
        raise HTTPException(status_code=500, detail=f"Error {action}: {str(e)}")


# =============================================================================
# Coordinate conversion
# =============================================================================


def point_to_planar(session: LTNSession, coords: Coordinates) -> Point:
    projection = session.map.projection
    if projection is None:
        return Point(coords.lon, coords.lat)
    return projection.pt_to_planar(coords.lon, coords.lat)


def line_to_planar(session: LTNSession, coords: list[Coordinates]) -> LineString:
    return LineString([point_to_planar(session, c) for c in coords])


def geojson_to_planar(session: LTNSession, geojson: dict) -> BaseGeometry:
    """Read a GeoJSON geometry or Feature in WGS84."""
    if geojson.get("type") == "Feature":
        geojson = geojson.get("geometry") or {}
    try:
        geometry = shape(geojson)
    except (KeyError, TypeError, ValueError, AttributeError, ShapelyError) as e:
        raise InvalidInput(f"Unreadable GeoJSON geometry: {e}")
    projection = session.map.projection
    return projection.to_planar(geometry) if projection is not None else geometry


def geometry_to_geojson(session: LTNSession, geometry: Optional[BaseGeometry]) -> Optional[dict]:
    if geometry is None:
        return None
    projection = session.map.projection
    if projection is not None:
        geometry = projection.to_wgs84(geometry)
    return mapping(geometry)


def point_to_coordinates(session: LTNSession, point: Point) -> Coordinates:
    projection = session.map.projection
    if projection is None:
        return Coordinates(lon=point.x, lat=point.y)
    lon, lat = projection.pt_to_wgs84(point)
    return Coordinates(lon=lon, lat=lat)


# =============================================================================
# Neighbourhood rendering
# =============================================================================


def neighbourhood_state(
    session: LTNSession, mode: TravelMode = TravelMode.DRIVING
) -> Optional[NeighbourhoodState]:
    """
    Everything a client needs to redraw the active neighbourhood.

    Returns None when no neighbourhood is selected.
    """
    with session.lock:
        neighbourhood = session.neighbourhood
        if neighbourhood is None:
            return None

        filters = [
            FilterInfo(
                road=road_id,
                kind=modal_filter.kind,
                percent_along=modal_filter.percent_along,
                location=point_to_coordinates(session, session.map.filter_point(road_id)),
            )
            for road_id, modal_filter in sorted(session.map.modal_filters.items())
        ]
        cells = [CellInfo(**cell.to_dict()) for cell in session.cells(mode)]

        return NeighbourhoodState(
            boundary=geometry_to_geojson(session, neighbourhood.boundary),
            interior_roads=sorted(neighbourhood.interior_roads),
            boundary_roads=sorted(neighbourhood.boundary_roads),
            border_intersections=sorted(neighbourhood.border_intersections),
            filters=filters,
            cells=cells,
            shortcuts_per_road=session.shortcuts(mode).count_per_road(),
            can_undo=session.map.edit_log.can_undo,
            can_redo=session.map.edit_log.can_redo,
        )


# =============================================================================
# Network rendering
# =============================================================================


def network_geojson(session: LTNSession) -> NetworkResponse:
    """
    Every road as a GeoJSON Feature, plus the network's WGS84 bounds.

    Road properties carry the id, both intersection ids, the road's tags, its
    length, its class relative to the active neighbourhood (None without one)
    and any modal filter on it.
    """
    with session.lock:
        neighbourhood = session.neighbourhood
        features = []
        for road_id, road in sorted(session.map.roads.items()):
            modal_filter = session.map.modal_filters.get(road_id)
            features.append({
                "type": "Feature",
                "geometry": geometry_to_geojson(session, road.linestring),
                "properties": {
                    "id": road_id,
                    "src_i": road.src_i,
                    "dst_i": road.dst_i,
                    "tags": dict(road.tags),
                    "length_m": round(road.length, 2),
                    "road_class": (
                        neighbourhood.classify_road(road_id).value
                        if neighbourhood is not None else None
                    ),
                    "modal_filter": modal_filter.to_dict() if modal_filter else None,
                },
            })

        lines = MultiLineString([road.linestring for road in session.map.roads.values()])
        projection = session.map.projection
        if projection is not None:
            lines = projection.to_wgs84(lines)

        return NetworkResponse(
            bounds=list(lines.bounds),
            roads={"type": "FeatureCollection", "features": features},
        )
