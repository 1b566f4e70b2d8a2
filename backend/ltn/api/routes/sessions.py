"""
Planning session endpoints.

A session is created from a street network, then a neighbourhood is selected
and edited with modal filters. Every edit returns the refreshed neighbourhood
so the client can redraw cells and shortcut counts in one round trip.
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from ltn.api.deps import (
    geojson_to_planar,
    geometry_to_geojson,
    get_session_or_404,
    line_to_planar,
    neighbourhood_state,
    network_geojson,
    point_to_planar,
    translate_errors,
)
from ltn.core.config import get_settings
from ltn.models.schemas import (
    AddFilterRequest,
    AddManyFiltersRequest,
    CellInfo,
    CompareRouteRequest,
    CompareRouteResponse,
    CreateSessionRequest,
    EditResult,
    NeighbourhoodRequest,
    NeighbourhoodState,
    NetworkResponse,
    RouteInfo,
    SessionInfo,
    ShortcutInfo,
    ShortcutsResponse,
)
from ltn.services.network.filters import TravelMode
from ltn.services.network.map_source import from_street_network
from ltn.services.session import LTNSession, get_session_registry

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_info(session: LTNSession) -> SessionInfo:
    with session.lock:
        return SessionInfo(
            id=session.id,
            name=session.name,
            num_roads=len(session.map.roads),
            num_intersections=len(session.map.intersections),
            num_filters=len(session.map.modal_filters),
            has_neighbourhood=session.neighbourhood is not None,
            can_undo=session.map.edit_log.can_undo,
            can_redo=session.map.edit_log.can_redo,
        )


def _route_info(session: LTNSession, route) -> RouteInfo:
    return RouteInfo(
        roads=route.roads,
        length_m=round(route.length, 2),
        geometry=geometry_to_geojson(session, route.geometry),
    )


# =============================================================================
# Sessions
# =============================================================================


@router.post("/sessions", response_model=SessionInfo)
def create_session(request: CreateSessionRequest):
    """
    Start a planning session on a street network.

    The network is the GeoJSON FeatureCollection returned by an upstream
    street network endpoint: road LineStrings in WGS84 with `u`/`v` ids.
    """
    settings = get_settings()
    with translate_errors("building map"):
        map_model = from_street_network(
            request.street_network,
            geometry_tolerance=settings.geometry_tolerance_m,
            snap_distance=settings.snap_distance_m,
        )
        session = LTNSession(
            map_model,
            name=request.name,
            savefile_tolerance=settings.savefile_match_tolerance_m,
        )
        get_session_registry().add(session)
        return _session_info(session)


@router.get("/sessions/{session_id}", response_model=SessionInfo)
def get_session(session_id: str):
    return _session_info(get_session_or_404(session_id))


@router.get("/sessions/{session_id}/network", response_model=NetworkResponse)
def get_network(session_id: str):
    """
    Get every road in the session for drawing the base map.

    Roads are returned as WGS84 GeoJSON with their tags, filters and class
    relative to the active neighbourhood, along with the map bounds as
    [west, south, east, north].
    """
    session = get_session_or_404(session_id)
    with translate_errors("rendering network"):
        return network_geojson(session)


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    if not get_session_registry().remove(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return {"deleted": session_id}


# =============================================================================
# Neighbourhood
# =============================================================================


@router.get("/sessions/{session_id}/neighbourhood", response_model=NeighbourhoodState)
def get_neighbourhood(session_id: str, mode: TravelMode = Query(default=TravelMode.DRIVING)):
    session = get_session_or_404(session_id)
    with translate_errors("rendering neighbourhood"):
        session.require_neighbourhood()
        return neighbourhood_state(session, mode)


@router.put("/sessions/{session_id}/neighbourhood", response_model=NeighbourhoodState)
def set_neighbourhood(session_id: str, request: NeighbourhoodRequest):
    """Select the neighbourhood inside a boundary polygon."""
    session = get_session_or_404(session_id)
    with translate_errors("setting neighbourhood"):
        boundary = geojson_to_planar(session, request.boundary)
        session.set_neighbourhood(boundary)
        return neighbourhood_state(session)


@router.delete("/sessions/{session_id}/neighbourhood")
def unset_neighbourhood(session_id: str):
    session = get_session_or_404(session_id)
    session.unset_neighbourhood()
    return {"has_neighbourhood": False}


# =============================================================================
# Modal filters
# =============================================================================


@router.post("/sessions/{session_id}/filters", response_model=EditResult)
def add_filter(session_id: str, request: AddFilterRequest):
    """
    Place a modal filter on an interior road.

    The road is given either by id, or by a clicked point that is snapped to
    the closest interior road.
    """
    session = get_session_or_404(session_id)
    if (request.road is None) == (request.point is None):
        raise HTTPException(status_code=400, detail="Give exactly one of road or point")

    with translate_errors("adding filter"):
        if request.road is not None:
            session.add_modal_filter(request.road, request.kind, request.percent_along)
            road_id = request.road
        else:
            road_id = session.add_modal_filter_at(
                point_to_planar(session, request.point), request.kind
            )
        return EditResult(changed=True, roads=[road_id], state=neighbourhood_state(session))


@router.post("/sessions/{session_id}/filters/many", response_model=EditResult)
def add_many_filters(session_id: str, request: AddManyFiltersRequest):
    """Filter every interior road crossed by a drawn line, as one undo step."""
    session = get_session_or_404(session_id)
    with translate_errors("adding filters"):
        roads = session.add_many_modal_filters(
            line_to_planar(session, request.line), request.kind
        )
        return EditResult(
            changed=bool(roads), roads=roads, state=neighbourhood_state(session)
        )


@router.delete("/sessions/{session_id}/filters/{road_id}", response_model=EditResult)
def delete_filter(session_id: str, road_id: int):
    session = get_session_or_404(session_id)
    with translate_errors("deleting filter"):
        changed = session.delete_modal_filter(road_id)
        return EditResult(changed=changed, roads=[road_id], state=neighbourhood_state(session))


@router.post("/sessions/{session_id}/undo", response_model=EditResult)
def undo(session_id: str):
    session = get_session_or_404(session_id)
    with translate_errors("undoing"):
        return EditResult(changed=session.undo(), state=neighbourhood_state(session))


@router.post("/sessions/{session_id}/redo", response_model=EditResult)
def redo(session_id: str):
    session = get_session_or_404(session_id)
    with translate_errors("redoing"):
        return EditResult(changed=session.redo(), state=neighbourhood_state(session))


# =============================================================================
# Analysis
# =============================================================================


@router.get("/sessions/{session_id}/cells", response_model=list[CellInfo])
def get_cells(session_id: str, mode: TravelMode = Query(default=TravelMode.DRIVING)):
    session = get_session_or_404(session_id)
    with translate_errors("computing cells"):
        return [CellInfo(**cell.to_dict()) for cell in session.cells(mode)]


@router.get("/sessions/{session_id}/shortcuts/{road_id}", response_model=ShortcutsResponse)
def get_shortcuts_crossing_road(
    session_id: str,
    road_id: int,
    mode: TravelMode = Query(default=TravelMode.DRIVING),
):
    """Shortcuts through the neighbourhood that use a road, shortest first."""
    session = get_session_or_404(session_id)
    with translate_errors("finding shortcuts"):
        paths = session.shortcuts_crossing(road_id, mode)
        return ShortcutsResponse(
            road=road_id,
            mode=mode,
            shortcuts=[
                ShortcutInfo(
                    **path.to_dict(), geometry=geometry_to_geojson(session, path.geometry)
                )
                for path in paths
            ],
        )


@router.post("/sessions/{session_id}/route/compare", response_model=CompareRouteResponse)
def compare_route(session_id: str, request: CompareRouteRequest):
    """
    Compare the route between two points before and after the filters.

    A side with no route is reported with an error message instead of
    failing the request.
    """
    session = get_session_or_404(session_id)
    with translate_errors("comparing routes"):
        comparison = session.compare_route(
            point_to_planar(session, request.origin),
            point_to_planar(session, request.destination),
            request.mode,
        )
        return CompareRouteResponse(
            before=_route_info(session, comparison.before) if comparison.before else None,
            after=_route_info(session, comparison.after) if comparison.after else None,
            before_error=comparison.before_error,
            after_error=comparison.after_error,
            detour_ratio=(
                round(comparison.detour_ratio, 3)
                if comparison.detour_ratio is not None
                else None
            ),
        )
