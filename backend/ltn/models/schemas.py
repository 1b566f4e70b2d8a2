from pydantic import BaseModel, Field
from typing import Optional, Any

from ltn.services.network.filters import FilterKind, TravelMode


class Coordinates(BaseModel):
    """Geographic coordinates."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


# =============================================================================
# Session Models
# =============================================================================


class CreateSessionRequest(BaseModel):
    """Request to start editing a street network."""
    street_network: dict = Field(
        ..., description="GeoJSON FeatureCollection of road LineStrings with u/v ids"
    )
    name: Optional[str] = None


class SessionInfo(BaseModel):
    """Summary of a planning session."""
    id: str
    name: Optional[str] = None
    num_roads: int
    num_intersections: int
    num_filters: int
    has_neighbourhood: bool
    can_undo: bool
    can_redo: bool


class NetworkResponse(BaseModel):
    """The whole road network, for drawing the base map."""
    bounds: list[float]  # [west, south, east, north] in WGS84
    roads: dict  # GeoJSON FeatureCollection


# =============================================================================
# Neighbourhood Models
# =============================================================================


class NeighbourhoodRequest(BaseModel):
    """Boundary for a neighbourhood, as a GeoJSON Polygon or Polygon Feature."""
    boundary: dict


class FilterInfo(BaseModel):
    """A modal filter placed on a road."""
    road: int
    kind: FilterKind
    percent_along: float
    location: Coordinates


class CellInfo(BaseModel):
    """A group of interior roads reachable from each other."""
    id: int
    roads: list[int]
    intersections: list[int]
    disconnected: bool


class NeighbourhoodState(BaseModel):
    """Everything needed to redraw a neighbourhood after an edit."""
    boundary: dict  # GeoJSON polygon
    interior_roads: list[int]
    boundary_roads: list[int]
    border_intersections: list[int]
    filters: list[FilterInfo]
    cells: list[CellInfo]
    shortcuts_per_road: dict[int, int]
    can_undo: bool
    can_redo: bool


# =============================================================================
# Editing Models
# =============================================================================


class AddFilterRequest(BaseModel):
    """Place a filter on a road, chosen by id or by clicking near it."""
    kind: FilterKind = FilterKind.WALK_CYCLE_ONLY
    road: Optional[int] = None
    point: Optional[Coordinates] = None
    percent_along: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class AddManyFiltersRequest(BaseModel):
    """Filter every interior road crossed by a drawn line."""
    kind: FilterKind = FilterKind.WALK_CYCLE_ONLY
    line: list[Coordinates] = Field(..., min_length=2)


class EditResult(BaseModel):
    """Outcome of an edit plus the refreshed neighbourhood."""
    changed: bool
    roads: list[int] = []
    state: Optional[NeighbourhoodState] = None


# =============================================================================
# Analysis Models
# =============================================================================


class ShortcutInfo(BaseModel):
    """A rat-run through the neighbourhood."""
    roads: list[int]
    intersections: list[int]
    length_m: float
    detour_length_m: Optional[float] = None
    geometry: Optional[dict] = None  # GeoJSON LineString


class ShortcutsResponse(BaseModel):
    road: int
    mode: TravelMode
    shortcuts: list[ShortcutInfo]


class CompareRouteRequest(BaseModel):
    """Request to compare routes before and after filters."""
    origin: Coordinates
    destination: Coordinates
    mode: TravelMode = TravelMode.DRIVING


class RouteInfo(BaseModel):
    """A computed route."""
    roads: list[int]
    length_m: float
    geometry: Optional[dict] = None  # GeoJSON LineString


class CompareRouteResponse(BaseModel):
    """Routes ignoring (before) and respecting (after) modal filters."""
    before: Optional[RouteInfo] = None
    after: Optional[RouteInfo] = None
    before_error: Optional[str] = None
    after_error: Optional[str] = None
    detour_ratio: Optional[float] = None


# =============================================================================
# Savefile Models
# =============================================================================


class LoadSavefileResponse(BaseModel):
    has_neighbourhood: bool
    num_filters: int
    state: Optional[NeighbourhoodState] = None


class StoreSavefileRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class StoredSavefileInfo(BaseModel):
    name: str
    map_name: Optional[str] = None
    saved_at: float
    savefile: dict[str, Any]
