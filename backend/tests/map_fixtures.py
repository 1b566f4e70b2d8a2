"""
Small road networks shared by the tests.

grid_map(): a 4x4 lattice with 100m spacing. Intersection (x, y) has id
y * 4 + x. Horizontal roads come first (row by row), then vertical roads
(column by column).

square_map(): A(0,0)=0, B(100,0)=1, C(100,100)=2, D(0,100)=3 with roads
AB=0, BC=1, CD=2, AD=3 and the diagonal AC=4.
"""

from typing import Optional

from shapely.geometry import LineString, Point

from ltn.services.network.map_model import Intersection, MapModel, Road

GRID_SIZE = 4
GRID_SPACING = 100.0

# WGS84 origin and spacing for the GeoJSON version of the grid
GRID_LON = 13.40
GRID_LAT = 52.50
GRID_STEP_DEG = 0.001


def node(x: int, y: int) -> int:
    return y * GRID_SIZE + x


def grid_edges(size: int = GRID_SIZE) -> list[tuple[int, int]]:
    """(src, dst) intersection ids in road id order."""
    edges = []
    for y in range(size):
        for x in range(size - 1):
            edges.append((y * size + x, y * size + x + 1))
    for x in range(size):
        for y in range(size - 1):
            edges.append((y * size + x, (y + 1) * size + x))
    return edges


def grid_map(tags: Optional[dict[int, dict]] = None, **kwargs) -> MapModel:
    tags = tags or {}
    intersections = [
        Intersection(id=node(x, y), point=Point(x * GRID_SPACING, y * GRID_SPACING))
        for y in range(GRID_SIZE)
        for x in range(GRID_SIZE)
    ]
    points = {i.id: i.point for i in intersections}
    roads = [
        Road(
            id=road_id,
            src_i=u,
            dst_i=v,
            linestring=LineString([points[u], points[v]]),
            tags=dict(tags.get(road_id, {})),
        )
        for road_id, (u, v) in enumerate(grid_edges())
    ]
    return MapModel(intersections, roads, **kwargs)


def road_between(map_model: MapModel, a: int, b: int) -> int:
    for road in map_model.roads.values():
        if {road.src_i, road.dst_i} == {a, b}:
            return road.id
    raise KeyError((a, b))


def square_map(tags: Optional[dict[int, dict]] = None, **kwargs) -> MapModel:
    tags = tags or {}
    coords = {0: (0.0, 0.0), 1: (100.0, 0.0), 2: (100.0, 100.0), 3: (0.0, 100.0)}
    intersections = [Intersection(id=i, point=Point(xy)) for i, xy in coords.items()]
    ends = [(0, 1), (1, 2), (2, 3), (0, 3), (0, 2)]
    roads = [
        Road(
            id=road_id,
            src_i=u,
            dst_i=v,
            linestring=LineString([coords[u], coords[v]]),
            tags=dict(tags.get(road_id, {})),
        )
        for road_id, (u, v) in enumerate(ends)
    ]
    return MapModel(intersections, roads, **kwargs)


def grid_lonlat(x: float, y: float) -> tuple[float, float]:
    return GRID_LON + x * GRID_STEP_DEG, GRID_LAT + y * GRID_STEP_DEG


def grid_street_network(
    extra_properties: Optional[dict[int, dict]] = None, both_directions: bool = False
) -> dict:
    """
    The grid as a WGS84 GeoJSON FeatureCollection with u/v properties.

    With both_directions every street is followed later by its reversed twin
    (same key and osmid), the way OSMnx edge exports list two-way streets.
    """
    extra_properties = extra_properties or {}
    features = []
    for road_id, (u, v) in enumerate(grid_edges()):
        ux, uy = u % GRID_SIZE, u // GRID_SIZE
        vx, vy = v % GRID_SIZE, v // GRID_SIZE
        properties = {"u": u, "v": v, "key": 0, "osmid": 1000 + road_id, "highway": "residential"}
        properties.update(extra_properties.get(road_id, {}))
        features.append({
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [list(grid_lonlat(ux, uy)), list(grid_lonlat(vx, vy))],
            },
            "properties": properties,
        })
    if both_directions:
        features += [
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": list(reversed(f["geometry"]["coordinates"])),
                },
                "properties": {**f["properties"], "u": f["properties"]["v"], "v": f["properties"]["u"]},
            }
            for f in list(features)
        ]
    return {"type": "FeatureCollection", "features": features}


def grid_lonlat_box(x0: float, y0: float, x1: float, y1: float) -> dict:
    """A GeoJSON Polygon covering grid coordinates [x0, x1] x [y0, y1]."""
    ring = [
        grid_lonlat(x0, y0),
        grid_lonlat(x1, y0),
        grid_lonlat(x1, y1),
        grid_lonlat(x0, y1),
        grid_lonlat(x0, y0),
    ]
    return {"type": "Polygon", "coordinates": [[list(c) for c in ring]]}
