"""
Polygon-set union adapter.

shapely may hand back a Polygon, a MultiPolygon or a GeometryCollection for
the same kind of input. Everything is flattened here into a plain list of
simple exterior rings so no caller ever branches on geometry shape.
"""

import math

import numpy as np
import shapely
from shapely.errors import GEOSException
from shapely.geometry import GeometryCollection, MultiPolygon
from shapely.geometry import Polygon as ShapelyPolygon

from treedangler.exceptions import UnionError


def ring_from_cell(vertices):
    """
    Order the vertices of a convex cell counter-clockwise around its centroid.

    Returns a list of (x, y) tuples, or None if any coordinate is non-finite
    or fewer than 3 vertices remain.
    """
    pts = np.asarray(vertices, dtype=float)
    if pts.ndim != 2 or len(pts) < 3:
        return None
    if not np.all(np.isfinite(pts)):
        return None

    centroid = pts.mean(axis=0)
    angles = np.arctan2(pts[:, 1] - centroid[1], pts[:, 0] - centroid[0])
    ordered = pts[np.argsort(angles)]
    return [(float(x), float(y)) for x, y in ordered]


def to_simple_rings(geometry):
    """
    Flatten any shapely geometry into a list of exterior rings.

    Holes are dropped and the closing duplicate vertex removed.
    """
    if geometry is None or geometry.is_empty:
        return []

    if isinstance(geometry, ShapelyPolygon):
        polygons = [geometry]
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        polygons = [g for g in geometry.geoms if isinstance(g, ShapelyPolygon)]
    else:
        polygons = []

    rings = []
    for polygon in polygons:
        if polygon.is_empty or polygon.area <= 0:
            continue
        coords = [(float(x), float(y)) for x, y in polygon.exterior.coords]
        if len(coords) > 1 and coords[0] == coords[-1]:
            coords = coords[:-1]
        if len(coords) >= 3:
            rings.append(coords)
    return rings


def union_polygons(rings, owner_id=""):
    """
    Union a set of rings into disjoint simple rings.

    Args:
        rings: list of rings, each a list of (x, y) tuples
        owner_id: id reported in the error when the union fails

    Returns:
        list of rings (one per disjoint part)

    Raises:
        UnionError if shapely cannot compute the union.
    """
    polygons = [ShapelyPolygon(ring) for ring in rings if len(ring) >= 3]
    if not polygons:
        return []

    try:
        merged = shapely.unary_union(polygons)
    except (GEOSException, ValueError) as e:
        raise UnionError(owner_id, str(e)) from e

    rings_out = to_simple_rings(merged)
    for ring in rings_out:
        if not all(math.isfinite(x) and math.isfinite(y) for x, y in ring):
            raise UnionError(owner_id, "union produced non-finite coordinates")
    return rings_out


def clip_ring_to_box(ring, bounds):
    """
    Clip a convex ring to an axis-aligned rectangle.

    bounds is (min_x, min_y, max_x, max_y). Returns the clipped ring, or None
    when nothing of the ring lies inside the rectangle.
    """
    clip = shapely.box(*bounds)
    clipped = ShapelyPolygon(ring).intersection(clip)
    rings = to_simple_rings(clipped)
    if not rings:
        return None
    return rings[0]
