"""
Spine tessellation.

Samples every spine along its length, builds one Voronoi diagram over all
samples, and merges each spine's cells into its ownership region.
"""

import math
from collections import OrderedDict
from dataclasses import dataclass

import numpy as np
from scipy.spatial import Voronoi

from treedangler.exceptions import UnionError
from treedangler.geometry.union import clip_ring_to_box, ring_from_cell, union_polygons
from treedangler.models import Polygon, compute_bbox, generate_polygon_id
from treedangler.tracer import get_tracer, trace


DEFAULT_SPACING = 20.0

# Frame sites are placed this many extents away from the sample cloud.
FRAME_MARGIN = 10.0


@dataclass(frozen=True)
class SpineSample:
    """A sample point with a back-reference to its owning spine."""
    x: float
    y: float
    spine_id: str


def sample_spine(spine, spacing=DEFAULT_SPACING):
    """
    Sample a spine at roughly `spacing` intervals, both endpoints included.

    Always yields at least 3 samples, so a zero-length spine still gives
    coincident samples.
    """
    if spacing <= 0:
        raise ValueError(f"spacing must be positive, got {spacing}")

    start, end = spine.start, spine.end
    steps = max(2, math.ceil(spine.length / spacing))

    samples = []
    for i in range(steps + 1):
        t = i / steps
        samples.append(SpineSample(
            x=start.x + (end.x - start.x) * t,
            y=start.y + (end.y - start.y) * t,
            spine_id=spine.id,
        ))
    return samples


def build_samples(spines, spacing=DEFAULT_SPACING):
    """
    Sample all spines.

    Returns:
        points: float array of shape (n, 2)
        owners: list of spine ids, one per point
    """
    coords = []
    owners = []
    for spine in spines:
        for sample in sample_spine(spine, spacing):
            coords.append((sample.x, sample.y))
            owners.append(sample.spine_id)

    points = np.array(coords, dtype=float).reshape(-1, 2)
    return points, owners


def _unique_sites(points, owners):
    """Collapse coincident samples; the first owner of a coordinate keeps it."""
    sites = OrderedDict()
    for (x, y), owner in zip(points.tolist(), owners):
        sites.setdefault((x, y), owner)
    return np.array(list(sites.keys()), dtype=float).reshape(-1, 2), list(sites.values())


def _frame_sites(points, bounds):
    """
    Four far-away sites surrounding everything.

    With these in the diagram no real sample sits on the convex hull, so
    every real cell is bounded.
    """
    min_x = min(bounds[0], float(points[:, 0].min()))
    min_y = min(bounds[1], float(points[:, 1].min()))
    max_x = max(bounds[2], float(points[:, 0].max()))
    max_y = max(bounds[3], float(points[:, 1].max()))

    cx = (min_x + max_x) / 2
    cy = (min_y + max_y) / 2
    reach = FRAME_MARGIN * max(max_x - min_x, max_y - min_y, 1.0)

    return np.array([
        [cx - reach, cy - reach],
        [cx + reach, cy - reach],
        [cx + reach, cy + reach],
        [cx - reach, cy + reach],
    ])


def voronoi_cells(points, bounds):
    """
    Compute the clipped Voronoi cell of every point.

    Returns a list with one entry per input point: the ring of its cell
    clipped to `bounds`, or None when the cell is unbounded, has a non-finite
    vertex, or lies entirely outside the rectangle.
    """
    tracer = get_tracer()

    sites = np.vstack([points, _frame_sites(points, bounds)])
    diagram = Voronoi(sites)

    cells = []
    discarded = 0
    for index in range(len(points)):
        region = diagram.regions[diagram.point_region[index]]
        if not region or -1 in region:
            cells.append(None)
            discarded += 1
            continue

        ring = ring_from_cell(diagram.vertices[region])
        if ring is None:
            cells.append(None)
            discarded += 1
            continue

        cells.append(clip_ring_to_box(ring, bounds))

    if discarded:
        tracer.event(f"Discarded {discarded} degenerate cells", level="WARN")

    return cells


@trace(label="partition")
def partition(spines, mask, spacing=DEFAULT_SPACING):
    """
    Partition the mask's bounding rectangle into one region per spine.

    Args:
        spines: list of LineSegment
        mask: MaskPolygon whose bounding box bounds the diagram
        spacing: sampling interval along each spine

    Returns:
        list of Polygon, possibly several per spine, ids "<spine_id>-<n>"
    """
    tracer = get_tracer()

    if not spines:
        return []

    points, owners = build_samples(spines, spacing)
    if len(points) == 0:
        return []

    sites, site_owners = _unique_sites(points, owners)
    bounds = compute_bbox(mask.to_coords())
    tracer.event(f"Sampled {len(points)} points ({len(sites)} unique) from {len(spines)} spines")

    cells = voronoi_cells(sites, bounds)

    grouped = OrderedDict((spine.id, []) for spine in spines)
    for owner, cell in zip(site_owners, cells):
        if cell is not None:
            grouped[owner].append(cell)

    polygons = []
    for spine_id, spine_cells in grouped.items():
        if not spine_cells:
            continue
        try:
            rings = union_polygons(spine_cells, owner_id=spine_id)
        except UnionError as e:
            tracer.event(f"Skipping spine: {e}", level="WARN")
            continue

        for index, ring in enumerate(rings):
            polygons.append(Polygon.from_coords(
                generate_polygon_id(spine_id, index), ring, spine_id=spine_id,
            ))

    tracer.event(f"Partition produced {len(polygons)} ownership polygons")

    return polygons
