"""
Kept-mask vectorization.

Normalizes the tracer's output into piece polygons: degenerate traces are
dropped, coincident contours are emitted once, and the leading full-canvas
trace is removed.
"""

import numpy as np

from treedangler.config import TraceConfig
from treedangler.models import Polygon, generate_piece_id
from treedangler.raster.distance_field import LUMINANCE_THRESHOLD
from treedangler.tracer import get_tracer, trace
from treedangler.vectorize.contour_trace import trace_layers


def contour_signature(points, digits=3):
    """Key identifying a contour by its rounded coordinates."""
    return "|".join(f"{x:.{digits}f},{y:.{digits}f}" for x, y in points)


def spans_canvas(polygon, width, height):
    """True if the polygon's bounding box covers the whole canvas."""
    min_x, min_y, max_x, max_y = polygon.bbox()
    return min_x <= 0 and min_y <= 0 and max_x >= width - 1 and max_y >= height - 1


def kept_pixels(mask_bitmap):
    """Pixels that are both opaque and bright."""
    return (mask_bitmap.alpha() > 0) & (mask_bitmap.luminance() > LUMINANCE_THRESHOLD)


@trace(label="vectorize")
def vectorize(mask_bitmap, trace_config=None):
    """
    Trace a kept mask into piece outlines.

    Args:
        mask_bitmap: BinaryBitmap from the morphology stage
        trace_config: TraceConfig (defaults used when None)

    Returns:
        list of Polygon with ids "piece-<layer>-<path>"
    """
    tracer = get_tracer()
    trace_config = trace_config or TraceConfig()

    layers = trace_layers(
        kept_pixels(mask_bitmap),
        path_omit=trace_config.path_omit,
        line_tolerance=trace_config.line_tolerance,
    )

    polygons = []
    seen = set()
    duplicates = 0
    for layer_index, contours in enumerate(layers):
        for path_index, contour in enumerate(contours):
            if len(contour) < 3:
                continue
            points = np.asarray(contour, dtype=float).tolist()
            key = contour_signature(points, trace_config.signature_digits)
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            polygons.append(Polygon.from_coords(
                generate_piece_id(layer_index, path_index), points, layer=layer_index,
            ))

    if polygons:
        # The tracer opens with the canvas bounding trace; it is not a piece.
        leading = polygons.pop(0)
        if not spans_canvas(leading, mask_bitmap.width, mask_bitmap.height):
            tracer.event(f"Dropped leading trace {leading.id} does not span the canvas", level="WARN")

    tracer.event(f"Vectorized {len(polygons)} pieces ({duplicates} duplicates)")

    return polygons
