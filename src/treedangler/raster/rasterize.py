"""
Partition rasterization.

Fills the mask silhouette white and carves every ownership outline back to
black, producing grout lines between neighbouring regions.
"""

import cv2
import numpy as np

from treedangler.models import BinaryBitmap
from treedangler.tracer import get_tracer, trace


# Fixed-point bits used for sub-pixel vertex positions in OpenCV drawing calls.
SUBPIXEL_SHIFT = 4

FOREGROUND = 255
BACKGROUND = 0


def _to_fixed_point(coords):
    scale = 1 << SUBPIXEL_SHIFT
    return np.round(np.asarray(coords, dtype=float) * scale).astype(np.int32).reshape(-1, 1, 2)


def _create_surface(width, height):
    """Allocate an opaque black RGBA surface, or None if none can be had."""
    tracer = get_tracer()

    if width <= 0 or height <= 0:
        tracer.event(f"Cannot create {width}x{height} surface", level="WARN")
        return None

    try:
        surface = np.zeros((height, width, 4), dtype=np.uint8)
    except MemoryError:
        tracer.event(f"Out of memory allocating {width}x{height} surface", level="WARN")
        return None

    surface[..., 3] = 255
    return surface


@trace(label="rasterize")
def rasterize(polygons, mask, width, height, stroke_width=2.0):
    """
    Draw the mask and ownership outlines into a monochrome raster.

    Args:
        polygons: list of Polygon, the ownership regions to outline
        mask: Polygon silhouette; filled and used as clip when it has >= 3 points
        width: raster width in pixels
        height: raster height in pixels
        stroke_width: grout line width in pixels

    Returns:
        BinaryBitmap, or None if no drawing surface is available
    """
    tracer = get_tracer()

    surface = _create_surface(int(width), int(height))
    if surface is None:
        return None

    height, width = surface.shape[:2]
    has_mask = len(mask.points) >= 3

    if not has_mask:
        # Nothing to fill; outlines on the black surface would not change it.
        tracer.event(f"Mask {mask.id} has {len(mask.points)} points, raster left empty", level="WARN")
        return BinaryBitmap(width=width, height=height, data=surface)

    clip = np.zeros((height, width), dtype=np.uint8)
    cv2.fillPoly(clip, [_to_fixed_point(mask.to_coords())], 255,
                 lineType=cv2.LINE_8, shift=SUBPIXEL_SHIFT)
    surface[clip > 0, :3] = FOREGROUND

    outlines = [_to_fixed_point(p.to_coords()) for p in polygons if len(p.points) >= 2]
    if outlines:
        cuts = np.zeros((height, width), dtype=np.uint8)
        thickness = max(1, int(round(stroke_width)))
        cv2.polylines(cuts, outlines, isClosed=True, color=255, thickness=thickness,
                      lineType=cv2.LINE_8, shift=SUBPIXEL_SHIFT)
        carved = (cuts > 0) & (clip > 0)
        surface[carved, :3] = BACKGROUND

    foreground = int(np.count_nonzero(surface[..., 0] > 127))
    tracer.event(f"Raster {width}x{height}: foreground={foreground}, outlines={len(polygons)}")

    return BinaryBitmap(width=width, height=height, data=surface)
