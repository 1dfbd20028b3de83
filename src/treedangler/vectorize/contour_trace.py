"""
Bitmap tracing with OpenCV contours.

The kept raster is traced as two colour layers, background first and
foreground second, each yielding the outer contours of its regions in scan
order. The raster is padded with one background pixel first, so the
background layer always opens with the full-canvas bounding trace.
"""

import cv2
import numpy as np


DEFAULT_PATH_OMIT = 8
DEFAULT_LINE_TOLERANCE = 0.5


def _scan_order_key(contour):
    """Topmost, then leftmost, boundary pixel of a contour."""
    ys = contour[:, 1]
    top = ys.min()
    return (int(top), int(contour[ys == top, 0].min()))


def trace_layer(layer, path_omit=DEFAULT_PATH_OMIT, line_tolerance=DEFAULT_LINE_TOLERANCE):
    """
    Outer contours of the True regions of one padded layer.

    Returns a list of (k, 2) float arrays in padded coordinates, in scan order.
    Contours with fewer than path_omit boundary pixels are omitted.
    """
    image = layer.astype(np.uint8) * 255
    contours, _ = cv2.findContours(image, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)

    traced = []
    for contour in contours:
        if len(contour) < path_omit:
            continue
        if line_tolerance > 0:
            contour = cv2.approxPolyDP(contour, line_tolerance, True)
        traced.append(contour.reshape(-1, 2))

    traced.sort(key=_scan_order_key)
    return traced


def trace_layers(kept, path_omit=DEFAULT_PATH_OMIT, line_tolerance=DEFAULT_LINE_TOLERANCE):
    """
    Trace a boolean (height, width) raster.

    Returns:
        [background_contours, foreground_contours], each a list of (k, 2)
        float arrays in raster pixel coordinates
    """
    padded = np.pad(np.asarray(kept, dtype=bool), 1, mode="constant", constant_values=False)

    layers = []
    for layer in (~padded, padded):
        contours = trace_layer(layer, path_omit, line_tolerance)
        layers.append([c.astype(np.float64) - 1.0 for c in contours])
    return layers
