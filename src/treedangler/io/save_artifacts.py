"""
Artifact saving utilities for treedangler.

Handles writing debug images, JSON files and SVG documents, and turning
bitmaps and distance fields into viewable images.
"""

import base64
import json
import os

import cv2
import numpy as np

from treedangler.raster.distance_field import LUMINANCE_THRESHOLD
from treedangler.tracer import get_tracer


def ensure_dir(path):
    """Create directory if it does not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def get_debug_dir(out_dir, stage_name):
    """
    Get the debug directory path for a stage.

    Creates the directory if it does not exist.
    """
    debug_dir = os.path.join(out_dir, "debug", stage_name)
    ensure_dir(debug_dir)
    return debug_dir


def save_image(img, path, max_edge=None):
    """
    Save an image to disk.

    Optionally downscales to max_edge while preserving aspect ratio.
    Accepts grayscale, RGB or RGBA arrays (converted to OpenCV channel order).
    """
    tracer = get_tracer()

    if max_edge and max(img.shape[:2]) > max_edge:
        scale = max_edge / max(img.shape[:2])
        new_size = (int(img.shape[1] * scale), int(img.shape[0] * scale))
        img = cv2.resize(img, new_size, interpolation=cv2.INTER_AREA)

    if img.ndim == 3 and img.shape[2] == 3:
        img_out = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)
    elif img.ndim == 3 and img.shape[2] == 4:
        img_out = cv2.cvtColor(img, cv2.COLOR_RGBA2BGRA)
    else:
        img_out = img

    ensure_dir(os.path.dirname(path))
    cv2.imwrite(path, img_out)
    tracer.event(f"Saved image: {path}")


def save_json(data, path, indent=2):
    """
    Save a dictionary, list or pydantic model to JSON.
    """
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)

    tracer.event(f"Saved JSON: {path}")


def save_svg(svg_content, path):
    """
    Save SVG content to file.
    """
    tracer = get_tracer()

    ensure_dir(os.path.dirname(path))

    with open(path, "w", encoding="utf-8") as f:
        f.write(str(svg_content))

    tracer.event(f"Saved SVG: {path}")


def bitmap_to_image(bitmap):
    """RGBA copy of a bitmap's buffer, suitable for save_image."""
    return np.array(bitmap.data, dtype=np.uint8, copy=True)


def distance_field_preview(distance_field):
    """
    Grayscale rendering of a distance field.

    Intensity is distance / max_distance, clamped to [0, 1]; unreached
    pixels render white.
    """
    field = distance_field.field
    if distance_field.max_distance <= 0:
        normalized = np.where(field > 0, 1.0, 0.0)
    else:
        normalized = np.clip(field / distance_field.max_distance, 0.0, 1.0)
    return np.round(normalized * 255).astype(np.uint8)


def kept_mask_image(bitmap):
    """Grayscale image that is white where the bitmap is opaque and bright."""
    kept = (bitmap.alpha() > 0) & (bitmap.luminance() > LUMINANCE_THRESHOLD)
    return np.where(kept, 255, 0).astype(np.uint8)


def encode_png_base64(img):
    """PNG-encode a grayscale image and return it as base64 text."""
    ok, buffer = cv2.imencode(".png", img)
    if not ok:
        raise ValueError(f"Could not PNG-encode image of shape {img.shape}")
    return base64.b64encode(buffer.tobytes()).decode("ascii")


def decode_png_base64(text):
    """Inverse of encode_png_base64."""
    buffer = np.frombuffer(base64.b64decode(text), dtype=np.uint8)
    return cv2.imdecode(buffer, cv2.IMREAD_GRAYSCALE)


def draw_polygons_overlay(base_img, polygons, color=(0, 200, 255), thickness=1):
    """
    Outline polygons on a copy of an RGB or RGBA image.

    Returns an RGB image.
    """
    if base_img.ndim == 2:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_GRAY2RGB)
    elif base_img.shape[2] == 4:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_RGBA2RGB)
    else:
        overlay = base_img.copy()

    outlines = [
        np.round(np.array(p.to_coords())).astype(np.int32).reshape(-1, 1, 2)
        for p in polygons if len(p.points) >= 2
    ]
    if outlines:
        cv2.polylines(overlay, outlines, isClosed=True, color=color, thickness=thickness)
    return overlay


class DebugArtifactWriter:
    """
    Helper class for writing debug artifacts during pipeline execution.

    Artifacts for a stage land in <out_dir>/debug/<stage_name>/.
    """

    def __init__(self, out_dir, enabled=True, max_edge=1600):
        self.out_dir = out_dir
        self.enabled = enabled
        self.max_edge = max_edge

    def get_stage_dir(self, stage_name):
        """Get the debug directory for a stage."""
        return get_debug_dir(self.out_dir, stage_name)

    def save_image(self, img, stage_name, filename):
        """Save an image artifact."""
        if not self.enabled:
            return
        path = os.path.join(self.get_stage_dir(stage_name), filename)
        save_image(img, path, max_edge=self.max_edge)

    def save_json(self, data, stage_name, filename):
        """Save a JSON artifact."""
        if not self.enabled:
            return
        path = os.path.join(self.get_stage_dir(stage_name), filename)
        save_json(data, path)

    def save_svg(self, svg_content, stage_name, filename):
        """Save an SVG artifact."""
        if not self.enabled:
            return
        path = os.path.join(self.get_stage_dir(stage_name), filename)
        save_svg(svg_content, path)
