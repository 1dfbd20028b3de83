"""
Data models for the treedangler generation pipeline.

Geometry and messages are validated pydantic models; raster artifacts are
frozen dataclasses around numpy arrays. Every value is recomputed wholesale
per generation run and never mutated afterwards.
"""

import hashlib
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


PROTOCOL_VERSION = 1


class SegmentMode(str, Enum):
    """Physical mode of a segment, consumed by the physics preview only."""
    RIGID = "rigid"
    HINGE = "hinge"


class ResponseStatus(str, Enum):
    """Outcome carried by a generation response."""
    OK = "ok"
    ERROR = "error"


class Point(BaseModel):
    """An immutable 2-D point."""
    x: float
    y: float

    model_config = ConfigDict(frozen=True, extra="forbid")

    def as_tuple(self):
        return (self.x, self.y)


class LineSegment(BaseModel):
    """A spine (piece centerline) or a connector."""
    id: str
    start: Point
    end: Point
    label: str = ""
    mode: Optional[SegmentMode] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def length(self):
        return math.hypot(self.end.x - self.start.x, self.end.y - self.start.y)


class Polygon(BaseModel):
    """A closed ring of points; the closing duplicate is never stored."""
    id: str
    points: List[Point] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_coords(self):
        """Return the ring as a list of (x, y) tuples."""
        return [p.as_tuple() for p in self.points]

    def bbox(self):
        """Return [min_x, min_y, max_x, max_y]."""
        return compute_bbox(self.to_coords())

    @classmethod
    def from_coords(cls, polygon_id, coords, **meta):
        return cls(
            id=polygon_id,
            points=[Point(x=float(x), y=float(y)) for x, y in coords],
            meta=meta,
        )


class MaskPolygon(Polygon):
    """The silhouette all generated geometry is clipped to."""

    @field_validator("points")
    @classmethod
    def _at_least_three_points(cls, points):
        if len(points) < 3:
            raise ValueError(f"mask needs at least 3 points, got {len(points)}")
        return points


class ShapeConfig(BaseModel):
    """Shaping parameters for one computation, in raster pixel units."""
    gap: float = Field(default=0.0, ge=0.0)
    round: float = Field(default=0.0, ge=0.0)
    noise_amplitude: float = Field(default=0.0, ge=0.0)
    noise_seed: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def shrink_threshold(self):
        return self.round + self.gap / 2


@dataclass(frozen=True)
class BinaryBitmap:
    """
    A monochrome raster stored as an RGBA buffer of shape (height, width, 4).

    Only channel 0 (luminance) and channel 3 (alpha) carry meaning.
    """
    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        data = np.array(self.data, dtype=np.uint8, copy=True)
        if data.shape != (self.height, self.width, 4):
            raise ValueError(
                f"bitmap data shape {data.shape} does not match {self.height}x{self.width}x4"
            )
        data.flags.writeable = False
        object.__setattr__(self, "data", data)

    def luminance(self):
        return self.data[..., 0]

    def alpha(self):
        return self.data[..., 3]

    @classmethod
    def from_mask(cls, mask, opaque_background=True):
        """
        Build a bitmap from a boolean (height, width) array.

        True pixels become opaque white. False pixels become opaque black, or
        fully transparent when opaque_background is False.
        """
        mask = np.asarray(mask, dtype=bool)
        height, width = mask.shape
        data = np.zeros((height, width, 4), dtype=np.uint8)
        data[mask] = 255
        if opaque_background:
            data[..., 3] = 255
        return cls(width=width, height=height, data=data)


@dataclass(frozen=True)
class DistanceField:
    """Per-pixel distance to the nearest boundary seed. Read-only."""
    field: np.ndarray
    max_distance: float

    def __post_init__(self):
        self.field.flags.writeable = False


class GenerateRequest(BaseModel):
    """Request to run the full generation pipeline once."""
    kind: Literal["generate"] = "generate"
    protocol_version: int = PROTOCOL_VERSION
    id: int = Field(..., ge=0)
    mask: MaskPolygon
    spines: List[LineSegment] = Field(default_factory=list)
    connectors: List[LineSegment] = Field(default_factory=list)
    config: ShapeConfig = Field(default_factory=ShapeConfig)
    spacing: Optional[float] = Field(default=None, gt=0.0)
    include_preview: bool = False

    model_config = ConfigDict(extra="forbid")


class PreviewPayload(BaseModel):
    """
    Rasterized preview of one run.

    Both images are base64-encoded grayscale PNGs: the kept mask (white where
    kept) and the inward distance field scaled by max_distance.
    """
    width: int
    height: int
    max_distance: float
    kept_png: str
    distance_png: str

    model_config = ConfigDict(extra="forbid")


class GenerateResponse(BaseModel):
    """Result of one generation run, tagged with the originating request id."""
    kind: Literal["generated"] = "generated"
    protocol_version: int = PROTOCOL_VERSION
    id: int
    status: ResponseStatus
    piece_polygons: Optional[List[Polygon]] = None
    renderable_markup: Optional[str] = None
    preview: Optional[PreviewPayload] = None
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _exactly_one_payload(self):
        has_pieces = self.piece_polygons is not None
        has_error = self.error is not None
        if has_pieces == has_error:
            raise ValueError("response must carry exactly one of piece_polygons or error")
        if has_error != (self.status == ResponseStatus.ERROR):
            raise ValueError(f"status {self.status.value} does not match payload")
        return self

    @property
    def ok(self):
        return self.status == ResponseStatus.OK

    @classmethod
    def success(cls, request_id, piece_polygons, renderable_markup=None, preview=None):
        return cls(
            id=request_id,
            status=ResponseStatus.OK,
            piece_polygons=list(piece_polygons),
            renderable_markup=renderable_markup,
            preview=preview,
        )

    @classmethod
    def failure(cls, request_id, message):
        return cls(id=request_id, status=ResponseStatus.ERROR, error=message)


# ID generation functions for deterministic outputs

def generate_polygon_id(base_id, index):
    """Id of the index-th ownership polygon of a spine."""
    return f"{base_id}-{index}"


def generate_piece_id(layer_index, path_index):
    """Id of a traced piece outline."""
    return f"piece-{layer_index}-{path_index}"


def generate_segment_id(start, end, round_digits=2):
    """
    Generate deterministic segment ID from its endpoints.

    Rounds coordinates to avoid floating point instability.
    """
    rounded = [
        round(start[0], round_digits), round(start[1], round_digits),
        round(end[0], round_digits), round(end[1], round_digits),
    ]
    h = hashlib.sha256(str(rounded).encode()).hexdigest()[:12]
    return f"seg_{h}"


def compute_bbox(points):
    """
    Compute bounding box from a list of (x, y) points.

    Returns [min_x, min_y, max_x, max_y].
    """
    if not points:
        return [0.0, 0.0, 0.0, 0.0]

    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return [min(xs), min(ys), max(xs), max(ys)]
