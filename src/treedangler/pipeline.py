"""
Main pipeline orchestrator for treedangler.

Runs tessellation, rasterization, morphology and vectorization for one
request, then templates the pieces into SVG markup.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError

from treedangler.config import PipelineConfig
from treedangler.exceptions import RasterUnavailableError
from treedangler.export.svg_export import emit_pieces_svg
from treedangler.geometry.tessellation import partition
from treedangler.io.save_artifacts import (
    bitmap_to_image, distance_field_preview, draw_polygons_overlay, encode_png_base64,
    kept_mask_image,
)
from treedangler.models import (
    BinaryBitmap, DistanceField, GenerateRequest, GenerateResponse, Polygon, PreviewPayload,
)
from treedangler.raster.morphology import grow
from treedangler.raster.rasterize import rasterize
from treedangler.tracer import get_tracer, trace
from treedangler.vectorize.vectorizer import vectorize


@dataclass
class GenerationResult:
    """Every artifact of one generation run."""
    request_id: int
    ownership: List[Polygon] = field(default_factory=list)
    raw_bitmap: Optional[BinaryBitmap] = None
    inward_field: Optional[DistanceField] = None
    final_mask: Optional[BinaryBitmap] = None
    pieces: List[Polygon] = field(default_factory=list)


@trace(label="generate_pieces")
def generate_pieces(request, config=None, debug_writer=None):
    """
    Run stages 1-4 for a request.

    Args:
        request: GenerateRequest
        config: PipelineConfig (defaults used when None)
        debug_writer: optional DebugArtifactWriter

    Returns:
        GenerationResult

    Raises:
        RasterUnavailableError if no drawing surface can be obtained
    """
    tracer = get_tracer()
    config = config or PipelineConfig()
    result = GenerationResult(request_id=request.id)
    spacing = request.spacing or config.tessellation.spacing

    # Stage 1: Tessellation
    with tracer.span("stage1_tessellate", module="pipeline"):
        result.ownership = partition(request.spines, request.mask, spacing)

    if not result.ownership:
        tracer.event("No ownership regions, nothing to generate")
        return result

    # Stage 2: Rasterization
    with tracer.span("stage2_rasterize", module="pipeline"):
        raw = rasterize(
            result.ownership, request.mask,
            config.raster.width, config.raster.height,
            stroke_width=config.raster.stroke_width,
        )
        if raw is None:
            raise RasterUnavailableError(config.raster.width, config.raster.height)
        result.raw_bitmap = raw

        if debug_writer:
            debug_writer.save_image(bitmap_to_image(raw), "stage2", "01_partition_raster.png")
            overlay = draw_polygons_overlay(bitmap_to_image(raw), result.ownership)
            debug_writer.save_image(overlay, "stage2", "02_ownership_overlay.png")

    # Stage 3: Shrink / grow
    with tracer.span("stage3_grow", module="pipeline"):
        grown = grow(raw, request.config, noise_frequency=config.morphology.noise_frequency)
        result.inward_field = grown.inward_field
        result.final_mask = grown.final_mask

        if debug_writer:
            debug_writer.save_image(distance_field_preview(grown.inward_field), "stage3", "01_inward_distance.png")
            debug_writer.save_image(bitmap_to_image(grown.final_mask), "stage3", "02_kept_mask.png")
            debug_writer.save_json({
                "max_distance": round(grown.inward_field.max_distance, 4),
                "shrink_threshold": request.config.shrink_threshold,
                "shrunk_pixels": int(grown.shrink_mask.sum()),
                "kept_pixels": int((grown.final_mask.alpha() > 0).sum()),
            }, "stage3", "stage3_metrics.json")

    # Stage 4: Vectorization
    with tracer.span("stage4_vectorize", module="pipeline"):
        result.pieces = vectorize(result.final_mask, config.trace)

        if debug_writer:
            overlay = draw_polygons_overlay(bitmap_to_image(result.final_mask), result.pieces,
                                            color=(255, 64, 64))
            debug_writer.save_image(overlay, "stage4", "01_pieces_overlay.png")
            debug_writer.save_json({
                "num_pieces": len(result.pieces),
                "total_points": sum(len(p.points) for p in result.pieces),
            }, "stage4", "stage4_metrics.json")

    tracer.event(f"Generated {len(result.pieces)} pieces for request {request.id}")

    return result


def render_markup(result, request, config):
    """SVG markup for a generation result."""
    return emit_pieces_svg(
        result.pieces, request.connectors, request.spines,
        config.raster.width, config.raster.height,
        export_config=config.export,
    )


def build_preview(result):
    """PreviewPayload for a result, or None when nothing was rasterized."""
    if result.final_mask is None or result.inward_field is None:
        return None

    return PreviewPayload(
        width=result.final_mask.width,
        height=result.final_mask.height,
        max_distance=float(result.inward_field.max_distance),
        kept_png=encode_png_base64(kept_mask_image(result.final_mask)),
        distance_png=encode_png_base64(distance_field_preview(result.inward_field)),
    )


def run_generation(request, config=None, debug_writer=None):
    """
    Run the whole pipeline and package the outcome as a response.

    Never raises for pipeline failures: any exception becomes an error
    response carrying the request id.
    """
    tracer = get_tracer()
    config = config or PipelineConfig()

    try:
        result = generate_pieces(request, config, debug_writer)
        markup = render_markup(result, request, config)
        preview = build_preview(result) if request.include_preview else None
    except Exception as e:
        tracer.event(f"Generation {request.id} failed: {type(e).__name__}: {e}", level="ERROR")
        return GenerateResponse.failure(request.id, f"{type(e).__name__}: {e}")

    return GenerateResponse.success(request.id, result.pieces, markup, preview)


def execute_request(payload, config=None):
    """
    Run one request given as a plain dict and return the response as a dict.

    Top-level and dict-in/dict-out so it can cross a process boundary.
    """
    request_id = payload.get("id") if isinstance(payload, dict) else None
    if not isinstance(request_id, int):
        request_id = -1

    try:
        request = GenerateRequest.model_validate(payload)
    except ValidationError as e:
        return GenerateResponse.failure(request_id, f"{type(e).__name__}: {e}").model_dump(mode="json")

    return run_generation(request, config).model_dump(mode="json")
