"""
Shrink/grow morphology for piece shapes.

Pieces are shrunk by round + gap/2 using the inward distance field, then
regrown by round using the distance to the shrunk region. The regrowth rounds
corners while leaving a gap between neighbours; optional noise makes the
outline organic.
"""

from dataclasses import dataclass

import numpy as np

from treedangler.models import BinaryBitmap, DistanceField
from treedangler.raster.distance_field import LUMINANCE_THRESHOLD, transform
from treedangler.raster.noise import DEFAULT_FREQUENCY, octave_noise
from treedangler.tracer import get_tracer, trace


@dataclass(frozen=True)
class GrowResult:
    """Output of the morphology stage."""
    final_mask: BinaryBitmap
    inward_field: DistanceField
    shrink_mask: np.ndarray


def negative_of(mask):
    """
    Bitmap whose boundary seeds are the True pixels of `mask`.

    Distances over it measure how far each pixel is from the mask.
    """
    return BinaryBitmap.from_mask(~mask, opaque_background=True)


@trace(label="grow")
def grow(raw_bitmap, cfg, noise_frequency=DEFAULT_FREQUENCY):
    """
    Turn a raw partition raster into the kept-piece mask.

    Args:
        raw_bitmap: BinaryBitmap from the rasterizer
        cfg: ShapeConfig with gap, round and noise settings in pixels
        noise_frequency: base frequency of the first noise octave

    Returns:
        GrowResult; final_mask is opaque white where kept, transparent elsewhere
    """
    tracer = get_tracer()

    with tracer.span("shrink", module="morphology"):
        inward = transform(raw_bitmap)
        interior = raw_bitmap.luminance() > LUMINANCE_THRESHOLD
        shrink_mask = interior & (inward.field >= cfg.shrink_threshold)
        tracer.event(f"Shrunk to {int(shrink_mask.sum())} pixels at threshold {cfg.shrink_threshold:.2f}")

    with tracer.span("regrow", module="morphology"):
        outward = transform(negative_of(shrink_mask))
        reach = np.array(outward.field, dtype=np.float64)

        if cfg.noise_amplitude > 0:
            noise = octave_noise(raw_bitmap.width, raw_bitmap.height, cfg.noise_seed, noise_frequency)
            reach += noise * cfg.noise_amplitude
            np.maximum(reach, 0.0, out=reach)
            tracer.event(f"Applied noise amplitude={cfg.noise_amplitude} seed={cfg.noise_seed}")

        kept = shrink_mask | (reach <= cfg.round)

    tracer.event(f"Kept {int(kept.sum())} of {kept.size} pixels")

    return GrowResult(
        final_mask=BinaryBitmap.from_mask(kept, opaque_background=False),
        inward_field=inward,
        shrink_mask=shrink_mask,
    )
