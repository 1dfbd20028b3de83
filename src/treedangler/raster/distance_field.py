"""
Exact Euclidean distance transform.

Two-pass lower-envelope algorithm (Felzenszwalb & Huttenlocher): a 1-D
squared-distance transform down every column, then along every row of the
column result, then a square root. All lines of one pass are advanced in
lockstep with numpy; each line still runs its own envelope stack.
"""

import numpy as np

from treedangler.models import DistanceField
from treedangler.tracer import get_tracer, trace


LUMINANCE_THRESHOLD = 127

# Squared-domain seed for interior pixels. Large but finite so the envelope
# arithmetic never produces inf - inf.
SENTINEL = 1e20

# Distance reported for pixels no boundary seed can reach.
UNREACHED = float(np.sqrt(SENTINEL))


def _lower_envelope(f):
    """
    1-D squared distance transform of every column of `f`.

    f has shape (n, m): m independent lines of length n. For each position q
    of a line the result is min over v of (q - v)^2 + f[v].
    """
    n, m = f.shape
    out = np.empty((n, m), dtype=np.float64)
    if n == 0 or m == 0:
        return out

    lines = np.arange(m)
    # v[k, line]: seed position owning envelope segment k
    # z[k, line]: left boundary of envelope segment k
    v = np.zeros((n, m), dtype=np.int64)
    z = np.empty((n + 1, m), dtype=np.float64)
    z[0] = -np.inf
    z[1] = np.inf
    k = np.zeros(m, dtype=np.int64)
    s = np.empty(m, dtype=np.float64)

    for q in range(1, n):
        active = lines
        while active.size:
            p = v[k[active], active]
            s[active] = ((f[q, active] - f[p, active]) + (q * q - p * p)) / (2.0 * (q - p))
            popped = s[active] <= z[k[active], active]
            active = active[popped]
            k[active] -= 1
        k += 1
        v[k, lines] = q
        z[k, lines] = s
        z[k + 1, lines] = np.inf

    k[:] = 0
    for q in range(n):
        advancing = z[k + 1, lines] < q
        while advancing.any():
            k[advancing] += 1
            advancing = z[k + 1, lines] < q
        p = v[k, lines]
        out[q] = (q - p) ** 2 + f[p, lines]

    return out


def transform_1d(values):
    """Squared distance transform of a single line of seed values."""
    line = np.asarray(values, dtype=np.float64).reshape(-1, 1)
    return _lower_envelope(line)[:, 0]


def seed_values(bitmap):
    """Interior pixels get SENTINEL, boundary seeds get 0."""
    interior = bitmap.luminance() > LUMINANCE_THRESHOLD
    return np.where(interior, SENTINEL, 0.0)


@trace(label="distance_transform")
def transform(bitmap):
    """
    Distance from every pixel to the nearest boundary-seed pixel.

    Pixels with luminance above 127 are interior; everything else is a seed.
    Interior pixels that no seed can reach report UNREACHED, and such
    pixels never count towards max_distance.

    Returns:
        DistanceField with a (height, width) float64 field
    """
    tracer = get_tracer()

    seeds = seed_values(bitmap)

    columns = _lower_envelope(seeds)
    rows = _lower_envelope(np.ascontiguousarray(columns.T)).T

    field = np.sqrt(rows)
    np.minimum(field, UNREACHED, out=field)
    field = np.ascontiguousarray(field)

    reached = field[np.isfinite(field) & (field < UNREACHED)]
    max_distance = float(reached.max()) if reached.size else 0.0

    tracer.event(f"Distance field {bitmap.width}x{bitmap.height}: max={max_distance:.2f}")

    return DistanceField(field=field, max_distance=max_distance)
