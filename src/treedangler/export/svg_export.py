"""
SVG emission for treedangler.

Renders piece outlines as smooth closed curves in millimetres, connector end
points as drill holes, and spine labels as rotated text.
"""

import math

import svgwrite

from treedangler.config import ExportConfig
from treedangler.tracer import get_tracer, trace


CURVE_ALPHA = 0.5  # centripetal Catmull-Rom
EPSILON = 1e-12


def preprocess_points(points, min_gap=0.5):
    """
    Prepare a traced ring for curve fitting.

    Drops a closing duplicate, removes points within min_gap of their
    predecessor and applies one pass of (prev + 2*curr + next) / 4 smoothing.
    """
    if len(points) < 3:
        return list(points)

    first, last = points[0], points[-1]
    if math.hypot(first[0] - last[0], first[1] - last[1]) < min_gap:
        points = points[:-1]

    deduped = []
    for p in points:
        if not deduped or math.hypot(p[0] - deduped[-1][0], p[1] - deduped[-1][1]) > min_gap:
            deduped.append(p)

    n = len(deduped)
    if n < 3:
        return deduped

    smoothed = []
    for i in range(n):
        prev = deduped[(i - 1) % n]
        curr = deduped[i]
        nxt = deduped[(i + 1) % n]
        smoothed.append((
            (prev[0] + 2 * curr[0] + nxt[0]) / 4,
            (prev[1] + 2 * curr[1] + nxt[1]) / 4,
        ))
    return smoothed


def _catmull_rom_controls(p0, p1, p2, p3, alpha=CURVE_ALPHA):
    """Bezier control points for the p1 -> p2 span of a Catmull-Rom curve."""
    l01 = math.hypot(p1[0] - p0[0], p1[1] - p0[1])
    l12 = math.hypot(p2[0] - p1[0], p2[1] - p1[1])
    l23 = math.hypot(p3[0] - p2[0], p3[1] - p2[1])

    l01_a, l12_a, l23_a = l01 ** alpha, l12 ** alpha, l23 ** alpha
    l01_2a, l12_2a, l23_2a = l01_a * l01_a, l12_a * l12_a, l23_a * l23_a

    c1 = p1
    if l01_a > EPSILON:
        a = 2 * l01_2a + 3 * l01_a * l12_a + l12_2a
        n = 3 * l01_a * (l01_a + l12_a)
        c1 = (
            (p1[0] * a - p0[0] * l12_2a + p2[0] * l01_2a) / n,
            (p1[1] * a - p0[1] * l12_2a + p2[1] * l01_2a) / n,
        )

    c2 = p2
    if l23_a > EPSILON:
        b = 2 * l23_2a + 3 * l23_a * l12_a + l12_2a
        m = 3 * l23_a * (l23_a + l12_a)
        c2 = (
            (p2[0] * b + p1[0] * l23_2a - p3[0] * l12_2a) / m,
            (p2[1] * b + p1[1] * l23_2a - p3[1] * l12_2a) / m,
        )

    return c1, c2


def closed_curve_path(points, scale=1.0):
    """
    SVG path data for a closed centripetal Catmull-Rom curve through points.

    Coordinates are multiplied by scale. Returns "" for fewer than 2 points.
    """
    n = len(points)
    if n < 2:
        return ""

    pts = [(x * scale, y * scale) for x, y in points]
    parts = [f"M{pts[0][0]:.3f},{pts[0][1]:.3f}"]
    for i in range(n):
        p0 = pts[(i - 1) % n]
        p1 = pts[i]
        p2 = pts[(i + 1) % n]
        p3 = pts[(i + 2) % n]
        c1, c2 = _catmull_rom_controls(p0, p1, p2, p3)
        parts.append(
            f"C{c1[0]:.3f},{c1[1]:.3f} {c2[0]:.3f},{c2[1]:.3f} {p2[0]:.3f},{p2[1]:.3f}"
        )
    parts.append("Z")
    return " ".join(parts)


@trace(label="emit_pieces_svg")
def emit_pieces_svg(pieces, connectors, spines, width, height, export_config=None):
    """
    Create the cut-file SVG.

    Args:
        pieces: list of Polygon piece outlines in raster pixels
        connectors: list of LineSegment; both end points become holes
        spines: list of LineSegment; labelled ones become engraved text
        width: raster width in pixels
        height: raster height in pixels
        export_config: ExportConfig (defaults used when None)

    Returns:
        SVG document as a string
    """
    tracer = get_tracer()
    cfg = export_config or ExportConfig()
    mm = 1.0 / cfg.px_per_mm

    svg_width = width * mm
    svg_height = height * mm

    dwg = svgwrite.Drawing(size=(f"{svg_width:g}mm", f"{svg_height:g}mm"))
    dwg.viewbox(0, 0, svg_width, svg_height)

    outlines = dwg.g(id="pieces", fill="none", stroke=cfg.primary_stroke,
                     stroke_width=round(0.5 * mm, 2))
    emitted = 0
    for piece in pieces:
        pts = preprocess_points(piece.to_coords(), cfg.min_point_gap)
        d = closed_curve_path(pts, scale=mm)
        if d:
            outlines.add(dwg.path(d=d, id=piece.id))
            emitted += 1
    dwg.add(outlines)

    holes = dwg.g(id="holes", fill="none", stroke=cfg.secondary_stroke, stroke_width=0.18)
    for connector in connectors:
        for point in (connector.start, connector.end):
            holes.add(dwg.circle(
                center=(round(point.x * mm, 2), round(point.y * mm, 2)),
                r=cfg.hole_radius_mm,
            ))
    dwg.add(holes)

    labels = dwg.g(id="labels", fill=cfg.secondary_stroke)
    font_size = cfg.label_font_px * mm
    for spine in spines:
        text = spine.label.strip()
        if not text:
            continue
        mid_x = round((spine.start.x + spine.end.x) / 2 * mm, 2)
        mid_y = round((spine.start.y + spine.end.y) / 2 * mm, 2)
        angle = math.degrees(math.atan2(spine.end.y - spine.start.y, spine.end.x - spine.start.x))
        labels.add(dwg.text(
            spine.label,
            insert=(mid_x, mid_y),
            text_anchor="middle",
            dominant_baseline="middle",
            font_size=f"{font_size:.3f}mm",
            transform=f"rotate({angle:.2f} {mid_x} {mid_y})",
        ))
    dwg.add(labels)

    tracer.event(f"SVG emitted with {emitted} pieces, {2 * len(connectors)} holes")

    return dwg.tostring()
