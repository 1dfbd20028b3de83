"""Tests for contour tracing and the vectorizer adapter."""

import numpy as np
import pytest


def _kept_bitmap(mask):
    from treedangler.models import BinaryBitmap
    return BinaryBitmap.from_mask(mask, opaque_background=False)


class TestTraceLayers:
    """Tests for the two-layer tracer."""

    def test_background_layer_opens_with_frame(self):
        from treedangler.vectorize.contour_trace import trace_layers

        kept = np.zeros((30, 40), dtype=bool)
        kept[10:20, 10:25] = True
        background, foreground = trace_layers(kept)

        frame = background[0]
        assert frame[:, 0].min() == -1 and frame[:, 1].min() == -1
        assert frame[:, 0].max() == 40 and frame[:, 1].max() == 30
        assert len(foreground) == 1

    def test_foreground_in_raster_coordinates(self):
        from treedangler.vectorize.contour_trace import trace_layers

        kept = np.zeros((30, 40), dtype=bool)
        kept[10:20, 10:25] = True
        _, foreground = trace_layers(kept)

        xs, ys = foreground[0][:, 0], foreground[0][:, 1]
        assert (xs.min(), ys.min(), xs.max(), ys.max()) == (10, 10, 24, 19)

    def test_scan_order(self):
        from treedangler.vectorize.contour_trace import trace_layers

        kept = np.zeros((40, 40), dtype=bool)
        kept[25:35, 5:15] = True
        kept[5:15, 25:35] = True
        kept[5:15, 5:15] = True
        _, foreground = trace_layers(kept)

        tops = [(int(c[:, 1].min()), int(c[:, 0].min())) for c in foreground]
        assert tops == [(5, 5), (5, 25), (25, 5)]

    def test_small_contours_omitted(self):
        from treedangler.vectorize.contour_trace import trace_layers

        kept = np.zeros((20, 20), dtype=bool)
        kept[5:7, 5:7] = True
        _, foreground = trace_layers(kept, path_omit=8)

        assert foreground == []


class TestVectorize:
    """Tests for vectorize()."""

    def test_single_block(self):
        from treedangler.vectorize.vectorizer import vectorize

        kept = np.zeros((40, 40), dtype=bool)
        kept[10:30, 10:30] = True
        pieces = vectorize(_kept_bitmap(kept))

        assert [p.id for p in pieces] == ["piece-1-0"]
        assert pieces[0].bbox() == [10.0, 10.0, 29.0, 29.0]
        assert pieces[0].meta == {"layer": 1}

    def test_two_blocks(self):
        from treedangler.vectorize.vectorizer import vectorize

        kept = np.zeros((40, 60), dtype=bool)
        kept[10:30, 5:25] = True
        kept[10:30, 35:55] = True
        pieces = vectorize(_kept_bitmap(kept))

        assert [p.id for p in pieces] == ["piece-1-0", "piece-1-1"]
        assert pieces[0].bbox()[0] < pieces[1].bbox()[0]

    def test_empty_mask_yields_nothing(self):
        from treedangler.vectorize.vectorizer import vectorize

        assert vectorize(_kept_bitmap(np.zeros((20, 20), dtype=bool))) == []

    def test_opaque_black_pixels_not_kept(self):
        """Opaque dark pixels count as background."""
        from treedangler.models import BinaryBitmap
        from treedangler.vectorize.vectorizer import kept_pixels

        mask = np.zeros((4, 4), dtype=bool)
        mask[1:3, 1:3] = True
        bitmap = BinaryBitmap.from_mask(mask, opaque_background=True)

        assert np.array_equal(kept_pixels(bitmap), mask)

    def test_leading_frame_dropped_without_warning(self, capsys):
        from treedangler.tracer import configure_tracer
        from treedangler.vectorize.vectorizer import vectorize

        kept = np.zeros((30, 30), dtype=bool)
        kept[8:22, 8:22] = True

        configure_tracer(enabled=True, level="WARN")
        pieces = vectorize(_kept_bitmap(kept))
        configure_tracer(enabled=False)

        assert len(pieces) == 1
        assert "does not span" not in capsys.readouterr().err

    def test_full_mask_piece(self):
        """A mask covering the canvas still yields its piece."""
        from treedangler.vectorize.vectorizer import vectorize

        pieces = vectorize(_kept_bitmap(np.ones((20, 20), dtype=bool)))

        assert len(pieces) == 1
        assert pieces[0].bbox() == [0.0, 0.0, 19.0, 19.0]

    def test_coincident_and_degenerate_traces_dropped(self, monkeypatch):
        """Repeated contours are emitted once and short traces never become pieces."""
        from treedangler.vectorize import vectorizer

        frame = [(-1, -1), (20, -1), (20, 20), (-1, 20)]
        square = [(4, 4), (12, 4), (12, 12), (4, 12)]
        layers = [
            [frame, [(2, 2), (6, 6)]],
            [[(3, 3)], square, [tuple(p) for p in square]],
        ]
        monkeypatch.setattr(vectorizer, "trace_layers", lambda *args, **kwargs: layers)

        pieces = vectorizer.vectorize(_kept_bitmap(np.zeros((20, 20), dtype=bool)))

        assert [p.id for p in pieces] == ["piece-1-1"]
        assert pieces[0].to_coords() == [(4.0, 4.0), (12.0, 4.0), (12.0, 12.0), (4.0, 12.0)]

    def test_duplicate_within_rounding_dropped(self, monkeypatch):
        from treedangler.vectorize import vectorizer

        frame = [(-1, -1), (20, -1), (20, 20), (-1, 20)]
        triangle = [(2.0, 2.0), (9.0, 2.0), (5.0, 8.0)]
        nudged = [(2.0001, 2.0), (9.0, 2.0), (5.0, 8.0)]
        monkeypatch.setattr(vectorizer, "trace_layers", lambda *args, **kwargs: [[frame], [triangle, nudged]])

        pieces = vectorizer.vectorize(_kept_bitmap(np.zeros((20, 20), dtype=bool)))

        assert [p.id for p in pieces] == ["piece-1-0"]

    def test_contour_signature(self):
        from treedangler.vectorize.vectorizer import contour_signature

        a = contour_signature([(1.0, 2.0), (3.00001, 4.0)])
        b = contour_signature([(1.0, 2.0), (3.0, 4.0)])

        assert a == b == "1.000,2.000|3.000,4.000"

    def test_spans_canvas(self):
        from treedangler.models import Polygon
        from treedangler.vectorize.vectorizer import spans_canvas

        frame = Polygon.from_coords("f", [(-1, -1), (20, -1), (20, 10), (-1, 10)])
        inner = Polygon.from_coords("i", [(2, 2), (8, 2), (8, 8)])

        assert spans_canvas(frame, 20, 10)
        assert not spans_canvas(inner, 20, 10)
