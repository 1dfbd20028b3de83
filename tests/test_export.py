"""Tests for SVG export and artifact saving."""

import os
import xml.etree.ElementTree as ET

import numpy as np
import pytest


SVG_NS = {"svg": "http://www.w3.org/2000/svg"}


class TestCurves:
    """Tests for point preprocessing and curve paths."""

    def test_preprocess_drops_closing_duplicate(self):
        from treedangler.export.svg_export import preprocess_points

        pts = preprocess_points([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)], min_gap=0.5)
        assert len(pts) == 4

    def test_preprocess_removes_close_points(self):
        from treedangler.export.svg_export import preprocess_points

        pts = preprocess_points([(0, 0), (0.2, 0), (10, 0), (10, 10)], min_gap=0.5)
        assert len(pts) == 3

    def test_preprocess_smooths(self):
        from treedangler.export.svg_export import preprocess_points

        pts = preprocess_points([(0, 0), (4, 0), (4, 4), (0, 4)], min_gap=0.5)
        assert pts[0] == (1.0, 1.0)

    def test_closed_path(self):
        from treedangler.export.svg_export import closed_curve_path

        d = closed_curve_path([(0, 0), (10, 0), (10, 10), (0, 10)], scale=0.5)

        assert d.startswith("M0.000,0.000")
        assert d.endswith("Z")
        assert d.count("C") == 4
        assert "5.000,5.000" in d

    def test_degenerate_path(self):
        from treedangler.export.svg_export import closed_curve_path

        assert closed_curve_path([(1, 1)]) == ""


class TestEmitSvg:
    """Tests for the cut-file document."""

    def test_document_structure(self, two_spines, connector):
        from treedangler.config import ExportConfig
        from treedangler.export.svg_export import emit_pieces_svg
        from treedangler.models import Polygon

        piece = Polygon.from_coords("piece-1-0", [(10, 10), (50, 10), (50, 50), (10, 50)])
        svg = emit_pieces_svg([piece], [connector], two_spines, 120, 100, ExportConfig(px_per_mm=5))
        root = ET.fromstring(svg)

        assert root.get("width") == "24mm"
        assert root.get("height") == "20mm"
        assert "24" in root.get("viewBox")

        paths = root.findall(".//svg:g[@id='pieces']/svg:path", SVG_NS)
        assert [p.get("id") for p in paths] == ["piece-1-0"]

        holes = root.findall(".//svg:g[@id='holes']/svg:circle", SVG_NS)
        assert len(holes) == 2
        assert holes[0].get("cx") == "7.0"

        labels = root.findall(".//svg:g[@id='labels']/svg:text", SVG_NS)
        assert [t.text for t in labels] == ["L", "R"]
        assert labels[0].get("transform").startswith("rotate(90.00")

    def test_unlabelled_spines_skipped(self):
        from treedangler.export.svg_export import emit_pieces_svg
        from treedangler.models import LineSegment, Point

        spine = LineSegment(id="s", start=Point(x=0, y=0), end=Point(x=10, y=0), label="  ")
        root = ET.fromstring(emit_pieces_svg([], [], [spine], 50, 50))

        assert root.findall(".//svg:text", SVG_NS) == []


class TestSaveArtifacts:
    """Tests for artifact writers."""

    def test_debug_writer_layout(self, temp_dir, block_bitmap):
        from treedangler.io.save_artifacts import DebugArtifactWriter, bitmap_to_image

        writer = DebugArtifactWriter(temp_dir)
        writer.save_image(bitmap_to_image(block_bitmap), "stage2", "raw.png")
        writer.save_json({"a": 1}, "stage2", "metrics.json")

        assert os.path.exists(os.path.join(temp_dir, "debug", "stage2", "raw.png"))
        assert os.path.exists(os.path.join(temp_dir, "debug", "stage2", "metrics.json"))

    def test_disabled_writer_writes_nothing(self, temp_dir, block_bitmap):
        from treedangler.io.save_artifacts import DebugArtifactWriter, bitmap_to_image

        writer = DebugArtifactWriter(temp_dir, enabled=False)
        writer.save_image(bitmap_to_image(block_bitmap), "stage2", "raw.png")

        assert not os.path.exists(os.path.join(temp_dir, "debug"))

    def test_save_json_pydantic(self, temp_dir):
        import json
        from treedangler.io.save_artifacts import save_json
        from treedangler.models import GenerateResponse

        path = os.path.join(temp_dir, "out", "response.json")
        save_json(GenerateResponse.failure(3, "nope"), path)

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert data["id"] == 3
        assert data["status"] == "error"

    def test_distance_preview(self, block_bitmap):
        from treedangler.io.save_artifacts import distance_field_preview
        from treedangler.raster.distance_field import transform

        preview = distance_field_preview(transform(block_bitmap))

        assert preview.dtype == np.uint8
        assert preview.shape == (40, 40)
        assert preview.max() == 255
        assert preview[0, 0] == 0

    def test_polygon_overlay_is_rgb(self, block_bitmap):
        from treedangler.io.save_artifacts import bitmap_to_image, draw_polygons_overlay
        from treedangler.models import Polygon

        square = Polygon.from_coords("p", [(5, 5), (35, 5), (35, 35), (5, 35)])
        overlay = draw_polygons_overlay(bitmap_to_image(block_bitmap), [square], color=(255, 0, 0))

        assert overlay.shape == (40, 40, 3)
        assert overlay[5, 20].tolist() == [255, 0, 0]
