"""Tests for scenes and the generation pipeline."""

import json
import os

import pytest


class TestScene:
    """Tests for scene files."""

    def test_save_and_load(self, temp_dir, square_scene):
        from treedangler.io.scene import load_scene, save_scene

        path = os.path.join(temp_dir, "scene.json")
        save_scene(square_scene, path)

        assert load_scene(path) == square_scene

    def test_missing_file(self, temp_dir):
        from treedangler.exceptions import SceneLoadError
        from treedangler.io.scene import load_scene

        with pytest.raises(SceneLoadError):
            load_scene(os.path.join(temp_dir, "nope.json"))

    def test_invalid_scene(self, temp_dir):
        from treedangler.exceptions import SceneLoadError
        from treedangler.io.scene import load_scene

        path = os.path.join(temp_dir, "bad.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"mask": {"id": "m", "points": [{"x": 0, "y": 0}]}}, f)

        with pytest.raises(SceneLoadError):
            load_scene(path)

    def test_edit_stream_skips_blank_lines(self, temp_dir, square_scene):
        from treedangler.io.scene import load_edit_stream

        path = os.path.join(temp_dir, "edits.jsonl")
        line = square_scene.model_dump_json()
        with open(path, "w", encoding="utf-8") as f:
            f.write(line + "\n\n" + line + "\n")

        assert len(load_edit_stream(path)) == 2

    def test_edit_stream_reports_line(self, temp_dir, square_scene):
        from treedangler.exceptions import SceneLoadError
        from treedangler.io.scene import load_edit_stream

        path = os.path.join(temp_dir, "edits.jsonl")
        with open(path, "w", encoding="utf-8") as f:
            f.write(square_scene.model_dump_json() + "\n{not json}\n")

        with pytest.raises(SceneLoadError, match="line 2"):
            load_edit_stream(path)

    def test_shape_defaults_from_config(self, square_scene, default_config):
        from treedangler.io.scene import shape_for_scene

        scene = square_scene.model_copy(update={"shape": None})
        shape = shape_for_scene(scene, default_config)

        assert (shape.gap, shape.round, shape.noise_amplitude) == (12.0, 10.0, 5.0)

    def test_scene_to_request(self, square_scene, default_config):
        from treedangler.io.scene import scene_to_request

        request = scene_to_request(square_scene, 9, default_config)

        assert request.id == 9
        assert request.config == square_scene.shape
        assert [s.id for s in request.spines] == ["left", "right"]


class TestGeneratePieces:
    """Tests for the stage chain."""

    def test_two_spines_two_pieces(self, make_request, small_config):
        from treedangler.pipeline import generate_pieces

        result = generate_pieces(make_request(1), small_config)

        assert len(result.ownership) == 2
        assert [p.id for p in result.pieces] == ["piece-1-0", "piece-1-1"]
        left, right = result.pieces
        assert left.bbox()[2] < 60 < right.bbox()[0]

    def test_no_spines_no_pieces(self, square_mask, small_config):
        from treedangler.models import GenerateRequest
        from treedangler.pipeline import generate_pieces

        result = generate_pieces(GenerateRequest(id=1, mask=square_mask), small_config)

        assert result.ownership == []
        assert result.pieces == []
        assert result.raw_bitmap is None

    def test_deterministic(self, make_request, small_config):
        from treedangler.pipeline import generate_pieces

        a = generate_pieces(make_request(1, noise_amplitude=3, noise_seed=4), small_config)
        b = generate_pieces(make_request(2, noise_amplitude=3, noise_seed=4), small_config)

        assert a.final_mask.data.tobytes() == b.final_mask.data.tobytes()
        assert [p.to_coords() for p in a.pieces] == [p.to_coords() for p in b.pieces]

    def test_debug_artifacts(self, temp_dir, make_request, small_config):
        from treedangler.io.save_artifacts import DebugArtifactWriter
        from treedangler.pipeline import generate_pieces

        generate_pieces(make_request(1), small_config, DebugArtifactWriter(temp_dir))

        debug_dir = os.path.join(temp_dir, "debug")
        for stage, name in [
            ("stage2", "01_partition_raster.png"),
            ("stage2", "02_ownership_overlay.png"),
            ("stage3", "01_inward_distance.png"),
            ("stage3", "02_kept_mask.png"),
            ("stage3", "stage3_metrics.json"),
            ("stage4", "01_pieces_overlay.png"),
            ("stage4", "stage4_metrics.json"),
        ]:
            assert os.path.exists(os.path.join(debug_dir, stage, name)), f"Missing {stage}/{name}"

        with open(os.path.join(debug_dir, "stage4", "stage4_metrics.json"), "r", encoding="utf-8") as f:
            assert json.load(f)["num_pieces"] == 2


class TestRunGeneration:
    """Tests for response packaging."""

    def test_success_response(self, make_request, small_config):
        from treedangler.pipeline import run_generation

        response = run_generation(make_request(5), small_config)

        assert response.ok
        assert response.id == 5
        assert len(response.piece_polygons) == 2
        assert response.renderable_markup.startswith("<svg")

    def test_raster_unavailable_is_error_response(self, make_request, small_config):
        from treedangler.pipeline import run_generation

        small_config.raster.width = 0
        response = run_generation(make_request(6), small_config)

        assert not response.ok
        assert response.id == 6
        assert response.error.startswith("RasterUnavailableError")

    def test_execute_request_dict_round_trip(self, make_request, small_config):
        from treedangler.models import GenerateResponse
        from treedangler.pipeline import execute_request

        payload = make_request(8).model_dump(mode="json")
        raw = execute_request(payload, small_config)

        assert isinstance(raw, dict)
        response = GenerateResponse.model_validate(raw)
        assert response.ok and response.id == 8

    def test_execute_request_invalid_payload(self, small_config):
        from treedangler.pipeline import execute_request

        raw = execute_request({"id": 4, "mask": {"id": "m", "points": []}}, small_config)

        assert raw["id"] == 4
        assert raw["status"] == "error"
        assert raw["error"].startswith("ValidationError")

    def test_execute_request_without_id(self, small_config):
        from treedangler.pipeline import execute_request

        raw = execute_request({"mask": None}, small_config)

        assert raw["id"] == -1
        assert raw["status"] == "error"

    def test_preview_on_request(self, make_request, small_config):
        from treedangler.io.save_artifacts import decode_png_base64
        from treedangler.pipeline import run_generation

        request = make_request(7).model_copy(update={"include_preview": True})
        response = run_generation(request, small_config)

        preview = response.preview
        assert (preview.width, preview.height) == (120, 120)
        assert preview.max_distance > 0

        kept = decode_png_base64(preview.kept_png)
        assert kept.shape == (120, 120)
        assert kept[60, 35] == 255
        assert kept[0, 0] == 0
        assert decode_png_base64(preview.distance_png).max() == 255

    def test_no_preview_by_default(self, make_request, small_config):
        from treedangler.pipeline import run_generation

        assert run_generation(make_request(7), small_config).preview is None

    def test_preview_survives_dict_boundary(self, make_request, small_config):
        from treedangler.models import GenerateResponse
        from treedangler.pipeline import execute_request

        payload = make_request(8).model_copy(update={"include_preview": True}).model_dump(mode="json")
        response = GenerateResponse.model_validate(execute_request(payload, small_config))

        assert response.preview is not None
        assert response.preview.width == 120
