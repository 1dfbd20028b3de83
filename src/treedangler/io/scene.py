"""
Scene files for the command line.

A scene is the editable state a generation request is built from: the mask,
the spines, the connectors and optional shape styling. Scenes are stored as
JSON; edit streams are JSON Lines with one scene per line.
"""

import json
import os
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from treedangler.exceptions import SceneLoadError
from treedangler.models import GenerateRequest, LineSegment, MaskPolygon, ShapeConfig
from treedangler.tracer import get_tracer


class Scene(BaseModel):
    """Editable scene state."""
    mask: MaskPolygon
    spines: List[LineSegment] = Field(default_factory=list)
    connectors: List[LineSegment] = Field(default_factory=list)
    shape: Optional[ShapeConfig] = None
    spacing: Optional[float] = Field(default=None, gt=0.0)

    model_config = ConfigDict(extra="forbid")


def load_scene(path):
    """
    Load a scene from a JSON file.

    Raises SceneLoadError if the file is missing or invalid.
    """
    tracer = get_tracer()

    if not os.path.exists(path):
        raise SceneLoadError(path, "file not found")

    with open(path, "r", encoding="utf-8") as f:
        text = f.read()

    try:
        scene = Scene.model_validate_json(text)
    except ValidationError as e:
        raise SceneLoadError(path, str(e)) from e

    tracer.event(f"Loaded scene: {len(scene.spines)} spines, {len(scene.connectors)} connectors")
    return scene


def load_edit_stream(path):
    """
    Load a sequence of scenes from a JSON Lines file.

    Blank lines are skipped.
    """
    if not os.path.exists(path):
        raise SceneLoadError(path, "file not found")

    scenes = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                scenes.append(Scene.model_validate_json(line))
            except ValidationError as e:
                raise SceneLoadError(path, f"line {line_number}: {e}") from e
    return scenes


def save_scene(scene, path):
    """Write a scene as JSON."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(scene.model_dump(mode="json", exclude_none=True), f, indent=2)


def shape_for_scene(scene, config):
    """The scene's own shape styling, or the configured defaults."""
    if scene.shape is not None:
        return scene.shape
    defaults = config.shape
    return ShapeConfig(
        gap=defaults.gap,
        round=defaults.round,
        noise_amplitude=defaults.noise_amplitude,
        noise_seed=defaults.noise_seed,
    )


def scene_to_request(scene, request_id, config, shape=None, include_preview=False):
    """Build a generation request from a scene."""
    return GenerateRequest(
        id=request_id,
        mask=scene.mask,
        spines=list(scene.spines),
        connectors=list(scene.connectors),
        config=shape or shape_for_scene(scene, config),
        spacing=scene.spacing,
        include_preview=include_preview,
    )
