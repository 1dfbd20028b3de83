"""
Configuration management for treedangler.

Loads YAML configuration with sensible defaults for all pipeline stages.
"""

import os
from dataclasses import asdict, dataclass, field

import yaml

from treedangler.exceptions import ConfigError


@dataclass
class TessellationConfig:
    """Configuration for spine sampling and the Voronoi partition."""
    spacing: float = 20.0


@dataclass
class RasterConfig:
    """Configuration for the partition raster."""
    width: int = 600
    height: int = 600
    stroke_width: float = 2.0  # grout line width in pixels


@dataclass
class ShapeDefaults:
    """Shape styling used when a scene carries none of its own."""
    gap: float = 12.0
    round: float = 10.0
    noise_amplitude: float = 5.0
    noise_seed: int = 0


@dataclass
class MorphologyConfig:
    """Configuration for the shrink/grow stage."""
    noise_frequency: float = 0.01


@dataclass
class TraceConfig:
    """Configuration for bitmap tracing."""
    path_omit: int = 8  # contours with fewer boundary pixels are dropped
    line_tolerance: float = 0.5
    signature_digits: int = 3


@dataclass
class SchedulerConfig:
    """Configuration for the background generation scheduler."""
    quiescence_delay: float = 0.02  # seconds
    use_processes: bool = False
    max_workers: int = 1


@dataclass
class ExportConfig:
    """Configuration for SVG export."""
    px_per_mm: float = 5.0
    hole_radius_mm: float = 1.0
    min_point_gap: float = 0.5
    label_font_px: float = 8.0
    primary_stroke: str = "#4DE2FF"
    secondary_stroke: str = "#7E6CFF"


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: str = None
    json_output: bool = False


@dataclass
class DebugConfig:
    """Configuration for debug artifact generation."""
    enabled: bool = False
    max_edge_scale: int = 1600


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""
    tessellation: TessellationConfig = field(default_factory=TessellationConfig)
    raster: RasterConfig = field(default_factory=RasterConfig)
    shape: ShapeDefaults = field(default_factory=ShapeDefaults)
    morphology: MorphologyConfig = field(default_factory=MorphologyConfig)
    trace: TraceConfig = field(default_factory=TraceConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


SECTIONS = (
    "tessellation",
    "raster",
    "shape",
    "morphology",
    "trace",
    "scheduler",
    "export",
    "tracing",
    "debug",
)


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Falls back to defaults for any missing values.
    """
    config = PipelineConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            try:
                yaml_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(config_path, str(e)) from e

        if not isinstance(yaml_data, dict):
            raise ConfigError(config_path, "top level must be a mapping")

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into config dataclass."""
    for section_name in SECTIONS:
        if section_name not in yaml_data:
            continue
        section = getattr(config, section_name)
        for key, value in (yaml_data[section_name] or {}).items():
            if hasattr(section, key):
                setattr(section, key, value)

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    config = PipelineConfig()

    yaml_data = asdict(config)
    # file_path is a runtime concern
    yaml_data["tracing"].pop("file_path")

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
