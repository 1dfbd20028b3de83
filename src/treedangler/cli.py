"""
Command-line interface for treedangler.

Provides commands for generating pieces from a scene, replaying an edit
stream through the coalescing scheduler and writing a default config.
"""

import argparse
import asyncio
import os
import sys

from treedangler.config import load_config, save_default_config
from treedangler.models import ShapeConfig
from treedangler.tracer import configure_tracer, get_tracer


def _add_trace_arguments(parser):
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    parser.add_argument(
        "--trace-level",
        default=None,
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level (default: tracing.level from the config)",
    )
    parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs (default: tracing.file_path from the config)",
    )
    parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )


def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="TreeDangler: grow rounded cut pieces around spine segments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Generate pieces for a scene")
    run_parser.add_argument(
        "--scene", "-s",
        required=True,
        help="Scene JSON file",
    )
    run_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output directory",
    )
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    run_parser.add_argument("--gap", type=float, default=None, help="Override shape gap")
    run_parser.add_argument("--round", type=float, default=None, help="Override shape rounding")
    run_parser.add_argument("--noise", type=float, default=None, help="Override noise amplitude")
    run_parser.add_argument("--seed", type=int, default=None, help="Override noise seed")
    run_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug artifact generation",
    )
    run_parser.add_argument(
        "--preview",
        action="store_true",
        help="Include the rasterized preview and write it as PNG images",
    )
    _add_trace_arguments(run_parser)

    # Replay command
    replay_parser = subparsers.add_parser("replay", help="Replay an edit stream through the scheduler")
    replay_parser.add_argument(
        "--edits", "-e",
        required=True,
        help="JSON Lines file with one scene per edit",
    )
    replay_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output directory",
    )
    replay_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    replay_parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="Seconds to wait between edits",
    )
    _add_trace_arguments(replay_parser)

    # Init config command
    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="treedangler_config.yaml",
        help="Output path for config file",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return handle_run(args)
    elif args.command == "replay":
        return handle_replay(args)
    elif args.command == "init-config":
        return handle_init_config(args)

    return 0


def _configure_tracing(args, settings):
    """Apply the config's tracing section; command-line flags take precedence."""
    configure_tracer(
        enabled=args.trace or settings.enabled,
        level=args.trace_level or settings.level,
        file_path=args.trace_file or settings.file_path,
        json_output=args.trace_json or settings.json_output,
    )


def _shape_overrides(args, base):
    overrides = {
        "gap": args.gap,
        "round": args.round,
        "noise_amplitude": args.noise,
        "noise_seed": args.seed,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if not overrides:
        return base
    return ShapeConfig.model_validate({**base.model_dump(), **overrides})


def _write_outputs(out_dir, response):
    from treedangler.io.save_artifacts import (
        decode_png_base64, ensure_dir, save_image, save_json, save_svg,
    )

    ensure_dir(out_dir)
    save_json(response, os.path.join(out_dir, "pieces.json"))
    if not response.ok:
        return

    save_svg(response.renderable_markup, os.path.join(out_dir, "pieces.svg"))
    if response.preview is not None:
        save_image(decode_png_base64(response.preview.kept_png),
                   os.path.join(out_dir, "preview_kept.png"))
        save_image(decode_png_base64(response.preview.distance_png),
                   os.path.join(out_dir, "preview_distance.png"))


def handle_run(args):
    """Handle the run command."""
    tracer = get_tracer()

    try:
        from treedangler.io.save_artifacts import DebugArtifactWriter
        from treedangler.io.scene import load_scene, scene_to_request, shape_for_scene
        from treedangler.pipeline import run_generation

        config = load_config(args.config)
        _configure_tracing(args, config.tracing)
        if args.debug:
            config.debug.enabled = True

        scene = load_scene(args.scene)
        shape = _shape_overrides(args, shape_for_scene(scene, config))
        request = scene_to_request(scene, 1, config, shape=shape, include_preview=args.preview)

        debug_writer = None
        if config.debug.enabled:
            debug_writer = DebugArtifactWriter(args.out, max_edge=config.debug.max_edge_scale)

        with tracer.span("cli_run", module="cli"):
            response = run_generation(request, config, debug_writer)

        _write_outputs(args.out, response)

        if not response.ok:
            print(f"\nGeneration failed: {response.error}", file=sys.stderr)
            return 1

        print("\nGeneration completed successfully.")
        print(f"  Pieces: {len(response.piece_polygons)}")
        print(f"\nOutputs saved to: {args.out}/")
        print("  - pieces.svg")
        print("  - pieces.json")

        return 0

    except Exception as e:
        tracer.event(f"Run failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1

    finally:
        tracer.config.close()


async def replay_edits(scenes, config, interval=0.0):
    """
    Submit scenes to a GenerationClient as rapid edits.

    Returns the client once every run has completed.
    """
    from treedangler.scheduler import GenerationClient

    client = GenerationClient(config)
    try:
        for scene in scenes:
            client.submit_scene(scene)
            if interval > 0:
                await asyncio.sleep(interval)
        await client.wait_idle()
    finally:
        client.close()
    return client


def handle_replay(args):
    """Handle the replay command."""
    tracer = get_tracer()

    try:
        from treedangler.io.save_artifacts import save_json
        from treedangler.io.scene import load_edit_stream

        config = load_config(args.config)
        _configure_tracing(args, config.tracing)
        scenes = load_edit_stream(args.edits)
        if not scenes:
            print("\nNo edits to replay.", file=sys.stderr)
            return 1

        with tracer.span("cli_replay", module="cli"):
            client = asyncio.run(replay_edits(scenes, config, args.interval))

        response = client.latest_response
        _write_outputs(args.out, response)
        save_json({
            "submitted": client.submitted,
            "runs_started": client.scheduler.runs_started,
            "applied_id": client.applied_id,
            "generation_unavailable": client.generation_unavailable,
        }, os.path.join(args.out, "replay_summary.json"))

        print("\nReplay completed.")
        print(f"  Edits submitted: {client.submitted}")
        print(f"  Runs started: {client.scheduler.runs_started}")
        print(f"  Applied request: {client.applied_id}")
        print(f"\nOutputs saved to: {args.out}/")

        return 1 if client.generation_unavailable else 0

    except Exception as e:
        tracer.event(f"Replay failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1

    finally:
        tracer.config.close()


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
