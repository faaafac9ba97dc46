#!/usr/bin/env python3
"""Render a field of random spheres to a PNG file.

This script builds the showcase scene (random non-overlapping spheres on a
ground plane, plus an optional floating mirror cube), accumulates the
requested number of frames and saves the tone-mapped result.

Usage:
    python -m examples.render_spheres [options]

Options:
    --width WIDTH           Image width in pixels (default: 960)
    --height HEIGHT         Image height in pixels (default: 540)
    --frames FRAMES         Number of accumulated frames (default: 64)
    --seed SEED             Sphere placement seed (default: 0)
    --spheres COUNT         Number of sphere candidates (default: 100)
    --radius MIN MAX        Sphere radius range (default: 3 8)
    --placement-radius R    Radius of the placement disk (default: 100)
    --config FILE           JSON scene config (overrides sphere options)
    --skybox FILE           Equirectangular sky image (default: gradient)
    --no-cube               Do not add the mirror cube
    --output OUTPUT         Output file path (default: spheres.png)
    --batch-size SIZE       Frames per progress update (default: 8)
    --quiet                 Suppress progress output

Example:
    python -m examples.render_spheres --width 640 --height 360 --frames 32 --seed 7
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a field of random spheres.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=960, help="Image width in pixels")
    parser.add_argument("--height", type=int, default=540, help="Image height in pixels")
    parser.add_argument("--frames", type=int, default=64, help="Number of accumulated frames")
    parser.add_argument("--seed", type=int, default=0, help="Sphere placement seed")
    parser.add_argument("--spheres", type=int, default=100, help="Number of sphere candidates")
    parser.add_argument(
        "--radius",
        type=float,
        nargs=2,
        metavar=("MIN", "MAX"),
        default=(3.0, 8.0),
        help="Sphere radius range",
    )
    parser.add_argument(
        "--placement-radius", type=float, default=100.0, help="Radius of the placement disk"
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON scene config file")
    parser.add_argument("--skybox", type=Path, default=None, help="Equirectangular sky image")
    parser.add_argument("--no-cube", action="store_true", help="Do not add the mirror cube")
    parser.add_argument("--output", type=str, default="spheres.png", help="Output file path")
    parser.add_argument("--batch-size", type=int, default=8, help="Frames per progress update")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args(argv)


def render_spheres(args: argparse.Namespace) -> Path:
    """Render the showcase scene described by the arguments.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports so Taichi is initialized first
    from src.pathtracer.core.progressive import FrameInputs, ProgressiveRenderer
    from src.pathtracer.preview.export import save_png
    from src.pathtracer.scene.config import SceneConfig
    from src.pathtracer.scene.showcase import ShowcaseParams, create_showcase_scene
    from src.pathtracer.scene.skybox import Skybox

    quiet = args.quiet

    if args.config is not None:
        config = SceneConfig.from_json_file(args.config)
    else:
        config = SceneConfig(
            sphere_count=args.spheres,
            radius_range=tuple(args.radius),
            placement_radius=args.placement_radius,
            seed=args.seed,
        )

    params = ShowcaseParams(cube_size=0.0) if args.no_cube else ShowcaseParams()
    if not quiet:
        print(f"Creating scene ({args.width}x{args.height}, seed {config.seed})...")

    scene, camera, light = create_showcase_scene(
        config, params, aspect_ratio=args.width / args.height
    )
    skybox = Skybox.from_file(args.skybox) if args.skybox is not None else None
    inputs = FrameInputs.from_camera(camera, light, args.width, args.height)

    if not quiet:
        print(f"Placed {scene.sphere_count} spheres, {scene.renderable_count} meshes")
        print(f"Rendering {args.frames} frames...")

    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            progress_pct = (current / target) * 100 if target > 0 else 0
            frames_per_sec = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Progress: {current}/{target} frames "
                f"({progress_pct:.1f}%) - {frames_per_sec:.1f} fps",
                end="",
                flush=True,
            )

    output_file = Path(args.output)
    try:
        with ProgressiveRenderer(
            scene, args.width, args.height, skybox=skybox, seed=config.seed
        ) as renderer:
            renderer.render(
                args.frames,
                inputs=inputs,
                batch_size=args.batch_size,
                callback=progress_callback,
            )
            if not quiet:
                print()
            save_png(renderer, output_file, tone_map="aces")
    finally:
        if skybox is not None:
            skybox.release()
        scene.release()

    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")

    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Use GPU if available, fall back to CPU
    try:
        ti.init(arch=ti.gpu)
        if not args.quiet:
            print("Using GPU backend")
    except Exception:
        ti.init(arch=ti.cpu)
        if not args.quiet:
            print("Using CPU backend")

    try:
        render_spheres(args)
        return 0
    except (ValueError, RuntimeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
