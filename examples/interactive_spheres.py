#!/usr/bin/env python3
"""Interactive sphere field renderer with orbit camera and sun controls.

This script opens a GGUI window rendering the showcase scene progressively.
The image converges while nothing moves and restarts as soon as the camera,
the sun or the sphere layout changes.

Usage:
    python -m examples.interactive_spheres [--seed SEED] [--skybox FILE]

Controls:
    - W/S: Orbit up/down
    - A/D: Orbit left/right
    - Q/E: Zoom in/out
    - Sun sliders: Pitch, yaw and intensity of the directional light
    - New spheres: Regenerate the layout with the next seed
    - Restart accumulation: Discard accumulated samples
    - Export PNG: Save current render with timestamp
"""

from __future__ import annotations

import argparse
import logging
import platform
import sys
from pathlib import Path

# Ensure the project root is in the Python path for direct execution
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import taichi as ti  # noqa: E402

WINDOW_WIDTH = 960
WINDOW_HEIGHT = 540


def initialize_taichi() -> str:
    """Initialize Taichi with the best available backend.

    On macOS, prefers Metal. Falls back to CPU if GPU is unavailable.

    Returns:
        Name of the backend being used.
    """
    if platform.system() == "Darwin":
        try:
            ti.init(arch=ti.metal)
            return "Metal (GPU)"
        except Exception:
            pass

    try:
        ti.init(arch=ti.gpu)
        return "GPU"
    except Exception:
        pass

    ti.init(arch=ti.cpu)
    return "CPU"


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the interactive renderer.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = argparse.ArgumentParser(description="Interactive sphere field renderer.")
    parser.add_argument("--seed", type=int, default=0, help="Sphere placement seed")
    parser.add_argument("--skybox", type=Path, default=None, help="Equirectangular sky image")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Initialize Taichi first (before importing modules that declare fields)
    backend = initialize_taichi()
    print(f"Taichi backend: {backend}")

    from src.pathtracer.preview.interactive import InteractivePreview, OrbitCamera
    from src.pathtracer.scene.config import SceneConfig
    from src.pathtracer.scene.showcase import ShowcaseParams, create_showcase_scene
    from src.pathtracer.scene.skybox import Skybox

    if not InteractivePreview.is_display_available():
        print("Error: No display available. Cannot run interactive preview.")
        print("This script requires a graphical display environment.")
        return 1

    params = ShowcaseParams()
    scene, camera, _ = create_showcase_scene(
        SceneConfig(seed=args.seed), params, aspect_ratio=WINDOW_WIDTH / WINDOW_HEIGHT
    )
    skybox = Skybox.from_file(args.skybox) if args.skybox is not None else None

    print(f"Creating interactive preview window ({WINDOW_WIDTH}x{WINDOW_HEIGHT})...")
    preview = InteractivePreview(WINDOW_WIDTH, WINDOW_HEIGHT)

    print("Starting interactive rendering...")
    print("  - WASD to orbit, Q/E to zoom")
    print("  - Adjust sliders to move the sun")
    print("  - Close window to exit")
    print()

    try:
        preview.run_interactive(
            scene,
            OrbitCamera.from_camera(camera),
            light_pitch=params.light_pitch,
            light_yaw=params.light_yaw,
            light_intensity=params.light_intensity,
            skybox=skybox,
            seed=args.seed,
        )
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        preview.close()
        if skybox is not None:
            skybox.release()
        scene.release()
        print("Preview window closed.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
