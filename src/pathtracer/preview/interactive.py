"""Interactive preview window using Taichi GGUI.

The window plays the part of the engine around the renderer: every frame it
turns keyboard and slider input into FrameInputs (an orbit camera and a
directional light), calls ``ProgressiveRenderer.render_frame`` and shows the
tone-mapped converged image. Moving the camera or the light restarts
accumulation; holding still lets the image converge.

Features:
    - Real-time progressive rendering display
    - Orbit camera on the keyboard (WASD to orbit, Q/E to zoom)
    - Sun direction and intensity sliders
    - New random sphere layout on demand
    - PNG export with timestamp

Example:
    >>> from src.pathtracer.preview.interactive import InteractivePreview, OrbitCamera
    >>> from src.pathtracer.scene.showcase import create_showcase_scene
    >>>
    >>> scene, camera, light = create_showcase_scene(aspect_ratio=16 / 9)
    >>> preview = InteractivePreview(960, 540)
    >>> preview.run_interactive(scene, OrbitCamera.from_camera(camera))
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

import numpy as np
import taichi as ti

from src.pathtracer.camera.pinhole import PinholeCamera
from src.pathtracer.core.integrator import DirectionalLight
from src.pathtracer.preview.display import ToneMapMethod, process_image_for_display

if TYPE_CHECKING:
    from collections.abc import Collection

    import numpy.typing as npt

    from src.pathtracer.core.progressive import FrameInputs, ProgressiveRenderer
    from src.pathtracer.scene.manager import SceneManager
    from src.pathtracer.scene.skybox import Skybox

logger = logging.getLogger(__name__)

# Orbit speeds per frame while a key is held
ORBIT_STEP_DEGREES = 2.0
ZOOM_FACTOR = 1.03

# Keep the camera above the ground and off the pole
MIN_PITCH = 2.0
MAX_PITCH = 89.0
MIN_DISTANCE = 1.0


@dataclass(frozen=True)
class OrbitCamera:
    """A camera orbiting a target point.

    Attributes:
        target: The point the camera looks at.
        distance: Distance from the target.
        yaw: Heading around the vertical axis in degrees. 0 looks toward -z.
        pitch: Elevation above the target in degrees.
        vfov: Vertical field of view in degrees.
    """

    target: tuple[float, float, float] = (0.0, 0.0, 0.0)
    distance: float = 170.0
    yaw: float = 0.0
    pitch: float = 20.0
    vfov: float = 50.0

    @classmethod
    def from_camera(cls, camera: PinholeCamera) -> OrbitCamera:
        """Build an orbit around a pinhole camera's look-at point."""
        offset = np.asarray(camera.lookfrom, dtype=np.float64) - np.asarray(camera.lookat)
        distance = float(np.linalg.norm(offset))
        horizontal = math.hypot(offset[0], offset[2])
        return cls(
            target=tuple(float(c) for c in camera.lookat),
            distance=distance,
            yaw=math.degrees(math.atan2(-offset[0], offset[2])),
            pitch=math.degrees(math.atan2(offset[1], horizontal)),
            vfov=camera.vfov,
        )

    def to_camera(self, aspect_ratio: float) -> PinholeCamera:
        """Convert to a pinhole camera description."""
        p = math.radians(self.pitch)
        y = math.radians(self.yaw)
        tx, ty, tz = self.target
        lookfrom = (
            tx - self.distance * math.cos(p) * math.sin(y),
            ty + self.distance * math.sin(p),
            tz + self.distance * math.cos(p) * math.cos(y),
        )
        return PinholeCamera(
            lookfrom=lookfrom,
            lookat=self.target,
            vfov=self.vfov,
            aspect_ratio=aspect_ratio,
            far=max(1000.0, 10.0 * self.distance),
        )

    def apply_keys(self, pressed: Collection[str]) -> OrbitCamera:
        """Return the orbit after one frame of held keys.

        Args:
            pressed: Lower-case names of held keys ("w", "a", "s", "d", "q",
                "e").
        """
        yaw, pitch, distance = self.yaw, self.pitch, self.distance
        if "a" in pressed:
            yaw -= ORBIT_STEP_DEGREES
        if "d" in pressed:
            yaw += ORBIT_STEP_DEGREES
        if "w" in pressed:
            pitch += ORBIT_STEP_DEGREES
        if "s" in pressed:
            pitch -= ORBIT_STEP_DEGREES
        if "q" in pressed:
            distance /= ZOOM_FACTOR
        if "e" in pressed:
            distance *= ZOOM_FACTOR

        return replace(
            self,
            yaw=yaw % 360.0,
            pitch=min(max(pitch, MIN_PITCH), MAX_PITCH),
            distance=max(distance, MIN_DISTANCE),
        )


class InteractivePreview:
    """Interactive preview window using Taichi GGUI.

    Attributes:
        width: Window width in pixels.
        height: Window height in pixels.
        display_image: Taichi field storing the display image (RGB float).
        tone_map: Tone mapping applied before display.
    """

    def __init__(
        self,
        width: int,
        height: int,
        *,
        title: str = "Progressive Path Tracer",
        tone_map: ToneMapMethod = "aces",
    ) -> None:
        """Create the display buffer. The window opens on first use.

        Args:
            width: Window width in pixels.
            height: Window height in pixels.
            title: Window title.
            tone_map: Tone mapping applied before display.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Window size must be positive, got {width}x{height}")

        self.width = width
        self.height = height
        self.tone_map: ToneMapMethod = tone_map
        self._title = title

        # Defer window creation to support headless checks
        self._window: Any = None
        self._canvas: Any = None
        self._renderer: ProgressiveRenderer | None = None

        self.display_image = ti.Vector.field(3, dtype=ti.f32, shape=(width, height))

    def _initialize_window(self) -> None:
        """Create the GGUI window and canvas."""
        if self._window is not None:
            return
        self._window = ti.ui.Window(name=self._title, res=(self.width, self.height), vsync=True)
        self._canvas = self._window.get_canvas()

    @property
    def window(self) -> Any:
        """Get the Taichi GGUI window, initializing if needed."""
        self._initialize_window()
        return self._window

    @property
    def canvas(self) -> Any:
        """Get the canvas for rendering."""
        self._initialize_window()
        return self._canvas

    @property
    def renderer(self) -> ProgressiveRenderer | None:
        """The renderer driven by run_interactive(), if any."""
        return self._renderer

    def update_image(self, image: npt.NDArray[np.float32]) -> None:
        """Update the display image from a (height, width, 3) array in [0, 1].

        Raises:
            ValueError: If image shape doesn't match (height, width, 3).
        """
        expected_shape = (self.height, self.width, 3)
        if image.shape != expected_shape:
            raise ValueError(f"Image shape {image.shape} doesn't match expected {expected_shape}")

        # NumPy rows run top-down, the field's y axis bottom-up
        image_transposed = np.ascontiguousarray(
            np.transpose(np.flipud(image), (1, 0, 2)), dtype=np.float32
        )
        self.display_image.from_numpy(image_transposed)

    def is_running(self) -> bool:
        """Check if the window is still open."""
        return self.window.running

    def show_frame(self) -> None:
        """Present the current display image."""
        self.canvas.set_image(self.display_image)
        self.window.show()

    def close(self) -> None:
        """Close the preview window."""
        if self._window is not None:
            self._window.running = False

    @staticmethod
    def is_display_available() -> bool:
        """Check if a display is available for GUI rendering."""
        display = os.environ.get("DISPLAY")
        wayland = os.environ.get("WAYLAND_DISPLAY")

        if os.name == "nt":
            return True
        if os.uname().sysname == "Darwin":
            # SSH sessions without X forwarding have no display
            return not (os.environ.get("SSH_CONNECTION") and not display)
        return bool(display or wayland)

    # =========================================================================
    # Interactive Rendering
    # =========================================================================

    def _pressed_keys(self) -> set[str]:
        return {key for key in ("w", "a", "s", "d", "q", "e") if self.window.is_pressed(key)}

    def _draw_gui_panel(self, light: DirectionalLight, pitch: float, yaw: float) -> tuple:
        """Draw the light and scene controls.

        Returns:
            A tuple of (light, pitch, yaw, reseed, reset, export).
        """
        with self.window.GUI.sub_window("Sun", 0.02, 0.02, 0.28, 0.2) as gui:
            new_pitch = gui.slider_float("Pitch", pitch, minimum=5.0, maximum=90.0)
            new_yaw = gui.slider_float("Yaw", yaw, minimum=-180.0, maximum=180.0)
            new_intensity = gui.slider_float(
                "Intensity", light.intensity, minimum=0.0, maximum=4.0
            )
        with self.window.GUI.sub_window("Scene", 0.02, 0.24, 0.28, 0.16) as gui:
            gui.text(f"{self._renderer.sample_count if self._renderer else 0} SPP")
            reseed = gui.button("New spheres")
            reset = gui.button("Restart accumulation")
            export = gui.button("Export PNG")

        if (new_pitch, new_yaw, new_intensity) != (pitch, yaw, light.intensity):
            light = DirectionalLight.from_euler(new_pitch, new_yaw, new_intensity)
        return light, new_pitch, new_yaw, reseed, reset, export

    def _frame_inputs(self, orbit: OrbitCamera, light: DirectionalLight) -> FrameInputs:
        from src.pathtracer.core.progressive import FrameInputs

        camera = orbit.to_camera(self.width / self.height)
        return FrameInputs.from_camera(camera, light, self.width, self.height)

    def run_interactive(
        self,
        scene: SceneManager,
        orbit: OrbitCamera,
        light_pitch: float = 50.0,
        light_yaw: float = -30.0,
        light_intensity: float = 1.0,
        *,
        skybox: Skybox | None = None,
        seed: int = 0,
    ) -> None:
        """Run the interactive render loop until the window is closed.

        Args:
            scene: The scene to render.
            orbit: Initial camera orbit.
            light_pitch: Initial sun elevation in degrees.
            light_yaw: Initial sun heading in degrees.
            light_intensity: Initial sun brightness.
            skybox: Environment map. Defaults to a sky gradient.
            seed: Seed of the sub-pixel jitter sequence.
        """
        from src.pathtracer.core.progressive import ProgressiveRenderer

        light = DirectionalLight.from_euler(light_pitch, light_yaw, light_intensity)
        pitch, yaw = light_pitch, light_yaw
        self._initialize_window()

        with ProgressiveRenderer(
            scene, self.width, self.height, skybox=skybox, seed=seed
        ) as renderer:
            self._renderer = renderer
            try:
                while self.is_running():
                    orbit = orbit.apply_keys(self._pressed_keys())
                    renderer.render_frame(self._frame_inputs(orbit, light))

                    image = process_image_for_display(
                        renderer.get_image_numpy(), tone_map=self.tone_map
                    )
                    self.update_image(image)

                    light, pitch, yaw, reseed, reset, export = self._draw_gui_panel(
                        light, pitch, yaw
                    )
                    if reseed and scene.config is not None:
                        scene.reset_spheres(replace(scene.config, seed=scene.config.seed + 1))
                    if reset:
                        renderer.reset()
                    if export:
                        self._export_png()

                    self.show_frame()
            finally:
                self._renderer = None

    def _export_png(self) -> None:
        """Export the converged image to a timestamped PNG file."""
        from src.pathtracer.preview.export import save_png

        if self._renderer is None:
            logger.error("No renderer available for export")
            return

        filename = f"spheres_{datetime.now().strftime('%Y%m%d_%H%M%S')}.png"
        save_png(self._renderer, filename, tone_map=self.tone_map)
        print(f"Exported: {filename} ({self._renderer.sample_count} SPP)")
