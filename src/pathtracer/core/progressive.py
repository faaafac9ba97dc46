"""Progressive renderer: one sample per frame, averaged until the view changes.

Every call to ``render_frame`` traces one jittered sample per pixel and blends
it into the converged image with weight ``1 / (n + 1)``, where ``n`` is the
number of samples accumulated so far. The result is the running mean of all
samples since the last reset.

Accumulation is a two-state machine:

    DIRTY --render_frame--> ACCUMULATING --render_frame--> ACCUMULATING
      ^                          |
      +------ any trigger -------+

A trigger (camera moved, light changed, resolution changed, geometry rebuilt,
or an explicit reset) drops the sample count to zero, so the next frame
replaces the converged image with its raw sample.

The renderer wraps the integrator with support for:
- Change detection between consecutive FrameInputs
- Batch rendering with progress callbacks or a generator
- Image readback, tone mapping and export

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.pathtracer.core.progressive import FrameInputs, ProgressiveRenderer
    >>> from src.pathtracer.scene.showcase import create_showcase_scene
    >>>
    >>> scene, camera, light = create_showcase_scene(aspect_ratio=16 / 9)
    >>> inputs = FrameInputs.from_camera(camera, light, width=640, height=360)
    >>> with ProgressiveRenderer(scene, 640, 360) as renderer:
    ...     renderer.render(64, inputs=inputs)
    ...     renderer.save_image("spheres.png")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt

from src.pathtracer.camera.pinhole import PinholeCamera, setup_camera
from src.pathtracer.core.integrator import (
    DirectionalLight,
    RenderTarget,
    blend_sample,
    quantize_image,
    setup_light,
    trace_sample,
)
from src.pathtracer.scene.builder import SEED_MASK
from src.pathtracer.scene.manager import SceneManager
from src.pathtracer.scene.skybox import Skybox

logger = logging.getLogger(__name__)

# Type alias for progress callback
# Callback receives (current_samples, target_total_samples)
ProgressCallback = Callable[[int, int], None]


class AccumulationState(Enum):
    """State of the sample accumulation."""

    DIRTY = "dirty"
    ACCUMULATING = "accumulating"


class ResetTrigger(Enum):
    """Reasons for discarding accumulated samples."""

    CAMERA_CHANGED = "camera_changed"
    LIGHT_CHANGED = "light_changed"
    RESOLUTION_CHANGED = "resolution_changed"
    GEOMETRY_REBUILT = "geometry_rebuilt"
    MANUAL = "manual"


def _as_matrix(name: str, matrix: Any) -> npt.NDArray[np.float32]:
    array = np.array(matrix, dtype=np.float32)
    if array.shape != (4, 4):
        raise ValueError(f"{name} must be a 4x4 matrix, got shape {array.shape}")
    if not np.all(np.isfinite(array)):
        raise ValueError(f"{name} contains non-finite values")
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class FrameInputs:
    """Everything the renderer needs from outside for one frame.

    Attributes:
        camera_to_world: 4x4 camera-to-world matrix.
        inverse_projection: 4x4 inverse projection matrix.
        light: The directional light.
        width: Output width in pixels.
        height: Output height in pixels.
    """

    camera_to_world: npt.NDArray[np.float32]
    inverse_projection: npt.NDArray[np.float32]
    light: DirectionalLight
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Resolution must be positive, got {self.width}x{self.height}")
        object.__setattr__(
            self, "camera_to_world", _as_matrix("Camera-to-world matrix", self.camera_to_world)
        )
        object.__setattr__(
            self,
            "inverse_projection",
            _as_matrix("Inverse projection matrix", self.inverse_projection),
        )
        # Fails early on a zero light direction
        self.light.normalized_direction()

    @classmethod
    def from_camera(
        cls,
        camera: PinholeCamera,
        light: DirectionalLight,
        width: int,
        height: int,
    ) -> FrameInputs:
        """Build frame inputs from a pinhole camera description."""
        return cls(
            camera_to_world=camera.camera_to_world(),
            inverse_projection=camera.inverse_projection(),
            light=light,
            width=width,
            height=height,
        )

    def camera_equals(self, other: FrameInputs) -> bool:
        """Check whether both inputs describe the same camera."""
        return np.array_equal(self.camera_to_world, other.camera_to_world) and np.array_equal(
            self.inverse_projection, other.inverse_projection
        )

    def light_equals(self, other: FrameInputs) -> bool:
        """Check whether both inputs describe the same light."""
        return (
            self.light.normalized_direction() == other.light.normalized_direction()
            and self.light.intensity == other.light.intensity
        )


class ProgressiveRenderer:
    """A progressive renderer that accumulates samples over frames.

    The renderer owns the render target. The scene (and a skybox passed in by
    the caller) are borrowed; a default skybox created by the renderer is
    released with it.

    Attributes:
        scene: The scene being rendered.
        skybox: The environment map sampled by escaping rays.
        last_trigger: The most recent reset trigger, or None.

    Example:
        >>> renderer = ProgressiveRenderer(scene, 320, 240, seed=3)
        >>> renderer.render_frame(inputs)
        1
        >>> renderer.state
        <AccumulationState.ACCUMULATING: 'accumulating'>
    """

    def __init__(
        self,
        scene: SceneManager,
        width: int,
        height: int,
        *,
        skybox: Skybox | None = None,
        seed: int = 0,
    ) -> None:
        """Initialize the progressive renderer.

        Args:
            scene: The scene to render.
            width: Initial image width in pixels.
            height: Initial image height in pixels.
            skybox: Environment map. Defaults to a sky gradient.
            seed: Seed of the sub-pixel jitter sequence. Negative seeds are
                accepted.

        Raises:
            ValueError: If the resolution is not positive.
        """
        self.scene = scene
        self._owns_skybox = skybox is None
        self.skybox = skybox if skybox is not None else Skybox.gradient()
        self._target = RenderTarget(width, height)
        self._rng = np.random.default_rng(int(seed) & SEED_MASK)
        self._inputs: FrameInputs | None = None
        self._sample_count = 0
        self._state = AccumulationState.DIRTY
        self._released = False
        self.last_trigger: ResetTrigger | None = None

    @property
    def width(self) -> int:
        """Get the image width."""
        return self._target.width

    @property
    def height(self) -> int:
        """Get the image height."""
        return self._target.height

    @property
    def sample_count(self) -> int:
        """Get the number of samples accumulated since the last reset."""
        return self._sample_count

    @property
    def state(self) -> AccumulationState:
        """Get the accumulation state."""
        return self._state

    @property
    def inputs(self) -> FrameInputs | None:
        """The inputs of the most recent frame."""
        return self._inputs

    def _check_not_released(self) -> None:
        if self._released:
            raise RuntimeError("Renderer has been released")

    # =========================================================================
    # State Transitions
    # =========================================================================

    def invalidate(self, trigger: ResetTrigger) -> None:
        """Discard accumulated samples.

        Args:
            trigger: Why the samples are no longer valid.
        """
        self._sample_count = 0
        self._state = AccumulationState.DIRTY
        self.last_trigger = trigger
        logger.debug("Accumulation reset: %s", trigger.value)

    def reset(self) -> None:
        """Restart accumulation without changing any input."""
        self.invalidate(ResetTrigger.MANUAL)

    def resize(self, width: int, height: int) -> None:
        """Reallocate the images at a new resolution and reset accumulation.

        Raises:
            ValueError: If the resolution is not positive.
        """
        self._check_not_released()
        if (width, height) == (self.width, self.height):
            return
        target = RenderTarget(width, height)
        self._target.release()
        self._target = target
        logger.info("Render target resized to %dx%d", width, height)
        self.invalidate(ResetTrigger.RESOLUTION_CHANGED)

    def _apply_inputs(self, inputs: FrameInputs) -> None:
        """Load frame inputs and fire a trigger for everything that changed."""
        previous = self._inputs

        # The camera and light are global kernel state, so always reload them
        setup_camera(inputs.camera_to_world, inputs.inverse_projection)
        setup_light(inputs.light)

        if (inputs.width, inputs.height) != (self.width, self.height):
            self.resize(inputs.width, inputs.height)
        if previous is None or not inputs.camera_equals(previous):
            self.invalidate(ResetTrigger.CAMERA_CHANGED)
        if previous is None or not inputs.light_equals(previous):
            self.invalidate(ResetTrigger.LIGHT_CHANGED)

        self._inputs = inputs

    # =========================================================================
    # Rendering
    # =========================================================================

    def render_frame(self, inputs: FrameInputs | None = None) -> int:
        """Trace one sample per pixel and blend it into the converged image.

        Args:
            inputs: This frame's inputs. Defaults to the previous frame's.

        Returns:
            The sample count after this frame.

        Raises:
            RuntimeError: If no inputs were ever given or the renderer has
                been released.
            GeometryBufferError: If the scene's meshes no longer fit into the
                buffers. The frame is skipped.
        """
        self._check_not_released()
        if inputs is None:
            inputs = self._inputs
        if inputs is None:
            raise RuntimeError("No frame inputs. Pass FrameInputs to the first frame.")

        self._apply_inputs(inputs)
        if self.scene.commit():
            self.invalidate(ResetTrigger.GEOMETRY_REBUILT)

        offset = (float(self._rng.random()), float(self._rng.random()))
        trace_sample(self._target, self.scene.buffers, self.skybox, offset)
        blend_sample(self._target, 1.0 / (self._sample_count + 1))

        self._sample_count += 1
        self._state = AccumulationState.ACCUMULATING
        return self._sample_count

    def render(
        self,
        num_frames: int = 1,
        inputs: FrameInputs | None = None,
        batch_size: int = 1,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Render frames with unchanged inputs and an optional progress callback.

        Args:
            num_frames: Number of frames (samples per pixel) to add.
            inputs: Inputs for every frame. Defaults to the previous frame's.
            batch_size: Number of frames to render before each callback.
            callback: Optional callback function called after each batch.
                Receives (current_samples, target_samples).

        Example:
            >>> def progress(current, target):
            ...     print(f"Progress: {current}/{target} samples")
            >>> renderer.render(100, inputs, batch_size=10, callback=progress)
        """
        for current, target in self.render_progressive(num_frames, inputs, batch_size):
            if callback is not None:
                callback(current, target)

    def render_progressive(
        self,
        num_frames: int = 1,
        inputs: FrameInputs | None = None,
        batch_size: int = 1,
    ) -> Generator[tuple[int, int], None, None]:
        """Render frames, yielding progress after each batch.

        The target is computed after the first frame, so a first frame that
        resets accumulation is accounted for.

        Yields:
            Tuple of (current_samples, target_samples).

        Example:
            >>> for current, target in renderer.render_progressive(100, inputs, 10):
            ...     print(f"Progress: {current}/{target} samples")
        """
        if num_frames <= 0:
            return
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")

        target_samples = self.render_frame(inputs) + num_frames - 1
        rendered = 1
        in_batch = 1
        while rendered < num_frames:
            if in_batch == batch_size:
                yield (self._sample_count, target_samples)
                in_batch = 0
            self.render_frame()
            rendered += 1
            in_batch += 1
        yield (self._sample_count, target_samples)

    # =========================================================================
    # Image Access
    # =========================================================================

    def get_image(self) -> Any:
        """Get the raw Taichi field of the converged image.

        Returns:
            Taichi VectorField of shape (width, height), y = 0 at the bottom.
        """
        self._check_not_released()
        return self._target.converged.field

    def get_image_numpy(self) -> npt.NDArray[np.float32]:
        """Get the converged image as linear, unclamped RGB.

        Returns:
            NumPy array of shape (height, width, 3) with dtype float32, row 0
            at the top.
        """
        self._check_not_released()
        return self._target.converged.to_numpy()

    def get_sample_numpy(self) -> npt.NDArray[np.float32]:
        """Get the raw sample traced by the most recent frame."""
        self._check_not_released()
        return self._target.sample.to_numpy()

    def get_image_uint8(self, gamma: float = 2.2) -> npt.NDArray[np.uint8]:
        """Get the converged image as an 8-bit NumPy array.

        Clamps to [0, 1] and applies gamma correction.

        Args:
            gamma: Gamma correction value. Default 2.2 for sRGB.

        Returns:
            NumPy array of shape (height, width, 3) with dtype uint8.
        """
        return quantize_image(self.get_image_numpy(), gamma=gamma)

    def save_image(self, filepath: str | Path, gamma: float = 2.2) -> None:
        """Save the converged image to a file.

        Args:
            filepath: Path to save the image (e.g., "output.png").
            gamma: Gamma correction value. Default 2.2 for sRGB.
        """
        from PIL import Image as PILImage

        pil_image = PILImage.fromarray(self.get_image_uint8(gamma=gamma))
        pil_image.save(filepath)
        logger.info("Saved %dx%d image to %s", self.width, self.height, filepath)

    # =========================================================================
    # Lifetime
    # =========================================================================

    def release(self) -> None:
        """Release the images (and the default skybox). Safe to call twice."""
        if self._released:
            return
        self._target.release()
        if self._owns_skybox:
            self.skybox.release()
        self._released = True

    def __enter__(self) -> ProgressiveRenderer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        """Return a string representation of the renderer state."""
        return (
            f"ProgressiveRenderer(width={self.width}, height={self.height}, "
            f"samples={self.sample_count}, state={self.state.value})"
        )
