"""Equirectangular environment map sampled when a ray escapes the scene.

The skybox is stored as an ImageBuffer in linear RGB, with the bottom image
row at y = 0. A unit direction ``d`` maps to texture coordinates

    u = atan2(d.x, -d.z) / -pi * 0.5
    v = 1 + acos(d.y) / -pi

with u wrapped into [0, 1), so straight up lands on the top row (v = 1) and
straight down on the bottom row (v = 0). Lookups are bilinear, wrapping
horizontally and clamping vertically.

Example:
    >>> sky = Skybox.from_file("assets/sky.jpg")
    >>> sky = Skybox.uniform((0.5, 0.7, 1.0))
    >>> # Inside a kernel: color = sample_skybox(sky.field, ray.direction)
"""

import logging
import math
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.pathtracer.core.buffers import ImageBuffer

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# Default gradient colors (linear RGB)
DEFAULT_HORIZON_COLOR = (0.85, 0.9, 1.0)
DEFAULT_ZENITH_COLOR = (0.3, 0.5, 0.9)
DEFAULT_GROUND_COLOR = (0.25, 0.22, 0.2)


def srgb_to_linear(image: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.float32]:
    """Decode sRGB-encoded values in [0, 1] to linear RGB."""
    image = np.asarray(image, dtype=np.float32)
    low = image / 12.92
    high = np.power((image + 0.055) / 1.055, 2.4)
    return np.where(image <= 0.04045, low, high).astype(np.float32)


class Skybox:
    """An equirectangular environment texture in linear RGB.

    Attributes:
        width: Texture width in pixels.
        height: Texture height in pixels.
    """

    def __init__(self, image: npt.NDArray[np.floating[Any]]) -> None:
        """Upload a linear RGB image.

        Args:
            image: Array of shape (height, width, 3) with row 0 at the top.
                Values must be finite and non-negative.

        Raises:
            ValueError: If the image is malformed.
        """
        array = np.asarray(image, dtype=np.float32)
        if array.ndim != 3 or array.shape[2] != 3 or array.shape[0] == 0 or array.shape[1] == 0:
            raise ValueError(f"Skybox image must have shape (H, W, 3), got {array.shape}")
        if not np.all(np.isfinite(array)):
            raise ValueError("Skybox image contains non-finite values")
        if np.any(array < 0.0):
            raise ValueError("Skybox image contains negative values")

        self.height, self.width = int(array.shape[0]), int(array.shape[1])
        self._image: ImageBuffer | None = ImageBuffer(self.width, self.height)
        self._image.from_numpy(array)
        logger.debug("Uploaded %dx%d skybox", self.width, self.height)

    @classmethod
    def from_array(cls, image: npt.NDArray[np.floating[Any]]) -> "Skybox":
        """Create a skybox from a linear RGB (H, W, 3) array."""
        return cls(image)

    @classmethod
    def from_file(cls, path: str | Path) -> "Skybox":
        """Load an 8-bit sRGB image file (PNG, JPEG, ...) as a skybox.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        from PIL import Image as PILImage

        with PILImage.open(path) as img:
            rgb = np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0
        logger.info("Loaded skybox %s (%dx%d)", path, rgb.shape[1], rgb.shape[0])
        return cls(srgb_to_linear(rgb))

    @classmethod
    def uniform(cls, color: tuple[float, float, float]) -> "Skybox":
        """Create a skybox of a single constant color."""
        return cls(np.array([[color]], dtype=np.float32))

    @classmethod
    def gradient(
        cls,
        zenith: tuple[float, float, float] = DEFAULT_ZENITH_COLOR,
        horizon: tuple[float, float, float] = DEFAULT_HORIZON_COLOR,
        ground: tuple[float, float, float] = DEFAULT_GROUND_COLOR,
        height: int = 64,
    ) -> "Skybox":
        """Create a simple sky: zenith fading to horizon, flat ground below.

        The texture is one pixel wide, so it only varies with elevation.
        """
        if height < 2:
            raise ValueError(f"Gradient height must be at least 2, got {height}")

        rows = np.empty((height, 1, 3), dtype=np.float32)
        for row in range(height):
            # Row 0 is straight up, the last row straight down
            elevation = math.pi / 2.0 - math.pi * (row + 0.5) / height
            if elevation >= 0.0:
                t = math.sin(elevation)
                rows[row, 0] = [(1.0 - t) * h + t * z for h, z in zip(horizon, zenith)]
            else:
                rows[row, 0] = ground
        return cls(rows)

    @property
    def released(self) -> bool:
        """Whether the texture memory has been released."""
        return self._image is None

    @property
    def field(self) -> Any:
        """The vec3 field passed to sample_skybox."""
        if self._image is None:
            raise RuntimeError("Skybox has been released")
        return self._image.field

    def to_numpy(self) -> npt.NDArray[np.float32]:
        """Read the texture back as a (height, width, 3) array."""
        if self._image is None:
            raise RuntimeError("Skybox has been released")
        return self._image.to_numpy()

    def release(self) -> None:
        """Release the texture memory. Safe to call more than once."""
        if self._image is not None:
            self._image.release()
            self._image = None

    def __repr__(self) -> str:
        return f"Skybox({self.width}x{self.height}, released={self.released})"


@ti.func
def direction_to_uv(direction: vec3) -> tm.vec2:
    """Map a unit direction to equirectangular coordinates in [0, 1]^2."""
    d = tm.normalize(direction)
    u = tm.atan2(d.x, -d.z) / -tm.pi * 0.5
    v = 1.0 + tm.acos(tm.clamp(d.y, -1.0, 1.0)) / -tm.pi
    return tm.vec2(u - tm.floor(u), v)


@ti.func
def sample_skybox(sky: ti.template(), direction: vec3) -> vec3:
    """Bilinearly sample the skybox in a given direction.

    Args:
        sky: The vec3 field of a Skybox, indexed (x, y) with y = 0 at the
            bottom.
        direction: The (unit) ray direction.

    Returns:
        The linear RGB radiance of the environment.
    """
    width = sky.shape[0]
    height = sky.shape[1]
    uv = direction_to_uv(direction)

    x = uv.x * width - 0.5
    y = uv.y * height - 0.5
    x0f = tm.floor(x)
    y0f = tm.floor(y)
    fx = x - x0f
    fy = y - y0f

    # Wrap horizontally, clamp vertically
    x0 = ((ti.cast(x0f, ti.i32) % width) + width) % width
    x1 = (x0 + 1) % width
    y0 = tm.clamp(ti.cast(y0f, ti.i32), 0, height - 1)
    y1 = tm.clamp(ti.cast(y0f, ti.i32) + 1, 0, height - 1)

    bottom = sky[x0, y0] * (1.0 - fx) + sky[x1, y0] * fx
    top = sky[x0, y1] * (1.0 - fx) + sky[x1, y1] * fx
    return bottom * (1.0 - fy) + top * fy
