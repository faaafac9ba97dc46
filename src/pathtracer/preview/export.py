"""Image export utilities for rendered images.

Supported formats:
    - PNG (8-bit via Pillow), tone mapped and gamma encoded
    - NPY (raw linear float32 via NumPy), for reference images and tests

Example:
    >>> from src.pathtracer.preview.export import save_png
    >>> renderer.render(64, inputs)
    >>> save_png(renderer, "spheres.png", tone_map="aces")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from src.pathtracer.core.integrator import quantize_image
from src.pathtracer.preview.display import ToneMapMethod, process_image_for_display

if TYPE_CHECKING:
    from src.pathtracer.core.progressive import ProgressiveRenderer

logger = logging.getLogger(__name__)


def image_to_uint8(
    image: npt.NDArray[np.float32],
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.uint8]:
    """Tone map, gamma encode and quantize a linear image to 8 bits."""
    processed = process_image_for_display(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    return quantize_image(processed, gamma=1.0)


def save_png_from_array(
    image: npt.NDArray[np.float32],
    filepath: str | Path,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save a linear (H, W, 3) image as an 8-bit PNG."""
    image_uint8 = image_to_uint8(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    PILImage.fromarray(image_uint8).save(filepath)
    logger.info("Saved %s", filepath)


def save_png(
    renderer: ProgressiveRenderer,
    filepath: str | Path,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save the renderer's converged image as an 8-bit PNG.

    Args:
        renderer: The renderer to save.
        filepath: Output file path (should end in .png).
        tone_map: Tone mapping method.
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure for the "exposure" and "aces" methods.
    """
    save_png_from_array(
        renderer.get_image_numpy(),
        filepath,
        tone_map=tone_map,
        gamma=gamma,
        exposure=exposure,
    )


def save_linear(renderer: ProgressiveRenderer, filepath: str | Path) -> None:
    """Save the converged image as a raw linear float32 .npy array."""
    np.save(filepath, renderer.get_image_numpy())
    logger.info("Saved linear image %s", filepath)


def compute_rmse(
    image_a: npt.NDArray[np.floating[npt.NBitBase]],
    image_b: npt.NDArray[np.floating[npt.NBitBase]],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
