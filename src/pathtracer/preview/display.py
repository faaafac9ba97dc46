"""Tone mapping and Matplotlib preview for rendered images.

The renderer produces linear, unclamped radiance. The sky alone is scaled by
an exposure of 1.4, so bright sky reflections regularly exceed 1.0. The
functions here turn such images into displayable [0, 1] sRGB-ish images:

    linear HDR --tone map--> [0, 1] linear --gamma--> display

Features:
    - Tone mapping (clamp, Reinhard, exposure, ACES filmic fit)
    - Gamma correction (sRGB 2.2)
    - Static Matplotlib preview with sample count
    - Side-by-side comparison with difference view

Example:
    >>> from src.pathtracer.preview.display import show_preview
    >>> renderer.render(64, inputs)
    >>> show_preview(renderer, tone_map="aces")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from src.pathtracer.core.progressive import ProgressiveRenderer


# Type alias for tone mapping options
ToneMapMethod = Literal["none", "reinhard", "exposure", "aces"]


def tone_map_reinhard(image: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Apply Reinhard tone mapping: c / (1 + c)."""
    image = np.maximum(image, 0.0)
    return (image / (1.0 + image)).astype(np.float32)


def tone_map_exposure(
    image: npt.NDArray[np.float32],
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Apply exposure tone mapping: 1 - exp(-c * exposure).

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        exposure: Higher values brighten the image.
    """
    image = np.maximum(image, 0.0)
    return (1.0 - np.exp(-image * exposure)).astype(np.float32)


def tone_map_aces(
    image: npt.NDArray[np.float32],
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Apply Narkowicz's fit of the ACES filmic curve.

    Keeps mid-tones close to linear while rolling off highlights, which
    suits the bright sky reflections of mirror spheres.
    """
    x = np.maximum(image, 0.0) * exposure
    a, b, c, d, e = 2.51, 0.03, 2.43, 0.59, 0.14
    mapped = (x * (a * x + b)) / (x * (c * x + d) + e)
    return np.clip(mapped, 0.0, 1.0).astype(np.float32)


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Clamp to [0, 1] and apply gamma encoding: out = in^(1/gamma).

    Raises:
        ValueError: If gamma is not positive.
    """
    if gamma <= 0.0:
        raise ValueError(f"Gamma must be positive, got {gamma}")
    image = np.clip(image, 0.0, 1.0)
    if gamma == 1.0:
        return image.astype(np.float32)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def process_image_for_display(
    image: npt.NDArray[np.float32],
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Run the full display pipeline on a linear image.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        tone_map: Tone mapping method. "none" just clamps.
        gamma: Gamma correction value (default 2.2 for sRGB).
        exposure: Exposure for the "exposure" and "aces" methods.

    Returns:
        Processed image ready for display, in [0, 1] range.

    Raises:
        ValueError: If the tone mapping method is unknown.
    """
    if tone_map == "none":
        result = np.asarray(image, dtype=np.float32)
    elif tone_map == "reinhard":
        result = tone_map_reinhard(image)
    elif tone_map == "exposure":
        result = tone_map_exposure(image, exposure)
    elif tone_map == "aces":
        result = tone_map_aces(image, exposure)
    else:
        raise ValueError(f"Unknown tone mapping method: {tone_map}")

    return apply_gamma(result, gamma)


def show_preview(
    renderer: ProgressiveRenderer,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
    title: str | None = None,
    figsize: tuple[float, float] = (10, 6),
    block: bool = True,
) -> None:
    """Display the converged image in a Matplotlib figure.

    Args:
        renderer: The renderer to display.
        tone_map: Tone mapping method.
        gamma: Gamma correction value.
        exposure: Exposure for the "exposure" and "aces" methods.
        title: Custom title (default shows sample count).
        figsize: Figure size in inches (width, height).
        block: Whether to block execution until figure is closed.
    """
    import matplotlib.pyplot as plt

    display_image = process_image_for_display(
        renderer.get_image_numpy(), tone_map=tone_map, gamma=gamma, exposure=exposure
    )

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.imshow(display_image)
    ax.axis("off")

    if title is None:
        title = f"{renderer.width}x{renderer.height} - {renderer.sample_count} SPP"
        if tone_map != "none":
            title += f" ({tone_map})"
    ax.set_title(title)

    plt.tight_layout()
    plt.show(block=block)


def show_comparison(
    image_a: npt.NDArray[np.float32],
    image_b: npt.NDArray[np.float32],
    *,
    labels: tuple[str, str] = ("A", "B"),
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    diff_scale: float = 10.0,
    figsize: tuple[float, float] = (16, 6),
    block: bool = True,
) -> float:
    """Display two images and their amplified difference.

    Returns:
        RMSE between the two images in display space.
    """
    import matplotlib.pyplot as plt

    from src.pathtracer.preview.export import compute_rmse

    display_a = process_image_for_display(image_a, tone_map=tone_map, gamma=gamma)
    display_b = process_image_for_display(image_b, tone_map=tone_map, gamma=gamma)
    rmse = compute_rmse(display_a, display_b)
    diff = np.clip(np.abs(display_a - display_b) * diff_scale, 0.0, 1.0)

    fig, axes = plt.subplots(1, 3, figsize=figsize)
    panels = (
        (display_a, labels[0]),
        (display_b, labels[1]),
        (diff, f"Difference ({diff_scale}x) - RMSE: {rmse:.6f}"),
    )
    for ax, (image, label) in zip(axes, panels):
        ax.imshow(image)
        ax.set_title(label)
        ax.axis("off")

    plt.tight_layout()
    plt.show(block=block)

    return rmse
