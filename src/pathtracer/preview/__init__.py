"""Preview module for output and visualization.

Components:
    display: Tone mapping and Matplotlib-based static preview
    export: PNG and raw linear image export
    interactive: Taichi GGUI window with orbit camera and sun controls

The renderer's converged image is linear and unclamped; everything here
tone maps and gamma encodes it for 8-bit display.

Example:
    >>> from src.pathtracer.preview import show_preview, save_png
    >>> renderer.render(64, inputs)
    >>> show_preview(renderer, tone_map="aces")
    >>> save_png(renderer, "output.png", tone_map="aces")
"""

from src.pathtracer.preview.display import (
    ToneMapMethod,
    apply_gamma,
    process_image_for_display,
    show_comparison,
    show_preview,
    tone_map_aces,
    tone_map_exposure,
    tone_map_reinhard,
)
from src.pathtracer.preview.export import (
    compute_rmse,
    image_to_uint8,
    save_linear,
    save_png,
    save_png_from_array,
)
from src.pathtracer.preview.interactive import InteractivePreview, OrbitCamera

__all__ = [
    # Interactive preview
    "InteractivePreview",
    "OrbitCamera",
    # Display functions
    "show_preview",
    "show_comparison",
    # Tone mapping
    "tone_map_reinhard",
    "tone_map_exposure",
    "tone_map_aces",
    "apply_gamma",
    "process_image_for_display",
    "ToneMapMethod",
    # Export functions
    "save_png",
    "save_png_from_array",
    "save_linear",
    "image_to_uint8",
    "compute_rmse",
]
