"""Materials module for sphere surface properties.

Components:
    sphere_material: Randomized diffuse, metal and emissive sphere materials

Materials are plain host-side data; the trace kernel reads the packed albedo,
specular, smoothness and emission columns of the sphere buffer.
"""

from .sphere_material import (
    BLACK,
    DIELECTRIC_SPECULAR,
    EMISSION_VALUE_RANGE,
    EMISSIVE_PROBABILITY,
    METAL_PROBABILITY,
    Color,
    SphereMaterial,
    random_color_hsv,
    random_sphere_material,
)

__all__ = [
    "Color",
    "BLACK",
    "SphereMaterial",
    "random_color_hsv",
    "random_sphere_material",
    "EMISSIVE_PROBABILITY",
    "METAL_PROBABILITY",
    "DIELECTRIC_SPECULAR",
    "EMISSION_VALUE_RANGE",
]
