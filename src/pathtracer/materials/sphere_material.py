"""Randomized sphere materials for procedurally generated scenes.

Every generated sphere is one of three kinds:

- Emissive (probability 0.2): a bright HDR color stored as emission. Albedo
  and specular stay black.
- Metal (probability 0.4 of the remaining spheres): black albedo, the body
  color is used as the specular (mirror) color.
- Diffuse: the body color is the albedo, with a fixed dielectric specular
  reflectance of 0.04.

Non-emissive spheres also draw a random smoothness.

All draws come from a caller-supplied ``numpy.random.Generator`` in a fixed
order, so a seeded generator reproduces the same materials exactly.

Example:
    >>> import numpy as np
    >>> rng = np.random.default_rng(7)
    >>> material = random_sphere_material(rng)
    >>> material.kind in {"diffuse", "metal", "emissive"}
    True
"""

import colorsys
from dataclasses import dataclass

import numpy as np

# Probability that a sphere is a light-emitting sphere
EMISSIVE_PROBABILITY = 0.2

# Probability that a non-emissive sphere is metallic
METAL_PROBABILITY = 0.4

# Specular reflectance of non-metals (typical for plastics and paints)
DIELECTRIC_SPECULAR = 0.04

# HSV value range for emission colors (HDR, above 1)
EMISSION_VALUE_RANGE = (3.0, 8.0)

Color = tuple[float, float, float]

BLACK: Color = (0.0, 0.0, 0.0)


@dataclass(frozen=True)
class SphereMaterial:
    """Surface properties of a sphere.

    Attributes:
        albedo: Diffuse color (RGB).
        specular: Specular (mirror) color (RGB).
        smoothness: Surface smoothness in [0, 1].
        emission: Emitted color (RGB, may exceed 1).
    """

    albedo: Color = BLACK
    specular: Color = BLACK
    smoothness: float = 0.0
    emission: Color = BLACK

    @property
    def kind(self) -> str:
        """Classify the material as "emissive", "metal" or "diffuse".

        Diffuse materials carry the fixed dielectric specular, whatever their
        albedo; everything else without emission is a metal.
        """
        if any(c > 0.0 for c in self.emission):
            return "emissive"
        if self.specular == (DIELECTRIC_SPECULAR,) * 3:
            return "diffuse"
        return "metal"


def random_color_hsv(
    rng: np.random.Generator,
    hue_range: tuple[float, float] = (0.0, 1.0),
    saturation_range: tuple[float, float] = (0.0, 1.0),
    value_range: tuple[float, float] = (0.0, 1.0),
) -> Color:
    """Draw a random color uniformly in HSV space.

    Hue, saturation and value are drawn in that order, each uniformly within
    its range. Values above 1 produce HDR colors.

    Args:
        rng: The random generator to draw from.
        hue_range: Hue bounds in [0, 1].
        saturation_range: Saturation bounds in [0, 1].
        value_range: Value (brightness) bounds.

    Returns:
        The color as an (R, G, B) tuple.
    """
    hue = hue_range[0] + rng.random() * (hue_range[1] - hue_range[0])
    saturation = saturation_range[0] + rng.random() * (saturation_range[1] - saturation_range[0])
    value = value_range[0] + rng.random() * (value_range[1] - value_range[0])
    r, g, b = colorsys.hsv_to_rgb(hue, saturation, value)
    return (float(r), float(g), float(b))


def random_sphere_material(rng: np.random.Generator) -> SphereMaterial:
    """Draw a random sphere material.

    Args:
        rng: The random generator to draw from.

    Returns:
        An emissive, metal or diffuse material.
    """
    color = random_color_hsv(rng)
    emission_chance = rng.random()
    metallic_chance = rng.random()

    if emission_chance < 1.0 - EMISSIVE_PROBABILITY:
        smoothness = float(rng.random())
        if metallic_chance < METAL_PROBABILITY:
            return SphereMaterial(albedo=BLACK, specular=color, smoothness=smoothness)
        specular = (DIELECTRIC_SPECULAR, DIELECTRIC_SPECULAR, DIELECTRIC_SPECULAR)
        return SphereMaterial(albedo=color, specular=specular, smoothness=smoothness)

    emission = random_color_hsv(rng, value_range=EMISSION_VALUE_RANGE)
    return SphereMaterial(emission=emission)
