"""Scene configuration for procedurally generated sphere scenes.

A SceneConfig is supplied once per scene reset. It is validated eagerly so
that invalid parameters are rejected at setup time instead of being clamped.

Example:
    >>> config = SceneConfig(sphere_count=50, radius_range=(2.0, 6.0), seed=3)
    >>> config.validate()
    >>> SceneConfig.from_dict(config.to_dict()) == config
    True
"""

from __future__ import annotations

import json
import math
import numbers
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Defaults match the classic random-spheres showcase scene
DEFAULT_SPHERE_COUNT = 100
DEFAULT_RADIUS_RANGE = (3.0, 8.0)
DEFAULT_PLACEMENT_RADIUS = 100.0


@dataclass(frozen=True)
class SceneConfig:
    """Parameters of a randomly generated sphere scene.

    Attributes:
        sphere_count: Number of candidate spheres. Overlapping candidates are
            discarded, so the accepted count can be lower.
        radius_range: (min, max) sphere radius, with 0 < min <= max.
        placement_radius: Radius of the disk sphere centers are placed in.
        seed: Seed of the random generator. Any integer; negative seeds are
            wrapped into the generator's unsigned range.
    """

    sphere_count: int = DEFAULT_SPHERE_COUNT
    radius_range: tuple[float, float] = DEFAULT_RADIUS_RANGE
    placement_radius: float = DEFAULT_PLACEMENT_RADIUS
    seed: int = 0

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if self.sphere_count < 0:
            raise ValueError(f"Sphere count must be non-negative, got {self.sphere_count}")

        if len(self.radius_range) != 2:
            raise ValueError(f"Radius range must be (min, max), got {self.radius_range}")

        radius_min, radius_max = self.radius_range
        if not (math.isfinite(radius_min) and math.isfinite(radius_max)):
            raise ValueError(f"Radius range must be finite, got {self.radius_range}")
        if radius_min <= 0.0:
            raise ValueError(f"Minimum sphere radius must be positive, got {radius_min}")
        if radius_min > radius_max:
            raise ValueError(
                f"Minimum sphere radius {radius_min} is greater than maximum {radius_max}"
            )

        if not math.isfinite(self.placement_radius) or self.placement_radius <= 0.0:
            raise ValueError(
                f"Placement radius must be positive and finite, got {self.placement_radius}"
            )

        if isinstance(self.seed, bool) or not isinstance(self.seed, numbers.Integral):
            raise ValueError(f"Seed must be an integer, got {self.seed!r}")

    def to_dict(self) -> dict[str, Any]:
        """Export the configuration to a dictionary (for JSON serialization)."""
        return {
            "sphere_count": self.sphere_count,
            "radius_range": list(self.radius_range),
            "placement_radius": self.placement_radius,
            "seed": self.seed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SceneConfig:
        """Load a configuration from a dictionary.

        Missing keys fall back to the defaults. Unknown keys are rejected.

        Args:
            data: Dictionary with any of the SceneConfig field names.

        Returns:
            A validated SceneConfig.

        Raises:
            ValueError: If the dictionary has unknown keys or invalid values.
        """
        unknown = set(data) - {"sphere_count", "radius_range", "placement_radius", "seed"}
        if unknown:
            raise ValueError(f"Unknown scene config keys: {sorted(unknown)}")

        radius_list = data.get("radius_range", list(DEFAULT_RADIUS_RANGE))
        config = cls(
            sphere_count=int(data.get("sphere_count", DEFAULT_SPHERE_COUNT)),
            radius_range=(float(radius_list[0]), float(radius_list[1])),
            placement_radius=float(data.get("placement_radius", DEFAULT_PLACEMENT_RADIUS)),
            seed=int(data.get("seed", 0)),
        )
        config.validate()
        return config

    @classmethod
    def from_json_file(cls, filepath: str | Path) -> SceneConfig:
        """Load a configuration from a JSON file."""
        with open(filepath, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
