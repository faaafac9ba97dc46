"""Procedural scene building: random spheres and flat mesh buffers.

Two pure functions live here:

- ``build_random_spheres`` scatters non-overlapping spheres on the ground
  plane with randomized materials.
- ``rebuild_mesh_buffers`` flattens registered meshes into one vertex array,
  one index array and one descriptor per mesh.

Both produce host-side NumPy data only; uploading to the device is the job of
GeometryBuffers.

Example:
    >>> spheres = build_random_spheres(seed=1, count=20, radius_range=(1.0, 2.0),
    ...                                placement_radius=30.0)
    >>> len(spheres) <= 20
    True
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import numpy.typing as npt

from src.pathtracer.materials.sphere_material import (
    Color,
    SphereMaterial,
    random_sphere_material,
)
from src.pathtracer.scene.config import SceneConfig

# Sphere layout: position(3) radius(1) albedo(3) specular(3) smoothness(1) emission(3)
SPHERE_STRIDE = 14

# Mesh object layout: matrix(16, row-major) index_offset(1) index_count(1)
# albedo(3) specular(3)
MESH_OBJECT_STRIDE = 24

# Index offsets and counts are stored as f32, which is exact up to 2^24
MAX_MESH_INDICES = 1 << 24
MAX_MESH_VERTICES = 1 << 24

# Negative seeds wrap into the unsigned 64-bit range the generator accepts
SEED_MASK = (1 << 64) - 1

# Default mesh material: black albedo, polished mirror
DEFAULT_MESH_ALBEDO: Color = (0.0, 0.0, 0.0)
DEFAULT_MESH_SPECULAR: Color = (0.65, 0.65, 0.65)


class GeometryBufferError(RuntimeError):
    """Raised when scene geometry does not fit into the device buffers."""


# =============================================================================
# Spheres
# =============================================================================


@dataclass(frozen=True)
class SphereInfo:
    """A sphere of a generated scene.

    Attributes:
        position: The center of the sphere. Its y coordinate equals the
            radius, so the sphere rests on the ground plane.
        radius: The sphere radius.
        material: The sphere's surface material.
    """

    position: tuple[float, float, float]
    radius: float
    material: SphereMaterial

    def to_row(self) -> list[float]:
        """Pack the sphere into its SPHERE_STRIDE-wide buffer row."""
        m = self.material
        return [
            *self.position,
            self.radius,
            *m.albedo,
            *m.specular,
            m.smoothness,
            *m.emission,
        ]


def _overlaps(position: tuple[float, float, float], radius: float, other: SphereInfo) -> bool:
    """Check whether a candidate sphere intersects an accepted one."""
    min_dist = radius + other.radius
    dx = position[0] - other.position[0]
    dy = position[1] - other.position[1]
    dz = position[2] - other.position[2]
    return dx * dx + dy * dy + dz * dz < min_dist * min_dist


def build_random_spheres(
    seed: int,
    count: int,
    radius_range: tuple[float, float],
    placement_radius: float,
) -> list[SphereInfo]:
    """Scatter random non-overlapping spheres on the ground plane.

    For each of ``count`` candidates a radius is drawn uniformly from
    ``radius_range`` and a center uniformly from the disk of radius
    ``placement_radius`` around the origin, lifted so the sphere rests on
    y = 0. Candidates that overlap an already accepted sphere are discarded
    without retrying, so fewer than ``count`` spheres may be returned.
    Accepted spheres get a random material (see random_sphere_material).

    The same arguments always produce the same list.

    Args:
        seed: Seed of the random generator. Any integer, negative ones
            included.
        count: Number of candidate spheres.
        radius_range: (min, max) sphere radius, with 0 < min <= max.
        placement_radius: Radius of the placement disk (positive).

    Returns:
        The accepted spheres, in generation order.

    Raises:
        ValueError: If any parameter is invalid.
    """
    SceneConfig(
        sphere_count=count,
        radius_range=radius_range,
        placement_radius=placement_radius,
        seed=seed,
    ).validate()

    rng = np.random.default_rng(int(seed) & SEED_MASK)
    radius_min, radius_max = radius_range
    spheres: list[SphereInfo] = []

    for _ in range(count):
        radius = float(radius_min + rng.random() * (radius_max - radius_min))

        # Uniform point in the placement disk
        r = placement_radius * math.sqrt(rng.random())
        theta = 2.0 * math.pi * rng.random()
        position = (r * math.cos(theta), radius, r * math.sin(theta))

        if any(_overlaps(position, radius, s) for s in spheres):
            continue

        material = random_sphere_material(rng)
        spheres.append(SphereInfo(position=position, radius=radius, material=material))

    return spheres


def build_spheres_from_config(config: SceneConfig) -> list[SphereInfo]:
    """Build the random spheres described by a SceneConfig."""
    return build_random_spheres(
        seed=config.seed,
        count=config.sphere_count,
        radius_range=config.radius_range,
        placement_radius=config.placement_radius,
    )


def spheres_to_array(spheres: Iterable[SphereInfo]) -> npt.NDArray[np.float32]:
    """Pack spheres into a (count, SPHERE_STRIDE) float32 array."""
    rows = [s.to_row() for s in spheres]
    if not rows:
        return np.empty((0, SPHERE_STRIDE), dtype=np.float32)
    return np.asarray(rows, dtype=np.float32)


# =============================================================================
# Meshes
# =============================================================================


@dataclass(frozen=True)
class RenderableObject:
    """A mesh registered for ray tracing.

    Attributes:
        transform: 4x4 local-to-world matrix.
        vertices: (N, 3) float32 vertex positions in local space.
        indices: (M,) int32 triangle indices into ``vertices``; M % 3 == 0.
        albedo: Diffuse color of the mesh.
        specular: Specular color of the mesh.
    """

    transform: npt.NDArray[np.float32]
    vertices: npt.NDArray[np.float32]
    indices: npt.NDArray[np.int32]
    albedo: Color = DEFAULT_MESH_ALBEDO
    specular: Color = DEFAULT_MESH_SPECULAR

    @classmethod
    def create(
        cls,
        transform: Any,
        vertices: Any,
        indices: Any,
        *,
        albedo: Color = DEFAULT_MESH_ALBEDO,
        specular: Color = DEFAULT_MESH_SPECULAR,
    ) -> RenderableObject:
        """Validate and normalize mesh data into a RenderableObject.

        Args:
            transform: 4x4 local-to-world matrix (array-like).
            vertices: (N, 3) vertex positions (array-like).
            indices: Flat triangle index list (array-like).
            albedo: Diffuse color.
            specular: Specular color, each component in [0, 1].

        Raises:
            ValueError: If the mesh data is malformed.
        """
        matrix = np.asarray(transform, dtype=np.float32)
        if matrix.shape != (4, 4):
            raise ValueError(f"Transform must be a 4x4 matrix, got shape {matrix.shape}")
        if not np.all(np.isfinite(matrix)):
            raise ValueError("Transform contains non-finite values")

        verts = np.asarray(vertices, dtype=np.float32)
        if verts.ndim != 2 or verts.shape[1] != 3:
            raise ValueError(f"Vertices must have shape (N, 3), got {verts.shape}")
        if not np.all(np.isfinite(verts)):
            raise ValueError("Vertices contain non-finite values")

        idx = np.asarray(indices).reshape(-1)
        if idx.size % 3 != 0:
            raise ValueError(f"Index count {idx.size} is not a multiple of 3")
        if idx.size and not np.issubdtype(idx.dtype, np.integer):
            raise ValueError(f"Indices must be integers, got dtype {idx.dtype}")
        if idx.size and (idx.min() < 0 or idx.max() >= len(verts)):
            raise ValueError(
                f"Indices must lie in [0, {len(verts)}), got range "
                f"[{idx.min()}, {idx.max()}]"
            )

        for name, color in (("albedo", albedo), ("specular", specular)):
            if len(color) != 3:
                raise ValueError(f"{name} must be an (R, G, B) tuple, got {color}")
        for i, component in enumerate(specular):
            if component < 0.0 or component > 1.0:
                raise ValueError(
                    f"Specular component {i} = {component} is outside [0, 1]. "
                    "This would let reflections gain energy."
                )

        return cls(
            transform=matrix,
            vertices=verts,
            indices=idx.astype(np.int32),
            albedo=(float(albedo[0]), float(albedo[1]), float(albedo[2])),
            specular=(float(specular[0]), float(specular[1]), float(specular[2])),
        )


@dataclass
class MeshBuffers:
    """Flat host-side mesh data ready for upload.

    Attributes:
        vertices: (V, 3) float32 local-space positions of all meshes.
        indices: (I,) int32 indices into ``vertices``, already offset by the
            vertex count of the preceding meshes.
        mesh_objects: (M, MESH_OBJECT_STRIDE) float32 descriptors.
    """

    vertices: npt.NDArray[np.float32] = field(
        default_factory=lambda: np.empty((0, 3), dtype=np.float32)
    )
    indices: npt.NDArray[np.int32] = field(
        default_factory=lambda: np.empty((0,), dtype=np.int32)
    )
    mesh_objects: npt.NDArray[np.float32] = field(
        default_factory=lambda: np.empty((0, MESH_OBJECT_STRIDE), dtype=np.float32)
    )

    @property
    def mesh_count(self) -> int:
        """Number of mesh objects."""
        return int(self.mesh_objects.shape[0])

    def index_range(self, mesh_index: int) -> tuple[int, int]:
        """Return the (offset, count) index slice of a mesh object."""
        row = self.mesh_objects[mesh_index]
        return int(row[16]), int(row[17])


def rebuild_mesh_buffers(registered_objects: Iterable[RenderableObject]) -> MeshBuffers:
    """Flatten registered meshes into shared vertex and index arrays.

    Meshes are appended in iteration order. Each mesh's indices are offset by
    the number of vertices of all meshes before it, so every triangle refers
    only to its own mesh's vertices. The result depends only on the objects
    passed in; calling it twice with the same objects gives equal arrays.

    Args:
        registered_objects: The meshes to flatten.

    Returns:
        The flat MeshBuffers.

    Raises:
        GeometryBufferError: If the combined meshes exceed MAX_MESH_VERTICES
            vertices or MAX_MESH_INDICES indices.
    """
    objects = list(registered_objects)

    total_vertices = sum(len(obj.vertices) for obj in objects)
    total_indices = sum(len(obj.indices) for obj in objects)
    if total_vertices > MAX_MESH_VERTICES:
        raise GeometryBufferError(
            f"Meshes have {total_vertices} vertices, exceeding the maximum of "
            f"{MAX_MESH_VERTICES}"
        )
    if total_indices > MAX_MESH_INDICES:
        raise GeometryBufferError(
            f"Meshes have {total_indices} indices, exceeding the maximum of "
            f"{MAX_MESH_INDICES}"
        )

    if not objects:
        return MeshBuffers()

    vertex_chunks = []
    index_chunks = []
    descriptors = []
    first_vertex = 0
    first_index = 0

    for obj in objects:
        vertex_chunks.append(obj.vertices)
        index_chunks.append(obj.indices + first_vertex)
        descriptors.append(
            [
                *obj.transform.reshape(-1).tolist(),
                float(first_index),
                float(len(obj.indices)),
                *obj.albedo,
                *obj.specular,
            ]
        )
        first_vertex += len(obj.vertices)
        first_index += len(obj.indices)

    return MeshBuffers(
        vertices=np.concatenate(vertex_chunks).astype(np.float32),
        indices=np.concatenate(index_chunks).astype(np.int32),
        mesh_objects=np.asarray(descriptors, dtype=np.float32),
    )


# =============================================================================
# Mesh Factories
# =============================================================================


def make_quad_mesh(size: float = 1.0) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.int32]]:
    """Create a square in the local xz-plane, centered at the origin, facing +y.

    Returns:
        A tuple of (vertices, indices) with 4 vertices and 2 triangles.
    """
    h = size / 2.0
    vertices = np.array(
        [[-h, 0.0, -h], [h, 0.0, -h], [h, 0.0, h], [-h, 0.0, h]],
        dtype=np.float32,
    )
    indices = np.array([0, 2, 1, 0, 3, 2], dtype=np.int32)
    return vertices, indices


def make_cube_mesh(size: float = 1.0) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.int32]]:
    """Create an axis-aligned cube centered at the origin.

    Returns:
        A tuple of (vertices, indices) with 8 shared vertices and 12 triangles.
    """
    h = size / 2.0
    vertices = np.array(
        [
            [-h, -h, -h],
            [h, -h, -h],
            [h, h, -h],
            [-h, h, -h],
            [-h, -h, h],
            [h, -h, h],
            [h, h, h],
            [-h, h, h],
        ],
        dtype=np.float32,
    )
    # Counter-clockwise winding seen from outside
    indices = np.array(
        [
            0, 2, 1, 0, 3, 2,  # back (-z)
            4, 5, 6, 4, 6, 7,  # front (+z)
            0, 4, 7, 0, 7, 3,  # left (-x)
            1, 2, 6, 1, 6, 5,  # right (+x)
            0, 1, 5, 0, 5, 4,  # bottom (-y)
            3, 7, 6, 3, 6, 2,  # top (+y)
        ],
        dtype=np.int32,
    )
    return vertices, indices


def translation_matrix(x: float, y: float, z: float, scale: float = 1.0) -> npt.NDArray[np.float32]:
    """Build a 4x4 matrix that uniformly scales, then translates."""
    matrix = np.eye(4, dtype=np.float32) * np.float32(scale)
    matrix[3, 3] = 1.0
    matrix[:3, 3] = (x, y, z)
    return matrix
