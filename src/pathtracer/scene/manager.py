"""Scene manager owning the sphere set, the renderable registry and buffers.

The SceneManager is the single owner of everything the trace kernel reads:

- The current batch of procedural spheres, replaced wholesale by
  ``reset_spheres``.
- An explicit registry of mesh renderables. Registration returns a handle;
  unregistration consumes it. Both only mark the mesh buffers dirty.
- The GeometryBuffers holding the device-side copies.

Nothing is uploaded until ``commit()``, which the progressive renderer calls
once per frame before dispatching. A commit that changes geometry reports it,
so the renderer can restart accumulation.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from src.pathtracer.scene.manager import SceneManager
    >>> from src.pathtracer.scene.builder import make_cube_mesh, translation_matrix
    >>> scene = SceneManager(SceneConfig(sphere_count=50, seed=7))
    >>> vertices, indices = make_cube_mesh(10.0)
    >>> handle = scene.register_renderable(translation_matrix(0, 5, 0), vertices, indices)
    >>> scene.commit()
    True
    >>> scene.unregister_renderable(handle)
    >>> scene.commit()
    True
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import numpy as np

from src.pathtracer.scene.buffers import GeometryBuffers
from src.pathtracer.scene.builder import (
    DEFAULT_MESH_ALBEDO,
    DEFAULT_MESH_SPECULAR,
    Color,
    MeshBuffers,
    RenderableObject,
    SphereInfo,
    build_spheres_from_config,
    rebuild_mesh_buffers,
    spheres_to_array,
)
from src.pathtracer.scene.config import SceneConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderableHandle:
    """Opaque handle to a registered renderable.

    Attributes:
        id: Registry key, unique for the lifetime of the manager.
    """

    id: int


class SceneManager:
    """Owner of the scene geometry and its device buffers.

    Attributes:
        config: The configuration used for the current sphere set, or None if
            the spheres were set directly.
        spheres: The current sphere set.
        buffers: The device buffers read by the trace kernel.

    Example:
        >>> scene = SceneManager(SceneConfig(sphere_count=0))
        >>> scene.set_spheres([SphereInfo((0.0, 1.0, -5.0), 1.0, material)])
        >>> scene.commit()
        True
        >>> scene.commit()
        False
    """

    def __init__(self, config: SceneConfig | None = None) -> None:
        """Create a scene and build its initial sphere set.

        Args:
            config: Sphere placement parameters. Defaults to SceneConfig().

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config: SceneConfig | None = None
        self.spheres: list[SphereInfo] = []
        self.buffers = GeometryBuffers()

        self._renderables: dict[int, RenderableObject] = {}
        self._next_handle_id = 0
        self._mesh_buffers: MeshBuffers | None = None
        self._pending_spheres: np.ndarray | None = None
        self._meshes_dirty = True
        self._released = False

        self.reset_spheres(config if config is not None else SceneConfig())

    def _check_not_released(self) -> None:
        if self._released:
            raise RuntimeError("Scene has been released")

    # =========================================================================
    # Spheres
    # =========================================================================

    def reset_spheres(self, config: SceneConfig) -> list[SphereInfo]:
        """Replace the sphere set with a freshly generated one.

        Args:
            config: Sphere placement parameters.

        Returns:
            The new sphere list.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self._check_not_released()
        spheres = build_spheres_from_config(config)
        self._set_spheres(spheres)
        self.config = config
        logger.info(
            "Scene reset: %d of %d spheres placed (seed=%d)",
            len(spheres),
            config.sphere_count,
            config.seed,
        )
        return spheres

    def set_spheres(self, spheres: Iterable[SphereInfo]) -> None:
        """Replace the sphere set with an explicit list.

        Raises:
            ValueError: If a radius is not positive or two spheres overlap.
        """
        self._check_not_released()
        spheres = list(spheres)
        for i, sphere in enumerate(spheres):
            if sphere.radius <= 0.0:
                raise ValueError(f"Sphere {i} has non-positive radius {sphere.radius}")
            for j in range(i):
                other = spheres[j]
                min_dist = sphere.radius + other.radius
                dist_sq = sum((a - b) ** 2 for a, b in zip(sphere.position, other.position))
                if dist_sq < min_dist * min_dist:
                    raise ValueError(f"Spheres {j} and {i} overlap")
        self._set_spheres(spheres)
        self.config = None

    def _set_spheres(self, spheres: list[SphereInfo]) -> None:
        self.spheres = spheres
        self._pending_spheres = spheres_to_array(spheres)

    @property
    def sphere_count(self) -> int:
        """Number of spheres in the current set."""
        return len(self.spheres)

    # =========================================================================
    # Renderable Registry
    # =========================================================================

    def register_renderable(
        self,
        transform: Any,
        vertices: Any,
        indices: Any,
        *,
        albedo: Color = DEFAULT_MESH_ALBEDO,
        specular: Color = DEFAULT_MESH_SPECULAR,
    ) -> RenderableHandle:
        """Register a triangle mesh.

        The mesh is validated immediately; buffers are rebuilt on the next
        commit().

        Args:
            transform: 4x4 local-to-world matrix.
            vertices: (N, 3) local-space vertex positions.
            indices: Flat triangle index list into ``vertices``.
            albedo: Diffuse color.
            specular: Specular color, each component in [0, 1].

        Returns:
            A handle for unregister_renderable().

        Raises:
            ValueError: If the mesh data is malformed.
        """
        self._check_not_released()
        renderable = RenderableObject.create(
            transform, vertices, indices, albedo=albedo, specular=specular
        )
        handle = RenderableHandle(self._next_handle_id)
        self._next_handle_id += 1
        self._renderables[handle.id] = renderable
        self._meshes_dirty = True
        logger.debug(
            "Registered renderable %d (%d vertices, %d triangles)",
            handle.id,
            len(renderable.vertices),
            len(renderable.indices) // 3,
        )
        return handle

    def unregister_renderable(self, handle: RenderableHandle) -> None:
        """Remove a registered mesh.

        Raises:
            KeyError: If the handle is not registered.
        """
        self._check_not_released()
        if handle.id not in self._renderables:
            raise KeyError(f"Renderable {handle.id} is not registered")
        del self._renderables[handle.id]
        self._meshes_dirty = True
        logger.debug("Unregistered renderable %d", handle.id)

    @property
    def renderable_count(self) -> int:
        """Number of registered renderables."""
        return len(self._renderables)

    @property
    def is_dirty(self) -> bool:
        """Whether the next commit() will upload anything."""
        return self._meshes_dirty or self._pending_spheres is not None

    @property
    def mesh_buffers(self) -> MeshBuffers | None:
        """The host-side mesh arrays of the last successful commit."""
        return self._mesh_buffers

    # =========================================================================
    # Upload
    # =========================================================================

    def commit(self) -> bool:
        """Upload pending changes to the device buffers.

        Returns:
            True if any geometry changed, False if there was nothing to do.

        Raises:
            GeometryBufferError: If the registered meshes exceed the buffer
                limits. The previous buffers stay in use and the registry
                stays dirty. Device allocation failures propagate the same way.
        """
        self._check_not_released()
        changed = False

        if self._meshes_dirty:
            try:
                meshes = rebuild_mesh_buffers(self._renderables.values())
                self.buffers.upload_meshes(meshes)
            except (RuntimeError, MemoryError):
                logger.warning(
                    "Mesh rebuild failed for %d renderables; keeping previous buffers",
                    len(self._renderables),
                )
                raise
            self._mesh_buffers = meshes
            self._meshes_dirty = False
            changed = True
            logger.info(
                "Rebuilt mesh buffers: %d objects, %d vertices, %d indices",
                meshes.mesh_count,
                len(meshes.vertices),
                len(meshes.indices),
            )

        if self._pending_spheres is not None:
            self.buffers.upload_spheres(self._pending_spheres)
            self._pending_spheres = None
            changed = True

        return changed

    def release(self) -> None:
        """Release the device buffers. The scene cannot be used afterwards."""
        if not self._released:
            self.buffers.release()
            self._released = True

    def __enter__(self) -> SceneManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return (
            f"SceneManager(spheres={self.sphere_count}, "
            f"renderables={self.renderable_count}, dirty={self.is_dirty})"
        )
