"""Device-side geometry buffers for the trace kernel.

GeometryBuffers mirrors the host-side scene arrays (spheres, mesh object
descriptors, vertices, indices) into Taichi fields through
``sync_typed_buffer``. Empty sets are represented by a one-element
placeholder buffer together with a count of zero, so the trace kernel always
receives a valid field.

Uploads are all-or-nothing from the kernel's point of view: the host arrays
are built and validated before any buffer is touched, and kernels only run
between uploads.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti

from src.pathtracer.core.buffers import (
    BufferLayout,
    TypedBuffer,
    allocate_typed_buffer,
    as_element_array,
    needs_reallocation,
    sync_typed_buffer,
)
from src.pathtracer.scene.builder import MESH_OBJECT_STRIDE, SPHERE_STRIDE, MeshBuffers

SPHERE_LAYOUT = BufferLayout(dtype=ti.f32, stride=SPHERE_STRIDE)
MESH_OBJECT_LAYOUT = BufferLayout(dtype=ti.f32, stride=MESH_OBJECT_STRIDE)
VERTEX_LAYOUT = BufferLayout(dtype=ti.f32, stride=3)
INDEX_LAYOUT = BufferLayout(dtype=ti.i32, stride=1)


class GeometryBuffers:
    """Owner of the device buffers read by the trace kernel.

    Attributes:
        sphere_count: Number of spheres in the sphere buffer.
        mesh_count: Number of mesh objects in the mesh object buffer.
    """

    def __init__(self) -> None:
        self._spheres: TypedBuffer | None = None
        self._mesh_objects: TypedBuffer | None = None
        self._vertices: TypedBuffer | None = None
        self._indices: TypedBuffer | None = None
        self._placeholders: dict[tuple[int, type], TypedBuffer] = {}
        self.sphere_count = 0
        self.mesh_count = 0
        self._released = False

    def _check_not_released(self) -> None:
        if self._released:
            raise RuntimeError("Geometry buffers have been released")

    def _placeholder(self, layout: BufferLayout) -> TypedBuffer:
        """Get the zero-filled one-element buffer used for empty sets."""
        key = (layout.stride, layout.numpy_dtype)
        buffer = self._placeholders.get(key)
        if buffer is None:
            buffer = TypedBuffer(1, layout)
            buffer.upload(np.zeros((1, layout.stride), dtype=layout.numpy_dtype))
            self._placeholders[key] = buffer
        return buffer

    def upload_spheres(self, spheres: npt.NDArray[np.float32]) -> None:
        """Upload a (count, SPHERE_STRIDE) sphere array."""
        self._check_not_released()
        if spheres.ndim != 2 or spheres.shape[1] != SPHERE_STRIDE:
            raise ValueError(
                f"Sphere array must have shape (N, {SPHERE_STRIDE}), got {spheres.shape}"
            )
        self._spheres = sync_typed_buffer(self._spheres, spheres, SPHERE_LAYOUT)
        self.sphere_count = int(spheres.shape[0])

    def upload_meshes(self, meshes: MeshBuffers) -> None:
        """Upload flat mesh data produced by rebuild_mesh_buffers.

        The three mesh buffers change together. Replacements are allocated
        first; if any allocation fails, the new buffers are released and the
        current ones stay untouched.
        """
        self._check_not_released()
        slots = (
            ("_mesh_objects", meshes.mesh_objects, MESH_OBJECT_LAYOUT),
            ("_vertices", meshes.vertices, VERTEX_LAYOUT),
            ("_indices", meshes.indices, INDEX_LAYOUT),
        )
        for _, data, layout in slots:
            if len(data):
                as_element_array(data, layout)

        staged: dict[str, TypedBuffer] = {}
        try:
            for name, data, layout in slots:
                if needs_reallocation(getattr(self, name), data, layout):
                    staged[name] = allocate_typed_buffer(data, layout)
        except BaseException:
            for buffer in staged.values():
                buffer.release()
            raise

        # Only in-place overwrites and releases from here on
        for name, data, layout in slots:
            current = getattr(self, name)
            if name in staged:
                setattr(self, name, staged[name])
                if current is not None:
                    current.release()
            else:
                setattr(self, name, sync_typed_buffer(current, data, layout))
        self.mesh_count = meshes.mesh_count

    def kernel_args(self) -> tuple[Any, Any, Any, Any, int, int]:
        """Return the arguments the trace kernel expects.

        Returns:
            A tuple of (spheres, mesh_objects, vertices, indices,
            sphere_count, mesh_count) where the first four are Taichi fields.
        """
        self._check_not_released()
        spheres = self._spheres or self._placeholder(SPHERE_LAYOUT)
        mesh_objects = self._mesh_objects or self._placeholder(MESH_OBJECT_LAYOUT)
        vertices = self._vertices or self._placeholder(VERTEX_LAYOUT)
        indices = self._indices or self._placeholder(INDEX_LAYOUT)
        return (
            spheres.field,
            mesh_objects.field,
            vertices.field,
            indices.field,
            self.sphere_count,
            self.mesh_count,
        )

    def release(self) -> None:
        """Release every buffer. The object cannot be used afterwards."""
        buffers = [self._spheres, self._mesh_objects, self._vertices, self._indices]
        buffers.extend(self._placeholders.values())
        for buffer in buffers:
            if buffer is not None:
                buffer.release()
        self._spheres = self._mesh_objects = self._vertices = self._indices = None
        self._placeholders.clear()
        self.sphere_count = 0
        self.mesh_count = 0
        self._released = True
