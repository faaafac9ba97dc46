"""Scene module for scene building, buffers and ray-scene queries.

Components:
    config: Sphere placement parameters (SceneConfig)
    builder: Procedural spheres, flat mesh buffers and mesh factories
    buffers: Device-side geometry buffers read by the trace kernel
    intersection: Closest-hit query over plane, spheres and meshes
    manager: Scene owner with the renderable registry and lazy uploads
    skybox: Equirectangular environment map
    showcase: Demo scene with camera and light (import directly; it loads
        the camera and light state)

Scene data is organized for GPU access as flat float32/int32 tables:
    - One row per sphere (14 floats)
    - One row per mesh object (24 floats)
    - Shared vertex and index arrays for all meshes
"""

from .buffers import GeometryBuffers
from .builder import (
    MAX_MESH_INDICES,
    MAX_MESH_VERTICES,
    MESH_OBJECT_STRIDE,
    SPHERE_STRIDE,
    GeometryBufferError,
    MeshBuffers,
    RenderableObject,
    SphereInfo,
    build_random_spheres,
    make_cube_mesh,
    make_quad_mesh,
    rebuild_mesh_buffers,
    spheres_to_array,
    translation_matrix,
)
from .config import SceneConfig
from .intersection import trace_closest
from .manager import RenderableHandle, SceneManager
from .skybox import Skybox, sample_skybox

__all__ = [
    # Config and builder
    "SceneConfig",
    "SphereInfo",
    "RenderableObject",
    "MeshBuffers",
    "GeometryBufferError",
    "build_random_spheres",
    "rebuild_mesh_buffers",
    "spheres_to_array",
    "make_cube_mesh",
    "make_quad_mesh",
    "translation_matrix",
    "SPHERE_STRIDE",
    "MESH_OBJECT_STRIDE",
    "MAX_MESH_INDICES",
    "MAX_MESH_VERTICES",
    # Buffers and queries
    "GeometryBuffers",
    "trace_closest",
    # Manager
    "SceneManager",
    "RenderableHandle",
    # Environment
    "Skybox",
    "sample_skybox",
]
