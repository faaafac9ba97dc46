"""Taichi-based progressive path tracer.

This package renders fields of random spheres and triangle meshes on a
ground plane, with support for:
- Mirror-bounce shading with a directional light and hard shadows
- Equirectangular skybox lighting for escaping rays
- Explicit mesh registration with lazily rebuilt flat buffers
- Progressive rendering with accumulation that resets on any change

Subpackages:
    core: Ray structures, device buffers, integrator and accumulation
    geometry: Sphere, ground plane and triangle intersection
    materials: Randomized sphere materials
    scene: Scene building, geometry buffers and the scene manager
    camera: Pinhole camera matrices and primary ray generation
    preview: Tone mapping, export and interactive preview
"""

__version__ = "0.1.0"
