"""Ray and hit record data structures with vector utilities.

This module provides the Ray and RayHit dataclasses shared by the
intersection and shading code. A ray carries an energy (throughput) term that
is attenuated multiplicatively at every mirror bounce; a hit record starts at
an infinite distance, which doubles as the "no intersection" sentinel.

All functions are Taichi functions for use inside kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> origin = ti.math.vec3(0.0, 1.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> # Inside a kernel:
    >>> # ray = make_ray(origin, direction)
    >>> # point = ray_at(ray, 5.0)
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Distance of a hit record that has not intersected anything
INF = tm.inf


@ti.dataclass
class Ray:
    """A ray with origin, unit direction and remaining energy.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction of the ray (vec3), unit length.
        energy: Per-channel throughput (vec3). Starts at (1, 1, 1) and is
            multiplied by the specular color of every surface the ray
            bounces off. A ray whose energy is exactly zero in all channels
            is terminated.
    """

    origin: vec3
    direction: vec3
    energy: vec3


@ti.dataclass
class RayHit:
    """Record of the closest ray-scene intersection.

    Attributes:
        position: The world-space intersection point.
        distance: The ray parameter of the intersection. Stays at +inf when
            nothing was hit.
        normal: The unit surface normal at the intersection point.
        albedo: The diffuse color of the hit surface.
        specular: The specular (mirror) color of the hit surface.
    """

    position: vec3
    distance: ti.f32
    normal: vec3
    albedo: vec3
    specular: vec3


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create a ray with full energy.

    Args:
        origin: The starting point of the ray.
        direction: The direction of the ray (should be normalized).

    Returns:
        A new Ray with energy (1, 1, 1).
    """
    return Ray(origin=origin, direction=direction, energy=vec3(1.0, 1.0, 1.0))


@ti.func
def make_miss() -> RayHit:
    """Create a hit record at infinite distance (the miss sentinel)."""
    return RayHit(
        position=vec3(0.0, 0.0, 0.0),
        distance=INF,
        normal=vec3(0.0, 0.0, 0.0),
        albedo=vec3(0.0, 0.0, 0.0),
        specular=vec3(0.0, 0.0, 0.0),
    )


@ti.func
def is_miss(hit: RayHit) -> ti.i32:
    """Return 1 if the hit record is still the infinite-distance sentinel."""
    return hit.distance == INF


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t."""
    return ray.origin + t * ray.direction


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Compute the squared length of a vector."""
    return tm.dot(v, v)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal.

    Args:
        incident: The incoming direction vector (pointing toward the surface).
        normal: The surface normal (should be normalized).

    Returns:
        The reflected direction vector.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def is_zero(v: vec3) -> ti.i32:
    """Check whether every component of a vector is exactly zero.

    Used as the bounce loop termination predicate, so no tolerance is applied.
    """
    return v.x == 0.0 and v.y == 0.0 and v.z == 0.0
