"""Triangle primitive with Moller-Trumbore ray-triangle intersection.

The test solves

    origin + t * direction = (1 - u - v) * v0 + u * v1 + v * v2

with Cramer's rule, using the edge vectors e1 = v1 - v0 and e2 = v2 - v0.
A near-zero determinant means the ray is parallel to the triangle or the
triangle has no area; both are reported as misses.

Triangles are two-sided: the returned normal always faces the incoming ray so
that reflections and the self-intersection bias work regardless of winding.

Example:
    >>> # Inside a kernel:
    >>> # t, u, v = triangle_distance(ray, v0, v1, v2)
    >>> # best = intersect_triangle(ray, v0, v1, v2, albedo, specular, best)
"""

import taichi as ti
import taichi.math as tm

from src.pathtracer.core.ray import Ray, RayHit

# Type alias for 3D vectors
vec3 = tm.vec3

# Determinants smaller than this are treated as parallel or degenerate
DETERMINANT_EPSILON = 1e-8


@ti.func
def triangle_distance(ray: Ray, v0: vec3, v1: vec3, v2: vec3):
    """Compute the ray parameter and barycentrics of a ray-triangle hit.

    Args:
        ray: The ray to test.
        v0: First triangle vertex.
        v1: Second triangle vertex.
        v2: Third triangle vertex.

    Returns:
        A tuple (t, u, v). ``t`` is -1 when the ray misses the triangle.
    """
    edge1 = v1 - v0
    edge2 = v2 - v0
    pvec = tm.cross(ray.direction, edge2)
    det = tm.dot(edge1, pvec)

    t = -1.0
    u = 0.0
    v = 0.0

    if ti.abs(det) > DETERMINANT_EPSILON:
        inv_det = 1.0 / det
        tvec = ray.origin - v0
        u = tm.dot(tvec, pvec) * inv_det
        if u >= 0.0 and u <= 1.0:
            qvec = tm.cross(tvec, edge1)
            v = tm.dot(ray.direction, qvec) * inv_det
            if v >= 0.0 and u + v <= 1.0:
                t = tm.dot(edge2, qvec) * inv_det

    return t, u, v


@ti.func
def intersect_triangle(
    ray: Ray,
    v0: vec3,
    v1: vec3,
    v2: vec3,
    albedo: vec3,
    specular: vec3,
    best: RayHit,
) -> RayHit:
    """Test a ray against a triangle and keep the closer of the two hits.

    Args:
        ray: The ray to test.
        v0: First triangle vertex (world space).
        v1: Second triangle vertex (world space).
        v2: Third triangle vertex (world space).
        albedo: Diffuse color of the triangle's mesh.
        specular: Specular color of the triangle's mesh.
        best: The closest hit found so far.

    Returns:
        A hit on the triangle if it is positive and closer than ``best``,
        otherwise ``best`` unchanged.
    """
    result = best
    t, _u, _v = triangle_distance(ray, v0, v1, v2)
    if t > 0.0 and t < best.distance:
        normal = tm.normalize(tm.cross(v1 - v0, v2 - v0))
        if tm.dot(normal, ray.direction) > 0.0:
            normal = -normal
        result = RayHit(
            position=ray.origin + t * ray.direction,
            distance=t,
            normal=normal,
            albedo=albedo,
            specular=specular,
        )
    return result
