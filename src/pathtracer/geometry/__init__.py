"""Geometry module for shape primitives and intersection algorithms.

Components:
    sphere: Sphere primitive with analytic ray-sphere intersection
    plane: The y = 0 ground plane
    triangle: Moller-Trumbore ray-triangle intersection for mesh triangles

All intersection routines are Taichi functions (@ti.func). Each takes the
closest hit found so far and returns either a closer hit on its primitive
or the previous hit unchanged:

    best = intersect_shape(ray, shape, best)
"""

from .plane import GROUND_ALBEDO, GROUND_SPECULAR, intersect_ground_plane
from .sphere import Sphere, intersect_sphere, sphere_distance
from .triangle import intersect_triangle, triangle_distance

__all__ = [
    "Sphere",
    "intersect_sphere",
    "sphere_distance",
    "intersect_ground_plane",
    "GROUND_ALBEDO",
    "GROUND_SPECULAR",
    "intersect_triangle",
    "triangle_distance",
]
