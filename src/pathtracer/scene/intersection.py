"""Scene-level closest-hit ray queries.

``trace_closest`` tests a ray against every primitive of the scene, in this
order: the ground plane, all spheres, then every triangle of every mesh
object. Each primitive test only replaces the current best hit with a
positive, strictly closer one, so the result is always the nearest
intersection along the ray, or the infinite-distance miss record.

The scene is passed in as the fields returned by
``GeometryBuffers.kernel_args()``:

    spheres       (N, 14) f32   position, radius, albedo, specular,
                                smoothness, emission
    mesh_objects  (M, 24) f32   row-major local-to-world matrix, index offset,
                                index count, albedo, specular
    vertices      (V, 3)  f32   local-space positions
    indices       (I, 1)  i32   global vertex indices, three per triangle

Example:
    >>> @ti.kernel
    ... def hit_distance(spheres: ti.template(), mesh_objects: ti.template(),
    ...                  vertices: ti.template(), indices: ti.template(),
    ...                  sphere_count: ti.i32, mesh_count: ti.i32) -> ti.f32:
    ...     ray = make_ray(vec3(0.0, 1.0, 0.0), vec3(0.0, 0.0, -1.0))
    ...     hit = trace_closest(ray, spheres, mesh_objects, vertices, indices,
    ...                         sphere_count, mesh_count)
    ...     return hit.distance
"""

import taichi as ti
import taichi.math as tm

from src.pathtracer.core.ray import Ray, RayHit, length_squared, make_miss
from src.pathtracer.geometry.plane import intersect_ground_plane
from src.pathtracer.geometry.sphere import Sphere, intersect_sphere
from src.pathtracer.geometry.triangle import intersect_triangle

# Type alias for 3D vectors
vec3 = tm.vec3

# Directions shorter than this cannot be traced
MIN_DIRECTION_LENGTH_SQUARED = 1e-12


@ti.func
def load_sphere(spheres: ti.template(), i: ti.i32) -> Sphere:
    """Unpack row ``i`` of the sphere buffer."""
    return Sphere(
        position=vec3(spheres[i, 0], spheres[i, 1], spheres[i, 2]),
        radius=spheres[i, 3],
        albedo=vec3(spheres[i, 4], spheres[i, 5], spheres[i, 6]),
        specular=vec3(spheres[i, 7], spheres[i, 8], spheres[i, 9]),
        smoothness=spheres[i, 10],
        emission=vec3(spheres[i, 11], spheres[i, 12], spheres[i, 13]),
    )


@ti.func
def transform_point(mesh_objects: ti.template(), k: ti.i32, p: vec3) -> vec3:
    """Apply the local-to-world matrix of mesh object ``k`` to a point."""
    x = mesh_objects[k, 0] * p.x + mesh_objects[k, 1] * p.y + mesh_objects[k, 2] * p.z
    y = mesh_objects[k, 4] * p.x + mesh_objects[k, 5] * p.y + mesh_objects[k, 6] * p.z
    z = mesh_objects[k, 8] * p.x + mesh_objects[k, 9] * p.y + mesh_objects[k, 10] * p.z
    w = mesh_objects[k, 12] * p.x + mesh_objects[k, 13] * p.y + mesh_objects[k, 14] * p.z
    result = vec3(x + mesh_objects[k, 3], y + mesh_objects[k, 7], z + mesh_objects[k, 11])
    w += mesh_objects[k, 15]
    if w != 0.0 and w != 1.0:
        result = result / w
    return result


@ti.func
def load_vertex(vertices: ti.template(), indices: ti.template(), i: ti.i32) -> vec3:
    """Fetch the local-space vertex referenced by index slot ``i``."""
    v = indices[i, 0]
    return vec3(vertices[v, 0], vertices[v, 1], vertices[v, 2])


@ti.func
def intersect_mesh_object(
    ray: Ray,
    mesh_objects: ti.template(),
    vertices: ti.template(),
    indices: ti.template(),
    k: ti.i32,
    best: RayHit,
) -> RayHit:
    """Test a ray against every triangle of mesh object ``k``."""
    result = best
    offset = ti.cast(mesh_objects[k, 16], ti.i32)
    count = ti.cast(mesh_objects[k, 17], ti.i32)
    albedo = vec3(mesh_objects[k, 18], mesh_objects[k, 19], mesh_objects[k, 20])
    specular = vec3(mesh_objects[k, 21], mesh_objects[k, 22], mesh_objects[k, 23])

    for tri in range(count // 3):
        i = offset + 3 * tri
        v0 = transform_point(mesh_objects, k, load_vertex(vertices, indices, i))
        v1 = transform_point(mesh_objects, k, load_vertex(vertices, indices, i + 1))
        v2 = transform_point(mesh_objects, k, load_vertex(vertices, indices, i + 2))
        result = intersect_triangle(ray, v0, v1, v2, albedo, specular, result)

    return result


@ti.func
def trace_closest(
    ray: Ray,
    spheres: ti.template(),
    mesh_objects: ti.template(),
    vertices: ti.template(),
    indices: ti.template(),
    sphere_count: ti.i32,
    mesh_count: ti.i32,
) -> RayHit:
    """Find the closest intersection of a ray with the scene.

    Args:
        ray: The ray to trace. Its direction should be unit length; a
            zero-length direction never hits anything.
        spheres: The sphere buffer field.
        mesh_objects: The mesh object buffer field.
        vertices: The vertex buffer field.
        indices: The index buffer field.
        sphere_count: Number of valid rows in ``spheres``.
        mesh_count: Number of valid rows in ``mesh_objects``.

    Returns:
        The closest hit, or a record with infinite distance if the ray
        escapes the scene.
    """
    best = make_miss()

    if length_squared(ray.direction) > MIN_DIRECTION_LENGTH_SQUARED:
        best = intersect_ground_plane(ray, best)

        for i in range(sphere_count):
            best = intersect_sphere(ray, load_sphere(spheres, i), best)

        for k in range(mesh_count):
            best = intersect_mesh_object(ray, mesh_objects, vertices, indices, k, best)

    return best
