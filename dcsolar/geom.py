"""
This module contains the Polygon object, triangulation and
area sampling routines, and other geometry helpers.
"""

from typing import NamedTuple, Sequence

import numpy as np

from dcsolar.errors import InvalidGeometry


class Ray3D(NamedTuple):
    """A ray with an origin and a unit direction."""

    origin: np.ndarray
    direction: np.ndarray


class Polygon:
    """Planar polygon.

    The normal follows the right-hand rule over the vertex order.
    Polygons are immutable; transformations return new polygons.
    """

    def __init__(self, vertices: Sequence[Sequence[float]]):
        """
        Initialize a polygon.
        Args:
            vertices: a list of vertices (x, y, z)
        Raises:
            InvalidGeometry: fewer than 3 vertices or zero area.
        """
        self._vertices = np.array(vertices, dtype=float)
        if self._vertices.ndim != 2 or self._vertices.shape[1] != 3:
            raise InvalidGeometry("Polygon vertices must be 3D points")
        if len(self._vertices) < 3:
            raise InvalidGeometry(
                f"Polygon needs at least 3 vertices, got {len(self._vertices)}"
            )
        self._vertices.setflags(write=False)
        self._normal = self._calculate_normal()
        self._area_vector = self._calculate_area()
        self._centroid = self._calculate_centroid()

    def __repr__(self):
        """Create a stable string representation of the polygon."""
        precision = 8
        vertices_repr = [
            tuple(round(float(coord), precision) for coord in vertex)
            for vertex in self._vertices
        ]
        return f"Polygon(vertices={vertices_repr})"

    @property
    def vertices(self) -> np.ndarray:
        return self._vertices

    @property
    def normal(self) -> np.ndarray:
        return self._normal

    @property
    def area(self) -> float:
        return float(np.linalg.norm(self._area_vector))

    @property
    def centroid(self) -> np.ndarray:
        return self._centroid

    def _calculate_normal(self) -> np.ndarray:
        # Newell's method
        normal = np.zeros(3)
        for i in range(len(self._vertices)):
            v1 = self._vertices[i]
            v2 = self._vertices[(i + 1) % len(self._vertices)]
            normal[0] += (v1[1] - v2[1]) * (v1[2] + v2[2])
            normal[1] += (v1[2] - v2[2]) * (v1[0] + v2[0])
            normal[2] += (v1[0] - v2[0]) * (v1[1] + v2[1])
        norm = np.linalg.norm(normal)
        if norm < np.finfo(float).eps:
            raise InvalidGeometry("Cannot compute normal - degenerate polygon")
        return normal / norm

    def _calculate_area(self) -> np.ndarray:
        total = np.zeros(3)
        for idx in range(1, len(self._vertices) - 1):
            total += np.cross(
                (self._vertices[idx] - self._vertices[0]),
                (self._vertices[idx + 1] - self._vertices[0]),
            )
        return total * 0.5

    def _calculate_centroid(self) -> np.ndarray:
        return np.mean(self._vertices, axis=0)

    def move(self, vector) -> "Polygon":
        """Return the moved polygon along a vector."""
        return Polygon(self._vertices + np.asarray(vector, dtype=float))

    def flip(self) -> "Polygon":
        """Reverse the vertices order, thus reversing the normal."""
        return Polygon(self._vertices[::-1, :])

    def extrude(self, vector: np.ndarray) -> list["Polygon"]:
        """Extrude the polygon into a closed prism.

        The base is flipped so that every face of the prism
        points outwards when the extrusion follows the normal.

        Args:
            vector: extrude along the vector;

        Returns:
            A list of polygons: base, top and the sides.
        """
        vector = np.asarray(vector, dtype=float)
        top = self.move(vector)
        polygons: list[Polygon] = [self.flip(), top]
        nvert = len(self._vertices)
        for i in range(nvert):
            j = (i + 1) % nvert
            polygons.append(
                Polygon(
                    [
                        self._vertices[i],
                        self._vertices[j],
                        top.vertices[j],
                        top.vertices[i],
                    ]
                )
            )
        return polygons

    def triangulate(self) -> np.ndarray:
        """Triangulate the polygon by ear clipping.

        Returns:
            Array of triangles, shape (n_triangles, 3, 3), each
            triangle wound like the polygon.
        Raises:
            InvalidGeometry: self-intersecting polygon.
        """
        points = self._project()
        scale = float(np.ptp(points, axis=0).max()) ** 2
        eps = 1e-12 * scale
        # drop collinear and repeated vertices
        idx = [
            i
            for i in range(len(points))
            if abs(_cross2(points[i] - points[i - 1], points[(i + 1) % len(points)] - points[i])) > eps
        ]
        triangles = []
        while len(idx) > 3:
            for k in range(len(idx)):
                i0, i1, i2 = idx[k - 1], idx[k], idx[(k + 1) % len(idx)]
                a, b, c = points[i0], points[i1], points[i2]
                if _cross2(b - a, c - b) <= eps:
                    continue
                others = [j for j in idx if j not in (i0, i1, i2)]
                if any(_in_triangle(points[j], a, b, c) for j in others):
                    continue
                triangles.append((i0, i1, i2))
                idx.pop(k)
                break
            else:
                raise InvalidGeometry(f"Cannot triangulate {self!r}")
        if len(idx) < 3:
            raise InvalidGeometry("Cannot compute normal - degenerate polygon")
        triangles.append(tuple(idx))
        return self._vertices[np.array(triangles)]

    def _project(self) -> np.ndarray:
        """Project the vertices on the polygon plane, counter-clockwise."""
        e1, e2 = orthonormal_basis(self._normal)
        rel = self._vertices - self._vertices[0]
        return np.column_stack((rel @ e1, rel @ e2))


def _cross2(u: np.ndarray, v: np.ndarray) -> float:
    return u[0] * v[1] - u[1] * v[0]


def _in_triangle(p, a, b, c) -> bool:
    d1 = _cross2(b - a, p - a)
    d2 = _cross2(c - b, p - b)
    d3 = _cross2(a - c, p - c)
    return d1 >= 0 and d2 >= 0 and d3 >= 0


def triangle_areas(triangles: np.ndarray) -> np.ndarray:
    """Areas of an (n, 3, 3) triangle array."""
    cross = np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])
    return 0.5 * np.linalg.norm(cross, axis=1)


def sample_triangles(
    triangles: np.ndarray, n_points: int, rng: np.random.Generator
) -> np.ndarray:
    """Uniform points over a triangulated area.

    A triangle is drawn with a probability proportional to its
    area, then a point is drawn uniformly inside it.

    Args:
        triangles: (n, 3, 3) triangle array
        n_points: number of points
        rng: random generator
    Returns:
        (n_points, 3) array
    """
    areas = triangle_areas(triangles)
    total = areas.sum()
    if total <= 0:
        raise InvalidGeometry("Cannot sample a polygon with zero area")
    choice = rng.choice(len(triangles), size=n_points, p=areas / total)
    r1 = rng.random(n_points)
    r2 = rng.random(n_points)
    flip = r1 + r2 > 1
    r1[flip] = 1 - r1[flip]
    r2[flip] = 1 - r2[flip]
    tri = triangles[choice]
    return (
        tri[:, 0]
        + r1[:, None] * (tri[:, 1] - tri[:, 0])
        + r2[:, None] * (tri[:, 2] - tri[:, 0])
    )


def orthonormal_basis(normal: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Two unit vectors e1, e2 so that (e1, e2, normal) is right-handed."""
    normal = np.asarray(normal, dtype=float)
    helper = np.array((1.0, 0.0, 0.0)) if abs(normal[0]) < 0.9 else np.array((0.0, 1.0, 0.0))
    e1 = np.cross(helper, normal)
    e1 /= np.linalg.norm(e1)
    e2 = np.cross(normal, e1)
    return e1, e2

