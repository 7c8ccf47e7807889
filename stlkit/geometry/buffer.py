import numpy as np
from dataclasses import dataclass, field
from typing import Optional, Self

from stlkit.errors import InvalidGeometryError
from stlkit.geometry.mesh import compute_normals, join_faces, split_faces

HEADER_SIZE = 80
COUNT_SIZE = 4
BINARY_PREAMBLE_SIZE = HEADER_SIZE + COUNT_SIZE  # 84
TRIANGLE_RECORD_SIZE = 50  # normal + 3 vertices (12 x f32) + u16 attribute
VERTICES_PER_TRIANGLE = 3
AXES_PER_VERTEX = 3
FLOATS_PER_TRIANGLE = VERTICES_PER_TRIANGLE * AXES_PER_VERTEX  # 9
MIN_STL_SIZE = 6
MAX_TRIANGLE_COUNT = 0xFFFFFFFF


def as_float_array(values) -> np.ndarray:
    if values is None:
        return np.zeros(0, dtype=np.float32)
    return np.ascontiguousarray(values, dtype=np.float32).reshape(-1)

def pad_header(header: bytes | str) -> bytes:
    if isinstance(header, str):
        header = header.encode('utf-8')
    return bytes(header[:HEADER_SIZE]).ljust(HEADER_SIZE, b'\0')


@dataclass
class GeometryBuffer:
    """
    Flat triangle soup shared by the readers and writers.

    Triangle i owns vertices[9i:9i+9], normals[3i:3i+3] and, when colors are
    present, colors[3i:3i+3]. A color triple of NaNs marks a triangle without
    a color; colors stay empty when no triangle has one.
    """
    vertices: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    normals: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    colors: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))
    triangle_count: int = 0
    header: bytes = bytes(HEADER_SIZE)

    @classmethod
    def from_triangles(cls, vertices, normals=None, colors=None, header: bytes | str = b'') -> Self:
        flat_vertices = as_float_array(vertices)
        if len(flat_vertices) % FLOATS_PER_TRIANGLE != 0:
            raise InvalidGeometryError(f"Vertex data has {len(flat_vertices)} values, expected a multiple of {FLOATS_PER_TRIANGLE}")
        return cls(vertices=flat_vertices,
                   normals=as_float_array(normals),
                   colors=as_float_array(colors),
                   triangle_count=len(flat_vertices) // FLOATS_PER_TRIANGLE,
                   header=pad_header(header))

    @classmethod
    def from_indexed(cls, vertices, faces, header: bytes | str = b'') -> Self:
        triangles = split_faces(np.asarray(faces), np.asarray(vertices, dtype=np.float32))
        geometry = cls.from_triangles(triangles, header=header)
        geometry.compute_normals()
        return geometry

    # Views

    def triangles(self) -> np.ndarray:
        return self.vertices.reshape(-1, VERTICES_PER_TRIANGLE, AXES_PER_VERTEX)

    def facet_normals(self) -> np.ndarray:
        return self.normals.reshape(-1, AXES_PER_VERTEX)

    def to_indexed(self) -> tuple[np.ndarray, np.ndarray]:
        return join_faces(self.vertices)

    # Mutation

    def compute_normals(self) -> None:
        self.check_arrays()
        if len(self.vertices) % FLOATS_PER_TRIANGLE != 0:
            raise InvalidGeometryError(f"Vertex data has {len(self.vertices)} values, expected a multiple of {FLOATS_PER_TRIANGLE}")
        self.normals = compute_normals(self.triangles()).reshape(-1)

    def replace(self, other: 'GeometryBuffer') -> None:
        self.vertices = other.vertices
        self.normals = other.normals
        self.colors = other.colors
        self.triangle_count = other.triangle_count
        self.header = other.header

    # Invariants

    def check_arrays(self) -> None:
        for name in ('vertices', 'normals', 'colors'):
            values = getattr(self, name)
            if not isinstance(values, np.ndarray) or values.ndim != 1:
                raise InvalidGeometryError(f"{name.capitalize()} must be a flat numpy array, got {type(values).__name__} of shape {np.shape(values)}")

    def validate(self) -> None:
        self.check_arrays()
        n_vertices, n_normals, n_colors = len(self.vertices), len(self.normals), len(self.colors)
        if not 0 <= self.triangle_count <= MAX_TRIANGLE_COUNT:
            raise InvalidGeometryError(f"Triangle count {self.triangle_count} does not fit in an unsigned 32-bit integer")
        if n_vertices % FLOATS_PER_TRIANGLE != 0:
            raise InvalidGeometryError(f"Vertex data has {n_vertices} values, expected a multiple of {FLOATS_PER_TRIANGLE}")
        if n_vertices != FLOATS_PER_TRIANGLE * self.triangle_count:
            raise InvalidGeometryError(f"Vertex data has {n_vertices} values but triangle count is {self.triangle_count}")
        if n_normals not in (0, AXES_PER_VERTEX * self.triangle_count):
            raise InvalidGeometryError(f"Normal data has {n_normals} values, expected 0 or {AXES_PER_VERTEX * self.triangle_count}")
        if n_colors not in (0, 3 * self.triangle_count):
            raise InvalidGeometryError(f"Color data has {n_colors} values, expected 0 or {3 * self.triangle_count}")
        if len(self.header) != HEADER_SIZE:
            raise InvalidGeometryError(f"Header must be exactly {HEADER_SIZE} bytes, got {len(self.header)}")

    def summary(self, label: Optional[str] = None) -> str:
        prefix = f"{label} " if label else ""
        return (f"{prefix}triangles [{self.triangle_count}] vectors [{len(self.vertices)}] "
                f"normals [{len(self.normals)}] rgb_colors [{len(self.colors)}]")
