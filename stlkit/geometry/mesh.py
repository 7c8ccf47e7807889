import logging
import numpy as np

logger = logging.getLogger(__name__)

# Normal calculation

def compute_normals(triangles: np.ndarray) -> np.ndarray:
    """
    Compute one unit normal per triangle from an (N, 3, 3) vertex array using Newell's method.

    Counter-clockwise winding yields the outward normal. Degenerate (zero-area)
    triangles get a zero normal instead of NaN.
    """
    v = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)
    w = np.roll(v, -1, axis=1)  # next vertex along each edge
    diff, total = v - w, v + w
    face_normals = np.stack([
        np.sum(diff[:, :, 1] * total[:, :, 2], axis=1),
        np.sum(diff[:, :, 2] * total[:, :, 0], axis=1),
        np.sum(diff[:, :, 0] * total[:, :, 1], axis=1),
    ], axis=1)

    norm = np.linalg.norm(face_normals, axis=1, keepdims=True)
    degenerate = norm[:, 0] == 0
    if degenerate.any():
        logger.warning("%d degenerate triangle(s) have no defined normal, using zero vectors", int(degenerate.sum()))
    norm[degenerate] = 1.0
    return (face_normals / norm).astype(np.float32)


# Indexed mesh helpers

def join_faces(vertices: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    vertices = np.asarray(vertices).reshape(-1, 3)
    unique_vertices, inverse_indices = np.unique(vertices, axis=0, return_inverse=True)
    faces = inverse_indices.reshape(-1, 3)
    return unique_vertices, faces

def split_faces(faces: np.ndarray, vertices: np.ndarray) -> np.ndarray:
    return vertices[faces]
