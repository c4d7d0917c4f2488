"""Matrix and vector helpers (column-vector convention, float64)."""

from collections.abc import Sequence

import numpy as np


def trs_matrix(
    position: Sequence[float], rotation: Sequence[float], scale: Sequence[float]
) -> np.ndarray:
    """
    Build a 4x4 model matrix from translation, quaternion (x, y, z, w) and scale.

    M = T * R * S, applied to column vectors.
    """
    x, y, z, w = (float(c) for c in rotation)

    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z

    rot = np.array(
        [
            [1.0 - 2.0 * (yy + zz), 2.0 * (xy - wz), 2.0 * (xz + wy)],
            [2.0 * (xy + wz), 1.0 - 2.0 * (xx + zz), 2.0 * (yz - wx)],
            [2.0 * (xz - wy), 2.0 * (yz + wx), 1.0 - 2.0 * (xx + yy)],
        ],
        dtype=np.float64,
    )

    mat = np.eye(4, dtype=np.float64)
    # Scale is diagonal, so scale the columns of R
    mat[:3, :3] = rot * np.asarray(scale, dtype=np.float64)[None, :]
    mat[:3, 3] = np.asarray(position, dtype=np.float64)
    return mat


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Transform an (N, 3) array of positions by a 4x4 matrix."""
    if len(points) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return points @ matrix[:3, :3].T + matrix[:3, 3]


def transform_directions(matrix: np.ndarray, vectors: np.ndarray) -> np.ndarray:
    """Transform (N, 3) direction/offset vectors (no translation)."""
    if len(vectors) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return vectors @ matrix[:3, :3].T


def transform_normals(matrix: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Transform (N, 3) normals by the inverse transpose and renormalize."""
    if len(normals) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    normal_matrix = np.linalg.inv(matrix[:3, :3]).T
    return normalize_rows(normals @ normal_matrix.T)


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Normalize each row, leaving zero-length rows untouched."""
    lengths = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(lengths > 0.0, lengths, 1.0)
    return vectors / safe


def is_identity(matrix: np.ndarray, tolerance: float = 1e-9) -> bool:
    """Check whether a 4x4 matrix is the identity."""
    return bool(np.allclose(matrix, np.eye(4), atol=tolerance, rtol=0.0))
