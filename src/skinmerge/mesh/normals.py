"""Normal and tangent reconstruction for meshes that lack them."""

import numpy as np

from skinmerge.utils.matrices import normalize_rows


def _triangles(submeshes: list[np.ndarray]) -> np.ndarray:
    if not submeshes:
        return np.zeros((0, 3), dtype=np.int64)
    return np.concatenate([s.reshape(-1) for s in submeshes]).reshape(-1, 3)


def recalculate_normals(vertices: np.ndarray, submeshes: list[np.ndarray]) -> np.ndarray:
    """
    Area-weighted vertex normals.

    Vertices that no triangle touches get an up vector so every normal is unit length.
    """
    normals = np.zeros_like(vertices, dtype=np.float64)
    tris = _triangles(submeshes)
    if len(tris):
        v0, v1, v2 = vertices[tris[:, 0]], vertices[tris[:, 1]], vertices[tris[:, 2]]
        # Cross product length is twice the area, which gives the weighting
        face_normals = np.cross(v1 - v0, v2 - v0)
        for corner in range(3):
            np.add.at(normals, tris[:, corner], face_normals)

    lengths = np.linalg.norm(normals, axis=1)
    normals[lengths == 0.0] = (0.0, 1.0, 0.0)
    return normalize_rows(normals)


def _perpendicular(normals: np.ndarray) -> np.ndarray:
    """Any unit vector perpendicular to each normal."""
    axis = np.tile(np.array([1.0, 0.0, 0.0]), (len(normals), 1))
    near_x = np.abs(normals[:, 0]) > 0.9
    axis[near_x] = (0.0, 1.0, 0.0)
    tangent = axis - normals * np.sum(axis * normals, axis=1, keepdims=True)
    return normalize_rows(tangent)


def recalculate_tangents(
    vertices: np.ndarray,
    normals: np.ndarray,
    uvs: np.ndarray,
    submeshes: list[np.ndarray],
) -> np.ndarray:
    """
    Per-vertex (x, y, z, w) tangents from UV gradients.

    Falls back to an arbitrary perpendicular where the UV mapping is
    degenerate or absent. ``w`` carries the bitangent handedness.
    """
    count = len(vertices)
    tangents = np.zeros((count, 4), dtype=np.float64)
    tan1 = np.zeros((count, 3), dtype=np.float64)
    tan2 = np.zeros((count, 3), dtype=np.float64)

    tris = _triangles(submeshes)
    if len(tris) and len(uvs) == count:
        p0, p1, p2 = vertices[tris[:, 0]], vertices[tris[:, 1]], vertices[tris[:, 2]]
        w0, w1, w2 = uvs[tris[:, 0]], uvs[tris[:, 1]], uvs[tris[:, 2]]
        e1, e2 = p1 - p0, p2 - p0
        d1, d2 = w1 - w0, w2 - w0
        det = d1[:, 0] * d2[:, 1] - d2[:, 0] * d1[:, 1]
        valid = np.abs(det) > 1e-12
        r = np.zeros_like(det)
        r[valid] = 1.0 / det[valid]
        sdir = (e1 * d2[:, 1:2] - e2 * d1[:, 1:2]) * r[:, None]
        tdir = (e2 * d1[:, 0:1] - e1 * d2[:, 0:1]) * r[:, None]
        for corner in range(3):
            np.add.at(tan1, tris[:, corner], sdir)
            np.add.at(tan2, tris[:, corner], tdir)

    # Gram-Schmidt orthogonalize against the normal
    t = tan1 - normals * np.sum(normals * tan1, axis=1, keepdims=True)
    lengths = np.linalg.norm(t, axis=1)
    degenerate = lengths < 1e-12
    t = normalize_rows(t)
    if degenerate.any():
        t[degenerate] = _perpendicular(normals[degenerate])

    handedness = np.where(np.sum(np.cross(normals, t) * tan2, axis=1) < 0.0, -1.0, 1.0)
    tangents[:, :3] = t
    tangents[:, 3] = handedness
    return tangents
