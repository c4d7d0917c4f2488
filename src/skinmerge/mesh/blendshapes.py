"""Blendshape removal: destructive vertex strip and static bake."""

from collections.abc import Collection

import numpy as np

from skinmerge.mesh.snapshot import MeshSnapshot


def strip_blendshape_vertices(snapshot: MeshSnapshot, names: Collection[str]) -> int:
    """
    Delete every vertex a named shape moves, then drop the shape.

    A vertex is flagged when its last-frame position delta is non-zero.
    Flags from all named shapes are combined before anything is deleted.
    Names not on the snapshot are ignored. Returns the number of vertices
    removed.
    """
    remove = np.zeros(snapshot.vertex_count, dtype=bool)
    stripped = []
    for shape in snapshot.blendshapes:
        if shape.name not in names:
            continue
        remove |= np.any(shape.last_frame.delta_vertices != 0.0, axis=1)
        stripped.append(shape)

    if not stripped:
        return 0

    snapshot.blendshapes = [s for s in snapshot.blendshapes if s not in stripped]
    snapshot.remove_vertices(remove)
    return int(remove.sum())


def bake_blendshapes(
    snapshot: MeshSnapshot,
    names: Collection[str],
    animated: Collection[str] = frozenset(),
) -> list[str]:
    """
    Fold named shapes into the base geometry at their current weight and drop them.

    The last frame's deltas scaled by ``weight / 100`` are added to
    positions, normals and tangents. Shapes in ``animated`` are kept as they
    are. Returns the names of shapes that actually changed geometry.
    """
    baked: list[str] = []
    kept = []
    for shape in snapshot.blendshapes:
        if shape.name not in names or shape.name in animated:
            kept.append(shape)
            continue
        if shape.weight != 0.0:
            frame = shape.last_frame
            scale = shape.weight / 100.0
            snapshot.vertices = snapshot.vertices + frame.delta_vertices * scale
            snapshot.normals = snapshot.normals + frame.delta_normals * scale
            snapshot.tangents = snapshot.tangents.copy()
            snapshot.tangents[:, :3] += frame.delta_tangents * scale
            baked.append(shape.name)
    snapshot.blendshapes = kept
    return baked
