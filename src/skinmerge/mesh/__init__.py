"""Snapshot extraction, merge, and blendshape bake/strip."""

from skinmerge.mesh.blendshapes import bake_blendshapes, strip_blendshape_vertices
from skinmerge.mesh.extract import apply_snapshot, extract_snapshot
from skinmerge.mesh.merge import (
    FramePolicy,
    LastFrameClamp,
    StrictFrameCount,
    merge_into,
    merge_snapshots,
)
from skinmerge.mesh.normals import recalculate_normals, recalculate_tangents
from skinmerge.mesh.snapshot import BlendShape, BlendShapeFrame, BoneWeight, MeshSnapshot

__all__ = [
    "BlendShape",
    "BlendShapeFrame",
    "BoneWeight",
    "FramePolicy",
    "LastFrameClamp",
    "MeshSnapshot",
    "StrictFrameCount",
    "apply_snapshot",
    "bake_blendshapes",
    "extract_snapshot",
    "merge_into",
    "merge_snapshots",
    "recalculate_normals",
    "recalculate_tangents",
    "strip_blendshape_vertices",
]
