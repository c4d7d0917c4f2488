"""
Left-fold merge of mesh snapshots into the first (base) snapshot.

The base keeps its transform and bone order. Each further snapshot is
re-projected into the base's local space, appended, and its submeshes,
bind poses and blendshapes are unioned in.
"""

import numpy as np

from skinmerge.errors import FrameCountMismatchError
from skinmerge.mesh.snapshot import BlendShape, BlendShapeFrame, MeshSnapshot
from skinmerge.utils.matrices import (
    is_identity,
    normalize_rows,
    transform_directions,
    transform_normals,
    transform_points,
)


class FramePolicy:
    """
    How blendshapes that share a name but not a frame count are combined.

    ``pick`` returns the source frame to use at a merged frame index and
    whether it was reused past the source's own frame count.
    """

    def check(self, name: str, base_count: int, other_count: int) -> None:
        """Hook to reject mismatched frame counts before merging."""

    def pick(self, frames: list[BlendShapeFrame], index: int) -> tuple[BlendShapeFrame, bool]:
        raise NotImplementedError

    def weight(self, base_weight: float, other_weight: float, clamped: bool) -> float:
        raise NotImplementedError


class LastFrameClamp(FramePolicy):
    """
    Reuse a source's last frame for indices beyond its frame count.

    A clamped frame takes the larger of the two weights; frames that line
    up take the mean, which is the weight itself when both agree.
    """

    def pick(self, frames: list[BlendShapeFrame], index: int) -> tuple[BlendShapeFrame, bool]:
        if index < len(frames):
            return frames[index], False
        return frames[-1], True

    def weight(self, base_weight: float, other_weight: float, clamped: bool) -> float:
        if clamped:
            return max(base_weight, other_weight)
        return (base_weight + other_weight) / 2.0


class StrictFrameCount(LastFrameClamp):
    """Refuse to merge blendshapes whose frame counts differ."""

    def check(self, name: str, base_count: int, other_count: int) -> None:
        if base_count != other_count:
            raise FrameCountMismatchError(
                f"blendshape {name!r} has {base_count} frame(s) on the base "
                f"but {other_count} on the merged mesh"
            )


def _reprojected_frames(frames: list[BlendShapeFrame], relative: np.ndarray) -> list[BlendShapeFrame]:
    return [
        BlendShapeFrame(
            weight=f.weight,
            delta_vertices=transform_directions(relative, f.delta_vertices),
            delta_normals=transform_directions(relative, f.delta_normals),
            delta_tangents=transform_directions(relative, f.delta_tangents),
        )
        for f in frames
    ]


def _merge_frames(
    base_shape: BlendShape,
    other_frames: list[BlendShapeFrame],
    policy: FramePolicy,
) -> list[BlendShapeFrame]:
    merged: list[BlendShapeFrame] = []
    for index in range(max(base_shape.frame_count, len(other_frames))):
        base_frame, base_clamped = policy.pick(base_shape.frames, index)
        other_frame, other_clamped = policy.pick(other_frames, index)
        merged.append(
            BlendShapeFrame(
                weight=policy.weight(
                    base_frame.weight, other_frame.weight, base_clamped or other_clamped
                ),
                delta_vertices=np.concatenate([base_frame.delta_vertices, other_frame.delta_vertices]),
                delta_normals=np.concatenate([base_frame.delta_normals, other_frame.delta_normals]),
                delta_tangents=np.concatenate([base_frame.delta_tangents, other_frame.delta_tangents]),
            )
        )
    return merged


def merge_into(base: MeshSnapshot, other: MeshSnapshot, policy: FramePolicy) -> None:
    """Append ``other`` to ``base`` in place. ``other`` is left untouched."""
    other_counts = {s.name: s.frame_count for s in other.blendshapes}
    for shape in base.blendshapes:
        if shape.name in other_counts:
            policy.check(shape.name, shape.frame_count, other_counts[shape.name])

    relative = base.world_to_local @ other.local_to_world
    same_space = is_identity(relative)

    # 1. Re-project into the base's local space
    if same_space:
        vertices, normals, tangents = other.vertices, other.normals, other.tangents
        other_frames = {s.name: s.frames for s in other.blendshapes}
        other_bounds = other.bounds
    else:
        vertices = transform_points(relative, other.vertices)
        normals = transform_normals(relative, other.normals)
        tangents = other.tangents.copy()
        tangents[:, :3] = normalize_rows(transform_directions(relative, other.tangents[:, :3]))
        other_frames = {s.name: _reprojected_frames(s.frames, relative) for s in other.blendshapes}
        other_bounds = other.bounds.transformed(relative)

    # 2. Concatenate per-vertex channels
    offset = base.vertex_count
    other_count = other.vertex_count
    base.vertices = np.concatenate([base.vertices, vertices])
    base.normals = np.concatenate([base.normals, normals])
    base.tangents = np.concatenate([base.tangents, tangents])
    base.colors = np.concatenate([base.colors, other.colors])
    base.uv_channels = [
        np.concatenate([mine, theirs]) for mine, theirs in zip(base.uv_channels, other.uv_channels)
    ]

    # 3. Offset triangles and union the material map
    for material, triangles in other.submeshes.items():
        shifted = triangles + offset
        if material in base.submeshes:
            base.submeshes[material] = np.concatenate([base.submeshes[material], shifted])
        else:
            base.submeshes[material] = shifted

    # 4. Weights reference bones, so they need no remap
    base.weights = base.weights + other.weights

    # 5. Bind poses: known bones keep the base pose, new ones are re-based
    inverse_relative = np.eye(4) if same_space else np.linalg.inv(relative)
    for bone in other.bone_order + [b for b in other.bind_poses if b not in other.bone_order]:
        if bone in base.bind_poses:
            continue
        base.bind_poses[bone] = other.bind_poses[bone] @ inverse_relative
        base.bone_order.append(bone)
    if base.root_bone is None:
        base.root_bone = other.root_bone

    # 6. Blendshapes by name
    for shape in base.blendshapes:
        frames = other_frames.pop(shape.name, None)
        if frames is None:
            shape.frames = [f.padded(0, other_count) for f in shape.frames]
            continue
        shape.frames = _merge_frames(shape, frames, policy)
        other_shape = next(s for s in other.blendshapes if s.name == shape.name)
        shape.weight = max(shape.weight, other_shape.weight)
    for other_shape in other.blendshapes:
        if other_shape.name not in other_frames:
            continue
        base.blendshapes.append(
            BlendShape(
                name=other_shape.name,
                frames=[f.padded(offset, 0) for f in other_frames[other_shape.name]],
                weight=other_shape.weight,
            )
        )

    # 7. Bounds
    base.bounds = base.bounds.encapsulate(other_bounds)


def merge_snapshots(
    snapshots: list[MeshSnapshot], policy: FramePolicy | None = None
) -> MeshSnapshot:
    """
    Fold ``snapshots`` into the first one and return it.

    A single snapshot is returned unchanged. The fold order decides whose
    local space and bone order become canonical.
    """
    if not snapshots:
        raise ValueError("merge_snapshots needs at least one snapshot")
    base = snapshots[0]
    if len(snapshots) < 2:
        return base

    policy = policy or LastFrameClamp()
    for other in snapshots[1:]:
        merge_into(base, other, policy)
    base.validate()
    return base
