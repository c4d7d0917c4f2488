"""Snapshot extraction from a renderer, and write-back to a renderer."""

import numpy as np

from skinmerge.errors import SnapshotIntegrityError
from skinmerge.mesh.normals import recalculate_normals, recalculate_tangents
from skinmerge.mesh.snapshot import BlendShape, BlendShapeFrame, BoneWeight, MeshSnapshot
from skinmerge.scene.model import (
    Bounds,
    Material,
    Mesh,
    MeshBlendShape,
    MeshBlendShapeFrame,
    SkinnedMeshRenderer,
    Transform,
)
from skinmerge.utils.constants import DEFAULT_COLOR, DEFAULT_UV, UV_CHANNEL_COUNT
from skinmerge.utils.logging import log_debug


def _check_not_longer(renderer: SkinnedMeshRenderer, channel: str, length: int, count: int) -> None:
    if length > count:
        raise SnapshotIntegrityError(
            f"{renderer.name}: {channel} has {length} entries but the mesh has {count} vertices"
        )


def _world_to_local(renderer: SkinnedMeshRenderer, node: Transform) -> np.ndarray:
    """Inverse world matrix of ``node``; zero scale anywhere up the chain has none."""
    try:
        return node.world_to_local
    except np.linalg.LinAlgError as e:
        raise SnapshotIntegrityError(
            f"{renderer.name}: transform of {node.name} cannot be inverted ({e})"
        ) from e


def _pad(values: np.ndarray, count: int, default: tuple[float, ...]) -> np.ndarray:
    """Pad a channel to ``count`` rows with ``default``."""
    missing = count - len(values)
    if missing <= 0:
        return values.astype(np.float64, copy=True)
    filler = np.tile(np.asarray(default, dtype=np.float64), (missing, 1))
    if len(values) == 0:
        return filler
    return np.concatenate([values.astype(np.float64), filler])


def _bone_at(bones: list[Transform | None], index: int) -> Transform | None:
    """Bone for a raw weight index; out-of-range indices reference no bone."""
    if 0 <= index < len(bones):
        return bones[index]
    return None


def extract_snapshot(
    renderer: SkinnedMeshRenderer, default_root_bone: Transform | None = None
) -> MeshSnapshot:
    """
    Capture a renderer and its mesh as a self-contained snapshot.

    Missing normals/tangents are recomputed, missing colors, UVs and weights
    are padded. A channel longer than the vertex count raises
    SnapshotIntegrityError instead of being truncated.
    """
    mesh = renderer.mesh
    if mesh is None:
        raise SnapshotIntegrityError(f"{renderer.name}: renderer has no mesh")

    count = mesh.vertex_count
    _check_not_longer(renderer, "normals", len(mesh.normals), count)
    _check_not_longer(renderer, "tangents", len(mesh.tangents), count)
    _check_not_longer(renderer, "colors", len(mesh.colors), count)
    _check_not_longer(renderer, "bone weights", len(mesh.bone_weights), count)
    if len(mesh.bone_indices) != len(mesh.bone_weights):
        raise SnapshotIntegrityError(
            f"{renderer.name}: {len(mesh.bone_indices)} bone index rows "
            f"but {len(mesh.bone_weights)} bone weight rows"
        )
    if len(mesh.uvs) > UV_CHANNEL_COUNT:
        raise SnapshotIntegrityError(f"{renderer.name}: {len(mesh.uvs)} UV channels")
    for channel, uvs in enumerate(mesh.uvs):
        _check_not_longer(renderer, f"uv{channel}", len(uvs), count)
    for slot, triangles in enumerate(mesh.submeshes):
        if len(triangles) and (triangles.min() < 0 or triangles.max() >= count):
            raise SnapshotIntegrityError(
                f"{renderer.name}: submesh {slot} indexes outside 0..{count - 1}"
            )

    vertices = mesh.vertices.astype(np.float64, copy=True)

    uv_channels = [
        _pad(mesh.uvs[channel] if channel < len(mesh.uvs) else np.zeros((0, 2)), count, DEFAULT_UV)
        for channel in range(UV_CHANNEL_COUNT)
    ]

    if len(mesh.normals) < count:
        log_debug(f"{renderer.name}: recalculating normals")
        normals = recalculate_normals(vertices, mesh.submeshes)
    else:
        normals = mesh.normals.astype(np.float64, copy=True)

    if len(mesh.tangents) < count:
        log_debug(f"{renderer.name}: recalculating tangents")
        tangents = recalculate_tangents(vertices, normals, uv_channels[0], mesh.submeshes)
    else:
        tangents = mesh.tangents.astype(np.float64, copy=True)

    colors = _pad(mesh.colors, count, DEFAULT_COLOR)

    # Slots sharing a material collapse into one key
    submeshes: dict[Material | None, np.ndarray] = {}
    for slot, material in enumerate(renderer.materials):
        if slot >= len(mesh.submeshes):
            log_debug(f"{renderer.name}: material slot {slot} has no submesh")
            triangles = np.zeros(0, dtype=np.int64)
        else:
            triangles = mesh.submeshes[slot].astype(np.int64, copy=True)
        if material in submeshes:
            submeshes[material] = np.concatenate([submeshes[material], triangles])
        else:
            submeshes[material] = triangles

    root_bone = renderer.root_bone or default_root_bone or renderer.transform
    weights = [
        BoneWeight(
            bones=tuple(_bone_at(renderer.bones, int(i)) for i in index_row),
            weights=tuple(float(w) for w in weight_row),
        )
        for index_row, weight_row in zip(mesh.bone_indices, mesh.bone_weights)
    ]
    missing = count - len(weights)
    if missing > 0:
        weights.extend([BoneWeight.full(root_bone)] * missing)

    local_to_world = renderer.transform.local_to_world
    bind_poses: dict[Transform, np.ndarray] = {}
    bone_order: list[Transform] = []
    for i, bone in enumerate(renderer.bones):
        if bone is None or bone in bind_poses:
            continue
        if i < len(mesh.bind_poses):
            bind_poses[bone] = mesh.bind_poses[i].astype(np.float64, copy=True)
        else:
            bind_poses[bone] = _world_to_local(renderer, bone) @ local_to_world
        bone_order.append(bone)
    for weight in weights:
        for bone in weight.bones:
            if bone is not None and bone not in bind_poses:
                bind_poses[bone] = _world_to_local(renderer, bone) @ local_to_world
                bone_order.append(bone)

    blendshapes: list[BlendShape] = []
    for index, shape in enumerate(mesh.blendshapes):
        if not shape.frames:
            log_debug(f"{renderer.name}: blendshape {shape.name} has no frames, skipped")
            continue
        frames = []
        for frame in shape.frames:
            for label, deltas in (
                ("vertices", frame.delta_vertices),
                ("normals", frame.delta_normals),
                ("tangents", frame.delta_tangents),
            ):
                if len(deltas) != count:
                    raise SnapshotIntegrityError(
                        f"{renderer.name}: blendshape {shape.name} delta {label} has "
                        f"{len(deltas)} entries for {count} vertices"
                    )
            frames.append(
                BlendShapeFrame(
                    weight=float(frame.weight),
                    delta_vertices=frame.delta_vertices.astype(np.float64, copy=True),
                    delta_normals=frame.delta_normals.astype(np.float64, copy=True),
                    delta_tangents=frame.delta_tangents.astype(np.float64, copy=True),
                )
            )
        blendshapes.append(
            BlendShape(name=shape.name, frames=frames, weight=renderer.get_blendshape_weight(index))
        )

    bounds = (
        renderer.local_bounds.copy()
        if renderer.local_bounds is not None
        else Bounds.from_points(vertices)
    )

    snapshot = MeshSnapshot(
        name=renderer.name,
        vertices=vertices,
        normals=normals,
        tangents=tangents,
        colors=colors,
        uv_channels=uv_channels,
        submeshes=submeshes,
        weights=weights,
        bind_poses=bind_poses,
        bone_order=bone_order,
        root_bone=renderer.root_bone,
        blendshapes=blendshapes,
        bounds=bounds,
        local_to_world=local_to_world,
        world_to_local=_world_to_local(renderer, renderer.transform),
    )
    snapshot.validate()
    return snapshot


def _is_default(values: np.ndarray, default: tuple[float, ...]) -> bool:
    return bool(np.all(values == np.asarray(default, dtype=np.float64)))


def apply_snapshot(
    snapshot: MeshSnapshot, renderer: SkinnedMeshRenderer, mesh_name: str | None = None
) -> Mesh:
    """
    Write a snapshot into a new mesh on ``renderer``.

    Bone identities become indices here, in ``bone_order`` first and then in
    order of first use. Color and UV channels that only hold padding are
    dropped.
    """
    snapshot.validate()

    bones: list[Transform] = list(snapshot.bone_order)
    index: dict[Transform, int] = {bone: i for i, bone in enumerate(bones)}
    for weight in snapshot.weights:
        for bone in weight.bones:
            if bone is not None and bone not in index:
                index[bone] = len(bones)
                bones.append(bone)

    if bones:
        bone_indices = np.array(
            [[index[b] if b is not None else 0 for b in w.bones] for w in snapshot.weights],
            dtype=np.int64,
        ).reshape(-1, 4)
        bone_weights = np.array([w.weights for w in snapshot.weights], dtype=np.float64).reshape(-1, 4)
        bind_poses = np.array(
            [
                snapshot.bind_poses[bone]
                if bone in snapshot.bind_poses
                else bone.world_to_local @ snapshot.local_to_world
                for bone in bones
            ]
        )
    else:
        bone_indices = np.zeros((0, 4), dtype=np.int64)
        bone_weights = np.zeros((0, 4))
        bind_poses = np.zeros((0, 4, 4))

    colors = snapshot.colors if not _is_default(snapshot.colors, DEFAULT_COLOR) else np.zeros((0, 4))

    uvs = [
        channel if not _is_default(channel, DEFAULT_UV) else np.zeros((0, 2))
        for channel in snapshot.uv_channels
    ]
    while uvs and len(uvs[-1]) == 0:
        uvs.pop()

    mesh = Mesh(
        name=mesh_name or snapshot.name,
        vertices=snapshot.vertices.copy(),
        normals=snapshot.normals.copy(),
        tangents=snapshot.tangents.copy(),
        colors=colors.copy(),
        uvs=[uv.copy() for uv in uvs],
        submeshes=[tris.copy() for tris in snapshot.submeshes.values()],
        bone_indices=bone_indices,
        bone_weights=bone_weights,
        bind_poses=bind_poses,
        blendshapes=[
            MeshBlendShape(
                name=shape.name,
                frames=[
                    MeshBlendShapeFrame(
                        weight=f.weight,
                        delta_vertices=f.delta_vertices.copy(),
                        delta_normals=f.delta_normals.copy(),
                        delta_tangents=f.delta_tangents.copy(),
                    )
                    for f in shape.frames
                ],
            )
            for shape in snapshot.blendshapes
        ],
    )

    renderer.mesh = mesh
    renderer.materials = snapshot.materials
    renderer.bones = list(bones)
    if snapshot.root_bone is not None:
        renderer.root_bone = snapshot.root_bone
    renderer.blendshape_weights = [shape.weight for shape in snapshot.blendshapes]
    renderer.local_bounds = snapshot.bounds.copy()
    return mesh
