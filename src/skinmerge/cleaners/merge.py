"""Merge groups of equivalent skinned renderers into one renderer each."""

from __future__ import annotations

from typing import TYPE_CHECKING

from skinmerge.analyzers.blendshapes import eyelid_blendshape_names
from skinmerge.analyzers.keys import RendererKey
from skinmerge.cleaners.blendshapes import restore_eyelid_indices
from skinmerge.errors import FrameCountMismatchError, SnapshotIntegrityError
from skinmerge.mesh import FramePolicy, apply_snapshot, extract_snapshot, merge_snapshots
from skinmerge.retarget import RetargetSession, replace_clips_in_controllers
from skinmerge.scene import Avatar, SkinnedMeshRenderer, Transform
from skinmerge.utils.logging import log_detail, log_error, log_info
from skinmerge.utils.naming import merged_mesh_name

if TYPE_CHECKING:
    from skinmerge.utils.assets import GeneratedAssets


def remove_renderer(renderer: SkinnedMeshRenderer, in_use: set[Transform] | None = None) -> str:
    """
    Take a merged-away renderer out of the scene.

    The node goes with it when it carries nothing else and is not in
    ``in_use`` (bones and anchors of other renderers); otherwise only the
    renderer is detached. Returns ``"node"`` or ``"renderer"``.
    """
    node = renderer.transform
    node.renderer = None
    renderer.node = None
    if not node.components and not node.children and node not in (in_use or set()):
        node.detach()
        return "node"
    return "renderer"


def merge_renderer_group(
    avatar: Avatar,
    group: list[SkinnedMeshRenderer],
    keys: dict[SkinnedMeshRenderer, RendererKey],
    session: RetargetSession,
    policy: FramePolicy | None = None,
) -> dict[str, object]:
    """
    Merge ``group`` into its first renderer.

    A renderer whose snapshot cannot be taken is left out and reported under
    ``skipped``. Raises SnapshotIntegrityError when fewer than two renderers
    remain, or FrameCountMismatchError, before anything in the scene is
    touched.
    """
    default_root_bone = group[0].root_bone
    snapshots = []
    kept: list[SkinnedMeshRenderer] = []
    skipped: dict[str, str] = {}
    for renderer in group:
        try:
            snapshots.append(extract_snapshot(renderer, default_root_bone=default_root_bone))
        except SnapshotIntegrityError as e:
            log_error(f"Leaving {renderer.name} out of the merge: {e}")
            skipped[renderer.name] = str(e)
            continue
        kept.append(renderer)
    if len(kept) < 2:
        raise SnapshotIntegrityError(
            f"{len(kept)} of {len(group)} renderer(s) left to merge: {'; '.join(skipped.values())}"
        )

    group = kept
    survivor = group[0]
    names = [r.name for r in group]

    eyelid_owner = avatar.eyelids_renderer if avatar.eyelids_renderer in group else None
    eyelids = eyelid_blendshape_names(avatar, eyelid_owner) if eyelid_owner else None

    vertex_counts = [s.vertex_count for s in snapshots]
    merged = merge_snapshots(snapshots, policy)

    changes = session.retarget_group(group, keys, merged.materials)
    collisions = [c for c in changes if "issue" in c]
    mesh = apply_snapshot(merged, survivor, mesh_name=merged_mesh_name(names))
    if session.assets is not None:
        session.assets.add_mesh(mesh)

    if avatar.viseme_renderer in group:
        avatar.viseme_renderer = survivor
    if eyelid_owner is not None:
        avatar.eyelids_renderer = survivor
        restore_eyelid_indices(avatar, survivor, eyelids)

    in_use: set[Transform] = set()
    for other in avatar.renderers():
        if other in group[1:]:
            continue
        in_use.update(b for b in [other.root_bone, other.probe_anchor, *other.bones] if b is not None)
    removed = {r.name: remove_renderer(r, in_use) for r in group[1:]}

    return {
        "survivor": survivor.name,
        "renderers": names,
        "vertex_counts": vertex_counts,
        "vertices": merged.vertex_count,
        "materials": len(merged.materials),
        "curves_retargeted": len(changes) - len(collisions),
        "collisions": collisions,
        "removed": removed,
        "skipped": skipped,
    }


def merge_renderer_groups(
    avatar: Avatar,
    groups: list[list[SkinnedMeshRenderer]],
    keys: dict[SkinnedMeshRenderer, RendererKey],
    policy: FramePolicy | None = None,
    assets: GeneratedAssets | None = None,
) -> list[dict[str, object]]:
    """
    Merge every group; one group's failure leaves that group untouched only.

    Controllers are updated once at the end with every clip cloned during
    the pass.
    """
    session = RetargetSession(assets)
    results: list[dict[str, object]] = []

    for group in groups:
        names = [r.name for r in group]
        log_info(f"Grouping meshes: {', '.join(names)}")
        try:
            result = merge_renderer_group(avatar, group, keys, session, policy)
        except (SnapshotIntegrityError, FrameCountMismatchError) as e:
            log_error(f"Could not merge {', '.join(names)}: {e}")
            results.append({"renderers": names, "error": str(e)})
            continue
        log_detail(f"{result['survivor']}: {result['vertices']:,} verts, {result['materials']} material(s)")
        results.append(result)

    controllers = replace_clips_in_controllers(avatar, session.clip_map, assets)
    if controllers:
        log_detail(f"Updated {len(controllers)} controller(s) with {len(session.clip_map)} cloned clip(s)")

    return results
