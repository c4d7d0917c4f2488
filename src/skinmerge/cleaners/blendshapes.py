"""Blendshape cleanup: strip hidden geometry and bake unused shapes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from skinmerge.analyzers.blendshapes import BlendshapeUsage, eyelid_blendshape_names
from skinmerge.errors import SnapshotIntegrityError
from skinmerge.mesh import apply_snapshot, bake_blendshapes, extract_snapshot, strip_blendshape_vertices
from skinmerge.scene import Avatar, SkinnedMeshRenderer
from skinmerge.utils.logging import log_error

if TYPE_CHECKING:
    from skinmerge.utils.assets import GeneratedAssets


def restore_eyelid_indices(avatar: Avatar, renderer: SkinnedMeshRenderer, names: list[str] | None) -> None:
    """Re-resolve eyelid shape indices by name after shapes were removed or reordered."""
    if names is None or renderer.mesh is None:
        return
    avatar.eyelid_blendshapes = [renderer.mesh.get_blendshape_index(n) for n in names]


def strip_marked_blendshapes(
    avatar: Avatar,
    marked: dict[SkinnedMeshRenderer, list[str]],
    assets: GeneratedAssets | None = None,
) -> list[dict[str, object]]:
    """
    Delete geometry hidden by marked shapes, one renderer at a time.

    A renderer whose mesh data is inconsistent is reported and left as is.
    """
    results: list[dict[str, object]] = []

    for renderer, names in marked.items():
        if not names:
            continue
        eyelids = eyelid_blendshape_names(avatar, renderer)
        mesh_name = renderer.mesh.name if renderer.mesh is not None else renderer.name
        try:
            snapshot = extract_snapshot(renderer)
            before = snapshot.vertex_count
            removed = strip_blendshape_vertices(snapshot, names)
            mesh = apply_snapshot(snapshot, renderer, mesh_name=mesh_name)
        except SnapshotIntegrityError as e:
            log_error(f"Could not strip {renderer.name}: {e}")
            results.append({"renderer": renderer.name, "shapes": names, "error": str(e)})
            continue

        restore_eyelid_indices(avatar, renderer, eyelids)
        if assets is not None:
            assets.add_mesh(mesh)
        results.append({
            "renderer": renderer.name,
            "shapes": names,
            "vertices_before": before,
            "vertices_removed": removed,
        })

    return results


def bake_unused_blendshapes(
    avatar: Avatar,
    usages: dict[SkinnedMeshRenderer, BlendshapeUsage],
    assets: GeneratedAssets | None = None,
) -> list[dict[str, object]]:
    """Bake static shapes into the base mesh and drop every unused shape."""
    results: list[dict[str, object]] = []

    for renderer, usage in usages.items():
        if not usage.discard:
            continue
        eyelids = eyelid_blendshape_names(avatar, renderer)
        mesh_name = renderer.mesh.name if renderer.mesh is not None else renderer.name
        try:
            snapshot = extract_snapshot(renderer)
            baked = bake_blendshapes(snapshot, usage.discard, usage.animated)
            mesh = apply_snapshot(snapshot, renderer, mesh_name=mesh_name)
        except SnapshotIntegrityError as e:
            log_error(f"Could not bake {renderer.name}: {e}")
            results.append({"renderer": renderer.name, "shapes": usage.discard, "error": str(e)})
            continue

        restore_eyelid_indices(avatar, renderer, eyelids)
        if assets is not None:
            assets.add_mesh(mesh)
        results.append({
            "renderer": renderer.name,
            "removed": usage.discard,
            "baked": baked,
            "kept": len(snapshot.blendshapes),
        })

    return results
