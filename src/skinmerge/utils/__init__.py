"""Utility functions for scene statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from skinmerge.scene import Avatar


def get_scene_stats(avatar: Avatar) -> dict[str, int]:
    """Get current scene statistics."""
    renderers = avatar.renderers()
    meshes = [r.mesh for r in renderers if r.mesh is not None]
    materials = {id(m) for r in renderers for m in r.materials if m is not None}
    clips = {id(c) for ctrl in avatar.controllers() for c in ctrl.animation_clips}

    return {
        "renderers": len(renderers),
        "vertices": sum(m.vertex_count for m in meshes),
        "blendshapes": sum(m.blendshape_count for m in meshes),
        "materials": len(materials),
        "clips": len(clips),
    }
