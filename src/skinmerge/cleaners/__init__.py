"""Cleaners for blendshapes and mergeable renderers."""

from skinmerge.cleaners.blendshapes import (
    bake_unused_blendshapes,
    restore_eyelid_indices,
    strip_marked_blendshapes,
)
from skinmerge.cleaners.merge import merge_renderer_group, merge_renderer_groups, remove_renderer

__all__ = [
    "bake_unused_blendshapes",
    "merge_renderer_group",
    "merge_renderer_groups",
    "remove_renderer",
    "restore_eyelid_indices",
    "strip_marked_blendshapes",
]
