"""Analyzers for blendshape usage and renderer equivalence."""

from skinmerge.analyzers.blendshapes import (
    BlendshapeUsage,
    eyelid_blendshape_names,
    find_marked_blendshapes,
    find_unused_blendshapes,
    get_animated_blendshapes,
)
from skinmerge.analyzers.keys import (
    PropertyKey,
    RendererKey,
    build_equivalence_keys,
    curve_signature,
    group_materials,
    group_renderers,
    static_signature,
)

__all__ = [
    "BlendshapeUsage",
    "PropertyKey",
    "RendererKey",
    "build_equivalence_keys",
    "curve_signature",
    "eyelid_blendshape_names",
    "find_marked_blendshapes",
    "find_unused_blendshapes",
    "get_animated_blendshapes",
    "group_materials",
    "group_renderers",
    "static_signature",
]
