"""Blendshape usage analysis: marked-for-removal and unused shapes."""

from dataclasses import dataclass, field

from skinmerge.scene import AnimationReference, Avatar, SkinnedMeshRenderer
from skinmerge.utils.constants import REMOVE_BLENDSHAPE_PREFIX
from skinmerge.utils.logging import log_debug


def get_animated_blendshapes(
    avatar: Avatar, references: list[AnimationReference]
) -> dict[SkinnedMeshRenderer, set[str]]:
    """Blendshape names driven by any clip, per renderer."""
    animated: dict[SkinnedMeshRenderer, set[str]] = {r: set() for r in avatar.renderers()}
    for reference in references:
        for binding, target in zip(reference.bindings, reference.referenced_objects):
            name = binding.blendshape_name
            if name is None or not isinstance(target, SkinnedMeshRenderer):
                continue
            animated.setdefault(target, set()).add(name)
    return animated


def eyelid_blendshape_names(avatar: Avatar, renderer: SkinnedMeshRenderer) -> list[str] | None:
    """
    Eyelid shape names for the eyelid renderer, None for any other renderer.

    Out-of-range indices map to an empty name so they stay unresolved.
    """
    if renderer is not avatar.eyelids_renderer or renderer.mesh is None:
        return None
    count = renderer.mesh.blendshape_count
    return [
        renderer.mesh.get_blendshape_name(i) if 0 <= i < count else ""
        for i in avatar.eyelid_blendshapes
    ]


def get_mapped_blendshapes(avatar: Avatar, renderer: SkinnedMeshRenderer) -> set[str]:
    """Shapes the avatar descriptor drives directly (visemes and eyelids)."""
    mapped: set[str] = set()
    if renderer is avatar.viseme_renderer:
        mapped.update(avatar.viseme_blendshapes)
    mapped.update(n for n in eyelid_blendshape_names(avatar, renderer) or [] if n)
    return mapped


def find_marked_blendshapes(
    avatar: Avatar, references: list[AnimationReference]
) -> dict[SkinnedMeshRenderer, list[str]]:
    """
    Shapes that exist only to hide geometry.

    A shape qualifies when its name starts with ``remove_``, its weight is
    non-zero and no clip animates it. Renderers with nothing marked are left
    out.
    """
    animated = get_animated_blendshapes(avatar, references)
    marked: dict[SkinnedMeshRenderer, list[str]] = {}

    for renderer in avatar.renderers():
        if renderer.mesh is None:
            log_debug(f"{renderer.name}: no mesh, skipping marked blendshapes")
            continue
        names = [
            name
            for i, name in enumerate(renderer.mesh.blendshape_names)
            if name.startswith(REMOVE_BLENDSHAPE_PREFIX)
            and renderer.get_blendshape_weight(i) != 0.0
            and name not in animated.get(renderer, set())
        ]
        if names:
            marked[renderer] = names

    return marked


@dataclass(eq=False)
class BlendshapeUsage:
    """How one renderer's shapes would be treated by the bake stage."""

    renderer: SkinnedMeshRenderer
    # Kept verbatim: animated or driven by the avatar descriptor
    animated: set[str] = field(default_factory=set)
    # Zero weight: dropped without touching geometry
    unused: list[str] = field(default_factory=list)
    # Non-zero weight: baked into the base mesh, then dropped
    static: list[str] = field(default_factory=list)

    @property
    def discard(self) -> list[str]:
        return self.unused + self.static


def find_unused_blendshapes(
    avatar: Avatar, references: list[AnimationReference]
) -> dict[SkinnedMeshRenderer, BlendshapeUsage]:
    """
    Shapes nothing animates, per renderer.

    Viseme and eyelid mappings count as animation. Renderers whose shapes
    are all in use are left out.
    """
    animated = get_animated_blendshapes(avatar, references)
    usages: dict[SkinnedMeshRenderer, BlendshapeUsage] = {}

    for renderer in avatar.renderers():
        if renderer.mesh is None:
            log_debug(f"{renderer.name}: no mesh, skipping unused blendshapes")
            continue
        keep = animated.get(renderer, set()) | get_mapped_blendshapes(avatar, renderer)
        usage = BlendshapeUsage(renderer=renderer, animated=keep)
        for i, name in enumerate(renderer.mesh.blendshape_names):
            if name in keep:
                continue
            if renderer.get_blendshape_weight(i) != 0.0:
                usage.static.append(name)
            else:
                usage.unused.append(name)
        if usage.discard:
            usages[renderer] = usage

    return usages
