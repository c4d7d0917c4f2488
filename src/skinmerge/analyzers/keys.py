"""Equivalence keys deciding which skinned renderers may be merged."""

from collections import defaultdict
from dataclasses import dataclass, field

from skinmerge.errors import KeyLookupError
from skinmerge.scene import (
    AnimationCurve,
    AnimationReference,
    Avatar,
    CurveBinding,
    ObjectKeyframe,
    SkinnedMeshRenderer,
    Transform,
)
from skinmerge.utils.logging import log_debug, log_warn

EquivalenceKey = frozenset[str]


class PropertyKey:
    """
    Signature over a list of dotted attribute paths.

    ``"root_bone.uid"`` reads ``obj.root_bone.uid``; a None anywhere on the
    path renders as ``null``. A missing attribute raises KeyLookupError.
    """

    def __init__(self, properties: list[str] | None = None) -> None:
        self.properties: list[str] = list(properties or [])

    def add(self, *properties: str) -> None:
        self.properties.extend(properties)

    def clear(self) -> None:
        self.properties = []

    def signature(self, obj: object, prefix: str = "S") -> str:
        parts = [prefix]
        for prop in self.properties:
            value = obj
            for attr in prop.split("."):
                if value is None:
                    break
                try:
                    value = getattr(value, attr)
                except AttributeError as e:
                    raise KeyLookupError(
                        f"cannot read {prop!r} on {type(obj).__name__}"
                    ) from e
            parts.append("null" if value is None else str(value))
        return "/".join(parts)


RENDERER_KEY = PropertyKey([
    "root_bone.uid",
    "enabled",
    "node.active",
    "shadow_casting_mode",
    "receive_shadows",
    "update_when_offscreen",
    "light_probe_usage",
    "reflection_probe_usage",
    "quality",
    "probe_anchor.uid",
    "skinned_motion_vectors",
    "allow_occlusion_when_dynamic",
])

MATERIAL_KEY = PropertyKey(["shader", "color"])


def static_signature(renderer: SkinnedMeshRenderer) -> str:
    """Signature of a renderer's static configuration."""
    if renderer.mesh is None:
        raise KeyLookupError(f"{renderer.name}: renderer has no mesh")
    signature = RENDERER_KEY.signature(renderer)
    return f"{signature}/{renderer.mesh.blendshape_count != 0}"


def curve_signature(
    renderer: SkinnedMeshRenderer,
    reference: AnimationReference,
    binding: CurveBinding,
    curve: AnimationCurve | list[ObjectKeyframe],
) -> str:
    """Signature of one animated property of a renderer, keyframes included."""
    root_bone = renderer.root_bone.uid if renderer.root_bone is not None else "null"
    parts = ["A", root_bone, reference.clip.uid, binding.type, binding.property]
    if isinstance(curve, AnimationCurve):
        parts.append(str(len(curve)))
        for key in curve.keys:
            parts.append(
                f"{key.in_tangent}/{key.in_weight}/{key.out_tangent}/{key.out_weight}"
                f"/{key.time}/{key.value}/{key.weighted_mode}"
            )
    else:
        parts.append(str(len(curve)))
        for key in curve:
            value = key.value.uid if key.value is not None else "null"
            parts.append(f"{key.time}/{value}")
    return "/".join(parts)


@dataclass(eq=False)
class RendererKey:
    """A renderer's equivalence key and the bindings that animate it."""

    renderer: SkinnedMeshRenderer
    signatures: set[str] = field(default_factory=set)
    # Material swaps and material properties: retargeted, not compared
    material_bindings: list[tuple[AnimationReference, CurveBinding]] = field(default_factory=list)
    # Everything else animating the renderer or its node
    bindings: list[tuple[AnimationReference, CurveBinding]] = field(default_factory=list)

    @property
    def key(self) -> EquivalenceKey:
        return frozenset(self.signatures)


def _outside_hierarchy(avatar: Avatar, renderer: SkinnedMeshRenderer) -> Transform | None:
    """First bone (root bone included) not under the avatar root, or None."""
    candidates: list[Transform | None] = [renderer.root_bone, *renderer.bones]
    for bone in candidates:
        if bone is not None and not bone.is_child_of(avatar.root):
            return bone
    return None


def build_equivalence_keys(
    avatar: Avatar, references: list[AnimationReference]
) -> tuple[dict[SkinnedMeshRenderer, RendererKey], list[dict[str, object]]]:
    """
    Compute an equivalence key for every merge candidate.

    Returns the keys in scene order and a list of excluded renderers with
    the reason. Exclusion never aborts the pass.
    """
    keys: dict[SkinnedMeshRenderer, RendererKey] = {}
    excluded: list[dict[str, object]] = []

    def exclude(renderer: SkinnedMeshRenderer, issue: str, detail: str) -> None:
        keys.pop(renderer, None)
        excluded.append({"renderer": renderer.name, "issue": issue, "detail": detail})
        log_warn(f"{renderer.name} excluded from merging: {detail}")

    for renderer in avatar.renderers():
        stray = _outside_hierarchy(avatar, renderer)
        if stray is not None:
            exclude(renderer, "OUTSIDE_HIERARCHY", f"bone {stray.name} is outside {avatar.name}")
            continue
        try:
            keys[renderer] = RendererKey(renderer, {static_signature(renderer)})
        except KeyLookupError as e:
            exclude(renderer, "LOOKUP_FAILED", str(e))

    failed: set[SkinnedMeshRenderer] = set()
    for reference in references:
        for binding, target in zip(reference.bindings, reference.referenced_objects):
            if target is None:
                continue
            if isinstance(target, SkinnedMeshRenderer):
                renderer = target
            elif isinstance(target, Transform) and target.renderer is not None:
                renderer = target.renderer
            else:
                continue
            entry = keys.get(renderer)
            if entry is None:
                continue

            if renderer is target and (binding.is_material_swap or binding.is_material_property):
                entry.material_bindings.append((reference, binding))
                continue

            curve = reference.clip.get_curve(binding)
            if curve is None:
                curve = reference.clip.get_object_curve(binding)
            if curve is None:
                failed.add(renderer)
                log_debug(f"{reference.clip.name}: no curve data for {binding.path}:{binding.property}")
                continue
            entry.signatures.add(curve_signature(renderer, reference, binding, curve))
            entry.bindings.append((reference, binding))

    for renderer in failed:
        if renderer in keys:
            exclude(renderer, "LOOKUP_FAILED", "animation curve could not be read")

    return keys, excluded


def group_renderers(
    keys: dict[SkinnedMeshRenderer, RendererKey],
) -> list[list[SkinnedMeshRenderer]]:
    """Partition renderers with equal keys, in scene order. Groups of one are dropped."""
    groups: dict[EquivalenceKey, list[SkinnedMeshRenderer]] = defaultdict(list)
    for renderer, entry in keys.items():
        groups[entry.key].append(renderer)
    return [group for group in groups.values() if len(group) > 1]


def group_materials(avatar: Avatar) -> list[dict[str, object]]:
    """
    Report materials that share shader and color across the avatar.

    Nothing is changed; these are candidates for a later atlas step.
    """
    by_key: dict[str, list[str]] = defaultdict(list)
    shader_of: dict[str, str] = {}
    seen: set[int] = set()

    for renderer in avatar.renderers():
        for material in renderer.materials:
            if material is None or id(material) in seen:
                continue
            seen.add(id(material))
            signature = MATERIAL_KEY.signature(material, prefix="M")
            by_key[signature].append(material.name)
            shader_of[signature] = material.shader

    return [
        {"shader": shader_of[signature], "materials": names, "count": len(names)}
        for signature, names in by_key.items()
        if len(names) > 1
    ]
