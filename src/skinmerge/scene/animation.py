"""Animation clips, curve bindings and animator state machines."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from skinmerge.scene.model import Avatar, Material, SkinnedMeshRenderer, Transform
from skinmerge.utils.constants import (
    GAME_OBJECT_TYPE,
    MATERIAL_PROPERTY_PREFIX,
    MATERIAL_SWAP_PREFIX,
    RENDERER_TYPE,
)
from skinmerge.utils.logging import log_debug
from skinmerge.utils.naming import blendshape_property_name, new_uid


@dataclass(frozen=True)
class Keyframe:
    time: float
    value: float
    in_tangent: float = 0.0
    out_tangent: float = 0.0
    in_weight: float = 1.0 / 3.0
    out_weight: float = 1.0 / 3.0
    weighted_mode: int = 0


@dataclass
class AnimationCurve:
    keys: list[Keyframe] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.keys)

    def copy(self) -> AnimationCurve:
        return AnimationCurve(list(self.keys))


@dataclass(frozen=True)
class ObjectKeyframe:
    """Keyframe of an object-reference curve (material swaps)."""

    time: float
    value: Material | None


@dataclass(frozen=True)
class CurveBinding:
    """What a curve animates: a node path, a component type and a property."""

    path: str
    type: str
    property: str
    discrete: bool = False

    @property
    def is_material_swap(self) -> bool:
        return self.property.startswith(MATERIAL_SWAP_PREFIX)

    @property
    def is_material_property(self) -> bool:
        return self.property.startswith(MATERIAL_PROPERTY_PREFIX)

    @property
    def blendshape_name(self) -> str | None:
        if self.type != RENDERER_TYPE:
            return None
        return blendshape_property_name(self.property)

    def retarget(self, path: str, property_name: str | None = None) -> CurveBinding:
        return CurveBinding(
            path=path,
            type=self.type,
            property=self.property if property_name is None else property_name,
            discrete=self.discrete,
        )


@dataclass(eq=False)
class AnimationClip:
    """Float curves and object-reference curves keyed by binding."""

    name: str
    curves: dict[CurveBinding, AnimationCurve] = field(default_factory=dict)
    object_curves: dict[CurveBinding, list[ObjectKeyframe]] = field(default_factory=dict)
    uid: str = field(default_factory=new_uid)

    def bindings(self) -> list[CurveBinding]:
        """Float curve bindings followed by object-reference bindings."""
        return list(self.curves) + list(self.object_curves)

    def get_curve(self, binding: CurveBinding) -> AnimationCurve | None:
        return self.curves.get(binding)

    def set_curve(self, binding: CurveBinding, curve: AnimationCurve) -> None:
        self.curves[binding] = curve

    def get_object_curve(self, binding: CurveBinding) -> list[ObjectKeyframe] | None:
        return self.object_curves.get(binding)

    def set_object_curve(self, binding: CurveBinding, keys: list[ObjectKeyframe]) -> None:
        self.object_curves[binding] = keys

    def remove_binding(self, binding: CurveBinding) -> None:
        self.curves.pop(binding, None)
        self.object_curves.pop(binding, None)

    def clone(self, name: str) -> AnimationClip:
        return AnimationClip(
            name=name,
            curves={b: c.copy() for b, c in self.curves.items()},
            object_curves={b: list(k) for b, k in self.object_curves.items()},
        )


@dataclass(eq=False)
class State:
    name: str
    motion: object = None


@dataclass(eq=False)
class StateMachine:
    name: str
    states: list[State] = field(default_factory=list)
    state_machines: list[StateMachine] = field(default_factory=list)

    def walk_states(self) -> Iterator[State]:
        yield from self.states
        for child in self.state_machines:
            yield from child.walk_states()

    def clone(self) -> StateMachine:
        """Structural copy; motions stay shared."""
        return StateMachine(
            name=self.name,
            states=[State(s.name, s.motion) for s in self.states],
            state_machines=[child.clone() for child in self.state_machines],
        )


@dataclass(eq=False)
class Layer:
    name: str
    state_machine: StateMachine


@dataclass(eq=False)
class AnimatorController:
    name: str
    layers: list[Layer] = field(default_factory=list)
    uid: str = field(default_factory=new_uid)

    @property
    def animation_clips(self) -> list[AnimationClip]:
        """Distinct clips referenced directly by states, in walk order."""
        clips: list[AnimationClip] = []
        for layer in self.layers:
            for state in layer.state_machine.walk_states():
                if isinstance(state.motion, AnimationClip) and state.motion not in clips:
                    clips.append(state.motion)
        return clips

    def clone(self, name: str) -> AnimatorController:
        return AnimatorController(
            name=name,
            layers=[Layer(layer.name, layer.state_machine.clone()) for layer in self.layers],
        )


AnimatedObject = Transform | SkinnedMeshRenderer


@dataclass(eq=False)
class AnimationReference:
    """One clip as seen from the node its animator drives."""

    root: Transform
    clip: AnimationClip
    bindings: list[CurveBinding]
    referenced_objects: list[AnimatedObject | None]


def get_animated_object(root: Transform, binding: CurveBinding) -> AnimatedObject | None:
    """Resolve the node or renderer a binding animates, or None."""
    node = root.find(binding.path)
    if node is None:
        return None
    if binding.type == RENDERER_TYPE:
        return node.renderer
    if binding.type == GAME_OBJECT_TYPE or node.has_component(binding.type):
        return node
    return None


def _reference(root: Transform, clip: AnimationClip) -> AnimationReference:
    bindings = clip.bindings()
    objects = [get_animated_object(root, b) for b in bindings]
    unresolved = sum(1 for o in objects if o is None)
    if unresolved:
        log_debug(f"{clip.name}: {unresolved} binding(s) do not resolve under {root.name}")
    return AnimationReference(root=root, clip=clip, bindings=bindings, referenced_objects=objects)


def collect_animations(avatar: Avatar) -> list[AnimationReference]:
    """
    Gather every clip that can drive the avatar.

    Animator controllers resolve paths from their own node; descriptor
    layers resolve from the avatar root.
    """
    references: list[AnimationReference] = []

    for animator in avatar.animators:
        if animator.controller is None:
            continue
        for clip in animator.controller.animation_clips:
            references.append(_reference(animator.node, clip))

    for controller in avatar.base_layers + avatar.special_layers:
        if controller is None:
            continue
        for clip in controller.animation_clips:
            references.append(_reference(avatar.root, clip))

    return references
