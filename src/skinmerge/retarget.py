"""
Animation retargeting after a renderer merge.

Curves that animated a renderer which no longer exists are moved onto the
surviving renderer, and material-swap curves get their slot index rewritten
to match the merged material order. Clips are never edited in place: each
affected clip is cloned once per pass and the clone reused.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from skinmerge.analyzers.keys import RendererKey
from skinmerge.scene import (
    AnimationClip,
    AnimationReference,
    AnimatorController,
    Avatar,
    CurveBinding,
    Material,
    SkinnedMeshRenderer,
    StateMachine,
)
from skinmerge.utils.constants import RENDERER_TYPE
from skinmerge.utils.logging import log_debug, log_detail, log_warn
from skinmerge.utils.naming import material_slot_property, parse_material_slot, random_hex

if TYPE_CHECKING:
    from skinmerge.utils.assets import GeneratedAssets


def resolve_material_slot(
    group: list[SkinnedMeshRenderer],
    renderer: SkinnedMeshRenderer,
    local_slot: int,
    merged_materials: list[Material | None],
) -> int:
    """
    Slot index in the merged renderer for ``renderer``'s ``local_slot``.

    The slot's material is looked up in the merged material order. With
    distinct materials this is the cumulative slot count of the renderers
    before ``renderer`` plus ``local_slot``; that offset is also the fallback
    when the slot has no material in the merged result.
    """
    offset = 0
    for other in group:
        if other is renderer:
            break
        offset += len(other.materials)

    if 0 <= local_slot < len(renderer.materials):
        material = renderer.materials[local_slot]
        if material in merged_materials:
            return merged_materials.index(material)
    return offset + local_slot


class RetargetSession:
    """Retargeting state for one pass; owns the original -> clone clip map."""

    def __init__(self, assets: GeneratedAssets | None = None) -> None:
        self.assets = assets
        self.clip_map: dict[AnimationClip, AnimationClip] = {}

    def clone_clip(self, clip: AnimationClip) -> AnimationClip:
        """The pass's private copy of ``clip``, created on first use."""
        if clip in self.clip_map:
            return self.clip_map[clip]
        if clip in self.clip_map.values():
            return clip
        name = self.assets.asset_name(clip.name) if self.assets else f"{random_hex()}_{clip.name}"
        copy = clip.clone(name)
        self.clip_map[clip] = copy
        if self.assets is not None:
            self.assets.add_clip(copy)
        log_debug(f"Cloned clip {clip.name} -> {copy.name}")
        return copy

    def _apply_moves(
        self, moves: list[tuple[AnimationReference, CurveBinding, CurveBinding, bool]]
    ) -> list[dict[str, object]]:
        """
        Rewrite every planned move, one clip at a time.

        All source curves of a clip are read before any binding is removed or
        written, so a move onto a slot that is itself being moved never
        clobbers it. Two curves with different keys landing on one binding are
        reported as a collision and the first one wins.
        """
        by_clip: dict[AnimationClip, list[tuple[CurveBinding, CurveBinding, bool]]] = {}
        for reference, binding, new_binding, keep_old in moves:
            pending = by_clip.setdefault(reference.clip, [])
            if new_binding != binding and all(b != binding for b, _, _ in pending):
                pending.append((binding, new_binding, keep_old))

        changes: list[dict[str, object]] = []
        for source, pending in by_clip.items():
            if not pending:
                continue
            clip = self.clone_clip(source)

            read = []
            for binding, new_binding, keep_old in pending:
                curve = clip.get_curve(binding)
                object_curve = clip.get_object_curve(binding)
                if curve is None and object_curve is None:
                    log_debug(f"{clip.name}: {binding.path}:{binding.property} already moved")
                    continue
                read.append((binding, new_binding, keep_old, curve, object_curve))

            for binding, _, keep_old, _, _ in read:
                if not keep_old:
                    clip.remove_binding(binding)

            written: dict[CurveBinding, CurveBinding] = {}
            for binding, new_binding, _, curve, object_curve in read:
                change: dict[str, object] = {
                    "clip": source.name,
                    "from": f"{binding.path}:{binding.property}",
                    "to": f"{new_binding.path}:{new_binding.property}",
                }
                existing = (clip.get_curve(new_binding), clip.get_object_curve(new_binding))
                occupied = new_binding in written or existing != (None, None)
                if occupied and existing != (curve, object_curve):
                    owner = written.get(new_binding, new_binding)
                    log_warn(
                        f"{source.name}: {change['from']} collides with "
                        f"{owner.path}:{owner.property} on {change['to']}, keeping the latter"
                    )
                    change["issue"] = "COLLISION"
                    changes.append(change)
                    continue
                if curve is not None:
                    clip.set_curve(new_binding, curve.copy())
                if object_curve is not None:
                    clip.set_object_curve(new_binding, list(object_curve))
                written[new_binding] = binding
                changes.append(change)

        return changes

    def retarget_group(
        self,
        group: list[SkinnedMeshRenderer],
        keys: dict[SkinnedMeshRenderer, RendererKey],
        merged_materials: list[Material | None],
    ) -> list[dict[str, object]]:
        """
        Point every curve of ``group`` at ``group[0]``, the surviving renderer.

        Material swaps are re-slotted for every renderer, the survivor
        included when deduplication moved its slots. Other curves are only
        moved for the renderers that are going away; curves on their nodes
        rather than the renderer itself are copied, since the node may stay.
        Collisions come back as changes carrying an ``issue`` key.
        """
        survivor = group[0]
        moves: list[tuple[AnimationReference, CurveBinding, CurveBinding, bool]] = []

        for renderer in group:
            entry = keys.get(renderer)
            if entry is None:
                continue
            moving = renderer is not survivor

            work = list(entry.material_bindings)
            if moving:
                work += entry.bindings

            for reference, binding in work:
                try:
                    path = survivor.transform.path_from(reference.root)
                except ValueError:
                    log_warn(
                        f"{reference.clip.name}: {survivor.name} is not under {reference.root.name}, "
                        f"curve {binding.property} left as is"
                    )
                    continue

                property_name = binding.property
                if binding.is_material_swap:
                    slot = parse_material_slot(binding.property)
                    if slot is not None:
                        new_slot = resolve_material_slot(group, renderer, slot, merged_materials)
                        property_name = material_slot_property(new_slot)
                        if new_slot != slot:
                            log_detail(
                                f"Adjusted material swap on {reference.clip.name} from {slot} to {new_slot}"
                            )

                if not moving and property_name == binding.property:
                    continue

                new_binding = binding.retarget(path, property_name)
                # Node curves stay for whatever else lives on the node
                keep_old = binding.type != RENDERER_TYPE
                moves.append((reference, binding, new_binding, keep_old))

        return self._apply_moves(moves)


def _replace_in_state_machine(
    state_machine: StateMachine, clip_map: dict[AnimationClip, AnimationClip]
) -> int:
    replaced = 0
    for child in state_machine.state_machines:
        replaced += _replace_in_state_machine(child, clip_map)
    for state in state_machine.states:
        if isinstance(state.motion, AnimationClip) and state.motion in clip_map:
            state.motion = clip_map[state.motion]
            replaced += 1
    return replaced


def replace_clips_in_controllers(
    avatar: Avatar,
    clip_map: dict[AnimationClip, AnimationClip],
    assets: GeneratedAssets | None = None,
) -> list[AnimatorController]:
    """
    Swap cloned clips into every controller the avatar uses.

    Controllers that reference a replaced clip are cloned first; the avatar's
    animators and layers are pointed at the clones. Returns the clones.
    """
    if not clip_map:
        return []

    controller_map: dict[AnimatorController, AnimatorController] = {}

    def replaced(controller: AnimatorController | None) -> AnimatorController | None:
        if controller is None:
            return None
        if controller in controller_map:
            return controller_map[controller]
        if not any(clip in clip_map for clip in controller.animation_clips):
            return controller
        name = assets.asset_name(controller.name) if assets else f"{random_hex()}_{controller.name}"
        copy = controller.clone(name)
        count = sum(_replace_in_state_machine(layer.state_machine, clip_map) for layer in copy.layers)
        log_debug(f"Cloned controller {controller.name} -> {copy.name} ({count} state(s) updated)")
        controller_map[controller] = copy
        if assets is not None:
            assets.add_controller(copy)
        return copy

    for animator in avatar.animators:
        animator.controller = replaced(animator.controller)
    avatar.base_layers = [replaced(c) for c in avatar.base_layers]
    avatar.special_layers = [replaced(c) for c in avatar.special_layers]

    return list(controller_map.values())
