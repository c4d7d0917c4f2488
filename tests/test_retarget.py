"""Tests for animation retargeting after a merge."""

from skinmerge.analyzers import build_equivalence_keys, group_renderers
from skinmerge.cleaners import merge_renderer_groups
from skinmerge.retarget import RetargetSession, replace_clips_in_controllers, resolve_material_slot
from skinmerge.scene import CurveBinding, Transform, collect_animations


def _merge(scene):
    keys, _ = build_equivalence_keys(scene.avatar, collect_animations(scene.avatar))
    return merge_renderer_groups(scene.avatar, group_renderers(keys), keys)


def _only_clip(scene):
    controller = scene.avatar.base_layers[0]
    return controller.layers[0].state_machine.states[0].motion


def _position_binding(path):
    return CurveBinding(path=path, type="Transform", property="m_LocalPosition.x")


class TestResolveMaterialSlot:
    """Tests for resolve_material_slot."""

    def test_offset_by_earlier_renderers(self, scene) -> None:
        """Slot 1 of a renderer after a two-slot renderer becomes slot 3."""
        a = scene.renderer("A", materials=[scene.material("A0"), scene.material("A1")])
        b = scene.renderer("B", materials=[scene.material(f"B{i}") for i in range(3)])
        merged = a.materials + b.materials

        assert resolve_material_slot([a, b], b, 1, merged) == 3
        assert resolve_material_slot([a, b], a, 1, merged) == 1

    def test_shared_material_uses_merged_order(self, scene) -> None:
        """A deduplicated material resolves to its single merged slot."""
        skin, cloth = scene.material("Skin"), scene.material("Cloth")
        a = scene.renderer("A", materials=[skin, cloth])
        b = scene.renderer("B", materials=[cloth])

        assert resolve_material_slot([a, b], b, 0, [skin, cloth]) == 1

    def test_unknown_slot_falls_back_to_offset(self, scene) -> None:
        """A slot past the renderer's materials uses the cumulative offset."""
        a = scene.renderer("A", materials=[scene.material("A0"), scene.material("A1")])
        b = scene.renderer("B")

        assert resolve_material_slot([a, b], b, 4, a.materials + b.materials) == 6


class TestRetargetSession:
    """Tests for clip cloning."""

    def test_clip_cloned_once(self, scene) -> None:
        """Asking twice returns the same clone."""
        session = RetargetSession()
        clip = scene.clip("Wave")

        first = session.clone_clip(clip)

        assert first is not clip
        assert session.clone_clip(clip) is first
        assert session.clone_clip(first) is first
        assert session.clip_map == {clip: first}
        assert first.name.endswith("_Wave")


class TestRetargetAfterMerge:
    """Tests for curves rewritten by a merge."""

    def test_material_swap_reslotted(self, scene) -> None:
        """A swap on the second renderer's slot 1 moves to the survivor's slot 3."""
        scene.renderer("Body", count=8, materials=[scene.material("Skin"), scene.material("Hair")])
        scene.renderer("Shirt", count=6, materials=[scene.material(f"Cloth{i}") for i in range(3)])
        alt = scene.material("Alt")
        swap = scene.material_swap_binding("Shirt", 1)
        clip = scene.clip("Swap", object_curves={swap: scene.swap_keys(alt)})
        controller = scene.controller("FX", [clip])

        _merge(scene)

        clone = _only_clip(scene)
        assert scene.avatar.base_layers[0] is not controller
        assert clone is not clip
        assert [(b.path, b.property) for b in clone.object_curves] == [("Body", "m_Materials.Array.data[3]")]
        assert clone.object_curves[scene.material_swap_binding("Body", 3)][0].value is alt
        # The original clip is never edited
        assert list(clip.object_curves) == [swap]

    def test_blendshape_curve_moved(self, scene, twin_renderers) -> None:
        """Curves on the merged-away renderer move to the survivor's path."""
        curves = {
            scene.blendshape_binding("Body", "Smile"): scene.curve(0, 100),
            scene.blendshape_binding("Shirt", "Smile"): scene.curve(0, 100),
        }
        scene.controller("FX", [scene.clip("Smile", curves=curves)])

        results = _merge(scene)

        clone = _only_clip(scene)
        assert list(clone.curves) == [scene.blendshape_binding("Body", "Smile")]
        assert results[0]["curves_retargeted"] == 1

    def test_game_object_curve_kept(self, scene, twin_renderers) -> None:
        """Node activation curves are copied, not moved."""
        curves = {
            scene.active_binding("Body"): scene.curve(1, 0),
            scene.active_binding("Shirt"): scene.curve(1, 0),
        }
        scene.controller("FX", [scene.clip("Toggle", curves=curves)])

        _merge(scene)

        clone = _only_clip(scene)
        assert set(clone.curves) == {scene.active_binding("Body"), scene.active_binding("Shirt")}

    def test_node_curve_kept_on_surviving_node(self, scene, twin_renderers) -> None:
        """A Transform curve stays on a merged-away node that is still in the scene."""
        _, shirt = twin_renderers
        shirt.transform.add_child(Transform("Badge"))
        curves = {
            _position_binding("Body"): scene.curve(0, 1),
            _position_binding("Shirt"): scene.curve(0, 1),
        }
        scene.controller("FX", [scene.clip("Slide", curves=curves)])

        results = _merge(scene)

        assert results[0]["removed"] == {"Shirt": "renderer"}
        assert scene.root.find("Shirt") is shirt.transform
        clone = _only_clip(scene)
        assert set(clone.curves) == {_position_binding("Body"), _position_binding("Shirt")}

    def test_collapsed_slots_reslotted_together(self, scene) -> None:
        """Swaps moving onto each other's slots are read before any is written."""
        shared, hair = scene.material("Skin"), scene.material("Hair")
        scene.renderer("Body", count=8, materials=[shared, shared, hair])
        scene.renderer("Shirt", count=6)
        first, second = scene.material("First"), scene.material("Second")
        clip = scene.clip(
            "Swap",
            object_curves={
                scene.material_swap_binding("Body", 2): scene.swap_keys(first),
                scene.material_swap_binding("Body", 1): scene.swap_keys(second),
            },
        )
        scene.controller("FX", [clip])

        results = _merge(scene)

        clone = _only_clip(scene)
        values = {b.property: [k.value for k in keys] for b, keys in clone.object_curves.items()}
        assert values == {
            "m_Materials.Array.data[1]": [first],
            "m_Materials.Array.data[0]": [second],
        }
        assert results[0]["collisions"] == []

    def test_slot_collision_reported(self, scene) -> None:
        """Two different swaps landing on one slot are reported; the survivor's wins."""
        shared = scene.material("Skin")
        scene.renderer("Body", count=8, materials=[shared, scene.material("Hair")])
        scene.renderer("Shirt", count=6, materials=[shared])
        first, second = scene.material("First"), scene.material("Second")
        clip = scene.clip(
            "Swap",
            object_curves={
                scene.material_swap_binding("Body", 0): scene.swap_keys(first),
                scene.material_swap_binding("Shirt", 0): scene.swap_keys(second),
            },
        )
        scene.controller("FX", [clip])

        results = _merge(scene)

        clone = _only_clip(scene)
        assert clone.object_curves[scene.material_swap_binding("Body", 0)][0].value is first
        [collision] = results[0]["collisions"]
        assert collision["issue"] == "COLLISION"
        assert collision["from"] == "Shirt:m_Materials.Array.data[0]"
        assert results[0]["curves_retargeted"] == 0

    def test_shared_clip_cloned_once_across_groups(self, scene) -> None:
        """Two groups editing one clip share a single clone."""
        scene.renderer("A")
        scene.renderer("B")
        c = scene.renderer("C")
        d = scene.renderer("D")
        c.receive_shadows = d.receive_shadows = False
        alt = scene.material("Alt")
        clip = scene.clip(
            "Swap",
            object_curves={
                scene.material_swap_binding("B", 0): scene.swap_keys(alt),
                scene.material_swap_binding("D", 0): scene.swap_keys(alt),
            },
        )
        scene.controller("FX", [clip])

        _merge(scene)

        clone = _only_clip(scene)
        assert {(b.path, b.property) for b in clone.object_curves} == {
            ("A", "m_Materials.Array.data[1]"),
            ("C", "m_Materials.Array.data[1]"),
        }

    def test_unrelated_controllers_untouched(self, scene, twin_renderers) -> None:
        """Controllers without changed clips are not cloned."""
        alt = scene.material("Alt")
        scene.controller(
            "FX",
            [scene.clip("Swap", object_curves={scene.material_swap_binding("Shirt", 0): scene.swap_keys(alt)})],
        )
        idle = scene.controller("Idle", [scene.clip("Breathe")])

        _merge(scene)

        assert scene.avatar.base_layers[1] is idle


class TestReplaceClipsInControllers:
    """Tests for replace_clips_in_controllers."""

    def test_nested_state_machines_updated(self, scene) -> None:
        """States inside sub state machines get the clone too."""
        from skinmerge.scene import State, StateMachine

        clip = scene.clip("Wave")
        controller = scene.controller("FX", [])
        controller.layers[0].state_machine.state_machines.append(
            StateMachine("Sub", states=[State("Wave", clip)])
        )
        session = RetargetSession()
        clone = session.clone_clip(clip)

        cloned = replace_clips_in_controllers(scene.avatar, session.clip_map)

        assert len(cloned) == 1
        new_controller = scene.avatar.base_layers[0]
        assert new_controller is cloned[0]
        assert new_controller.layers[0].state_machine.state_machines[0].states[0].motion is clone
        # The original controller still points at the original clip
        assert controller.animation_clips == [clip]

    def test_empty_map_is_noop(self, scene) -> None:
        """Nothing to replace leaves every controller alone."""
        controller = scene.controller("FX", [scene.clip("Wave")])
        assert replace_clips_in_controllers(scene.avatar, {}) == []
        assert scene.avatar.base_layers == [controller]
