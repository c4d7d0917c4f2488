"""Tests for blendshape usage analysis."""

from skinmerge.analyzers import (
    eyelid_blendshape_names,
    find_marked_blendshapes,
    find_unused_blendshapes,
    get_animated_blendshapes,
)
from skinmerge.scene import collect_animations


def _face(scene, names, weights):
    shapes = [scene.blendshape(name, 6, moved=[i % 6]) for i, name in enumerate(names)]
    return scene.renderer("Face", count=6, shapes=shapes, weights=weights)


class TestAnimatedBlendshapes:
    """Tests for get_animated_blendshapes."""

    def test_collects_blendshape_curves(self, scene) -> None:
        """Curves on blendShape.* properties mark shapes as animated."""
        face = _face(scene, ["Smile", "Frown"], [0.0, 0.0])
        clip = scene.clip("Smile", curves={scene.blendshape_binding("Face", "Smile"): scene.curve(0, 100)})
        scene.controller("FX", [clip])

        animated = get_animated_blendshapes(scene.avatar, collect_animations(scene.avatar))

        assert animated[face] == {"Smile"}

    def test_unresolved_paths_ignored(self, scene) -> None:
        """A curve on a missing node animates nothing."""
        face = _face(scene, ["Smile"], [0.0])
        clip = scene.clip("Smile", curves={scene.blendshape_binding("Gone", "Smile"): scene.curve(0, 100)})
        scene.controller("FX", [clip])

        animated = get_animated_blendshapes(scene.avatar, collect_animations(scene.avatar))

        assert animated[face] == set()


class TestMarkedBlendshapes:
    """Tests for find_marked_blendshapes."""

    def test_remove_prefix_with_weight(self, scene) -> None:
        """remove_* shapes at non-zero weight are marked."""
        face = _face(scene, ["remove_eyes", "remove_teeth", "Smile"], [100.0, 0.0, 100.0])

        marked = find_marked_blendshapes(scene.avatar, collect_animations(scene.avatar))

        assert marked == {face: ["remove_eyes"]}

    def test_animated_marked_shape_skipped(self, scene) -> None:
        """A remove_* shape something animates is left alone."""
        _face(scene, ["remove_eyes"], [100.0])
        clip = scene.clip("Peek", curves={scene.blendshape_binding("Face", "remove_eyes"): scene.curve(100, 0)})
        scene.controller("FX", [clip])

        assert find_marked_blendshapes(scene.avatar, collect_animations(scene.avatar)) == {}


class TestUnusedBlendshapes:
    """Tests for find_unused_blendshapes."""

    def test_classifies_static_and_unused(self, scene) -> None:
        """Non-zero weights are baked, zero weights are dropped."""
        face = _face(scene, ["Smile", "Frown", "Wink"], [50.0, 0.0, 0.0])
        clip = scene.clip("Wink", curves={scene.blendshape_binding("Face", "Wink"): scene.curve(0, 100)})
        scene.controller("FX", [clip])

        usages = find_unused_blendshapes(scene.avatar, collect_animations(scene.avatar))

        usage = usages[face]
        assert usage.static == ["Smile"]
        assert usage.unused == ["Frown"]
        assert usage.animated == {"Wink"}
        assert usage.discard == ["Frown", "Smile"]

    def test_visemes_and_eyelids_kept(self, scene) -> None:
        """Shapes the avatar descriptor drives count as in use."""
        face = _face(scene, ["vrc.v_aa", "Blink", "Extra"], [0.0, 0.0, 0.0])
        scene.avatar.viseme_renderer = face
        scene.avatar.viseme_blendshapes = ["vrc.v_aa"]
        scene.avatar.eyelids_renderer = face
        scene.avatar.eyelid_blendshapes = [1]

        usages = find_unused_blendshapes(scene.avatar, collect_animations(scene.avatar))

        assert usages[face].unused == ["Extra"]
        assert usages[face].animated == {"vrc.v_aa", "Blink"}

    def test_fully_used_renderer_left_out(self, scene) -> None:
        """Renderers with nothing to discard are not reported."""
        _face(scene, ["Smile"], [0.0])
        clip = scene.clip("Smile", curves={scene.blendshape_binding("Face", "Smile"): scene.curve(0, 100)})
        scene.controller("FX", [clip])

        assert find_unused_blendshapes(scene.avatar, collect_animations(scene.avatar)) == {}


class TestEyelidNames:
    """Tests for eyelid_blendshape_names."""

    def test_only_for_eyelid_renderer(self, scene) -> None:
        """Other renderers get None."""
        face = _face(scene, ["Blink"], [0.0])
        assert eyelid_blendshape_names(scene.avatar, face) is None

    def test_out_of_range_index_is_blank(self, scene) -> None:
        """Indices past the shape list resolve to an empty name."""
        face = _face(scene, ["Blink", "LookUp"], [0.0, 0.0])
        scene.avatar.eyelids_renderer = face
        scene.avatar.eyelid_blendshapes = [1, 5, -1]

        assert eyelid_blendshape_names(scene.avatar, face) == ["LookUp", "", ""]
