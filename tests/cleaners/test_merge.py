"""Tests for merging renderer groups in a scene."""

from skinmerge.analyzers import build_equivalence_keys, group_renderers
from skinmerge.cleaners import merge_renderer_groups, remove_renderer
from skinmerge.mesh import StrictFrameCount
from skinmerge.scene import collect_animations
from skinmerge.utils.assets import GeneratedAssets


def _merge(scene, policy=None, assets=None):
    keys, _ = build_equivalence_keys(scene.avatar, collect_animations(scene.avatar))
    groups = group_renderers(keys)
    return merge_renderer_groups(scene.avatar, groups, keys, policy, assets)


class TestMergeRendererGroups:
    """Tests for merge_renderer_groups."""

    def test_group_collapses_into_survivor(self, scene, twin_renderers) -> None:
        """The first renderer receives every vertex and the others disappear."""
        body, shirt = twin_renderers

        results = _merge(scene)

        assert results[0]["survivor"] == "Body"
        assert results[0]["vertex_counts"] == [8, 6]
        assert results[0]["vertices"] == 14
        assert results[0]["removed"] == {"Shirt": "node"}
        assert body.mesh.vertex_count == 14
        assert body.mesh.name == "Body_Shirt"
        assert scene.avatar.renderers() == [body]
        assert scene.root.find("Shirt") is None
        assert shirt.node is None

    def test_materials_unioned(self, scene, twin_renderers) -> None:
        """The survivor ends up with every distinct material."""
        body, shirt = twin_renderers
        materials = body.materials + shirt.materials

        _merge(scene)

        assert body.materials == materials
        assert len(body.mesh.submeshes) == 2

    def test_merged_mesh_registered(self, scene, twin_renderers, tmp_path) -> None:
        """The merged mesh is tracked as a generated asset."""
        body, _ = twin_renderers
        assets = GeneratedAssets(tmp_path / "generated")

        _merge(scene, assets=assets)

        assert assets.meshes == [body.mesh]

    def test_viseme_renderer_moves_to_survivor(self, scene, twin_renderers) -> None:
        """Avatar references to a merged-away renderer follow the merge."""
        body, shirt = twin_renderers
        scene.avatar.viseme_renderer = shirt

        _merge(scene)

        assert scene.avatar.viseme_renderer is body

    def test_eyelid_indices_re_resolved(self, scene) -> None:
        """Eyelid indices point at the same shapes after the merge."""
        body = scene.renderer(
            "Body", count=8, shapes=[scene.blendshape("Smile", 8, moved=[0])], weights=[0.0]
        )
        eyes = scene.renderer(
            "Eyes", count=6, shapes=[scene.blendshape("Blink", 6, moved=[0])], weights=[0.0]
        )
        scene.avatar.eyelids_renderer = eyes
        scene.avatar.eyelid_blendshapes = [0]

        _merge(scene)

        assert scene.avatar.eyelids_renderer is body
        assert body.mesh.blendshape_names == ["Smile", "Blink"]
        assert scene.avatar.eyelid_blendshapes == [1]

    def test_failed_group_left_untouched(self, scene) -> None:
        """A strict frame mismatch skips the group without changing it."""
        body = scene.renderer(
            "Body",
            count=8,
            shapes=[scene.blendshape("Blink", 8, moved=[0], frames=[(100.0, 1.0)])],
            weights=[0.0],
        )
        eyes = scene.renderer(
            "Eyes",
            count=6,
            shapes=[scene.blendshape("Blink", 6, moved=[0], frames=[(50.0, 0.5), (100.0, 1.0)])],
            weights=[0.0],
        )
        original = body.mesh

        results = _merge(scene, policy=StrictFrameCount())

        assert "error" in results[0]
        assert body.mesh is original
        assert scene.avatar.renderers() == [body, eyes]

    def test_group_of_one_after_skip_fails(self, scene, twin_renderers) -> None:
        """Skipping a renderer that leaves nothing to merge with fails the group."""
        body, shirt = twin_renderers
        shirt.transform.scale = (0.0, 0.0, 0.0)
        original = body.mesh

        results = _merge(scene)

        assert "Shirt" in results[0]["error"]
        assert body.mesh is original
        assert scene.avatar.renderers() == [body, shirt]


class TestRemoveRenderer:
    """Tests for remove_renderer."""

    def test_bare_node_removed(self, scene) -> None:
        """A node carrying only the renderer goes with it."""
        shirt = scene.renderer("Shirt")
        assert remove_renderer(shirt) == "node"
        assert scene.root.find("Shirt") is None

    def test_node_with_components_kept(self, scene) -> None:
        """Other components keep the node alive."""
        shirt = scene.renderer("Shirt")
        node = shirt.node
        node.components.append("Cloth")

        assert remove_renderer(shirt) == "renderer"
        assert scene.root.find("Shirt") is node
        assert node.renderer is None

    def test_node_with_children_kept(self, scene) -> None:
        """Child nodes keep the node alive."""
        shirt = scene.renderer("Shirt")
        scene.renderer("Button", parent=shirt.node)

        assert remove_renderer(shirt) == "renderer"
        assert scene.root.find("Shirt/Button") is not None

    def test_node_in_use_kept(self, scene) -> None:
        """A node used as a bone elsewhere is not deleted."""
        shirt = scene.renderer("Shirt")
        assert remove_renderer(shirt, in_use={shirt.node}) == "renderer"
        assert scene.root.find("Shirt") is not None
