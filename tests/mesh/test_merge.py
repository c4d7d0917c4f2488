"""Tests for merging mesh snapshots."""

import numpy as np
import pytest

from skinmerge.errors import FrameCountMismatchError
from skinmerge.mesh import LastFrameClamp, StrictFrameCount, extract_snapshot, merge_snapshots
from skinmerge.scene import Transform


@pytest.fixture
def blink_pair(scene):
    """
    ``Face`` (100 verts, Blink with 1 frame) and ``Lashes`` (50 verts, Blink
    with 2 frames) placed 5 units above it.
    """
    face = scene.renderer(
        "Face",
        count=100,
        shapes=[scene.blendshape("Blink", 100, moved=range(100), frames=[(100.0, 1.0)])],
        weights=[0.0],
    )
    lashes = scene.renderer(
        "Lashes",
        count=50,
        shapes=[
            scene.blendshape("Blink", 50, moved=range(50), frames=[(50.0, 0.5), (100.0, 2.0)])
        ],
        weights=[30.0],
        position=(0.0, 5.0, 0.0),
    )
    return face, lashes


class TestMergeGeometry:
    """Tests for vertex, triangle and bounds merging."""

    def test_vertex_counts_add_up(self, blink_pair) -> None:
        """Merging 100 and 50 vertices gives 150."""
        face, lashes = blink_pair
        merged = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])

        assert merged.vertex_count == 150
        assert set(merged.per_vertex_lengths().values()) == {150}

    def test_vertices_reprojected_into_base_space(self, blink_pair) -> None:
        """The appended vertices carry the relative transform."""
        face, lashes = blink_pair
        merged = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])

        assert np.allclose(merged.vertices[100:, 1], lashes.mesh.vertices[:, 1] + 5.0)
        assert np.array_equal(merged.vertices[:100], face.mesh.vertices)

    def test_bounds_are_union(self, blink_pair) -> None:
        """Merged bounds enclose both sources."""
        face, lashes = blink_pair
        merged = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])

        assert np.allclose(merged.bounds.min, [0.0, 0.0, 0.0])
        assert np.allclose(merged.bounds.max, [99.0, 6.0, 0.0])

    def test_triangles_offset(self, scene) -> None:
        """Triangles of the appended mesh are shifted past the base vertices."""
        skin = scene.material("Skin")
        body = scene.renderer("Body", count=8, materials=[skin])
        arms = scene.renderer("Arms", count=6, materials=[skin])

        merged = merge_snapshots([extract_snapshot(body), extract_snapshot(arms)])

        assert merged.materials == [skin]
        triangles = merged.submeshes[skin]
        assert len(triangles) == (6 + 4) * 3
        assert triangles[6 * 3 :].min() == 8
        merged.validate()

    def test_distinct_materials_appended_in_order(self, scene) -> None:
        """Materials of later snapshots follow the base's materials."""
        body = scene.renderer("Body", count=8)
        arms = scene.renderer("Arms", count=6)

        merged = merge_snapshots([extract_snapshot(body), extract_snapshot(arms)])

        assert merged.materials == body.materials + arms.materials


class TestMergeBlendshapes:
    """Tests for blendshape union and frame policies."""

    def test_frame_count_mismatch_clamps_to_last_frame(self, blink_pair) -> None:
        """The shorter shape reuses its last frame for the extra frame."""
        face, lashes = blink_pair
        merged = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])

        blink = merged.get_blendshape("Blink")
        assert blink.frame_count == 2
        second = blink.frames[1]
        assert np.array_equal(second.delta_vertices[:100], face.mesh.blendshapes[0].frames[0].delta_vertices)
        assert np.allclose(second.delta_vertices[100:, 2], 2.0)

    def test_frame_weights(self, blink_pair) -> None:
        """Aligned frames average their weights, clamped frames take the larger."""
        face, lashes = blink_pair
        merged = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])

        blink = merged.get_blendshape("Blink")
        assert blink.frames[0].weight == 75.0
        assert blink.frames[1].weight == 100.0

    def test_current_weight_is_max(self, blink_pair) -> None:
        """The merged shape keeps the larger current weight."""
        face, lashes = blink_pair
        merged = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])
        assert merged.get_blendshape("Blink").weight == 30.0

    def test_shapes_unique_to_one_side_are_padded(self, scene) -> None:
        """A shape only one source has gets zero deltas for the other's vertices."""
        body = scene.renderer(
            "Body", count=8, shapes=[scene.blendshape("Smile", 8, moved=[0])], weights=[0.0]
        )
        arms = scene.renderer(
            "Arms", count=6, shapes=[scene.blendshape("Flex", 6, moved=[0])], weights=[0.0]
        )

        merged = merge_snapshots([extract_snapshot(body), extract_snapshot(arms)])

        assert merged.blendshape_names == ["Smile", "Flex"]
        smile = merged.get_blendshape("Smile").frames[0].delta_vertices
        flex = merged.get_blendshape("Flex").frames[0].delta_vertices
        assert np.all(smile[8:] == 0.0) and smile[0, 2] == 1.0
        assert np.all(flex[:8] == 0.0) and flex[8, 2] == 1.0

    def test_strict_policy_rejects_mismatch(self, blink_pair) -> None:
        """StrictFrameCount refuses before the base is changed."""
        face, lashes = blink_pair
        base = extract_snapshot(face)

        with pytest.raises(FrameCountMismatchError, match="Blink"):
            merge_snapshots([base, extract_snapshot(lashes)], StrictFrameCount())

        assert base.vertex_count == 100
        assert base.get_blendshape("Blink").frame_count == 1

    def test_default_policy_is_clamp(self, blink_pair) -> None:
        """Passing no policy behaves like LastFrameClamp."""
        face, lashes = blink_pair
        implicit = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)])
        explicit = merge_snapshots([extract_snapshot(face), extract_snapshot(lashes)], LastFrameClamp())
        assert implicit.get_blendshape("Blink").frame_count == explicit.get_blendshape("Blink").frame_count


class TestMergeSkinning:
    """Tests for weights and bind poses."""

    def test_weights_keep_bone_identity(self, scene) -> None:
        """Appended weights still reference their own bones."""
        spine = scene.hips.add_child(Transform("Spine", position=(0.0, 1.0, 0.0)))
        body = scene.renderer("Body", count=8)
        shirt = scene.renderer("Shirt", count=6, bones=[spine])

        merged = merge_snapshots([extract_snapshot(body), extract_snapshot(shirt)])

        assert merged.weights[0].bones[0] is scene.hips
        assert merged.weights[8].bones[0] is spine
        assert merged.bone_order == [scene.hips, spine]

    def test_new_bone_bind_pose_rebased(self, scene) -> None:
        """A bone new to the base gets a bind pose relative to the base transform."""
        spine = scene.hips.add_child(Transform("Spine", position=(0.0, 1.0, 0.0)))
        body = scene.renderer("Body", count=8, position=(1.0, 0.0, 0.0))
        shirt = scene.renderer("Shirt", count=6, bones=[spine], position=(0.0, 5.0, 0.0))

        merged = merge_snapshots([extract_snapshot(body), extract_snapshot(shirt)])

        expected = spine.world_to_local @ body.transform.local_to_world
        assert np.allclose(merged.bind_poses[spine], expected)

    def test_shared_bone_keeps_base_bind_pose(self, scene) -> None:
        """Bones both sources use keep the base's bind pose."""
        body = scene.renderer("Body", count=8)
        shirt = scene.renderer("Shirt", count=6, position=(0.0, 5.0, 0.0))
        base = extract_snapshot(body)
        pose = base.bind_poses[scene.hips].copy()

        merged = merge_snapshots([base, extract_snapshot(shirt)])

        assert np.array_equal(merged.bind_poses[scene.hips], pose)


class TestMergeEdgeCases:
    """Tests for degenerate inputs."""

    def test_single_snapshot_is_returned_unchanged(self, scene) -> None:
        """Merging one snapshot is a no-op."""
        snapshot = extract_snapshot(scene.renderer("Body", count=8))
        assert merge_snapshots([snapshot]) is snapshot
        assert snapshot.vertex_count == 8

    def test_empty_list_rejected(self) -> None:
        """There is nothing to fold into."""
        with pytest.raises(ValueError):
            merge_snapshots([])
