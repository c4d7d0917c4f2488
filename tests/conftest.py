"""
Pytest fixtures for skinmerge tests.

Scenes are built in memory: an avatar root with an armature and a hips
bone, plus skinned renderers over triangle-strip meshes.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

import numpy as np
import pytest

from skinmerge.scene import (
    AnimationClip,
    AnimationCurve,
    AnimatorController,
    Avatar,
    CurveBinding,
    Keyframe,
    Layer,
    Material,
    Mesh,
    MeshBlendShape,
    MeshBlendShapeFrame,
    ObjectKeyframe,
    SkinnedMeshRenderer,
    State,
    StateMachine,
    Transform,
    attach_renderer,
)
from skinmerge.utils.constants import GAME_OBJECT_TYPE, RENDERER_TYPE
from skinmerge.utils.logging import verbosity
from skinmerge.utils.naming import material_slot_property


class SceneBuilder:
    """Small helper for assembling avatars in tests."""

    def __init__(self) -> None:
        self.root = Transform("Avatar")
        self.armature = self.root.add_child(Transform("Armature"))
        self.hips = self.armature.add_child(Transform("Hips"))
        self.avatar = Avatar(root=self.root)

    @staticmethod
    def mesh(name: str, count: int, slots: int = 1) -> Mesh:
        """
        Zigzag strip along +X facing +Z: vertex i sits at (i, i % 2, 0).

        Every vertex is fully weighted to bone 0.
        """
        vertices = np.column_stack(
            [np.arange(count, dtype=np.float64), np.arange(count) % 2, np.zeros(count)]
        ).astype(np.float64)
        triangles = np.array(
            [(i, i + 2, i + 1) if i % 2 == 0 else (i, i + 1, i + 2) for i in range(count - 2)],
            dtype=np.int64,
        )
        triangles = triangles.reshape(-1, 3)
        return Mesh(
            name=name,
            vertices=vertices,
            normals=np.tile([0.0, 0.0, 1.0], (count, 1)),
            tangents=np.tile([1.0, 0.0, 0.0, 1.0], (count, 1)),
            uvs=[np.column_stack([np.arange(count) / max(count, 1), np.zeros(count)])],
            submeshes=[chunk.reshape(-1) for chunk in np.array_split(triangles, slots)],
            bone_indices=np.zeros((count, 4), dtype=np.int64),
            bone_weights=np.tile([1.0, 0.0, 0.0, 0.0], (count, 1)),
        )

    @staticmethod
    def blendshape(
        name: str,
        count: int,
        moved: Iterable[int],
        frames: Iterable[tuple[float, float]] = ((100.0, 1.0),),
    ) -> MeshBlendShape:
        """Shape that moves ``moved`` vertices along +Z; one frame per (weight, offset)."""
        moved = list(moved)
        result = []
        for weight, offset in frames:
            deltas = np.zeros((count, 3))
            deltas[moved, 2] = offset
            result.append(
                MeshBlendShapeFrame(weight, deltas, np.zeros((count, 3)), np.zeros((count, 3)))
            )
        return MeshBlendShape(name, result)

    def material(self, name: str, shader: str = "Standard") -> Material:
        return Material(name=name, shader=shader)

    def renderer(
        self,
        name: str,
        count: int = 6,
        materials: list[Material | None] | None = None,
        shapes: list[MeshBlendShape] | None = None,
        weights: list[float] | None = None,
        position: tuple[float, float, float] = (0.0, 0.0, 0.0),
        parent: Transform | None = None,
        bones: list[Transform | None] | None = None,
    ) -> SkinnedMeshRenderer:
        """A skinned renderer on a new node under ``parent`` (the avatar root by default)."""
        if materials is None:
            materials = [self.material(f"{name}_mat")]
        mesh = self.mesh(name, count, slots=max(len(materials), 1))
        mesh.blendshapes = list(shapes or [])
        node = (parent or self.root).add_child(Transform(name, position=position))
        renderer = SkinnedMeshRenderer(
            mesh=mesh,
            materials=list(materials),
            bones=list(bones) if bones is not None else [self.hips],
            root_bone=self.hips,
            blendshape_weights=list(weights) if weights is not None else [0.0] * len(mesh.blendshapes),
        )
        return attach_renderer(node, renderer)

    @staticmethod
    def curve(*values: float) -> AnimationCurve:
        """Linear keys at t = 0, 1, 2, ..."""
        return AnimationCurve([Keyframe(time=float(i), value=float(v)) for i, v in enumerate(values)])

    @staticmethod
    def blendshape_binding(path: str, shape: str) -> CurveBinding:
        return CurveBinding(path=path, type=RENDERER_TYPE, property=f"blendShape.{shape}")

    @staticmethod
    def material_swap_binding(path: str, slot: int) -> CurveBinding:
        return CurveBinding(
            path=path, type=RENDERER_TYPE, property=material_slot_property(slot), discrete=True
        )

    @staticmethod
    def active_binding(path: str) -> CurveBinding:
        return CurveBinding(path=path, type=GAME_OBJECT_TYPE, property="m_IsActive")

    @staticmethod
    def swap_keys(*materials: Material) -> list[ObjectKeyframe]:
        return [ObjectKeyframe(float(i), m) for i, m in enumerate(materials)]

    def clip(
        self,
        name: str,
        curves: dict[CurveBinding, AnimationCurve] | None = None,
        object_curves: dict[CurveBinding, list[ObjectKeyframe]] | None = None,
    ) -> AnimationClip:
        return AnimationClip(name=name, curves=dict(curves or {}), object_curves=dict(object_curves or {}))

    def controller(self, name: str, clips: list[AnimationClip]) -> AnimatorController:
        """Controller with one state per clip, driven from the avatar root."""
        state_machine = StateMachine("Base", states=[State(c.name, c) for c in clips])
        controller = AnimatorController(name, layers=[Layer("Base Layer", state_machine)])
        self.avatar.base_layers.append(controller)
        return controller


@pytest.fixture(autouse=True)
def verbose_logging() -> Iterator[None]:
    """Every test runs with DEBUG output on."""
    with verbosity(True):
        yield


@pytest.fixture
def scene() -> SceneBuilder:
    """An empty avatar with an armature and a hips bone."""
    return SceneBuilder()


@pytest.fixture
def twin_renderers(scene: SceneBuilder) -> tuple[SkinnedMeshRenderer, SkinnedMeshRenderer]:
    """Two mergeable renderers, ``Body`` (8 verts) and ``Shirt`` (6 verts)."""
    body = scene.renderer("Body", count=8)
    shirt = scene.renderer("Shirt", count=6)
    return body, shirt
