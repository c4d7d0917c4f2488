"""Host scene model: the objects the consolidation passes read and rewrite."""

from skinmerge.scene.animation import (
    AnimationClip,
    AnimationCurve,
    AnimationReference,
    AnimatorController,
    CurveBinding,
    Keyframe,
    Layer,
    ObjectKeyframe,
    State,
    StateMachine,
    collect_animations,
    get_animated_object,
)
from skinmerge.scene.model import (
    Animator,
    Avatar,
    Bounds,
    Material,
    Mesh,
    MeshBlendShape,
    MeshBlendShapeFrame,
    SkinnedMeshRenderer,
    Transform,
    attach_renderer,
)

__all__ = [
    "AnimationClip",
    "AnimationCurve",
    "AnimationReference",
    "Animator",
    "AnimatorController",
    "Avatar",
    "Bounds",
    "CurveBinding",
    "Keyframe",
    "Layer",
    "Material",
    "Mesh",
    "MeshBlendShape",
    "MeshBlendShapeFrame",
    "ObjectKeyframe",
    "SkinnedMeshRenderer",
    "State",
    "StateMachine",
    "Transform",
    "attach_renderer",
    "collect_animations",
    "get_animated_object",
]
