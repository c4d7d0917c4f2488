"""JSON import/export of an avatar scene: nodes, meshes, materials and animation."""

import json
import os
from pathlib import Path
from typing import Any

from skinmerge.errors import SceneFormatError
from skinmerge.scene import (
    AnimationClip,
    AnimationCurve,
    Animator,
    AnimatorController,
    Avatar,
    Bounds,
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
from skinmerge.utils.logging import log_debug

FORMAT_NAME = "skinmerge-scene"
FORMAT_VERSION = 1


# -- encoding ---------------------------------------------------------------


def encode_material(material: Material) -> dict[str, Any]:
    return {
        "uid": material.uid,
        "name": material.name,
        "shader": material.shader,
        "color": list(material.color),
    }


def encode_mesh(mesh: Mesh) -> dict[str, Any]:
    return {
        "uid": mesh.uid,
        "name": mesh.name,
        "vertices": mesh.vertices.tolist(),
        "normals": mesh.normals.tolist(),
        "tangents": mesh.tangents.tolist(),
        "colors": mesh.colors.tolist(),
        "uvs": [uv.tolist() for uv in mesh.uvs],
        "submeshes": [tris.tolist() for tris in mesh.submeshes],
        "bone_indices": mesh.bone_indices.tolist(),
        "bone_weights": mesh.bone_weights.tolist(),
        "bind_poses": mesh.bind_poses.tolist(),
        "blendshapes": [
            {
                "name": shape.name,
                "frames": [
                    {
                        "weight": frame.weight,
                        "delta_vertices": frame.delta_vertices.tolist(),
                        "delta_normals": frame.delta_normals.tolist(),
                        "delta_tangents": frame.delta_tangents.tolist(),
                    }
                    for frame in shape.frames
                ],
            }
            for shape in mesh.blendshapes
        ],
    }


def _encode_binding(binding: CurveBinding) -> dict[str, Any]:
    return {
        "path": binding.path,
        "type": binding.type,
        "property": binding.property,
        "discrete": binding.discrete,
    }


def encode_clip(clip: AnimationClip) -> dict[str, Any]:
    return {
        "uid": clip.uid,
        "name": clip.name,
        "curves": [
            {
                "binding": _encode_binding(binding),
                "keys": [
                    [
                        k.time,
                        k.value,
                        k.in_tangent,
                        k.out_tangent,
                        k.in_weight,
                        k.out_weight,
                        k.weighted_mode,
                    ]
                    for k in curve.keys
                ],
            }
            for binding, curve in clip.curves.items()
        ],
        "object_curves": [
            {
                "binding": _encode_binding(binding),
                "keys": [
                    {"time": k.time, "material": k.value.uid if k.value is not None else None}
                    for k in keys
                ],
            }
            for binding, keys in clip.object_curves.items()
        ],
    }


def _encode_state_machine(state_machine: StateMachine) -> dict[str, Any]:
    return {
        "name": state_machine.name,
        "states": [
            {
                "name": state.name,
                "motion": state.motion.uid if isinstance(state.motion, AnimationClip) else None,
            }
            for state in state_machine.states
        ],
        "state_machines": [_encode_state_machine(child) for child in state_machine.state_machines],
    }


def encode_controller(controller: AnimatorController) -> dict[str, Any]:
    return {
        "uid": controller.uid,
        "name": controller.name,
        "layers": [
            {"name": layer.name, "state_machine": _encode_state_machine(layer.state_machine)}
            for layer in controller.layers
        ],
    }


def _uid(obj: Any) -> str | None:
    return obj.uid if obj is not None else None


def _encode_renderer(renderer: SkinnedMeshRenderer) -> dict[str, Any]:
    bounds = renderer.local_bounds
    return {
        "mesh": _uid(renderer.mesh),
        "materials": [_uid(m) for m in renderer.materials],
        "bones": [_uid(b) for b in renderer.bones],
        "root_bone": _uid(renderer.root_bone),
        "probe_anchor": _uid(renderer.probe_anchor),
        "enabled": renderer.enabled,
        "shadow_casting_mode": renderer.shadow_casting_mode,
        "receive_shadows": renderer.receive_shadows,
        "update_when_offscreen": renderer.update_when_offscreen,
        "light_probe_usage": renderer.light_probe_usage,
        "reflection_probe_usage": renderer.reflection_probe_usage,
        "quality": renderer.quality,
        "skinned_motion_vectors": renderer.skinned_motion_vectors,
        "allow_occlusion_when_dynamic": renderer.allow_occlusion_when_dynamic,
        "blendshape_weights": [float(w) for w in renderer.blendshape_weights],
        "local_bounds": (
            {"center": bounds.center.tolist(), "extents": bounds.extents.tolist()}
            if bounds is not None
            else None
        ),
    }


def _encode_node(node: Transform) -> dict[str, Any]:
    return {
        "uid": node.uid,
        "name": node.name,
        "position": list(node.position),
        "rotation": list(node.rotation),
        "scale": list(node.scale),
        "active": node.active,
        "components": list(node.components),
        "renderer": _encode_renderer(node.renderer) if node.renderer is not None else None,
        "children": [_encode_node(child) for child in node.children],
    }


def encode_scene(avatar: Avatar) -> dict[str, Any]:
    """Whole avatar as a JSON-ready dict."""
    renderers = avatar.renderers()
    controllers = avatar.controllers()
    clips: list[AnimationClip] = []
    for controller in controllers:
        clips.extend(c for c in controller.animation_clips if c not in clips)

    materials: list[Material] = []
    for renderer in renderers:
        materials.extend(m for m in renderer.materials if m is not None and m not in materials)
    for clip in clips:
        for keys in clip.object_curves.values():
            materials.extend(
                k.value for k in keys if k.value is not None and k.value not in materials
            )

    meshes: list[Mesh] = []
    for renderer in renderers:
        if renderer.mesh is not None and renderer.mesh not in meshes:
            meshes.append(renderer.mesh)

    def renderer_node(renderer: SkinnedMeshRenderer | None) -> str | None:
        return renderer.node.uid if renderer is not None and renderer.node is not None else None

    return {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "materials": [encode_material(m) for m in materials],
        "meshes": [encode_mesh(m) for m in meshes],
        "clips": [encode_clip(c) for c in clips],
        "controllers": [encode_controller(c) for c in controllers],
        "root": _encode_node(avatar.root),
        "avatar": {
            "animators": [
                {"node": a.node.uid, "controller": _uid(a.controller)} for a in avatar.animators
            ],
            "base_layers": [_uid(c) for c in avatar.base_layers],
            "special_layers": [_uid(c) for c in avatar.special_layers],
            "viseme_renderer": renderer_node(avatar.viseme_renderer),
            "viseme_blendshapes": list(avatar.viseme_blendshapes),
            "eyelids_renderer": renderer_node(avatar.eyelids_renderer),
            "eyelid_blendshapes": list(avatar.eyelid_blendshapes),
        },
    }


# -- decoding ---------------------------------------------------------------


def _lookup(table: dict[str, Any], uid: str | None, kind: str) -> Any:
    if uid is None:
        return None
    try:
        return table[uid]
    except KeyError:
        raise SceneFormatError(f"unknown {kind} {uid!r}") from None


def decode_material(data: dict[str, Any]) -> Material:
    return Material(
        name=data["name"],
        shader=data.get("shader", "Standard"),
        color=tuple(data.get("color", (1.0, 1.0, 1.0, 1.0))),
        uid=data["uid"],
    )


def decode_mesh(data: dict[str, Any]) -> Mesh:
    return Mesh(
        name=data["name"],
        vertices=data["vertices"],
        normals=data.get("normals", []),
        tangents=data.get("tangents", []),
        colors=data.get("colors", []),
        uvs=data.get("uvs", []),
        submeshes=data.get("submeshes", []),
        bone_indices=data.get("bone_indices", []),
        bone_weights=data.get("bone_weights", []),
        bind_poses=data.get("bind_poses", []),
        blendshapes=[
            MeshBlendShape(
                name=shape["name"],
                frames=[
                    MeshBlendShapeFrame(
                        weight=float(frame["weight"]),
                        delta_vertices=frame["delta_vertices"],
                        delta_normals=frame.get("delta_normals", []),
                        delta_tangents=frame.get("delta_tangents", []),
                    )
                    for frame in shape["frames"]
                ],
            )
            for shape in data.get("blendshapes", [])
        ],
        uid=data["uid"],
    )


def _decode_binding(data: dict[str, Any]) -> CurveBinding:
    return CurveBinding(
        path=data["path"],
        type=data["type"],
        property=data["property"],
        discrete=bool(data.get("discrete", False)),
    )


def decode_clip(data: dict[str, Any], materials: dict[str, Material]) -> AnimationClip:
    clip = AnimationClip(name=data["name"], uid=data["uid"])
    for entry in data.get("curves", []):
        keys = [
            Keyframe(
                time=float(row[0]),
                value=float(row[1]),
                in_tangent=float(row[2]),
                out_tangent=float(row[3]),
                in_weight=float(row[4]),
                out_weight=float(row[5]),
                weighted_mode=int(row[6]),
            )
            for row in entry["keys"]
        ]
        clip.set_curve(_decode_binding(entry["binding"]), AnimationCurve(keys))
    for entry in data.get("object_curves", []):
        keys = [
            ObjectKeyframe(float(k["time"]), _lookup(materials, k["material"], "material"))
            for k in entry["keys"]
        ]
        clip.set_object_curve(_decode_binding(entry["binding"]), keys)
    return clip


def _decode_state_machine(data: dict[str, Any], clips: dict[str, AnimationClip]) -> StateMachine:
    return StateMachine(
        name=data["name"],
        states=[State(s["name"], _lookup(clips, s.get("motion"), "clip")) for s in data["states"]],
        state_machines=[_decode_state_machine(c, clips) for c in data.get("state_machines", [])],
    )


def decode_controller(data: dict[str, Any], clips: dict[str, AnimationClip]) -> AnimatorController:
    return AnimatorController(
        name=data["name"],
        layers=[
            Layer(layer["name"], _decode_state_machine(layer["state_machine"], clips))
            for layer in data["layers"]
        ],
        uid=data["uid"],
    )


def _decode_node(data: dict[str, Any], nodes: dict[str, Transform]) -> Transform:
    node = Transform(
        name=data["name"],
        position=tuple(data.get("position", (0.0, 0.0, 0.0))),
        rotation=tuple(data.get("rotation", (0.0, 0.0, 0.0, 1.0))),
        scale=tuple(data.get("scale", (1.0, 1.0, 1.0))),
        active=bool(data.get("active", True)),
        components=list(data.get("components", [])),
        uid=data["uid"],
    )
    if node.uid in nodes:
        raise SceneFormatError(f"duplicate node uid {node.uid!r}")
    nodes[node.uid] = node
    for child in data.get("children", []):
        node.add_child(_decode_node(child, nodes))
    return node


def _decode_renderer(
    data: dict[str, Any],
    nodes: dict[str, Transform],
    meshes: dict[str, Mesh],
    materials: dict[str, Material],
) -> SkinnedMeshRenderer:
    bounds = data.get("local_bounds")
    return SkinnedMeshRenderer(
        mesh=_lookup(meshes, data.get("mesh"), "mesh"),
        materials=[_lookup(materials, uid, "material") for uid in data.get("materials", [])],
        bones=[_lookup(nodes, uid, "node") for uid in data.get("bones", [])],
        root_bone=_lookup(nodes, data.get("root_bone"), "node"),
        enabled=bool(data.get("enabled", True)),
        shadow_casting_mode=data.get("shadow_casting_mode", "On"),
        receive_shadows=bool(data.get("receive_shadows", True)),
        update_when_offscreen=bool(data.get("update_when_offscreen", False)),
        light_probe_usage=data.get("light_probe_usage", "BlendProbes"),
        reflection_probe_usage=data.get("reflection_probe_usage", "BlendProbes"),
        quality=data.get("quality", "Auto"),
        probe_anchor=_lookup(nodes, data.get("probe_anchor"), "node"),
        skinned_motion_vectors=bool(data.get("skinned_motion_vectors", True)),
        allow_occlusion_when_dynamic=bool(data.get("allow_occlusion_when_dynamic", True)),
        blendshape_weights=[float(w) for w in data.get("blendshape_weights", [])],
        local_bounds=Bounds(bounds["center"], bounds["extents"]) if bounds is not None else None,
    )


def _attach_renderers(
    data: dict[str, Any],
    nodes: dict[str, Transform],
    meshes: dict[str, Mesh],
    materials: dict[str, Material],
) -> None:
    if data.get("renderer") is not None:
        renderer = _decode_renderer(data["renderer"], nodes, meshes, materials)
        attach_renderer(nodes[data["uid"]], renderer)
    for child in data.get("children", []):
        _attach_renderers(child, nodes, meshes, materials)


def decode_scene(data: dict[str, Any]) -> Avatar:
    """Rebuild an avatar from ``encode_scene`` output."""
    if not isinstance(data, dict) or data.get("format") != FORMAT_NAME:
        raise SceneFormatError(f"not a {FORMAT_NAME} file")
    if data.get("version") != FORMAT_VERSION:
        raise SceneFormatError(f"unsupported version {data.get('version')!r}")

    try:
        materials = {m["uid"]: decode_material(m) for m in data.get("materials", [])}
        meshes = {m["uid"]: decode_mesh(m) for m in data.get("meshes", [])}
        clips = {c["uid"]: decode_clip(c, materials) for c in data.get("clips", [])}
        controllers = {c["uid"]: decode_controller(c, clips) for c in data.get("controllers", [])}

        nodes: dict[str, Transform] = {}
        root = _decode_node(data["root"], nodes)
        _attach_renderers(data["root"], nodes, meshes, materials)

        info = data.get("avatar", {})

        def renderer_at(uid: str | None) -> SkinnedMeshRenderer | None:
            node = _lookup(nodes, uid, "node")
            return node.renderer if node is not None else None

        avatar = Avatar(
            root=root,
            animators=[
                Animator(
                    node=_lookup(nodes, a["node"], "node"),
                    controller=_lookup(controllers, a.get("controller"), "controller"),
                )
                for a in info.get("animators", [])
            ],
            base_layers=[_lookup(controllers, uid, "controller") for uid in info.get("base_layers", [])],
            special_layers=[
                _lookup(controllers, uid, "controller") for uid in info.get("special_layers", [])
            ],
            viseme_renderer=renderer_at(info.get("viseme_renderer")),
            viseme_blendshapes=list(info.get("viseme_blendshapes", [])),
            eyelids_renderer=renderer_at(info.get("eyelids_renderer")),
            eyelid_blendshapes=[int(i) for i in info.get("eyelid_blendshapes", [])],
        )
    except SceneFormatError:
        raise
    except (KeyError, TypeError, IndexError, ValueError) as e:
        raise SceneFormatError(f"malformed scene: {e}") from e

    return avatar


def import_scene(filepath: str | Path) -> Avatar:
    """Load an avatar scene from a JSON file."""
    ext = os.path.splitext(str(filepath))[1].lower()
    if ext != ".json":
        raise SceneFormatError(f"Unsupported format: {ext}")
    try:
        data = json.loads(Path(filepath).read_text())
    except json.JSONDecodeError as e:
        raise SceneFormatError(f"{filepath}: {e}") from e
    avatar = decode_scene(data)
    log_debug(f"Loaded {avatar.name} from {filepath}")
    return avatar


def export_scene(avatar: Avatar, filepath: str | Path) -> Path:
    """Write an avatar scene to a JSON file."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(encode_scene(avatar), indent=2))
    return path
