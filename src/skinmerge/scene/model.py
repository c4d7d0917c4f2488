"""In-memory host scene: nodes, materials, meshes, skinned renderers, avatars."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from skinmerge.utils.matrices import transform_points, trs_matrix
from skinmerge.utils.naming import new_uid

if TYPE_CHECKING:
    from skinmerge.scene.animation import AnimatorController


def _float_array(data: object, width: int) -> np.ndarray:
    arr = np.asarray(data, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, width), dtype=np.float64)
    return arr.reshape(-1, width)


@dataclass(eq=False)
class Bounds:
    """Axis-aligned box stored as center and half-size."""

    center: np.ndarray = field(default_factory=lambda: np.zeros(3))
    extents: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.center = np.asarray(self.center, dtype=np.float64).reshape(3)
        self.extents = np.abs(np.asarray(self.extents, dtype=np.float64).reshape(3))

    @classmethod
    def from_min_max(cls, minimum: np.ndarray, maximum: np.ndarray) -> Bounds:
        minimum = np.asarray(minimum, dtype=np.float64)
        maximum = np.asarray(maximum, dtype=np.float64)
        return cls(center=(minimum + maximum) / 2.0, extents=(maximum - minimum) / 2.0)

    @classmethod
    def from_points(cls, points: np.ndarray) -> Bounds:
        if len(points) == 0:
            return cls()
        return cls.from_min_max(points.min(axis=0), points.max(axis=0))

    @property
    def min(self) -> np.ndarray:
        return self.center - self.extents

    @property
    def max(self) -> np.ndarray:
        return self.center + self.extents

    @property
    def size(self) -> np.ndarray:
        return self.extents * 2.0

    def corners(self) -> np.ndarray:
        """The eight corners as an (8, 3) array."""
        lo, hi = self.min, self.max
        return np.array(
            [[x, y, z] for x in (lo[0], hi[0]) for y in (lo[1], hi[1]) for z in (lo[2], hi[2])],
            dtype=np.float64,
        )

    def transformed(self, matrix: np.ndarray) -> Bounds:
        """Axis-aligned box enclosing this box after a transform."""
        return Bounds.from_points(transform_points(matrix, self.corners()))

    def encapsulate(self, other: Bounds) -> Bounds:
        return Bounds.from_min_max(
            np.minimum(self.min, other.min), np.maximum(self.max, other.max)
        )

    def copy(self) -> Bounds:
        return Bounds(self.center.copy(), self.extents.copy())


@dataclass(eq=False)
class Transform:
    """A scene node. Compared by identity."""

    name: str
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)
    active: bool = True
    components: list[str] = field(default_factory=list)
    uid: str = field(default_factory=new_uid)
    parent: Transform | None = field(default=None, repr=False)
    children: list[Transform] = field(default_factory=list, repr=False)
    renderer: SkinnedMeshRenderer | None = field(default=None, repr=False)

    def add_child(self, child: Transform) -> Transform:
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def detach(self) -> None:
        """Remove this node (and its subtree) from its parent."""
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None

    @property
    def local_matrix(self) -> np.ndarray:
        return trs_matrix(self.position, self.rotation, self.scale)

    @property
    def local_to_world(self) -> np.ndarray:
        if self.parent is None:
            return self.local_matrix
        return self.parent.local_to_world @ self.local_matrix

    @property
    def world_to_local(self) -> np.ndarray:
        return np.linalg.inv(self.local_to_world)

    @property
    def root(self) -> Transform:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def active_in_hierarchy(self) -> bool:
        node: Transform | None = self
        while node is not None:
            if not node.active:
                return False
            node = node.parent
        return True

    def is_child_of(self, other: Transform) -> bool:
        """True if ``other`` is this node or one of its ancestors."""
        node: Transform | None = self
        while node is not None:
            if node is other:
                return True
            node = node.parent
        return False

    def walk(self) -> Iterator[Transform]:
        """Pre-order traversal of this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, path: str) -> Transform | None:
        """Resolve a slash-separated child path; '' is this node."""
        node = self
        if not path:
            return node
        for part in path.split("/"):
            match = next((c for c in node.children if c.name == part), None)
            if match is None:
                return None
            node = match
        return node

    def path_from(self, root: Transform) -> str:
        """Slash-separated path from ``root`` (exclusive) down to this node."""
        parts: list[str] = []
        node: Transform | None = self
        while node is not None and node is not root:
            parts.append(node.name)
            node = node.parent
        if node is None:
            raise ValueError(f"{self.name} is not under {root.name}")
        return "/".join(reversed(parts))

    def has_component(self, type_name: str) -> bool:
        if type_name in ("Transform", "GameObject"):
            return True
        if type_name == "SkinnedMeshRenderer":
            return self.renderer is not None
        return type_name in self.components

    @property
    def component_count(self) -> int:
        """Components including the implicit Transform."""
        return 1 + len(self.components) + (1 if self.renderer is not None else 0)


@dataclass(eq=False)
class Material:
    """Render material. Two materials are the same slot key only if identical."""

    name: str
    shader: str = "Standard"
    color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    uid: str = field(default_factory=new_uid)


@dataclass(eq=False)
class MeshBlendShapeFrame:
    weight: float
    delta_vertices: np.ndarray
    delta_normals: np.ndarray
    delta_tangents: np.ndarray

    def __post_init__(self) -> None:
        self.delta_vertices = _float_array(self.delta_vertices, 3)
        self.delta_normals = _float_array(self.delta_normals, 3)
        self.delta_tangents = _float_array(self.delta_tangents, 3)


@dataclass(eq=False)
class MeshBlendShape:
    name: str
    frames: list[MeshBlendShapeFrame] = field(default_factory=list)


@dataclass(eq=False)
class Mesh:
    """
    Mesh data as the host stores it.

    Channels may be shorter than ``vertices`` (or empty) when the authoring
    tool did not provide them; snapshot extraction pads or recomputes them.
    """

    name: str
    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    normals: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    tangents: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    colors: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    uvs: list[np.ndarray] = field(default_factory=list)
    submeshes: list[np.ndarray] = field(default_factory=list)
    bone_indices: np.ndarray = field(default_factory=lambda: np.zeros((0, 4), dtype=np.int64))
    bone_weights: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    bind_poses: np.ndarray = field(default_factory=lambda: np.zeros((0, 4, 4)))
    blendshapes: list[MeshBlendShape] = field(default_factory=list)
    uid: str = field(default_factory=new_uid)

    def __post_init__(self) -> None:
        self.vertices = _float_array(self.vertices, 3)
        self.normals = _float_array(self.normals, 3)
        self.tangents = _float_array(self.tangents, 4)
        self.colors = _float_array(self.colors, 4)
        self.uvs = [_float_array(uv, 2) for uv in self.uvs]
        self.submeshes = [np.asarray(tris, dtype=np.int64).reshape(-1) for tris in self.submeshes]
        indices = np.asarray(self.bone_indices, dtype=np.int64)
        self.bone_indices = indices.reshape(-1, 4) if indices.size else np.zeros((0, 4), dtype=np.int64)
        self.bone_weights = _float_array(self.bone_weights, 4)
        poses = np.asarray(self.bind_poses, dtype=np.float64)
        self.bind_poses = poses.reshape(-1, 4, 4) if poses.size else np.zeros((0, 4, 4))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def blendshape_count(self) -> int:
        return len(self.blendshapes)

    @property
    def blendshape_names(self) -> list[str]:
        return [shape.name for shape in self.blendshapes]

    def get_blendshape_name(self, index: int) -> str:
        return self.blendshapes[index].name

    def get_blendshape_index(self, name: str) -> int:
        """Index of the named blendshape, or -1."""
        for i, shape in enumerate(self.blendshapes):
            if shape.name == name:
                return i
        return -1


@dataclass(eq=False)
class SkinnedMeshRenderer:
    """Skinned renderer component. Lives on exactly one node."""

    mesh: Mesh | None
    materials: list[Material | None] = field(default_factory=list)
    bones: list[Transform | None] = field(default_factory=list)
    root_bone: Transform | None = None
    enabled: bool = True
    shadow_casting_mode: str = "On"
    receive_shadows: bool = True
    update_when_offscreen: bool = False
    light_probe_usage: str = "BlendProbes"
    reflection_probe_usage: str = "BlendProbes"
    quality: str = "Auto"
    probe_anchor: Transform | None = None
    skinned_motion_vectors: bool = True
    allow_occlusion_when_dynamic: bool = True
    blendshape_weights: list[float] = field(default_factory=list)
    local_bounds: Bounds | None = None
    node: Transform | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return self.node.name if self.node is not None else "<detached>"

    @property
    def transform(self) -> Transform:
        if self.node is None:
            raise RuntimeError("Renderer is not attached to a node")
        return self.node

    def get_blendshape_weight(self, index: int) -> float:
        if 0 <= index < len(self.blendshape_weights):
            return float(self.blendshape_weights[index])
        return 0.0


def attach_renderer(node: Transform, renderer: SkinnedMeshRenderer) -> SkinnedMeshRenderer:
    """Put ``renderer`` on ``node``."""
    node.renderer = renderer
    renderer.node = node
    return renderer


@dataclass(eq=False)
class Animator:
    node: Transform
    controller: AnimatorController | None = None


@dataclass(eq=False)
class Avatar:
    """
    A character root plus the descriptor data that references its renderers.

    ``base_layers``/``special_layers`` are controllers driven from the avatar
    root; ``animators`` are controllers driven from their own node.
    """

    root: Transform
    animators: list[Animator] = field(default_factory=list)
    base_layers: list[AnimatorController | None] = field(default_factory=list)
    special_layers: list[AnimatorController | None] = field(default_factory=list)
    viseme_renderer: SkinnedMeshRenderer | None = None
    viseme_blendshapes: list[str] = field(default_factory=list)
    eyelids_renderer: SkinnedMeshRenderer | None = None
    eyelid_blendshapes: list[int] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.root.name

    def renderers(self) -> list[SkinnedMeshRenderer]:
        """All skinned renderers under the root, including inactive ones."""
        return [node.renderer for node in self.root.walk() if node.renderer is not None]

    def controllers(self) -> list[AnimatorController]:
        found: list[AnimatorController] = []
        candidates = [a.controller for a in self.animators]
        candidates += self.base_layers + self.special_layers
        for controller in candidates:
            if controller is not None and controller not in found:
                found.append(controller)
        return found
