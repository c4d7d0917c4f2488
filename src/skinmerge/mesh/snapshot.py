"""
Engine-independent capture of one skinned renderer's drawable state.

Every per-vertex array (positions, normals, tangents, colors, each UV
channel, weights and every blendshape frame's deltas) has the same length
at all times. Bone weights reference bone nodes, not indices; indices are
only resolved when a snapshot is written back to a renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from skinmerge.errors import SnapshotIntegrityError
from skinmerge.scene.model import Bounds, Material, Transform
from skinmerge.utils.constants import BONES_PER_VERTEX, UV_CHANNEL_COUNT


@dataclass(frozen=True)
class BoneWeight:
    """Up to four (bone, weight) influences on one vertex."""

    bones: tuple[Transform | None, ...]
    weights: tuple[float, ...]

    @classmethod
    def full(cls, bone: Transform | None) -> BoneWeight:
        """Full weight on a single bone."""
        return cls(
            bones=(bone,) * BONES_PER_VERTEX,
            weights=(1.0,) + (0.0,) * (BONES_PER_VERTEX - 1),
        )


@dataclass(eq=False)
class BlendShapeFrame:
    weight: float
    delta_vertices: np.ndarray
    delta_normals: np.ndarray
    delta_tangents: np.ndarray

    @classmethod
    def zeros(cls, vertex_count: int, weight: float = 100.0) -> BlendShapeFrame:
        return cls(
            weight=weight,
            delta_vertices=np.zeros((vertex_count, 3)),
            delta_normals=np.zeros((vertex_count, 3)),
            delta_tangents=np.zeros((vertex_count, 3)),
        )

    def __len__(self) -> int:
        return len(self.delta_vertices)

    def padded(self, before: int, after: int) -> BlendShapeFrame:
        """Copy with zero deltas for ``before`` leading and ``after`` trailing vertices."""
        pad = ((before, after), (0, 0))
        return BlendShapeFrame(
            weight=self.weight,
            delta_vertices=np.pad(self.delta_vertices, pad),
            delta_normals=np.pad(self.delta_normals, pad),
            delta_tangents=np.pad(self.delta_tangents, pad),
        )

    def keep(self, mask: np.ndarray) -> None:
        self.delta_vertices = self.delta_vertices[mask]
        self.delta_normals = self.delta_normals[mask]
        self.delta_tangents = self.delta_tangents[mask]


@dataclass(eq=False)
class BlendShape:
    name: str
    frames: list[BlendShapeFrame] = field(default_factory=list)
    weight: float = 0.0

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def last_frame(self) -> BlendShapeFrame:
        return self.frames[-1]


def _default_uv_channels() -> list[np.ndarray]:
    return [np.zeros((0, 2)) for _ in range(UV_CHANNEL_COUNT)]


@dataclass(eq=False)
class MeshSnapshot:
    name: str
    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    normals: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    tangents: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    colors: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    uv_channels: list[np.ndarray] = field(default_factory=_default_uv_channels)
    submeshes: dict[Material | None, np.ndarray] = field(default_factory=dict)
    weights: list[BoneWeight] = field(default_factory=list)
    bind_poses: dict[Transform, np.ndarray] = field(default_factory=dict)
    bone_order: list[Transform] = field(default_factory=list)
    root_bone: Transform | None = None
    blendshapes: list[BlendShape] = field(default_factory=list)
    bounds: Bounds = field(default_factory=Bounds)
    local_to_world: np.ndarray = field(default_factory=lambda: np.eye(4))
    world_to_local: np.ndarray = field(default_factory=lambda: np.eye(4))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def materials(self) -> list[Material | None]:
        """Material slots in write-back order."""
        return list(self.submeshes)

    @property
    def blendshape_names(self) -> list[str]:
        return [shape.name for shape in self.blendshapes]

    def get_blendshape(self, name: str) -> BlendShape | None:
        return next((s for s in self.blendshapes if s.name == name), None)

    def per_vertex_lengths(self) -> dict[str, int]:
        """Length of every per-vertex array, keyed by a readable channel name."""
        lengths = {
            "vertices": len(self.vertices),
            "normals": len(self.normals),
            "tangents": len(self.tangents),
            "colors": len(self.colors),
            "weights": len(self.weights),
        }
        for channel, uvs in enumerate(self.uv_channels):
            lengths[f"uv{channel}"] = len(uvs)
        for shape in self.blendshapes:
            for i, frame in enumerate(shape.frames):
                lengths[f"{shape.name}[{i}].vertices"] = len(frame.delta_vertices)
                lengths[f"{shape.name}[{i}].normals"] = len(frame.delta_normals)
                lengths[f"{shape.name}[{i}].tangents"] = len(frame.delta_tangents)
        return lengths

    def validate(self) -> None:
        """Raise SnapshotIntegrityError if any invariant is broken."""
        count = self.vertex_count
        bad = {k: n for k, n in self.per_vertex_lengths().items() if n != count}
        if bad:
            raise SnapshotIntegrityError(
                f"{self.name}: per-vertex arrays disagree with {count} vertices: {bad}"
            )
        for material, triangles in self.submeshes.items():
            label = material.name if material is not None else "<none>"
            if len(triangles) % 3:
                raise SnapshotIntegrityError(
                    f"{self.name}: submesh {label} has {len(triangles)} indices, not a multiple of 3"
                )
            if len(triangles) and (triangles.min() < 0 or triangles.max() >= count):
                raise SnapshotIntegrityError(
                    f"{self.name}: submesh {label} indexes outside 0..{count - 1}"
                )

    def remove_vertices(self, remove: np.ndarray) -> np.ndarray:
        """
        Delete flagged vertices from every per-vertex array.

        Triangles that reference a removed vertex are dropped whole; the rest
        are renumbered. Returns the remap table (old index -> new index, -1
        for removed vertices).
        """
        remove = np.asarray(remove, dtype=bool)
        if remove.shape != (self.vertex_count,):
            raise SnapshotIntegrityError(
                f"{self.name}: removal mask has {remove.size} entries for {self.vertex_count} vertices"
            )
        keep = ~remove
        remap = np.full(self.vertex_count, -1, dtype=np.int64)
        remap[keep] = np.arange(int(keep.sum()), dtype=np.int64)

        if not remove.any():
            return remap

        self.vertices = self.vertices[keep]
        self.normals = self.normals[keep]
        self.tangents = self.tangents[keep]
        self.colors = self.colors[keep]
        self.uv_channels = [uvs[keep] for uvs in self.uv_channels]
        self.weights = [w for w, k in zip(self.weights, keep) if k]
        for shape in self.blendshapes:
            for frame in shape.frames:
                frame.keep(keep)

        for material, triangles in self.submeshes.items():
            if len(triangles) == 0:
                continue
            tris = remap[triangles.reshape(-1, 3)]
            tris = tris[(tris >= 0).all(axis=1)]
            self.submeshes[material] = tris.reshape(-1)

        return remap
