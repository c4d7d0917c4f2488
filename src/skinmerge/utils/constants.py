"""Constants and defaults for mesh consolidation."""

from pathlib import Path
from typing import Literal, TypedDict

# Unity-style mesh channel limits
UV_CHANNEL_COUNT = 8
BONES_PER_VERTEX = 4

# Padding values for channels a source mesh does not provide
DEFAULT_UV: tuple[float, float] = (0.0, 0.0)
DEFAULT_COLOR: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 0.0)

# Curve property prefixes
BLENDSHAPE_PROPERTY_PREFIX = "blendShape."
MATERIAL_SWAP_PREFIX = "m_Materials."
MATERIAL_PROPERTY_PREFIX = "material."
MATERIAL_SLOT_PROPERTY = "m_Materials.Array.data[{index}]"

# Blendshapes with this prefix and a non-zero weight hide geometry
REMOVE_BLENDSHAPE_PREFIX = "remove_"

# Binding target types
RENDERER_TYPE = "SkinnedMeshRenderer"
GAME_OBJECT_TYPE = "GameObject"

# Generated assets land here unless overridden
GENERATED_DIR_NAME = "skinmerge_generated"

FramePolicyName = Literal["clamp", "strict"]


class OptimizationConfig(TypedDict):
    """Configuration for a consolidation pass."""

    dry_run: bool
    strip_marked: bool
    bake_unused: bool
    merge_meshes: bool
    frame_policy: FramePolicyName
    generated_dir: Path | None
    cleanup_generated: bool
    quiet: bool


# Default configuration for a pass
DEFAULT_CONFIG: OptimizationConfig = {
    "dry_run": False,  # Report only, never mutate
    "strip_marked": True,  # Delete geometry hidden by remove_* shapes
    "bake_unused": True,  # Bake/drop shapes nothing animates
    "merge_meshes": True,  # Merge equivalent skinned renderers
    "frame_policy": "clamp",  # Reuse last frame on frame-count mismatch
    "generated_dir": None,  # None = next to the output file
    "cleanup_generated": True,  # Delete generated assets after the pass
    "quiet": False,  # Hide debug output
}
