"""Scene import/export and the consolidation pipeline."""

from skinmerge.exporters.pipeline import (
    PipelineConfig,
    PipelineResult,
    StageResult,
    optimize_and_export,
    run_pipeline,
)
from skinmerge.exporters.scene_json import export_scene, import_scene

__all__ = [
    "PipelineConfig",
    "PipelineResult",
    "StageResult",
    "export_scene",
    "import_scene",
    "optimize_and_export",
    "run_pipeline",
]
