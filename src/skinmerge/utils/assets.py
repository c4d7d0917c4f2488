"""Working area for meshes, clips and controllers generated during a pass."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from skinmerge.utils.logging import log_debug
from skinmerge.utils.naming import random_hex

if TYPE_CHECKING:
    from skinmerge.scene import AnimationClip, AnimatorController, Mesh


class GeneratedAssets:
    """
    Tracks assets a pass creates so they can be flushed once at the end.

    The directory is wholly disposable: ``clear()`` deletes it.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.meshes: list[Mesh] = []
        self.clips: list[AnimationClip] = []
        self.controllers: list[AnimatorController] = []

    def __len__(self) -> int:
        return len(self.meshes) + len(self.clips) + len(self.controllers)

    @staticmethod
    def asset_name(suffix: str | None = None) -> str:
        """Random 6-hex name, optionally suffixed."""
        name = random_hex(6)
        return f"{name}_{suffix}" if suffix else name

    def add_mesh(self, mesh: Mesh) -> Mesh:
        if mesh not in self.meshes:
            self.meshes.append(mesh)
        return mesh

    def add_clip(self, clip: AnimationClip) -> AnimationClip:
        if clip not in self.clips:
            self.clips.append(clip)
        return clip

    def add_controller(self, controller: AnimatorController) -> AnimatorController:
        if controller not in self.controllers:
            self.controllers.append(controller)
        return controller

    def flush(self) -> list[Path]:
        """Write every tracked asset as JSON. Returns the written paths."""
        from skinmerge.exporters.scene_json import encode_clip, encode_controller, encode_mesh

        if not len(self):
            return []

        self.directory.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        entries = (
            [(f"{m.uid}.mesh.json", encode_mesh(m)) for m in self.meshes]
            + [(f"{c.uid}.anim.json", encode_clip(c)) for c in self.clips]
            + [(f"{c.uid}.controller.json", encode_controller(c)) for c in self.controllers]
        )
        for filename, data in entries:
            path = self.directory / filename
            path.write_text(json.dumps(data, indent=2))
            written.append(path)
        log_debug(f"Wrote {len(written)} generated asset(s) to {self.directory}")
        return written

    def clear(self) -> bool:
        """Delete the working area. Returns False if there was nothing to delete."""
        if not self.directory.exists():
            return False
        shutil.rmtree(self.directory)
        return True
