"""Consolidation pipeline: strip marked shapes, bake unused shapes, merge renderers."""

import copy
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from skinmerge.analyzers import (
    build_equivalence_keys,
    find_marked_blendshapes,
    find_unused_blendshapes,
    group_materials,
    group_renderers,
)
from skinmerge.cleaners import bake_unused_blendshapes, merge_renderer_groups, strip_marked_blendshapes
from skinmerge.errors import SceneFormatError
from skinmerge.exporters.scene_json import export_scene, import_scene
from skinmerge.mesh import FramePolicy, LastFrameClamp, StrictFrameCount
from skinmerge.scene import Avatar, collect_animations
from skinmerge.utils import get_scene_stats
from skinmerge.utils.assets import GeneratedAssets
from skinmerge.utils.constants import DEFAULT_CONFIG, GENERATED_DIR_NAME, FramePolicyName
from skinmerge.utils.logging import (
    StepTimer,
    bold,
    bright_cyan,
    bright_green,
    cyan,
    dim,
    format_count,
    format_delta,
    format_duration,
    log_detail,
    log_error,
    log_ok,
    log_warn,
    log_would,
    magenta,
    print_header,
    verbosity,
    timed,
)


@dataclass
class PipelineConfig:
    """Configuration for one consolidation pass."""

    output_path: Path | None = None
    dry_run: bool = DEFAULT_CONFIG["dry_run"]
    strip_marked: bool = DEFAULT_CONFIG["strip_marked"]
    bake_unused: bool = DEFAULT_CONFIG["bake_unused"]
    merge_meshes: bool = DEFAULT_CONFIG["merge_meshes"]
    frame_policy: FramePolicyName = DEFAULT_CONFIG["frame_policy"]
    generated_dir: Path | None = DEFAULT_CONFIG["generated_dir"]
    cleanup_generated: bool = DEFAULT_CONFIG["cleanup_generated"]
    quiet: bool = DEFAULT_CONFIG["quiet"]

    def make_frame_policy(self) -> FramePolicy:
        if self.frame_policy == "strict":
            return StrictFrameCount()
        if self.frame_policy == "clamp":
            return LastFrameClamp()
        raise ValueError(f"Unknown frame policy: {self.frame_policy}")


@dataclass(frozen=True)
class StageResult:
    """Scene handed to the next stage, plus what this stage did (or would do)."""

    avatar: Avatar
    report: list[dict[str, object]] = field(default_factory=list)


Stage = Callable[[Avatar, PipelineConfig, GeneratedAssets | None], StageResult]


def _owned(avatar: Avatar, config: PipelineConfig) -> Avatar:
    """The scene a stage may work on: the input itself for dry runs, a deep copy otherwise."""
    return avatar if config.dry_run else copy.deepcopy(avatar)


def strip_marked_stage(
    avatar: Avatar, config: PipelineConfig, assets: GeneratedAssets | None = None
) -> StageResult:
    """Delete geometry hidden by ``remove_*`` blendshapes."""
    working = _owned(avatar, config)
    marked = find_marked_blendshapes(working, collect_animations(working))

    if config.dry_run:
        report: list[dict[str, object]] = []
        for renderer, names in marked.items():
            log_would(f"strip vertices of {renderer.name}: {', '.join(names)}")
            report.append({"renderer": renderer.name, "shapes": names})
        return StageResult(working, report)

    return StageResult(working, strip_marked_blendshapes(working, marked, assets))


def bake_unused_stage(
    avatar: Avatar, config: PipelineConfig, assets: GeneratedAssets | None = None
) -> StageResult:
    """Bake or drop every blendshape nothing animates."""
    working = _owned(avatar, config)
    usages = find_unused_blendshapes(working, collect_animations(working))

    if config.dry_run:
        report: list[dict[str, object]] = []
        for renderer, usage in usages.items():
            if usage.unused:
                log_would(f"remove {len(usage.unused)} unused blendshape(s) from {renderer.name}: {', '.join(usage.unused)}")
            if usage.static:
                log_would(f"bake {len(usage.static)} blendshape(s) into {renderer.name}: {', '.join(usage.static)}")
            report.append({"renderer": renderer.name, "unused": usage.unused, "baked": usage.static})
        return StageResult(working, report)

    return StageResult(working, bake_unused_blendshapes(working, usages, assets))


def merge_meshes_stage(
    avatar: Avatar, config: PipelineConfig, assets: GeneratedAssets | None = None
) -> StageResult:
    """Merge groups of equivalent skinned renderers."""
    working = _owned(avatar, config)
    keys, excluded = build_equivalence_keys(working, collect_animations(working))
    groups = group_renderers(keys)

    if config.dry_run:
        report: list[dict[str, object]] = []
        for group in groups:
            names = [r.name for r in group]
            log_would(f"merge meshes: {', '.join(names)}")
            report.append({"renderers": names, "survivor": names[0]})
        return StageResult(working, report + excluded)

    results = merge_renderer_groups(working, groups, keys, config.make_frame_policy(), assets)
    return StageResult(working, results + excluded)


STAGES: list[tuple[str, str, Stage]] = [
    ("strip_marked", "Stripping marked blendshapes...", strip_marked_stage),
    ("bake_unused", "Baking unused blendshapes...", bake_unused_stage),
    ("merge_meshes", "Merging equivalent meshes...", merge_meshes_stage),
]


@dataclass
class PipelineResult:
    avatar: Avatar
    reports: dict[str, list[dict[str, object]]] = field(default_factory=dict)


def run_pipeline(
    avatar: Avatar,
    config: PipelineConfig | None = None,
    assets: GeneratedAssets | None = None,
    step: StepTimer | None = None,
) -> PipelineResult:
    """
    Run every enabled stage in order, each on the previous stage's output.

    In dry-run mode the input is returned untouched and the reports say what
    would have happened.
    """
    config = config or PipelineConfig()
    with verbosity(not config.quiet):
        return _run_stages(avatar, config, assets, step)


def _run_stages(
    avatar: Avatar, config: PipelineConfig, assets: GeneratedAssets | None, step: StepTimer | None
) -> PipelineResult:
    result = PipelineResult(avatar)

    for name, message, stage in STAGES:
        if not getattr(config, name):
            if step:
                step.step(f"Skipping {name.replace('_', ' ')}")
                log_detail(dim(f"{name} disabled"))
            continue
        if step:
            step.step(message)
        with timed(name, print_on_exit=False) as t:
            stage_result = stage(result.avatar, config, assets)
        result.avatar = stage_result.avatar
        result.reports[name] = stage_result.report
        failed = sum(1 for entry in stage_result.report if "error" in entry or "issue" in entry)
        log_detail(
            f"{format_count(len(stage_result.report) - failed, 'change')}"
            f"{f', {failed} skipped' if failed else ''} {dim(f'({format_duration(t.elapsed)})')}"
        )

    result.reports["materials"] = group_materials(result.avatar)
    return result


def optimize_and_export(
    input_path: str,
    output_path: Path | None = None,
    dry_run: bool = False,
    strip_marked: bool = True,
    bake_unused: bool = True,
    merge_meshes: bool = True,
    frame_policy: FramePolicyName = "clamp",
    generated_dir: Path | None = None,
    cleanup_generated: bool = True,
    quiet: bool = False,
) -> str | None:
    """
    Main consolidation entry point.

    Args:
        input_path: Scene file to load (.json)
        output_path: Where to save the result (default: next to the input)
        dry_run: Report what would change without writing anything
        strip_marked: Delete geometry hidden by remove_* blendshapes
        bake_unused: Bake or drop blendshapes nothing animates
        merge_meshes: Merge equivalent skinned renderers
        frame_policy: 'clamp' reuses the last frame on mismatch, 'strict' refuses
        generated_dir: Working area for generated assets
        cleanup_generated: Delete the working area after the pass
        quiet: Hide debug output

    Returns the written path, the input path for a dry run, or None on failure.
    """
    config = PipelineConfig(
        output_path=output_path,
        dry_run=dry_run,
        strip_marked=strip_marked,
        bake_unused=bake_unused,
        merge_meshes=merge_meshes,
        frame_policy=frame_policy,
        generated_dir=generated_dir,
        cleanup_generated=cleanup_generated,
        quiet=quiet,
    )
    with verbosity(not config.quiet):
        return _optimize(input_path, config)


def _optimize(input_path: str, config: PipelineConfig) -> str | None:

    if config.output_path is None:
        base = os.path.splitext(input_path)[0]
        config.output_path = Path(f"{base}_optimized.json")
    if config.generated_dir is None:
        config.generated_dir = config.output_path.parent / GENERATED_DIR_NAME

    # import + 3 stages + export
    step = StepTimer(total_steps=5)
    print_header("SKINNED MESH CONSOLIDATION" + (" (DRY RUN)" if config.dry_run else ""))

    step.step("Loading scene...")
    log_detail(dim(os.path.basename(input_path)))
    try:
        with timed("Scene import", print_on_exit=False) as t:
            avatar = import_scene(input_path)
    except (OSError, SceneFormatError) as e:
        log_error(f"Could not load {input_path}: {e}")
        return None
    log_detail(f"Loaded {cyan(avatar.name)} in {bright_cyan(format_duration(t.elapsed))}")

    before = get_scene_stats(avatar)
    verts_str = f"{before['vertices']:,}"
    print(
        f"\n  Scene: {cyan(str(before['renderers']))} renderers, "
        f"{cyan(verts_str)} verts, "
        f"{cyan(str(before['blendshapes']))} blendshapes, "
        f"{cyan(str(before['clips']))} clips"
    )

    assets = GeneratedAssets(config.generated_dir)
    result = run_pipeline(avatar, config, assets, step)

    for group in result.reports.get("materials", []):
        log_detail(f"{magenta('[ATLAS]')} {group['count']} materials share shader {group['shader']}")

    if config.dry_run:
        step.step("Skipping export")
        log_detail(dim("--dry-run flag set"))
        step.finish()
        step.print_summary()
        return input_path

    step.step("Exporting scene...")
    log_detail(dim(str(config.output_path)))
    try:
        with timed("Scene export", print_on_exit=False) as t:
            written = export_scene(result.avatar, config.output_path)
            assets.flush()
    except OSError as e:
        log_error(f"Export failed: {e}")
        return None
    log_detail(f"{bright_green('Export successful')} {dim(f'({format_duration(t.elapsed)})')}")

    if config.cleanup_generated and assets.clear():
        log_detail(dim(f"Removed generated assets in {config.generated_dir}"))
    elif len(assets):
        log_detail(f"Kept {format_count(len(assets), 'generated asset')} in {config.generated_dir}")

    step.finish()

    after = get_scene_stats(result.avatar)
    print(f"\n{cyan('=' * 60)}")
    print(f"  {bold('OUTPUT')}:     {bright_green(written.name)}")
    print(f"  {bold('RENDERERS')}:  {after['renderers']} ({format_delta(before['renderers'], after['renderers'])})")
    print(f"  {bold('VERTICES')}:   {after['vertices']:,} ({format_delta(before['vertices'], after['vertices'])})")
    print(f"  {bold('TIME')}:       {bright_cyan(format_duration(step.total_elapsed()))}")
    print(f"{cyan('=' * 60)}")
    step.print_summary()

    if after == before:
        log_warn("Nothing to consolidate")
    else:
        log_ok("Consolidation complete!")
    return str(written)
