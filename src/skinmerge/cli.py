"""Command-line interface for skinned mesh consolidation."""

import os
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

try:
    __version__ = version("skinmerge")
except PackageNotFoundError:
    __version__ = "unknown"

from skinmerge.utils.constants import DEFAULT_CONFIG

app = typer.Typer(
    name="skinmerge",
    help="Merge equivalent skinned meshes and strip unused blendshapes",
    add_completion=False,
    rich_markup_mode="rich",
    suggest_commands=True,
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        print(f"skinmerge {__version__}")
        raise typer.Exit()


@app.command()
def optimize(
    input_path: Annotated[
        str,
        typer.Argument(
            help="Input scene ([bold green].json[/])",
            metavar="INPUT",
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output path (default: [italic]input_optimized.json[/])",
            rich_help_panel="Core Options",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            help="Report what would change without writing anything",
            rich_help_panel="Core Options",
        ),
    ] = DEFAULT_CONFIG["dry_run"],
    strip_marked: Annotated[
        bool,
        typer.Option(
            "--strip-marked/--skip-strip-marked",
            help="Delete geometry hidden by [italic]remove_*[/] blendshapes",
            rich_help_panel="Stages",
        ),
    ] = DEFAULT_CONFIG["strip_marked"],
    bake_unused: Annotated[
        bool,
        typer.Option(
            "--bake-unused/--skip-bake-unused",
            help="Bake or drop blendshapes nothing animates",
            rich_help_panel="Stages",
        ),
    ] = DEFAULT_CONFIG["bake_unused"],
    merge_meshes: Annotated[
        bool,
        typer.Option(
            "--merge/--no-merge",
            help="Merge equivalent skinned renderers",
            rich_help_panel="Stages",
        ),
    ] = DEFAULT_CONFIG["merge_meshes"],
    strict_frames: Annotated[
        bool,
        typer.Option(
            "--strict-frames",
            help="Refuse to merge blendshapes whose frame counts differ",
            rich_help_panel="Stages",
        ),
    ] = False,
    generated_dir: Annotated[
        Path | None,
        typer.Option(
            "--generated-dir",
            help="Working area for generated meshes, clips and controllers",
            rich_help_panel="Generated Assets",
        ),
    ] = DEFAULT_CONFIG["generated_dir"],
    cleanup: Annotated[
        bool,
        typer.Option(
            "--cleanup/--keep-generated",
            help="Delete generated assets after the pass",
            rich_help_panel="Generated Assets",
        ),
    ] = DEFAULT_CONFIG["cleanup_generated"],
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Hide debug output",
        ),
    ] = DEFAULT_CONFIG["quiet"],
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show the version and exit.",
        ),
    ] = None,
) -> None:
    """
    Consolidate the skinned meshes of an avatar scene.
    """
    # Verify input existence before heavier imports
    abs_input_path = os.path.abspath(input_path)
    if not os.path.isfile(abs_input_path):
        console.print(f"[bold red][ERROR][/] File not found: {abs_input_path}")
        raise typer.Exit(code=1)

    ext = os.path.splitext(abs_input_path)[1].lower()
    if ext != ".json":
        console.print(f"[bold red][ERROR][/] Unsupported format: {ext}")
        console.print("        Supported: .json")
        raise typer.Exit(code=1)

    # Lazy import to keep the CLI snappy for --help
    from skinmerge.exporters import optimize_and_export

    result = optimize_and_export(
        input_path=abs_input_path,
        output_path=Path(os.path.abspath(output)) if output is not None else None,
        dry_run=dry_run,
        strip_marked=strip_marked,
        bake_unused=bake_unused,
        merge_meshes=merge_meshes,
        frame_policy="strict" if strict_frames else DEFAULT_CONFIG["frame_policy"],
        generated_dir=generated_dir,
        cleanup_generated=cleanup,
        quiet=quiet,
    )

    if not result:
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point; ``skinmerge INPUT`` and ``skinmerge optimize INPUT`` are the same."""
    args = sys.argv[1:]

    # A single-command app already runs optimize; accept the explicit name too
    if args and args[0] == "optimize":
        args = args[1:]

    app(args=args, prog_name="skinmerge")


if __name__ == "__main__":
    main()
