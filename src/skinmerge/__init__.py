"""
Skinned Mesh Consolidation
==========================
Merges equivalent skinned mesh renderers of a character and keeps its
animation working.

Passes:
- Strips geometry hidden by ``remove_*`` blendshapes
- Bakes blendshapes nothing animates into the base mesh
- Groups renderers by an equivalence key over settings and animation
- Merges each group into one renderer (geometry, skinning, materials, blendshapes)
- Retargets animation clips and controllers onto the merged renderer

Usage:
    CLI:
        skinmerge avatar.json -o avatar_merged.json
        skinmerge avatar.json --dry-run
        skinmerge avatar.json --skip-bake-unused --strict-frames

    Python:
        from skinmerge import main
        main()
"""

from importlib.metadata import PackageNotFoundError, version

from skinmerge.cli import main

try:
    __version__ = version("skinmerge")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["main"]
