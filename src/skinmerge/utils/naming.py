"""Naming and string utility functions."""

import re
import secrets
import uuid

from skinmerge.utils.constants import (
    BLENDSHAPE_PROPERTY_PREFIX,
    MATERIAL_SLOT_PROPERTY,
)

_SLOT_RE = re.compile(r"\[(\d+)\]")


def new_uid() -> str:
    """Short unique identifier for scene objects."""
    return uuid.uuid4().hex[:12]


def random_hex(length: int = 6) -> str:
    """Random lowercase hex string used for generated asset names."""
    return secrets.token_hex((length + 1) // 2)[:length]


def parse_material_slot(property_name: str) -> int | None:
    """
    Extract the slot index from 'm_Materials.Array.data[N]'.

    Returns None if the property carries no index.
    """
    match = _SLOT_RE.search(property_name)
    if not match:
        return None
    return int(match.group(1))


def material_slot_property(index: int) -> str:
    return MATERIAL_SLOT_PROPERTY.format(index=index)


def blendshape_property_name(property_name: str) -> str | None:
    """'blendShape.Smile' -> 'Smile'; None for other properties."""
    if not property_name.startswith(BLENDSHAPE_PROPERTY_PREFIX):
        return None
    return property_name[len(BLENDSHAPE_PROPERTY_PREFIX) :]


def merged_mesh_name(names: list[str]) -> str:
    return "_".join(names)
