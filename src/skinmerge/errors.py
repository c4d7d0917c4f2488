"""Exception types raised by the merge, bake and strip passes."""


class SkinmergeError(Exception):
    """Base class for all skinmerge errors."""


class SnapshotIntegrityError(SkinmergeError, ValueError):
    """Per-vertex data is inconsistent and cannot be repaired.

    Fatal to the single renderer or merge group being processed.
    """


class KeyLookupError(SkinmergeError, LookupError):
    """A property needed for an equivalence key could not be read."""


class FrameCountMismatchError(SkinmergeError, ValueError):
    """Blendshapes sharing a name disagree on frame count (strict policy)."""


class SceneFormatError(SkinmergeError, ValueError):
    """A scene file is malformed or references objects it does not define."""
