from __future__ import annotations


class StereogramError(Exception):
    """Base class for failures surfaced by the stereogram pipeline."""


class InvalidOptionError(StereogramError, ValueError):
    """An option value is out of range or inconsistent. Raised before rendering starts."""


class MeshIOError(StereogramError, RuntimeError):
    pass


class TextureIOError(StereogramError, RuntimeError):
    pass


class ImageWriteError(StereogramError, RuntimeError):
    pass
