from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from sirds_errors import ImageWriteError


def write_rgb(path: Path, rgb: np.ndarray) -> Path:
    """Write an (H, W, 3) uint8 image; the format follows the file extension."""
    path = Path(path)
    arr = np.asarray(rgb)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ImageWriteError(f"expected an (H, W, 3) image for {path}, got shape {arr.shape}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8)).save(path)
    except (OSError, ValueError, KeyError) as e:
        raise ImageWriteError(f"Failed to write {path}: {e}") from e
    return path


def depth_to_rgb(depth: np.ndarray) -> np.ndarray:
    """Greyscale depth visualisation, byte = round(clamp(depth, 0, 1) * 255) on all three channels."""
    g = np.floor(np.clip(np.asarray(depth, dtype=np.float64), 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
    return np.repeat(g[..., None], 3, axis=-1)


def depth_to_colormap(depth: np.ndarray, cmap_name: str = "viridis") -> np.ndarray:
    import matplotlib

    try:
        cmap = matplotlib.colormaps[str(cmap_name)]
    except KeyError as e:
        raise ValueError(f"Unknown matplotlib colormap: {cmap_name}") from e
    d = np.clip(np.asarray(depth, dtype=np.float64), 0.0, 1.0)
    return (cmap(d)[..., :3] * 255.0).astype(np.uint8)


def colormap_exists(cmap_name: str) -> bool:
    import matplotlib

    return str(cmap_name) in matplotlib.colormaps
