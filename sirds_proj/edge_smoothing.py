from __future__ import annotations

import numpy as np
from scipy import ndimage

_BOX3 = np.ones((3, 3, 1), dtype=np.float64)


def smooth_edges(rgb: np.ndarray, adjusted_depth: np.ndarray, threshold: float = 0.75, weight: float = 1.0) -> np.ndarray:
    """Blend foreground pixels towards their 3x3 mean.

    Only interior pixels with adjusted depth above ``threshold`` change; each
    becomes orig*(1-a) + mean*a with a = 1/max(1, weight). Means are read from
    the unmodified image. Returns a new uint8 array.
    """
    out = np.array(rgb, dtype=np.uint8, copy=True)
    h, w = out.shape[:2]
    if h < 3 or w < 3:
        return out

    mask = np.zeros((h, w), dtype=bool)
    mask[1:-1, 1:-1] = np.asarray(adjusted_depth, dtype=np.float64)[1:-1, 1:-1] > float(threshold)
    if not mask.any():
        return out

    src = out.astype(np.float64)
    # integer sums are exact in float64, so flat regions stay flat
    mean = ndimage.convolve(src, _BOX3, mode="nearest") / 9.0
    alpha = 1.0 / max(1.0, float(weight))
    blended = src * (1.0 - alpha) + mean * alpha
    blended = np.clip(np.floor(blended + 0.5), 0.0, 255.0).astype(np.uint8)
    out[mask] = blended[mask]
    return out
