from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from sirds_errors import TextureIOError

NO_TEXTURE = ("", "null")


def load_texture(path: Union[str, Path, None]) -> Optional[np.ndarray]:
    """Decode a tile texture as (th, tw, 3) uint8 RGB. "" / "null" / None mean no texture."""
    if path is None or str(path).strip() in NO_TEXTURE:
        return None
    p = Path(path)
    try:
        with Image.open(p) as im:
            im = ImageOps.exif_transpose(im)
            im = im.convert("RGB")
            tex = np.array(im, dtype=np.uint8)
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise TextureIOError(f"Failed to load texture {p}: {e}") from e
    if tex.ndim != 3 or tex.shape[0] == 0 or tex.shape[1] == 0:
        raise TextureIOError(f"Texture {p} is empty")
    return tex


def _bilinear(texture: np.ndarray, tex_x: np.ndarray, tex_y: np.ndarray, tile: bool) -> np.ndarray:
    th, tw = texture.shape[:2]
    tx = np.asarray(tex_x, dtype=np.float64)
    ty = np.asarray(tex_y, dtype=np.float64)
    if tile:
        tx = np.mod(tx, float(tw))
        ty = np.mod(ty, float(th))
    else:
        tx = np.clip(tx, 0.0, float(tw - 1))
        ty = np.clip(ty, 0.0, float(th - 1))

    x0 = np.floor(tx).astype(np.int64)
    y0 = np.floor(ty).astype(np.int64)
    fx = np.asarray(tx - x0)[..., None]
    fy = np.asarray(ty - y0)[..., None]
    if tile:
        x0 %= tw
        y0 %= th
        x1 = (x0 + 1) % tw
        y1 = (y0 + 1) % th
    else:
        x1 = np.minimum(x0 + 1, tw - 1)
        y1 = np.minimum(y0 + 1, th - 1)

    t = texture.astype(np.float64)
    top = t[y0, x0] * (1.0 - fx) + t[y0, x1] * fx
    bot = t[y1, x0] * (1.0 - fx) + t[y1, x1] * fx
    val = top * (1.0 - fy) + bot * fy
    return np.clip(np.floor(val + 0.5), 0.0, 255.0).astype(np.uint8)


def sample_bilinear(texture: np.ndarray, tex_x: float, tex_y: float) -> np.ndarray:
    """Clamp-to-edge bilinear tap; returns 3 bytes. Integer coordinates give the exact texel."""
    return _bilinear(texture, np.asarray(tex_x), np.asarray(tex_y), tile=False)


def sample_bilinear_tiled(texture: np.ndarray, tex_x: float, tex_y: float) -> np.ndarray:
    return _bilinear(texture, np.asarray(tex_x), np.asarray(tex_y), tile=True)


def adjust_brightness_contrast(values: np.ndarray, brightness: float = 1.0, contrast: float = 1.0) -> np.ndarray:
    """Contrast about mid-grey, then brightness scale; rounded and clamped to bytes."""
    v = np.asarray(values, dtype=np.float64) / 255.0
    v = ((v - 0.5) * float(contrast) + 0.5) * float(brightness)
    return np.clip(np.floor(v * 255.0 + 0.5), 0.0, 255.0).astype(np.uint8)


def texture_plane(
    texture: np.ndarray,
    width: int,
    height: int,
    brightness: float = 1.0,
    contrast: float = 1.0,
    tile: bool = False,
) -> np.ndarray:
    """Texture tap for every output pixel: (H, W, 3) uint8, sampled at (x*tw/W, y*th/H)."""
    th, tw = texture.shape[:2]
    xs = np.arange(int(width), dtype=np.float64) * float(tw) / float(width)
    ys = np.arange(int(height), dtype=np.float64) * float(th) / float(height)
    gx, gy = np.meshgrid(xs, ys)
    rgb = _bilinear(texture, gx, gy, tile=bool(tile))
    if float(brightness) == 1.0 and float(contrast) == 1.0:
        return rgb
    return adjust_brightness_contrast(rgb, brightness, contrast)
