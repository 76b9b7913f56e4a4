from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np


def _vertices(soup: np.ndarray) -> np.ndarray:
    if soup.ndim != 3 or soup.shape[1:] != (3, 3):
        raise ValueError(f"triangle soup must have shape (T, 3, 3), got {soup.shape}")
    if not soup.flags.c_contiguous:
        raise ValueError("triangle soup must be C-contiguous to be transformed in place")
    return soup.reshape(-1, 3)


def _apply_matrix(soup: np.ndarray, m: np.ndarray) -> None:
    v = _vertices(soup)
    v[...] = (v.astype(np.float64) @ m.T).astype(soup.dtype)


def rotation_matrix(rot_deg: Sequence[float]) -> np.ndarray:
    """Rz @ Ry @ Rx for Euler angles in degrees."""
    rx, ry, rz = (np.deg2rad(float(a)) for a in rot_deg)
    cx, sx = np.cos(rx), np.sin(rx)
    cy, sy = np.cos(ry), np.sin(ry)
    cz, sz = np.cos(rz), np.sin(rz)
    mx = np.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    my = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    mz = np.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return mz @ my @ mx


def scale_mesh(soup: np.ndarray, sc: Sequence[float]) -> None:
    _vertices(soup)[...] *= np.asarray(sc, dtype=soup.dtype)


def shear_mesh(soup: np.ndarray, shear: Sequence[float]) -> None:
    """y += sh_xy*x, z += sh_xz*x + sh_yz*y (using the unsheared coordinates)."""
    sh_xy, sh_xz, sh_yz = (float(s) for s in shear)
    m = np.array(
        [
            [1.0, 0.0, 0.0],
            [sh_xy, 1.0, 0.0],
            [sh_xz, sh_yz, 1.0],
        ]
    )
    _apply_matrix(soup, m)


def rotate_mesh(soup: np.ndarray, rot_deg: Sequence[float]) -> None:
    _apply_matrix(soup, rotation_matrix(rot_deg))


def translate_mesh(soup: np.ndarray, trans: Sequence[float]) -> None:
    _vertices(soup)[...] += np.asarray(trans, dtype=soup.dtype)


def transform_mesh(
    soup: np.ndarray,
    sc: Sequence[float] = (1.0, 1.0, 1.0),
    shear: Sequence[float] = (0.0, 0.0, 0.0),
    rot_deg: Sequence[float] = (0.0, 0.0, 0.0),
    trans: Sequence[float] = (0.0, 0.0, 0.0),
) -> np.ndarray:
    """Scale, shear, rotate, translate -- in that order, in place. Triangle order is kept."""
    if soup.shape[0] == 0:
        return soup
    scale_mesh(soup, sc)
    shear_mesh(soup, shear)
    rotate_mesh(soup, rot_deg)
    translate_mesh(soup, trans)
    return soup


def mesh_bounds(soup: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return (center, spans) of the axis-aligned bounding box; zeros for an empty soup."""
    if soup.shape[0] == 0:
        return np.zeros(3, dtype=np.float64), np.zeros(3, dtype=np.float64)
    v = _vertices(soup).astype(np.float64)
    lo = v.min(axis=0)
    hi = v.max(axis=0)
    return (lo + hi) * 0.5, hi - lo


def normalize_and_center(soup: np.ndarray) -> np.ndarray:
    """Move the bounding-box centre to the origin and scale so the largest span is 1."""
    if soup.shape[0] == 0:
        return soup
    center, spans = mesh_bounds(soup)
    v = _vertices(soup)
    v[...] = (v.astype(np.float64) - center).astype(soup.dtype)
    span = float(spans.max())
    if span > 1e-12:
        v[...] = (v.astype(np.float64) / span).astype(soup.dtype)
    return soup
