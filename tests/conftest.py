from __future__ import annotations

import numpy as np
import pytest

from sirds_options import StereogramOptions


def make_quad(z: float = 0.0, x0: float = -1.0, x1: float = 1.0, y0: float = -1.0, y1: float = 1.0) -> np.ndarray:
    """Axis-aligned quad facing +z (counter-clockwise seen from a camera on +z)."""
    a = [x0, y0, z]
    b = [x1, y0, z]
    c = [x1, y1, z]
    d = [x0, y1, z]
    return np.array([[a, b, c], [a, c, d]], dtype=np.float32)


def make_icosphere(subdivisions: int = 1, radius: float = 1.0) -> np.ndarray:
    t = (1.0 + 5.0 ** 0.5) / 2.0
    verts = [
        (-1, t, 0), (1, t, 0), (-1, -t, 0), (1, -t, 0),
        (0, -1, t), (0, 1, t), (0, -1, -t), (0, 1, -t),
        (t, 0, -1), (t, 0, 1), (-t, 0, -1), (-t, 0, 1),
    ]
    faces = [
        (0, 11, 5), (0, 5, 1), (0, 1, 7), (0, 7, 10), (0, 10, 11),
        (1, 5, 9), (5, 11, 4), (11, 10, 2), (10, 7, 6), (7, 1, 8),
        (3, 9, 4), (3, 4, 2), (3, 2, 6), (3, 6, 8), (3, 8, 9),
        (4, 9, 5), (2, 4, 11), (6, 2, 10), (8, 6, 7), (9, 8, 1),
    ]
    v = np.asarray(verts, dtype=np.float64)
    v /= np.linalg.norm(v, axis=1, keepdims=True)
    tris = v[np.asarray(faces)]
    for _ in range(int(subdivisions)):
        a, b, c = tris[:, 0], tris[:, 1], tris[:, 2]
        ab = (a + b) / 2.0
        bc = (b + c) / 2.0
        ca = (c + a) / 2.0
        ab /= np.linalg.norm(ab, axis=1, keepdims=True)
        bc /= np.linalg.norm(bc, axis=1, keepdims=True)
        ca /= np.linalg.norm(ca, axis=1, keepdims=True)
        tris = np.concatenate(
            [
                np.stack([a, ab, ca], axis=1),
                np.stack([ab, b, bc], axis=1),
                np.stack([ca, bc, c], axis=1),
                np.stack([ab, bc, ca], axis=1),
            ]
        )
    return (tris * float(radius)).astype(np.float32)


@pytest.fixture
def quad():
    return make_quad


@pytest.fixture
def icosphere():
    return make_icosphere


@pytest.fixture
def small_options():
    """64x64 perspective view from (0, 0, 5) towards the origin."""

    def _make(**overrides) -> StereogramOptions:
        kw = dict(
            width=64,
            height=64,
            eye_sep=20,
            fov=45.0,
            custom_cam_pos=(0.0, 0.0, 5.0),
            custom_look_at=(0.0, 0.0, 0.0),
        )
        kw.update(overrides)
        return StereogramOptions(**kw)

    return _make


def assert_pair_constraint(rgb: np.ndarray, sep: np.ndarray) -> None:
    h, w = sep.shape
    for y in range(h):
        for x in range(w):
            s = int(sep[y, x])
            left = x - s // 2
            right = left + s
            if 0 <= left and right < w:
                assert tuple(rgb[y, left]) == tuple(rgb[y, right]), (y, x, left, right)


@pytest.fixture
def pair_constraint():
    return assert_pair_constraint
