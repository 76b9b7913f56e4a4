from __future__ import annotations

import numpy as np

from depth_raster import rasterize_depth
from floor_ramp import add_floor_ramp
from sirds_camera import Camera

CAM = Camera(position=(0.0, 0.0, 5.0), look_at=(0.0, 0.0, 0.0))


def test_ramp_appends_two_triangles_below_mesh(icosphere):
    soup = icosphere(1)
    out = add_floor_ramp(soup, CAM)
    assert out.shape == (soup.shape[0] + 2, 3, 3)
    np.testing.assert_array_equal(out[:-2], soup)

    ramp = out[-2:].reshape(-1, 3)
    assert ramp[:, 1].max() < soup[:, :, 1].min() + 0.35 * 2.0 + 1e-6
    assert ramp[:, 1].min() < soup[:, :, 1].min()


def test_ramp_faces_the_camera(icosphere):
    out = add_floor_ramp(icosphere(1), CAM)
    _, _, forward = CAM.basis()
    for tri in out[-2:].astype(np.float64):
        n = np.cross(tri[1] - tri[0], tri[2] - tri[0])
        assert np.dot(n, forward) < 0.0


def test_ramp_is_visible_with_backface_culling(icosphere):
    soup = icosphere(1)
    out = add_floor_ramp(soup, CAM)
    plain = np.isfinite(rasterize_depth(soup, CAM, 1.0, 64, 64, backface_culling=True))
    with_floor = np.isfinite(rasterize_depth(out, CAM, 1.0, 64, 64, backface_culling=True))
    assert with_floor.sum() > plain.sum()


def test_empty_mesh_gets_no_ramp():
    empty = np.zeros((0, 3, 3), dtype=np.float32)
    assert add_floor_ramp(empty, CAM).shape == (0, 3, 3)
