from __future__ import annotations

import numpy as np
import pytest

from mesh_transform import mesh_bounds, normalize_and_center, rotation_matrix, shear_mesh, transform_mesh


def _point(x, y, z):
    return np.array([[[x, y, z], [x, y, z], [x, y, z]]], dtype=np.float32)


def test_order_is_scale_shear_rotate_translate():
    soup = _point(1.0, 0.0, 0.0)
    transform_mesh(soup, sc=(2.0, 1.0, 1.0), shear=(1.0, 0.0, 0.0), rot_deg=(0.0, 0.0, 90.0), trans=(0.0, 0.0, 3.0))
    # scale -> (2,0,0); shear y += x -> (2,2,0); rotz 90 -> (-2,2,0); translate -> (-2,2,3)
    np.testing.assert_allclose(soup[0, 0], [-2.0, 2.0, 3.0], atol=1e-5)


def test_shear_uses_unsheared_coordinates():
    soup = _point(1.0, 2.0, 0.0)
    shear_mesh(soup, (0.5, 0.25, 1.0))
    np.testing.assert_allclose(soup[0, 0], [1.0, 2.5, 0.25 + 2.0], atol=1e-6)


def test_rotation_is_rz_ry_rx():
    r = rotation_matrix((90.0, 90.0, 0.0))
    # Rx maps y to z, then Ry maps z to x
    np.testing.assert_allclose(r @ np.array([0.0, 1.0, 0.0]), [1.0, 0.0, 0.0], atol=1e-12)
    assert np.allclose(r @ r.T, np.eye(3))


def test_identity_transform_is_a_noop(quad):
    soup = quad(z=0.25)
    before = soup.copy()
    transform_mesh(soup)
    np.testing.assert_array_equal(soup, before)


def test_bounds_and_normalize(quad):
    soup = quad(z=0.0, x0=2.0, x1=6.0, y0=-1.0, y1=1.0)
    center, spans = mesh_bounds(soup)
    np.testing.assert_allclose(center, [4.0, 0.0, 0.0])
    np.testing.assert_allclose(spans, [4.0, 2.0, 0.0])

    normalize_and_center(soup)
    center, spans = mesh_bounds(soup)
    np.testing.assert_allclose(center, [0.0, 0.0, 0.0], atol=1e-6)
    assert spans.max() == pytest.approx(1.0)


def test_empty_soup_bounds():
    center, spans = mesh_bounds(np.zeros((0, 3, 3), dtype=np.float32))
    assert not center.any() and not spans.any()


def test_rejects_wrong_shape():
    with pytest.raises(ValueError):
        transform_mesh(np.zeros((2, 2, 3), dtype=np.float32), sc=(2, 2, 2))
