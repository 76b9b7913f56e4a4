from __future__ import annotations

import json

import numpy as np
import pytest
from PIL import Image

from mesh_loader import write_binary_stl
from stl_to_sirds import generate, main, render, run


def _read(path):
    with Image.open(path) as im:
        return np.array(im.convert("RGB"))


def test_flat_plane_scene(quad, small_options, pair_constraint):
    res = render(quad(), small_options())
    depth = res.depth_map.depth
    cov = res.depth_map.coverage
    assert cov[32, 32] and not cov[0, 0]
    np.testing.assert_allclose(depth[cov], 0.75, atol=1e-9)
    assert np.all(depth[~cov] == 0.10)

    sep = res.synthesis.separation
    inside = np.unique(sep[cov])
    assert inside.size == 1
    s_in = int(inside[0])
    # the inside separation is the repeat distance across the plane's centre
    row = res.rgb[32]
    for x in range(32 - s_in // 2, 33):
        if np.all(cov[32, x : x + s_in + 1]):
            np.testing.assert_array_equal(row[x], row[x + s_in])
    pair_constraint(res.synthesis.rgb, sep)


def test_stepped_planes_differ_in_separation(quad, small_options):
    near_half = quad(z=0.5, x0=-3.0, x1=0.0, y0=-3.0, y1=3.0)
    far_half = quad(z=0.0, x0=0.0, x1=3.0, y0=-3.0, y1=3.0)
    res = render(np.concatenate([near_half, far_half]), small_options(eye_sep=40))
    sep = res.synthesis.separation
    near_sep = int(np.median(sep[:, :20]))
    far_sep = int(np.median(sep[:, 44:]))
    assert abs(near_sep - far_sep) >= 1
    # larger adjusted depth (closer) maps to a smaller separation
    assert near_sep < far_sep


def test_empty_mesh_gives_stripes(small_options):
    res = render(np.zeros((0, 3, 3), dtype=np.float32), small_options())
    assert np.all(res.depth_map.depth == 0.10)
    s = int(res.synthesis.separation[0, 0])
    assert np.all(res.synthesis.separation == s)
    np.testing.assert_array_equal(res.rgb[:, :-s], res.rgb[:, s:])


def test_textured_sphere_keeps_pairs_and_avoids_black(icosphere, small_options, pair_constraint):
    tex = np.random.default_rng(5).integers(1, 256, size=(16, 16, 3), dtype=np.uint8)
    soup = icosphere(1)
    assert soup.shape[0] == 80
    res = render(soup, small_options(), texture=tex)
    pair_constraint(res.synthesis.rgb, res.synthesis.separation)
    assert not np.any(np.all(res.rgb == 0, axis=-1))


def test_edge_smoothing_keeps_pairs_below_threshold(quad, small_options):
    # the plane sits at adjusted depth 0.45, the background at 0.06
    res = render(quad(), small_options(smooth_edges=True, smooth_threshold=0.3))
    adj = res.synthesis.adjusted_depth
    assert np.any(res.rgb != res.synthesis.rgb)

    sep = res.synthesis.separation
    h, w = sep.shape
    checked = 0
    for y in range(h):
        for x in range(w):
            s = int(sep[y, x])
            left = x - s // 2
            right = left + s
            if left < 0 or right >= w:
                continue
            if adj[y, left] <= 0.3 and adj[y, right] <= 0.3:
                assert tuple(res.rgb[y, left]) == tuple(res.rgb[y, right]), (y, x)
                checked += 1
    assert checked > 0


def test_render_does_not_touch_the_input(quad, small_options):
    soup = quad()
    before = soup.copy()
    render(soup, small_options(sc=(2.0, 2.0, 2.0), rot_deg=(10.0, 0.0, 0.0)))
    np.testing.assert_array_equal(soup, before)


def test_orthographic_render_has_coverage(icosphere, small_options):
    res = render(icosphere(1), small_options(perspective=False))
    assert res.depth_map.coverage.any()
    assert res.ortho_scale > 0.0


def test_run_writes_outputs_deterministically(tmp_path, quad, small_options):
    mesh = write_binary_stl(tmp_path / "plane.stl", quad())
    paths = []
    for name in ("a", "b"):
        opts = small_options(mesh_path=mesh, out_prefix=str(tmp_path / name))
        paths.append(run(opts))

    a, b = paths
    assert a.depth_path.name == "a_depth.png" and a.sirds_path.name == "a_sirds.png"
    assert a.depth_path.read_bytes() == b.depth_path.read_bytes()
    assert a.sirds_path.read_bytes() == b.sirds_path.read_bytes()

    depth_img = _read(a.depth_path)
    assert depth_img.shape == (64, 64, 3)
    assert tuple(depth_img[32, 32]) == (191, 191, 191)
    assert tuple(depth_img[0, 0]) == (26, 26, 26)


def test_run_with_extras(tmp_path, icosphere, small_options):
    mesh = write_binary_stl(tmp_path / "ball.stl", icosphere(1))
    opts = small_options(
        mesh_path=mesh,
        out_prefix=str(tmp_path / "out" / "ball"),
        custom_cam_pos=None,
        custom_look_at=None,
        add_floor=True,
        laplace_smoothing=True,
        laplace_smooth_layers=2,
        depth_colormap="viridis",
        write_meta=True,
    )
    out = run(opts)
    assert out.colormap_path.exists()
    assert out.triangle_count == 82
    meta = json.loads(out.meta_path.read_text())
    assert meta["triangles"] == 82
    assert meta["options"]["add_floor"] is True


def test_generate_exit_codes(tmp_path, quad, small_options):
    mesh = write_binary_stl(tmp_path / "plane.stl", quad())
    assert generate(small_options(mesh_path=mesh, out_prefix=str(tmp_path / "ok"))) == 0
    assert generate(small_options(mesh_path=tmp_path / "missing.stl", out_prefix=str(tmp_path / "x"))) == 1
    assert generate(small_options(mesh_path=mesh, texture_path=str(tmp_path / "nope.png"), out_prefix=str(tmp_path / "y"))) == 1
    assert generate(small_options(mesh_path=mesh, eye_sep=1)) == 2
    assert generate(small_options(mesh_path=mesh, depth_colormap="not-a-map")) == 2
    # an unwritable metadata path is a write failure, not a traceback
    (tmp_path / "m_meta.json").mkdir()
    assert generate(small_options(mesh_path=mesh, out_prefix=str(tmp_path / "m"), write_meta=True)) == 1


def test_cli_main(tmp_path, quad, capsys):
    mesh = write_binary_stl(tmp_path / "plane.stl", quad())
    prefix = tmp_path / "cli"
    code = main(
        [
            str(mesh),
            "null",
            str(prefix),
            "--width", "48",
            "--height", "32",
            "--eye-sep", "16",
            "--cam-pos", "0,0,5",
            "--look-at", "0,0,0",
            "--rot", "0,0,15",
        ]
    )
    assert code == 0
    assert (tmp_path / "cli_sirds.png").exists()
    assert _read(tmp_path / "cli_sirds.png").shape == (32, 48, 3)
    assert "Wrote:" in capsys.readouterr().out


def test_cli_rejects_bad_vector(tmp_path):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "m.stl"), "null", str(tmp_path / "o"), "--rot", "1,2"])
