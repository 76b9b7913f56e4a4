from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from sirds_camera import Camera
from sirds_options import StereogramOptions

# Screen-space triangles with |denominator| below this are skipped.
DEGENERATE_AREA = 1e-8
# Depth ranges below this are treated as 1 to avoid dividing by ~0.
MIN_DEPTH_RANGE = 1e-8


@dataclass(frozen=True)
class DepthMap:
    depth: np.ndarray  # (H, W) float64 in [depth_far, depth_near], larger = closer
    zbuffer: np.ndarray  # (H, W) float64 camera-space z, +inf where uncovered
    zmin: Optional[float]
    zmax: Optional[float]
    zmax_extended: Optional[float]

    @property
    def coverage(self) -> np.ndarray:
        return np.isfinite(self.zbuffer)


def clip_polygon_near(poly: np.ndarray, near: float) -> np.ndarray:
    """Sutherland-Hodgman clip of a camera-space polygon against z = near (keeps z >= near)."""
    out: List[np.ndarray] = []
    n = poly.shape[0]
    for i in range(n):
        a = poly[i]
        b = poly[(i + 1) % n]
        a_in = a[2] >= near
        b_in = b[2] >= near
        if a_in:
            out.append(a)
        if a_in != b_in:
            t = (near - a[2]) / (b[2] - a[2])
            p = a + t * (b - a)
            p[2] = near
            out.append(p)
    if not out:
        return np.zeros((0, 3), dtype=np.float64)
    return np.asarray(out, dtype=np.float64)


def _camera_triangles(soup: np.ndarray, camera: Camera) -> np.ndarray:
    """Camera-space triangles after near-plane clipping and fan re-triangulation."""
    cam = camera.to_camera_space(np.asarray(soup, dtype=np.float64).reshape(-1, 3)).reshape(-1, 3, 3)
    near = float(camera.near_plane)
    z = cam[:, :, 2]
    front = (z >= near).all(axis=1)
    behind = (z < near).all(axis=1)

    parts = [cam[front]]
    for i in np.nonzero(~front & ~behind)[0]:
        poly = clip_polygon_near(cam[i], near)
        if poly.shape[0] < 3:
            continue
        fan = [np.stack([poly[0], poly[k], poly[k + 1]]) for k in range(1, poly.shape[0] - 1)]
        parts.append(np.asarray(fan, dtype=np.float64))
    return np.concatenate(parts, axis=0) if parts else np.zeros((0, 3, 3), dtype=np.float64)


def _raster_triangle(zbuf: np.ndarray, px: np.ndarray, py: np.ndarray, z: np.ndarray, near: float, backface_culling: bool) -> None:
    h, w = zbuf.shape
    x0, x1, x2 = (float(v) for v in px)
    y0, y1, y2 = (float(v) for v in py)

    if backface_culling:
        area = (x1 - x0) * (y2 - y0) - (x2 - x0) * (y1 - y0)
        if area > 0.0:
            return

    denom = (y1 - y2) * (x0 - x2) + (x2 - x1) * (y0 - y2)
    if abs(denom) < DEGENERATE_AREA:
        return

    min_x = max(int(math.floor(min(x0, x1, x2))), 0)
    max_x = min(int(math.ceil(max(x0, x1, x2))), w - 1)
    min_y = max(int(math.floor(min(y0, y1, y2))), 0)
    max_y = min(int(math.ceil(max(y0, y1, y2))), h - 1)
    if min_x > max_x or min_y > max_y:
        return

    xs = (np.arange(min_x, max_x + 1, dtype=np.float64) + 0.5)[None, :]
    ys = (np.arange(min_y, max_y + 1, dtype=np.float64) + 0.5)[:, None]
    u = ((y1 - y2) * (xs - x2) + (x2 - x1) * (ys - y2)) / denom
    v = ((y2 - y0) * (xs - x2) + (x0 - x2) * (ys - y2)) / denom
    wb = 1.0 - u - v
    inside = (u >= 0.0) & (v >= 0.0) & (wb >= 0.0)
    if not inside.any():
        return

    z0, z1, z2 = (float(c) for c in z)
    with np.errstate(divide="ignore", invalid="ignore"):
        zp = 1.0 / (u / z0 + v / z1 + wb / z2)
    mask = inside & np.isfinite(zp) & (zp > near)
    sub = zbuf[min_y : max_y + 1, min_x : max_x + 1]
    np.minimum(sub, np.where(mask, zp, np.inf), out=sub)


def rasterize_depth(
    soup: np.ndarray,
    camera: Camera,
    ortho_scale: float,
    width: int,
    height: int,
    backface_culling: bool = False,
) -> np.ndarray:
    """Z-buffer the triangle soup; returns (H, W) minimum camera-space z, +inf where uncovered."""
    w, h = int(width), int(height)
    zbuf = np.full((h, w), np.inf, dtype=np.float64)
    if soup.shape[0] == 0:
        return zbuf

    tris = _camera_triangles(soup, camera)
    if tris.shape[0] == 0:
        return zbuf

    aspect = float(w) / float(h)
    if not camera.perspective:
        tris = tris.copy()
        tris[..., 0] /= float(ortho_scale) * aspect
        tris[..., 1] /= float(ortho_scale)

    ndc_x, ndc_y, zc, ok = camera.project_to_ndc(tris, aspect)
    keep = ok.all(axis=1)
    ndc_x = np.clip(ndc_x[keep], -1.0, 1.0)
    ndc_y = np.clip(ndc_y[keep], -1.0, 1.0)
    zc = zc[keep]

    px = (ndc_x * 0.5 + 0.5) * float(w - 1)
    py = (-ndc_y * 0.5 + 0.5) * float(h - 1)
    near = float(camera.near_plane)
    for i in range(px.shape[0]):
        _raster_triangle(zbuf, px[i], py[i], zc[i], near, backface_culling)
    return zbuf


def normalize_depth(zbuffer: np.ndarray, depth_near: float, depth_far: float, bg_separation: float):
    """Map camera z to [depth_far, depth_near] with larger = closer.

    The far end of the range is pushed back by bg_separation so the farthest
    geometry stays separated from the background. Returns (depth, zmin, zmax, zmax_extended).
    """
    finite = np.isfinite(zbuffer)
    if not finite.any():
        return np.full(zbuffer.shape, float(depth_far), dtype=np.float64), None, None, None

    zmin = float(zbuffer[finite].min())
    zmax = float(zbuffer[finite].max())
    zmax_ext = zmax + (zmax - zmin) * float(bg_separation)
    rng = zmax_ext - zmin
    if rng < MIN_DEPTH_RANGE:
        rng = 1.0

    t = np.where(finite, (np.where(finite, zbuffer, zmin) - zmin) / rng, 0.0)
    depth = np.where(finite, float(depth_near) + (float(depth_far) - float(depth_near)) * t, float(depth_far))
    depth = np.clip(depth, min(depth_near, depth_far), max(depth_near, depth_far))
    return depth.astype(np.float64), zmin, zmax, zmax_ext


def generate_depth_map(soup: np.ndarray, camera: Camera, ortho_scale: float, options: StereogramOptions) -> DepthMap:
    zbuf = rasterize_depth(
        soup,
        camera,
        ortho_scale,
        options.width,
        options.height,
        backface_culling=bool(options.backface_culling),
    )
    depth, zmin, zmax, zmax_ext = normalize_depth(zbuf, options.depth_near, options.depth_far, options.bg_separation)
    return DepthMap(depth=depth, zbuffer=zbuf, zmin=zmin, zmax=zmax, zmax_extended=zmax_ext)
