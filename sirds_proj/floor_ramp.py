from __future__ import annotations

import numpy as np

from sirds_camera import Camera


def add_floor_ramp(
    soup: np.ndarray,
    camera: Camera,
    ramp_width: float = 2.5,
    ramp_rise: float = 0.35,
    ramp_gap: float = 0.05,
) -> np.ndarray:
    """Append a two-triangle ramp under the mesh, laid out in the camera basis.

    The quad is centred on the mesh horizontally, starts just below it at the
    nearest mesh depth, and rises towards a far edge beyond the mesh. Returns a
    new (T+2, 3, 3) array; an empty soup is returned unchanged.
    """
    if soup.shape[0] == 0:
        return soup

    right, up_cam, forward = camera.basis()
    pos = np.asarray(camera.position, dtype=np.float64)
    rel = np.asarray(soup, dtype=np.float64).reshape(-1, 3) - pos
    cr = rel @ right
    cu = rel @ up_cam
    cf = rel @ forward
    span = max(float(np.ptp(cr)), float(np.ptp(cu)), float(np.ptp(cf)), 1e-6)

    mid_r = 0.5 * (float(cr.min()) + float(cr.max()))
    half = 0.5 * float(ramp_width) * span
    u0 = float(cu.min()) - float(ramp_gap) * span
    u1 = u0 + float(ramp_rise) * span
    f0 = max(float(cf.min()), float(camera.near_plane) + 0.01 * span)
    f1 = float(cf.max()) + half

    def _world(r: float, u: float, f: float) -> np.ndarray:
        return pos + r * right + u * up_cam + f * forward

    a = _world(mid_r - half, u0, f0)
    b = _world(mid_r + half, u0, f0)
    c = _world(mid_r + half, u1, f1)
    d = _world(mid_r - half, u1, f1)
    quad = np.stack([np.stack([a, b, c]), np.stack([a, c, d])])
    if float(np.dot(np.cross(b - a, c - a), forward)) > 0.0:
        quad = quad[:, [0, 2, 1]]

    return np.concatenate([soup, quad.astype(soup.dtype)], axis=0)
