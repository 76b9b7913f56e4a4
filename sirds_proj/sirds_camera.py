from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from sirds_errors import InvalidOptionError
from sirds_options import StereogramOptions, Vec3

# Points at or behind this camera-space depth cannot be projected.
PROJECT_EPS = 1e-6


def _normalize(v: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(v))
    if n <= 1e-12:
        raise InvalidOptionError("cannot normalise a zero-length camera vector")
    return v / n


@dataclass(frozen=True)
class Camera:
    position: Vec3
    look_at: Vec3
    up: Vec3 = (0.0, 1.0, 0.0)
    fov_deg: float = 45.0
    perspective: bool = True
    near_plane: float = 1e-3

    def __post_init__(self) -> None:
        if not (float(self.near_plane) > 0.0):
            raise InvalidOptionError(f"near_plane must be > 0, got {self.near_plane}")
        if not (0.0 < float(self.fov_deg) < 180.0):
            raise InvalidOptionError(f"fov must be in (0, 180), got {self.fov_deg}")
        fwd = np.asarray(self.look_at, dtype=np.float64) - np.asarray(self.position, dtype=np.float64)
        if float(np.linalg.norm(fwd)) <= 1e-12:
            raise InvalidOptionError("camera position and look-at target coincide")
        f = fwd / np.linalg.norm(fwd)
        if float(np.linalg.norm(np.cross(f, np.asarray(self.up, dtype=np.float64)))) <= 1e-9:
            raise InvalidOptionError("camera up vector is colinear with the view direction")

    def basis(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (right, up_cam, forward) as unit vectors."""
        forward = _normalize(np.asarray(self.look_at, dtype=np.float64) - np.asarray(self.position, dtype=np.float64))
        right = _normalize(np.cross(forward, np.asarray(self.up, dtype=np.float64)))
        up_cam = np.cross(right, forward)
        return right, up_cam, forward

    def to_camera_space(self, points: np.ndarray) -> np.ndarray:
        """World points (..., 3) -> camera coordinates (x right, y up, z forward)."""
        right, up_cam, forward = self.basis()
        rel = np.asarray(points, dtype=np.float64) - np.asarray(self.position, dtype=np.float64)
        return np.stack([rel @ right, rel @ up_cam, rel @ forward], axis=-1)

    def project_to_ndc(self, p_cam: np.ndarray, aspect: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Project camera-space points to NDC.

        Returns (ndc_x, ndc_y, z_cam, ok). ``ok`` is False where z_cam <= PROJECT_EPS.
        Orthographic callers pass points already divided by (ortho_scale*aspect, ortho_scale).
        """
        p = np.asarray(p_cam, dtype=np.float64)
        x, y, z = p[..., 0], p[..., 1], p[..., 2]
        ok = z > PROJECT_EPS
        if not self.perspective:
            return x.copy(), y.copy(), z.copy(), ok
        s = np.tan(np.deg2rad(float(self.fov_deg)) * 0.5)
        zs = np.where(ok, z, 1.0)
        ndc_x = np.where(ok, x / (zs * s) / float(aspect), 0.0)
        ndc_y = np.where(ok, y / (zs * s), 0.0)
        return ndc_x, ndc_y, z.copy(), ok


def auto_ortho_scale(spans: np.ndarray, width: int, height: int, tune_low: float = 0.6, tune_hi: float = 1.2) -> float:
    aspect = float(width) / float(height)
    span = float(np.max(spans)) if np.size(spans) else 0.0
    return span * float(tune_low) * max(1.0 / aspect, 1.0) * float(tune_hi)


def resolve_ortho_scale(spans: np.ndarray, options: StereogramOptions) -> float:
    if options.custom_orth_scale is not None:
        return float(options.custom_orth_scale)
    scale = auto_ortho_scale(spans, options.width, options.height, options.orth_tune_low, options.orth_tune_hi)
    # An empty or flat mesh would otherwise give a zero scale.
    return scale if scale > 1e-12 else 1.0


def build_camera(center: np.ndarray, spans: np.ndarray, options: StereogramOptions) -> Camera:
    """Default camera sits 2.5 mesh spans in front of the bounding-box centre (+z), looking at it."""
    span = max(float(np.max(spans)) if np.size(spans) else 0.0, 1e-6)
    c = np.asarray(center, dtype=np.float64)
    if options.custom_cam_pos is not None:
        pos = tuple(float(v) for v in options.custom_cam_pos)
    else:
        pos = tuple(float(v) for v in (c + np.array([0.0, 0.0, 2.5 * span])))
    if options.custom_look_at is not None:
        look = tuple(float(v) for v in options.custom_look_at)
    else:
        look = tuple(float(v) for v in c)
    return Camera(
        position=pos,
        look_at=look,
        up=(0.0, 1.0, 0.0),
        fov_deg=float(options.fov),
        perspective=bool(options.perspective),
        near_plane=float(options.near_plane),
    )
