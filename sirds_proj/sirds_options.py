from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from sirds_errors import InvalidOptionError

Vec3 = Tuple[float, float, float]

LAPLACE_METHODS = ("taubin", "uniform")
DOT_PATTERNS = ("random", "bluenoise")
SYNTH_METHODS = ("union_find",)


@dataclass
class StereogramOptions:
    """Everything the pipeline needs, passed explicitly to each stage.

    Optional vectors use None for "not provided" (camera position, look-at target,
    orthographic scale).
    """

    mesh_path: Optional[Path] = None
    texture_path: str = "null"
    out_prefix: str = "out"
    image_ext: str = "png"

    width: int = 1200
    height: int = 800
    eye_sep: int = 100

    # camera
    fov: float = 45.0
    perspective: bool = True
    near_plane: float = 1e-3
    custom_cam_pos: Optional[Vec3] = None
    custom_look_at: Optional[Vec3] = None
    custom_orth_scale: Optional[float] = None
    orth_tune_low: float = 0.6
    orth_tune_hi: float = 1.2

    # mesh transform
    rot_deg: Vec3 = (0.0, 0.0, 0.0)
    trans: Vec3 = (0.0, 0.0, 0.0)
    sc: Vec3 = (1.0, 1.0, 1.0)
    shear: Vec3 = (0.0, 0.0, 0.0)
    normalize_mesh: bool = False

    # depth
    depth_near: float = 0.75
    depth_far: float = 0.10
    bg_separation: float = 0.40
    depth_gamma: float = 0.9
    backface_culling: bool = False

    # texture / dots
    texture_brightness: float = 1.0
    texture_contrast: float = 1.0
    tile_texture: bool = False
    rng_seed: int = 123456
    dot_pattern: str = "random"

    # synthesis
    method: str = "union_find"
    foreground_threshold: float = 0.90
    occlusion: bool = False
    occlusion_epsilon: float = 0.02
    auto_focus: bool = False

    # post
    smooth_edges: bool = True
    smooth_threshold: float = 0.75
    smooth_weight: float = 1.0

    # pre-passes
    laplace_smoothing: bool = False
    laplace_smooth_layers: int = 15
    laplace_method: str = "taubin"
    add_floor: bool = False
    ramp_width: float = 2.5
    ramp_rise: float = 0.35
    ramp_gap: float = 0.05

    # outputs
    depth_colormap: Optional[str] = None
    write_meta: bool = False

    def validate(self) -> "StereogramOptions":
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise InvalidOptionError(f"width/height must be positive, got {self.width}x{self.height}")
        if int(self.eye_sep) < 3:
            raise InvalidOptionError(f"eye_sep must be >= 3, got {self.eye_sep}")
        if not (0.0 < float(self.fov) < 180.0):
            raise InvalidOptionError(f"fov must be in (0, 180), got {self.fov}")
        if not (0.0 <= float(self.depth_far) < float(self.depth_near) <= 1.0):
            raise InvalidOptionError(
                f"need 0 <= depth_far < depth_near <= 1, got depth_near={self.depth_near} depth_far={self.depth_far}"
            )
        if not math.isfinite(float(self.bg_separation)) or float(self.bg_separation) < 0.0:
            raise InvalidOptionError(f"bg_separation must be >= 0, got {self.bg_separation}")
        if not (float(self.depth_gamma) > 0.0):
            raise InvalidOptionError(f"depth_gamma must be > 0, got {self.depth_gamma}")
        if not (float(self.near_plane) > 0.0):
            raise InvalidOptionError(f"near_plane must be > 0, got {self.near_plane}")
        if self.custom_orth_scale is not None and not (float(self.custom_orth_scale) > 0.0):
            raise InvalidOptionError(f"custom_orth_scale must be > 0, got {self.custom_orth_scale}")
        if not (float(self.orth_tune_low) > 0.0 and float(self.orth_tune_hi) > 0.0):
            raise InvalidOptionError("orth_tune_low and orth_tune_hi must be > 0")
        if not (float(self.smooth_weight) > 0.0):
            raise InvalidOptionError(f"smooth_weight must be > 0, got {self.smooth_weight}")
        if float(self.texture_brightness) < 0.0 or float(self.texture_contrast) < 0.0:
            raise InvalidOptionError("texture_brightness and texture_contrast must be >= 0")
        if int(self.rng_seed) < 0:
            raise InvalidOptionError(f"rng_seed must be >= 0, got {self.rng_seed}")
        if int(self.laplace_smooth_layers) < 0:
            raise InvalidOptionError(f"laplace_smooth_layers must be >= 0, got {self.laplace_smooth_layers}")
        if self.laplace_method not in LAPLACE_METHODS:
            raise InvalidOptionError(f"laplace_method must be one of: {', '.join(LAPLACE_METHODS)}")
        if self.dot_pattern not in DOT_PATTERNS:
            raise InvalidOptionError(f"dot_pattern must be one of: {', '.join(DOT_PATTERNS)}")
        if self.method not in SYNTH_METHODS:
            raise InvalidOptionError(f"method must be one of: {', '.join(SYNTH_METHODS)}")
        if float(self.ramp_width) <= 0.0:
            raise InvalidOptionError(f"ramp_width must be > 0, got {self.ramp_width}")
        for name in ("rot_deg", "trans", "sc", "shear", "custom_cam_pos", "custom_look_at"):
            v = getattr(self, name)
            if v is None:
                continue
            if len(v) != 3 or not all(math.isfinite(float(c)) for c in v):
                raise InvalidOptionError(f"{name} must be three finite numbers, got {v!r}")
        if self.custom_cam_pos is not None and self.custom_look_at is not None:
            if tuple(float(c) for c in self.custom_cam_pos) == tuple(float(c) for c in self.custom_look_at):
                raise InvalidOptionError("custom_cam_pos and custom_look_at must differ")
        return self
