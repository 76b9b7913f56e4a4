from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np

from depth_raster import DepthMap, generate_depth_map
from edge_smoothing import smooth_edges
from floor_ramp import add_floor_ramp
from image_writer import colormap_exists, depth_to_colormap, depth_to_rgb, write_rgb
from mesh_loader import load_mesh
from mesh_smoothing import smooth_mesh
from mesh_transform import mesh_bounds, normalize_and_center, transform_mesh
from sirds_camera import Camera, build_camera, resolve_ortho_scale
from sirds_errors import ImageWriteError, InvalidOptionError, StereogramError
from sirds_options import DOT_PATTERNS, LAPLACE_METHODS, StereogramOptions
from stereogram_synth import SynthesisResult, synthesize
from texture_sampler import load_texture


@dataclass(frozen=True)
class RenderResult:
    depth_map: DepthMap
    synthesis: SynthesisResult
    rgb: np.ndarray  # final stereogram after edge smoothing
    camera: Camera
    ortho_scale: float
    triangle_count: int


@dataclass(frozen=True)
class StereogramOutputs:
    depth_path: Path
    sirds_path: Path
    colormap_path: Optional[Path]
    meta_path: Optional[Path]
    triangle_count: int
    zmin: Optional[float]
    zmax: Optional[float]


def prepare_scene(soup: np.ndarray, options: StereogramOptions) -> Tuple[np.ndarray, Camera, float]:
    """Apply the mesh pre-passes and place the camera. Works on a copy of ``soup``."""
    soup = np.array(soup, dtype=np.float32, copy=True).reshape(-1, 3, 3)
    if options.normalize_mesh:
        normalize_and_center(soup)
    transform_mesh(soup, sc=options.sc, shear=options.shear, rot_deg=options.rot_deg, trans=options.trans)
    if options.laplace_smoothing:
        smooth_mesh(soup, options.laplace_smooth_layers, method=options.laplace_method)

    center, spans = mesh_bounds(soup)
    camera = build_camera(center, spans, options)
    ortho_scale = resolve_ortho_scale(spans, options)
    if options.add_floor:
        soup = add_floor_ramp(
            soup,
            camera,
            ramp_width=options.ramp_width,
            ramp_rise=options.ramp_rise,
            ramp_gap=options.ramp_gap,
        )
    return soup, camera, ortho_scale


def render(soup: np.ndarray, options: StereogramOptions, texture: Optional[np.ndarray] = None) -> RenderResult:
    """Depth map and stereogram for an in-memory triangle soup. No files are touched."""
    options.validate()
    scene, camera, ortho_scale = prepare_scene(soup, options)
    depth_map = generate_depth_map(scene, camera, ortho_scale, options)
    syn = synthesize(depth_map.depth, options, texture=texture)
    rgb = syn.rgb
    if options.smooth_edges:
        rgb = smooth_edges(rgb, syn.adjusted_depth, options.smooth_threshold, options.smooth_weight)
    return RenderResult(
        depth_map=depth_map,
        synthesis=syn,
        rgb=rgb,
        camera=camera,
        ortho_scale=float(ortho_scale),
        triangle_count=int(scene.shape[0]),
    )


def _output_path(out_prefix: str, suffix: str, ext: str) -> Path:
    prefix = Path(out_prefix)
    return prefix.parent / f"{prefix.name}_{suffix}.{ext.lstrip('.')}"


def run(options: StereogramOptions) -> StereogramOutputs:
    options.validate()
    if options.mesh_path is None:
        raise InvalidOptionError("mesh_path is required")
    if options.depth_colormap and not colormap_exists(options.depth_colormap):
        raise InvalidOptionError(f"Unknown matplotlib colormap: {options.depth_colormap}")

    mesh_path = Path(options.mesh_path)
    print(f"Loading mesh: {mesh_path}")
    soup = load_mesh(mesh_path)
    print(f"Triangles: {soup.shape[0]}")

    texture = load_texture(options.texture_path)
    if texture is None:
        print(f"No texture; using {options.dot_pattern} dots (seed {options.rng_seed})")
    else:
        print(f"Texture: {options.texture_path} ({texture.shape[1]}x{texture.shape[0]})")

    result = render(soup, options, texture=texture)
    dm = result.depth_map
    if dm.zmin is None:
        print("No visible geometry; writing a featureless stereogram")
    else:
        print(f"Depth range (camera z): {dm.zmin:.6g} .. {dm.zmax:.6g}")

    depth_path = write_rgb(_output_path(options.out_prefix, "depth", options.image_ext), depth_to_rgb(dm.depth))
    sirds_path = write_rgb(_output_path(options.out_prefix, "sirds", options.image_ext), result.rgb)

    colormap_path = None
    if options.depth_colormap:
        colormap_path = write_rgb(
            _output_path(options.out_prefix, f"depth_{options.depth_colormap}", options.image_ext),
            depth_to_colormap(dm.depth, options.depth_colormap),
        )

    meta_path = None
    if options.write_meta:
        meta_path = _output_path(options.out_prefix, "meta", "json")
        meta = {
            "options": asdict(options),
            "triangles": int(result.triangle_count),
            "depth": {"zmin": dm.zmin, "zmax": dm.zmax, "zmax_extended": dm.zmax_extended},
            "camera": asdict(result.camera),
            "ortho_scale": float(result.ortho_scale),
            "focus_depth": float(result.synthesis.focus_depth),
        }
        try:
            meta_path.write_text(json.dumps(meta, indent=2, default=str), encoding="utf-8")
        except OSError as e:
            raise ImageWriteError(f"Failed to write {meta_path}: {e}") from e

    print("Wrote:")
    for p in (depth_path, sirds_path, colormap_path, meta_path):
        if p is not None:
            print(f"- {p}")

    return StereogramOutputs(
        depth_path=depth_path,
        sirds_path=sirds_path,
        colormap_path=colormap_path,
        meta_path=meta_path,
        triangle_count=int(result.triangle_count),
        zmin=dm.zmin,
        zmax=dm.zmax,
    )


def generate(options: StereogramOptions) -> int:
    """Run the pipeline; 0 on success, 2 for bad options, 1 for any other failure."""
    try:
        run(options)
    except InvalidOptionError as e:
        print(f"Invalid option: {e}", file=sys.stderr)
        return 2
    except StereogramError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def _vec3(text: str) -> Tuple[float, float, float]:
    parts = [p for p in text.replace(" ", "").split(",") if p]
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected x,y,z but got {text!r}")
    try:
        return float(parts[0]), float(parts[1]), float(parts[2])
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected x,y,z but got {text!r}") from e


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Render a single-image random-dot stereogram (SIRDS) from an STL/OBJ mesh.")
    ap.add_argument("mesh", type=Path, help="Input mesh (.stl binary/ASCII or .obj)")
    ap.add_argument("texture", type=str, help="Tile texture image, or 'null' for random dots")
    ap.add_argument("out_prefix", type=str, help="Output prefix; writes <prefix>_depth.<ext> and <prefix>_sirds.<ext>")

    g = ap.add_argument_group("image")
    g.add_argument("--width", type=int, default=1200)
    g.add_argument("--height", type=int, default=800)
    g.add_argument("--eye-sep", type=int, default=100, help="Maximum separation in pixels")
    g.add_argument("--ext", type=str, default="png", help="Output image extension")

    g = ap.add_argument_group("camera")
    g.add_argument("--fov", type=float, default=45.0, help="Vertical field of view in degrees")
    g.add_argument("--ortho", action="store_true", help="Orthographic projection instead of perspective")
    g.add_argument("--near-plane", type=float, default=1e-3)
    g.add_argument("--cam-pos", type=_vec3, default=None, help="Camera position x,y,z")
    g.add_argument("--look-at", type=_vec3, default=None, help="Look-at target x,y,z")
    g.add_argument("--orth-scale", type=float, default=None, help="Orthographic half-height in world units")
    g.add_argument("--orth-tune-low", type=float, default=0.6)
    g.add_argument("--orth-tune-hi", type=float, default=1.2)

    g = ap.add_argument_group("mesh")
    g.add_argument("--rot", type=_vec3, default=(0.0, 0.0, 0.0), help="Euler rotation in degrees x,y,z")
    g.add_argument("--trans", type=_vec3, default=(0.0, 0.0, 0.0))
    g.add_argument("--sc", type=_vec3, default=(1.0, 1.0, 1.0), help="Per-axis scale")
    g.add_argument("--shear", type=_vec3, default=(0.0, 0.0, 0.0), help="Shear xy,xz,yz")
    g.add_argument("--normalize", action="store_true", help="Centre the mesh and scale it to unit size first")
    g.add_argument("--laplace", action="store_true", help="Smooth the mesh before rendering")
    g.add_argument("--laplace-layers", type=int, default=15)
    g.add_argument("--laplace-method", type=str, choices=LAPLACE_METHODS, default="taubin")
    g.add_argument("--floor", action="store_true", help="Add a ramp under the mesh")
    g.add_argument("--ramp-width", type=float, default=2.5)
    g.add_argument("--ramp-rise", type=float, default=0.35)
    g.add_argument("--ramp-gap", type=float, default=0.05)
    g.add_argument("--backface-culling", action="store_true")

    g = ap.add_argument_group("depth")
    g.add_argument("--depth-near", type=float, default=0.75)
    g.add_argument("--depth-far", type=float, default=0.10)
    g.add_argument("--bg-separation", type=float, default=0.40)
    g.add_argument("--depth-gamma", type=float, default=0.9)
    g.add_argument("--depth-colormap", type=str, default=None, help="Also write a matplotlib-coloured depth image")

    g = ap.add_argument_group("stereogram")
    g.add_argument("--brightness", type=float, default=1.0, help="Texture brightness")
    g.add_argument("--contrast", type=float, default=1.0, help="Texture contrast")
    g.add_argument("--tile-texture", action="store_true")
    g.add_argument("--seed", type=int, default=123456)
    g.add_argument("--dots", type=str, choices=DOT_PATTERNS, default="random")
    g.add_argument("--fg", type=float, default=0.90, help="Foreground threshold on adjusted depth")
    g.add_argument("--occlusion", action="store_true")
    g.add_argument("--occlusion-eps", type=float, default=0.02)
    g.add_argument("--auto-focus", action="store_true", help="Pick the focus depth from the depth histogram")
    g.add_argument("--no-smooth-edges", action="store_true")
    g.add_argument("--smooth-threshold", type=float, default=0.75)
    g.add_argument("--smooth-weight", type=float, default=1.0)
    g.add_argument("--write-meta", action="store_true", help="Write <prefix>_meta.json")
    return ap


def options_from_args(args: argparse.Namespace) -> StereogramOptions:
    return StereogramOptions(
        mesh_path=args.mesh,
        texture_path=args.texture,
        out_prefix=args.out_prefix,
        image_ext=args.ext,
        width=int(args.width),
        height=int(args.height),
        eye_sep=int(args.eye_sep),
        fov=float(args.fov),
        perspective=not bool(args.ortho),
        near_plane=float(args.near_plane),
        custom_cam_pos=args.cam_pos,
        custom_look_at=args.look_at,
        custom_orth_scale=args.orth_scale,
        orth_tune_low=float(args.orth_tune_low),
        orth_tune_hi=float(args.orth_tune_hi),
        rot_deg=args.rot,
        trans=args.trans,
        sc=args.sc,
        shear=args.shear,
        normalize_mesh=bool(args.normalize),
        depth_near=float(args.depth_near),
        depth_far=float(args.depth_far),
        bg_separation=float(args.bg_separation),
        depth_gamma=float(args.depth_gamma),
        backface_culling=bool(args.backface_culling),
        texture_brightness=float(args.brightness),
        texture_contrast=float(args.contrast),
        tile_texture=bool(args.tile_texture),
        rng_seed=int(args.seed),
        dot_pattern=args.dots,
        foreground_threshold=float(args.fg),
        occlusion=bool(args.occlusion),
        occlusion_epsilon=float(args.occlusion_eps),
        auto_focus=bool(args.auto_focus),
        smooth_edges=not bool(args.no_smooth_edges),
        smooth_threshold=float(args.smooth_threshold),
        smooth_weight=float(args.smooth_weight),
        laplace_smoothing=bool(args.laplace),
        laplace_smooth_layers=int(args.laplace_layers),
        laplace_method=args.laplace_method,
        add_floor=bool(args.floor),
        ramp_width=float(args.ramp_width),
        ramp_rise=float(args.ramp_rise),
        ramp_gap=float(args.ramp_gap),
        depth_colormap=args.depth_colormap,
        write_meta=bool(args.write_meta),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return generate(options_from_args(args))


if __name__ == "__main__":
    raise SystemExit(main())
