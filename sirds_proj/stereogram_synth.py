from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from sirds_options import StereogramOptions
from texture_sampler import texture_plane

MIN_SEPARATION = 3
FOCUS_DEPTH = 0.5

_BAYER8 = np.array(
    [
        [0, 32, 8, 40, 2, 34, 10, 42],
        [48, 16, 56, 24, 50, 18, 58, 26],
        [12, 44, 4, 36, 14, 46, 6, 38],
        [60, 28, 52, 20, 62, 30, 54, 22],
        [3, 35, 11, 43, 1, 33, 9, 41],
        [51, 19, 59, 27, 49, 17, 57, 25],
        [15, 47, 7, 39, 13, 45, 5, 37],
        [63, 31, 55, 23, 61, 29, 53, 21],
    ],
    dtype=np.float64,
)


@dataclass(frozen=True)
class SynthesisResult:
    rgb: np.ndarray  # (H, W, 3) uint8, before edge smoothing
    adjusted_depth: np.ndarray  # (H, W) float64
    separation: np.ndarray  # (H, W) int32
    roots: np.ndarray  # (H, W) int32, union-find root of each pixel within its row
    focus_depth: float


class _RowUnionFind:
    """Disjoint sets over the pixels of one scanline.

    ``unite(a, b)`` hangs b's root under a's root, so a root is always a pixel of
    the row. ``reset`` reuses the parent list between rows.
    """

    def __init__(self, n: int) -> None:
        self.n = int(n)
        self.parent = list(range(self.n))

    def reset(self) -> None:
        self.parent[:] = range(self.n)

    def find(self, a: int) -> int:
        parent = self.parent
        root = a
        while parent[root] != root:
            root = parent[root]
        while parent[a] != root:
            nxt = parent[a]
            parent[a] = root
            a = nxt
        return root

    def unite(self, a: int, b: int) -> None:
        ra = self.find(a)
        rb = self.find(b)
        if ra != rb:
            self.parent[rb] = ra


def adjust_depth(depth: np.ndarray, bg_separation: float) -> np.ndarray:
    return np.asarray(depth, dtype=np.float64) * (1.0 - float(bg_separation))


def separation_map(
    adjusted_depth: np.ndarray,
    eye_sep: int,
    depth_gamma: float,
    focus_depth: float = FOCUS_DEPTH,
) -> np.ndarray:
    """Per-pixel stereo separation in pixels, clamped to [MIN_SEPARATION, eye_sep].

    Pixels far from the focus depth get stretched by up to 1.5x; nearer pixels
    (larger adjusted depth) get smaller separations.
    """
    adj = np.asarray(adjusted_depth, dtype=np.float64)
    t = np.power(np.abs(adj - float(focus_depth)) * 2.0, 1.5)
    sep_scale = 1.0 + t * 0.5
    base = np.power(np.clip(1.0 - adj, 0.0, None), float(depth_gamma))
    sep_f = MIN_SEPARATION + (float(eye_sep) - MIN_SEPARATION) * base * sep_scale
    sep = np.floor(sep_f + 0.5)
    return np.clip(sep, MIN_SEPARATION, int(eye_sep)).astype(np.int32)


def estimate_focus_depth(adjusted_depth: np.ndarray, bins: int = 256) -> float:
    """Histogram mode of the adjusted depth, kept inside [0.1, 0.9]."""
    d = np.asarray(adjusted_depth, dtype=np.float64).reshape(-1)
    d = d[np.isfinite(d)]
    if d.size == 0:
        return FOCUS_DEPTH
    idx = np.floor(np.clip(d, 0.0, 1.0) * (bins - 1) + 0.5).astype(np.int64)
    hist = np.bincount(np.clip(idx, 0, bins - 1), minlength=bins)
    mode = float(np.argmax(hist)) / float(bins - 1)
    return float(np.clip(mode, 0.1, 0.9))


def _hash32(x: np.ndarray) -> np.ndarray:
    x = x ^ (x >> np.uint32(17))
    x = x * np.uint32(0xED5AD4BB)
    x = x ^ (x >> np.uint32(11))
    x = x * np.uint32(0xAC4C1B51)
    x = x ^ (x >> np.uint32(15))
    x = x * np.uint32(0x31848BAB)
    x = x ^ (x >> np.uint32(14))
    return x


def bluenoise_rgb(width: int, height: int, seed: int) -> np.ndarray:
    """Hash noise modulated by an 8x8 Bayer matrix; deterministic for a given seed."""
    xs = np.arange(int(width), dtype=np.uint32)[None, :]
    ys = np.arange(int(height), dtype=np.uint32)[:, None]
    base = _hash32((xs * np.uint32(73856093)) ^ (ys * np.uint32(19349663)) ^ np.uint32(int(seed) & 0xFFFFFFFF))
    chans = np.stack([base & 0xFF, (base >> 8) & 0xFF, (base >> 16) & 0xFF], axis=-1).astype(np.float64)
    bayer = _BAYER8[np.arange(int(height))[:, None] % 8, np.arange(int(width))[None, :] % 8]
    factor = ((bayer + 1.0) / 64.0)[..., None]
    return np.clip(chans * factor, 1.0, 255.0).astype(np.uint8)


def pattern_plane(width: int, height: int, options: StereogramOptions, texture: Optional[np.ndarray] = None) -> np.ndarray:
    """Fresh colour available to a root at each pixel, (H, W, 3) uint8.

    Textured: bilinear taps of the texture. Otherwise seeded MT19937 bytes in
    row-major order, or blue noise.
    """
    if texture is not None:
        return texture_plane(
            texture,
            width,
            height,
            brightness=options.texture_brightness,
            contrast=options.texture_contrast,
            tile=options.tile_texture,
        )
    if options.dot_pattern == "bluenoise":
        return bluenoise_rgb(width, height, options.rng_seed)
    rng = np.random.Generator(np.random.MT19937(int(options.rng_seed)))
    # bytes start at 1 so a random dot is never pure black
    return rng.integers(1, 256, size=(int(height), int(width), 3), dtype=np.uint8)


def _colour_roots(
    row_roots: List[int],
    adj_row: List[float],
    fg: float,
    pattern_row: np.ndarray,
    prev_roots: Optional[List[int]] = None,
    prev_rgb: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Colour for each root of one row, (W, 3) uint8; entries of non-roots stay zero.

    A foreground root reuses, first match wins: the colour of its left
    neighbour's root when that root is already coloured, the output pixel above
    when the previous row's root there is not x, the output pixel up-left under
    the same test. Anything else takes its fresh colour from ``pattern_row``.
    """
    w = len(row_roots)
    colour = np.zeros((w, 3), dtype=np.uint8)
    has_colour = [False] * w
    for x in range(w):
        if row_roots[x] != x:
            continue
        reused = False
        if adj_row[x] > fg:
            if x > 0:
                r = row_roots[x - 1]
                if r != x and has_colour[r]:
                    colour[x] = colour[r]
                    reused = True
            if not reused and prev_roots is not None:
                if prev_roots[x] != x:
                    colour[x] = prev_rgb[x]
                    reused = True
                elif x > 0 and prev_roots[x - 1] != x:
                    colour[x] = prev_rgb[x - 1]
                    reused = True
        if not reused:
            colour[x] = pattern_row[x]
        has_colour[x] = True
    return colour


def _synthesize_union_find(
    depth: np.ndarray, options: StereogramOptions, texture: Optional[np.ndarray] = None
) -> SynthesisResult:
    """Build the stereogram row by row.

    On each row every pixel x links the pair (x - sep//2, x - sep//2 + sep) so both
    end up with one colour; foreground pixels also link to their left neighbour.
    Each component's root then gets a colour, reused from a neighbour for
    foreground roots where possible, else taken from the pattern plane.
    """
    depth = np.asarray(depth, dtype=np.float64)
    if depth.ndim != 2:
        raise ValueError(f"depth must be 2-D, got shape {depth.shape}")
    h, w = depth.shape

    adj = adjust_depth(depth, options.bg_separation)
    focus = estimate_focus_depth(adj) if options.auto_focus else FOCUS_DEPTH
    sep = separation_map(adj, options.eye_sep, options.depth_gamma, focus)
    pattern = pattern_plane(w, h, options, texture)

    out = np.zeros((h, w, 3), dtype=np.uint8)
    roots = np.zeros((h, w), dtype=np.int32)
    uf = _RowUnionFind(w)
    fg = float(options.foreground_threshold)
    occlusion = bool(options.occlusion)
    eps = float(options.occlusion_epsilon)
    prev_roots: Optional[List[int]] = None

    for y in range(h):
        uf.reset()
        adj_row = adj[y].tolist()
        sep_row = sep[y].tolist()

        for x in range(w):
            s = sep_row[x]
            left = x - s // 2
            right = left + s
            if left < 0 or right >= w:
                continue
            d = adj_row[x]
            if occlusion and adj_row[left] > d + eps and adj_row[right] > d + eps:
                continue
            if d > fg and x > 0:
                uf.unite(x - 1, x)
            uf.unite(left, right)

        row_roots = [uf.find(x) for x in range(w)]
        colour = _colour_roots(
            row_roots,
            adj_row,
            fg,
            pattern[y],
            prev_roots=prev_roots,
            prev_rgb=out[y - 1] if y > 0 else None,
        )

        idx = np.asarray(row_roots, dtype=np.int32)
        out[y] = colour[idx]
        roots[y] = idx
        prev_roots = row_roots

    return SynthesisResult(rgb=out, adjusted_depth=adj, separation=sep, roots=roots, focus_depth=float(focus))


_METHODS = {"union_find": _synthesize_union_find}


def synthesize(depth: np.ndarray, options: StereogramOptions, texture: Optional[np.ndarray] = None) -> SynthesisResult:
    """Run the synthesis method named by ``options.method``."""
    try:
        method = _METHODS[options.method]
    except KeyError as e:
        raise ValueError(f"Unknown synthesis method: {options.method}") from e
    return method(depth, options, texture=texture)
