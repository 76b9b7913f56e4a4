from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy import sparse

WELD_TOLERANCE = 1e-6


def weld_vertices(soup: np.ndarray, tol: float = WELD_TOLERANCE) -> Tuple[np.ndarray, np.ndarray]:
    """Merge soup corners that coincide within ``tol``. Returns (V float64 (n,3), F int64 (T,3))."""
    v = np.asarray(soup, dtype=np.float64).reshape(-1, 3)
    if v.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.float64), np.zeros((0, 3), dtype=np.int64)
    keys = np.round(v / float(tol)).astype(np.int64)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    return v[first].copy(), np.asarray(inverse, dtype=np.int64).reshape(-1, 3)


def _undirected_edges(faces: np.ndarray) -> np.ndarray:
    e = faces[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2)
    return np.sort(e, axis=1)


def boundary_vertex_mask(faces: np.ndarray, n_vertices: int) -> np.ndarray:
    """True for vertices on an edge used by exactly one face."""
    mask = np.zeros((int(n_vertices),), dtype=bool)
    if faces.size == 0:
        return mask
    und = _undirected_edges(faces)
    keys = (und[:, 0].astype(np.int64) << 32) | und[:, 1].astype(np.int64)
    uniq, counts = np.unique(keys, return_counts=True)
    bnd = uniq[counts == 1]
    mask[(bnd >> 32).astype(np.int64)] = True
    mask[(bnd & 0xFFFFFFFF).astype(np.int64)] = True
    return mask


def uniform_adjacency(faces: np.ndarray, n_vertices: int) -> sparse.csr_matrix:
    """Symmetric 0/1 vertex adjacency (CSR) from face edges."""
    n = int(n_vertices)
    und = _undirected_edges(faces)
    und = und[und[:, 0] != und[:, 1]]
    rows = np.concatenate([und[:, 0], und[:, 1]])
    cols = np.concatenate([und[:, 1], und[:, 0]])
    a = sparse.coo_matrix((np.ones(rows.shape[0], dtype=np.float64), (rows, cols)), shape=(n, n)).tocsr()
    a.sum_duplicates()
    a.data[:] = 1.0
    return a


def _cotangent(u: np.ndarray, v: np.ndarray) -> np.ndarray:
    cr = np.linalg.norm(np.cross(u, v), axis=1)
    dot = np.einsum("ij,ij->i", u, v)
    with np.errstate(divide="ignore", invalid="ignore"):
        c = np.where(cr > 1e-12, dot / cr, 0.0)
    return c


def cotan_weights(vertices: np.ndarray, faces: np.ndarray, clamp_negative: bool = True) -> sparse.csr_matrix:
    """Symmetric cotangent weight matrix, 0.5*cot of the angle opposite each edge, summed per face."""
    n = vertices.shape[0]
    v0 = vertices[faces[:, 0]]
    v1 = vertices[faces[:, 1]]
    v2 = vertices[faces[:, 2]]
    c0 = 0.5 * _cotangent(v1 - v0, v2 - v0)  # opposite edge (1, 2)
    c1 = 0.5 * _cotangent(v2 - v1, v0 - v1)  # opposite edge (2, 0)
    c2 = 0.5 * _cotangent(v0 - v2, v1 - v2)  # opposite edge (0, 1)

    i = np.concatenate([faces[:, 1], faces[:, 2], faces[:, 0]])
    j = np.concatenate([faces[:, 2], faces[:, 0], faces[:, 1]])
    w = np.concatenate([c0, c1, c2])
    w = np.where(np.isfinite(w), w, 0.0)
    keep = i != j
    i, j, w = i[keep], j[keep], w[keep]

    m = sparse.coo_matrix((np.concatenate([w, w]), (np.concatenate([i, j]), np.concatenate([j, i]))), shape=(n, n)).tocsr()
    m.sum_duplicates()
    if clamp_negative:
        m.data[m.data < 0.0] = 0.0
    return m


def uniform_smooth(vertices: np.ndarray, faces: np.ndarray, iterations: int, alpha: float = 0.4, fix_boundary: bool = True) -> np.ndarray:
    """X <- (1-alpha) X + alpha * mean(neighbours). Boundary vertices stay put."""
    v = np.asarray(vertices, dtype=np.float64).copy()
    n = v.shape[0]
    if n == 0 or faces.size == 0 or int(iterations) <= 0 or float(alpha) <= 0.0:
        return v
    adj = uniform_adjacency(faces, n)
    deg = np.asarray(adj.sum(axis=1)).reshape(-1)
    movable = deg > 0
    if fix_boundary:
        movable &= ~boundary_vertex_mask(faces, n)
    inv_deg = np.divide(1.0, deg, out=np.zeros_like(deg), where=deg > 0)[:, None]

    for _ in range(int(iterations)):
        avg = (adj @ v) * inv_deg
        v[movable] = (1.0 - alpha) * v[movable] + alpha * avg[movable]
    return v


def taubin_smooth(
    vertices: np.ndarray,
    faces: np.ndarray,
    iterations: int,
    lam: float = 0.5,
    mu: float = -0.53,
    fix_boundary: bool = True,
) -> np.ndarray:
    """Taubin lambda/mu smoothing with cotangent weights frozen on the input shape.

    Each iteration is a shrinking pass (lam > 0) followed by an inflating pass
    (mu < 0). Where a vertex's weight sum vanishes the uniform neighbour mean is used.
    """
    v = np.asarray(vertices, dtype=np.float64).copy()
    n = v.shape[0]
    if n == 0 or faces.size == 0 or int(iterations) <= 0:
        return v

    wmat = cotan_weights(v, faces)
    wsum = np.asarray(wmat.sum(axis=1)).reshape(-1)
    adj = uniform_adjacency(faces, n)
    deg = np.asarray(adj.sum(axis=1)).reshape(-1)

    use_cotan = wsum > 1e-12
    inv_w = np.divide(1.0, wsum, out=np.zeros_like(wsum), where=use_cotan)[:, None]
    inv_deg = np.divide(1.0, deg, out=np.zeros_like(deg), where=deg > 0)[:, None]
    movable = use_cotan | (deg > 0)
    if fix_boundary:
        movable &= ~boundary_vertex_mask(faces, n)
    fixed = v.copy()

    def _pass(x: np.ndarray, step: float) -> np.ndarray:
        mean = np.where(use_cotan[:, None], (wmat @ x) * inv_w, (adj @ x) * inv_deg)
        out = x + float(step) * (mean - x)
        out[~movable] = fixed[~movable]
        return out

    for _ in range(int(iterations)):
        v = _pass(_pass(v, lam), mu)
    return v


def smooth_mesh(soup: np.ndarray, iterations: int, method: str = "taubin") -> np.ndarray:
    """Weld, smooth and write the result back into the soup in place."""
    if soup.shape[0] == 0 or int(iterations) <= 0:
        return soup
    v, f = weld_vertices(soup)
    if method == "taubin":
        v2 = taubin_smooth(v, f, iterations)
    elif method == "uniform":
        v2 = uniform_smooth(v, f, iterations)
    else:
        raise ValueError("method must be 'taubin' or 'uniform'")
    soup[...] = v2[f].astype(soup.dtype)
    return soup
