from __future__ import annotations

from pathlib import Path
from typing import List

import numpy as np

from sirds_errors import MeshIOError

# Binary STL record: normal, three vertices, attribute byte count.
_STL_RECORD = np.dtype(
    [
        ("normal", "<f4", (3,)),
        ("v", "<f4", (3, 3)),
        ("attr", "<u2"),
    ]
)
_STL_HEADER_BYTES = 80


def _empty_soup() -> np.ndarray:
    return np.zeros((0, 3, 3), dtype=np.float32)


def _read_stl_binary(data: bytes, path: Path) -> np.ndarray:
    n = int(np.frombuffer(data, dtype="<u4", count=1, offset=_STL_HEADER_BYTES)[0])
    recs = np.frombuffer(data, dtype=_STL_RECORD, count=n, offset=_STL_HEADER_BYTES + 4)
    tris = np.array(recs["v"], dtype=np.float32)
    if not np.isfinite(tris).all():
        raise MeshIOError(f"Non-finite vertex coordinates in {path}")
    return tris.reshape(n, 3, 3)


def _read_stl_ascii(text: str, path: Path) -> np.ndarray:
    coords: List[List[float]] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        parts = raw.strip().split()
        if not parts or parts[0].lower() != "vertex":
            continue
        if len(parts) < 4:
            raise MeshIOError(f"{path}:{lineno}: malformed vertex line")
        try:
            coords.append([float(parts[1]), float(parts[2]), float(parts[3])])
        except ValueError as e:
            raise MeshIOError(f"{path}:{lineno}: bad vertex coordinate") from e
    if len(coords) % 3 != 0:
        raise MeshIOError(f"{path}: vertex count {len(coords)} is not a multiple of 3")
    if not coords:
        return _empty_soup()
    tris = np.asarray(coords, dtype=np.float32).reshape(-1, 3, 3)
    if not np.isfinite(tris).all():
        raise MeshIOError(f"Non-finite vertex coordinates in {path}")
    return tris


def load_stl(path: Path) -> np.ndarray:
    """Load a binary or ASCII STL into a (T, 3, 3) float32 triangle soup.

    A file is treated as binary when its size matches the triangle count in the
    header (84 + 50*T bytes); otherwise it must start with ``solid`` to be parsed
    as ASCII.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise MeshIOError(f"Cannot read mesh {path}: {e}") from e

    if len(data) >= _STL_HEADER_BYTES + 4:
        n = int(np.frombuffer(data, dtype="<u4", count=1, offset=_STL_HEADER_BYTES)[0])
        if len(data) == _STL_HEADER_BYTES + 4 + n * _STL_RECORD.itemsize:
            return _read_stl_binary(data, path)

    head = data[:5].decode("ascii", errors="ignore").lower()
    if head == "solid":
        return _read_stl_ascii(data.decode("utf-8", errors="ignore"), path)
    raise MeshIOError(f"{path} is neither a valid binary STL nor an ASCII STL")


def load_obj(path: Path) -> np.ndarray:
    """Read OBJ ``v``/``f`` records; polygons are fan-triangulated from their first corner."""
    path = Path(path)
    vertices: List[List[float]] = []
    tris: List[List[int]] = []
    try:
        f = path.open("r", encoding="utf-8", errors="ignore")
    except OSError as e:
        raise MeshIOError(f"Cannot read mesh {path}: {e}") from e

    with f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("v "):
                parts = line.split()
                if len(parts) < 4:
                    raise MeshIOError(f"{path}:{lineno}: malformed vertex")
                try:
                    vertices.append([float(parts[1]), float(parts[2]), float(parts[3])])
                except ValueError as e:
                    raise MeshIOError(f"{path}:{lineno}: bad vertex coordinate") from e
            elif line.startswith("f "):
                corners = []
                for p in line.split()[1:]:
                    # formats: v, v/vt, v/vt/vn, v//vn
                    v_str = p.split("/")[0]
                    try:
                        idx = int(v_str)
                    except ValueError as e:
                        raise MeshIOError(f"{path}:{lineno}: bad face index {p!r}") from e
                    # OBJ is 1-indexed; negative indices count back from the latest vertex
                    idx = idx - 1 if idx > 0 else len(vertices) + idx
                    if idx < 0 or idx >= len(vertices):
                        raise MeshIOError(f"{path}:{lineno}: face index {p!r} out of range")
                    corners.append(idx)
                if len(corners) < 3:
                    raise MeshIOError(f"{path}:{lineno}: face with fewer than 3 corners")
                for k in range(1, len(corners) - 1):
                    tris.append([corners[0], corners[k], corners[k + 1]])

    if not tris:
        return _empty_soup()
    v = np.asarray(vertices, dtype=np.float32)
    if not np.isfinite(v).all():
        raise MeshIOError(f"Non-finite vertex coordinates in {path}")
    return v[np.asarray(tris, dtype=np.int64)]


def load_mesh(path: Path) -> np.ndarray:
    path = Path(path)
    if not path.is_file():
        raise MeshIOError(f"Mesh not found: {path}")
    if path.suffix.lower() == ".obj":
        return load_obj(path)
    return load_stl(path)


def write_binary_stl(path: Path, soup: np.ndarray, header: bytes = b"sirds binary stl") -> Path:
    """Write a triangle soup as binary STL. Face normals are computed from the winding."""
    path = Path(path)
    tris = np.asarray(soup, dtype=np.float32).reshape(-1, 3, 3)
    n = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    ln = np.linalg.norm(n, axis=1, keepdims=True)
    n = np.divide(n, ln, out=np.zeros_like(n), where=ln > 0)

    recs = np.zeros((tris.shape[0],), dtype=_STL_RECORD)
    recs["normal"] = n
    recs["v"] = tris
    with path.open("wb") as f:
        f.write(header[:_STL_HEADER_BYTES].ljust(_STL_HEADER_BYTES, b"\0"))
        f.write(np.uint32(tris.shape[0]).tobytes())
        f.write(recs.tobytes())
    return path
