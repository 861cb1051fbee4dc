"""
Raster exchange for grids and vector fields.

Encodes float and integer grids to 8- and 16-bit grayscale PNG, vector fields
(surface normals) to RGBA PNG, reads grayscale or RGB images back into [0, 1]
grids, and writes triangulated meshes and point clouds as Wavefront OBJ.

I/O helpers never raise: they return ``(value, None)`` on success and
``(None, error)`` on failure, and log the failure.
"""

from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np
import structlog
from matplotlib.colors import LinearSegmentedColormap
from PIL import Image

logger = structlog.get_logger()

PathLike = Union[str, Path]
IOResult = Tuple[Optional[object], Optional[Exception]]

DEFAULT_NORMAL_STRENGTH = 6.0


def encode_gray16(grid: np.ndarray) -> np.ndarray:
    """
    Affinely map a float grid onto 0..65535.

    A degenerate range encodes as all zeros.
    """
    grid = np.asarray(grid, dtype=np.float64)
    low, high = float(grid.min()), float(grid.max())
    if high - low <= 0:
        return np.zeros(grid.shape, dtype=np.uint16)
    return np.round((grid - low) / (high - low) * 65535.0).astype(np.uint16)


def encode_gray8(grid: np.ndarray) -> np.ndarray:
    """Affinely map a float grid onto 0..255, zeros for a degenerate range."""
    grid = np.asarray(grid, dtype=np.float64)
    low, high = float(grid.min()), float(grid.max())
    if high - low <= 0:
        return np.zeros(grid.shape, dtype=np.uint8)
    return np.round((grid - low) / (high - low) * 255.0).astype(np.uint8)


def encode_int_grid(grid: np.ndarray) -> np.ndarray:
    """Cast an integer grid with values in 0..255 directly to bytes."""
    grid = np.asarray(grid)
    if grid.size and (grid.min() < 0 or grid.max() > 255):
        raise ValueError(f"Integer grid values must lie in 0..255, got {grid.min()}..{grid.max()}")
    return grid.astype(np.uint8)


def encode_rgba(vectors: np.ndarray) -> np.ndarray:
    """Map an (H, W, 3) field of unit vectors to RGBA bytes with opaque alpha."""
    vectors = np.asarray(vectors, dtype=np.float64)
    rgba = np.full(vectors.shape[:2] + (4,), 255, dtype=np.uint8)
    rgba[..., :3] = np.round((np.clip(vectors, -1.0, 1.0) * 0.5 + 0.5) * 255.0).astype(np.uint8)
    return rgba


def sobel_normal_map(grid: np.ndarray, strength: float = DEFAULT_NORMAL_STRENGTH) -> np.ndarray:
    """
    Tangent-space normals of a height grid using a Sobel operator.

    Edge pixels are duplicated. Heights are expected in [0, 1]; larger
    strength values flatten the result.

    Returns:
        (H, W, 3) array of unit vectors
    """
    grid = np.asarray(grid, dtype=np.float64)
    padded = np.pad(grid, 1, mode="edge")
    nw, n, ne = padded[:-2, :-2], padded[:-2, 1:-1], padded[:-2, 2:]
    w, e = padded[1:-1, :-2], padded[1:-1, 2:]
    sw, s, se = padded[2:, :-2], padded[2:, 1:-1], padded[2:, 2:]

    normals = np.empty(grid.shape + (3,))
    normals[..., 0] = -(se - sw + 2.0 * (e - w) + ne - nw)
    normals[..., 1] = -(nw - sw + 2.0 * (n - s) + ne - se)
    normals[..., 2] = 1.0 / strength
    normals /= np.linalg.norm(normals, axis=-1, keepdims=True)
    return normals


def gradient_image(values: np.ndarray, colors: Sequence, name: str = "gradient") -> np.ndarray:
    """
    Colour a [0, 1] grid through a linear colour ramp.

    Args:
        values: (H, W) grid, clipped to [0, 1]
        colors: Colour stops accepted by matplotlib
        name: Colormap name

    Returns:
        (H, W, 4) uint8 RGBA image
    """
    cmap = LinearSegmentedColormap.from_list(name, list(colors))
    return cmap(np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0), bytes=True)


def _save(path: PathLike, image: Image.Image) -> IOResult:
    try:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            image.save(f, format="PNG")
    except (OSError, ValueError) as e:
        logger.error("Failed to write image", path=str(path), error=str(e))
        return None, e
    logger.debug("Image written", path=str(path), size=image.size, mode=image.mode)
    return None, None


def write_gray16(path: PathLike, grid: np.ndarray) -> IOResult:
    """Write a float grid as a 16-bit grayscale PNG."""
    return _save(path, Image.fromarray(encode_gray16(grid)))


def write_gray8(path: PathLike, grid: np.ndarray) -> IOResult:
    """Write a float grid as an 8-bit grayscale PNG."""
    return _save(path, Image.fromarray(encode_gray8(grid)))


def write_int_grid(path: PathLike, grid: np.ndarray) -> IOResult:
    """Write an integer grid with values in 0..255 as an 8-bit grayscale PNG."""
    try:
        data = encode_int_grid(grid)
    except ValueError as e:
        logger.error("Integer grid out of range", path=str(path), error=str(e))
        return None, e
    return _save(path, Image.fromarray(data))


def write_rgba(path: PathLike, vectors: np.ndarray) -> IOResult:
    """Write an (H, W, 3) vector field as an RGBA PNG."""
    return _save(path, Image.fromarray(encode_rgba(vectors)))


def write_image(path: PathLike, rgba: np.ndarray) -> IOResult:
    """Write an already coloured (H, W, 4) uint8 image."""
    return _save(path, Image.fromarray(np.asarray(rgba, dtype=np.uint8)))


def write_normal_map(path: PathLike, grid: np.ndarray, strength: float = DEFAULT_NORMAL_STRENGTH) -> IOResult:
    return write_rgba(path, sobel_normal_map(grid, strength))


def read_gray(path: PathLike) -> IOResult:
    """
    Read an image into a float grid in [0, 1].

    16-bit grayscale images are scaled by 65535; anything else is converted
    to RGB and the three channels are averaged.
    """
    try:
        with Image.open(path) as image:
            if image.mode.startswith("I;16") or image.mode == "I":
                grid = np.asarray(image, dtype=np.float64) / 65535.0
            else:
                rgb = np.asarray(image.convert("RGB"), dtype=np.float64)
                grid = rgb.mean(axis=-1) / 255.0
    except (OSError, ValueError) as e:
        logger.error("Failed to read image", path=str(path), error=str(e))
        return None, e
    return grid, None


def write_obj(
    path: PathLike,
    vertices: Iterable[Sequence[float]],
    faces: Iterable[Sequence[int]] = (),
) -> IOResult:
    """
    Write vertices and zero-based triangle faces as an ASCII OBJ file.

    Face indices are written 1-based.
    """
    try:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            for x, y, z in vertices:
                f.write(f"v {x:f} {y:f} {z:f}\n")
            for a, b, c in faces:
                f.write(f"f {int(a) + 1} {int(b) + 1} {int(c) + 1}\n")
    except OSError as e:
        logger.error("Failed to write OBJ", path=str(path), error=str(e))
        return None, e
    return None, None
