"""
2D geometry helpers shared by the joint calculator and the stabilization core.

Points may be given as landmark-like objects (anything with ``x`` and ``y``
attributes) or as sequences / numpy arrays whose first two items are x and y.
"""

import math
import numpy as np
from typing import Any, Iterable, Sequence, Tuple

# Lengths and denominators below this value are treated as zero
EPSILON = 1e-6

def _xy(point: Any) -> np.ndarray:
    """Return the (x, y) part of a point as a float array."""
    if hasattr(point, 'x') and hasattr(point, 'y'):
        return np.array([point.x, point.y], dtype=float)
    return np.asarray(point, dtype=float)[:2]

def to_vector(dx: float, dy: float) -> np.ndarray:
    """Create a 2D vector from its components."""
    return np.array([dx, dy], dtype=float)

def vector_between(start: Any, end: Any) -> np.ndarray:
    """Vector pointing from ``start`` to ``end``."""
    return _xy(end) - _xy(start)

def radians_to_degrees(radians: float) -> float:
    return radians * 180.0 / math.pi

def add_vectors(*vectors: np.ndarray) -> np.ndarray:
    """Sum any number of vectors of the same shape."""
    return np.sum(np.stack(vectors), axis=0)

def scale_vector(vector: np.ndarray, factor: float) -> np.ndarray:
    return np.asarray(vector, dtype=float) * factor

def average_vectors(vectors: Iterable[np.ndarray]) -> np.ndarray:
    """
    Mean of a collection of vectors.

    Args:
        vectors: Vectors of identical shape

    Returns:
        Element-wise mean, or a zero 2D vector for an empty collection
    """
    vectors = list(vectors)
    if not vectors:
        return np.zeros(2)
    return np.mean(np.stack(vectors), axis=0)

def clamp_vector(vector: np.ndarray, max_length: float) -> np.ndarray:
    """Scale ``vector`` down so that its length does not exceed ``max_length``."""
    vector = np.asarray(vector, dtype=float)
    length = float(np.linalg.norm(vector))
    if length <= max_length or length < EPSILON:
        return vector
    return vector * (max_length / length)

def distance(a: Any, b: Any) -> float:
    """Euclidean distance between two points in the image plane."""
    return float(np.linalg.norm(_xy(b) - _xy(a)))

def lerp(start: float, end: float, factor: float) -> float:
    """Linear interpolation from ``start`` (factor 0) to ``end`` (factor 1)."""
    return start + (end - start) * factor

def normalize_angle(degrees: float) -> float:
    """Wrap an angle in degrees into the (-180, 180] range."""
    while degrees > 180.0:
        degrees -= 360.0
    while degrees <= -180.0:
        degrees += 360.0
    return degrees

def angle_degrees(a: Any, b: Any, c: Any) -> float:
    """
    Calculate the angle at vertex ``b`` between the rays b->a and b->c.

    Args:
        a: First point
        b: Vertex point
        c: Third point

    Returns:
        Angle in degrees in [0, 180]; 0 when either ray has zero length
    """
    v1 = _xy(a) - _xy(b)
    v2 = _xy(c) - _xy(b)

    if np.linalg.norm(v1) < EPSILON or np.linalg.norm(v2) < EPSILON:
        return 0.0

    dot = v1[0] * v2[0] + v1[1] * v2[1]
    cross = v1[0] * v2[1] - v1[1] * v2[0]

    return abs(radians_to_degrees(math.atan2(cross, dot)))

def rotation_components(angle: float) -> Tuple[float, float]:
    """
    Cosine and sine of an angle given in degrees.

    Args:
        angle: Rotation angle in degrees

    Returns:
        Tuple of (cos, sin)
    """
    radians = math.radians(angle)
    return math.cos(radians), math.sin(radians)

def rotate_point(x: float, y: float, pivot_x: float, pivot_y: float,
                 cos_angle: float, sin_angle: float) -> Tuple[float, float]:
    """Rotate (x, y) around a pivot using precomputed rotation components."""
    dx = x - pivot_x
    dy = y - pivot_y
    new_x = dx * cos_angle - dy * sin_angle + pivot_x
    new_y = dx * sin_angle + dy * cos_angle + pivot_y
    return new_x, new_y

def segments_intersect(p1: Any, p2: Any, p3: Any, p4: Any) -> bool:
    """
    Check whether segment p1-p2 intersects segment p3-p4.

    Uses the parametric line form. Parallel (and nearly parallel) segments
    are reported as not intersecting.

    Returns:
        True if the segments share a point, False otherwise
    """
    a, b, c, d = _xy(p1), _xy(p2), _xy(p3), _xy(p4)
    r = b - a
    s = d - c

    denominator = r[0] * s[1] - r[1] * s[0]
    if abs(denominator) < EPSILON:
        return False

    offset = c - a
    t = (offset[0] * s[1] - offset[1] * s[0]) / denominator
    u = (offset[0] * r[1] - offset[1] * r[0]) / denominator

    return 0.0 <= t <= 1.0 and 0.0 <= u <= 1.0

def chains_intersect(chain_a: Sequence[Any], chain_b: Sequence[Any]) -> bool:
    """Check whether any segment of polyline ``chain_a`` crosses any segment of ``chain_b``."""
    for i in range(len(chain_a) - 1):
        for j in range(len(chain_b) - 1):
            if segments_intersect(chain_a[i], chain_a[i + 1], chain_b[j], chain_b[j + 1]):
                return True
    return False
