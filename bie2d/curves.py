"""Closed-curve quadrature data for global periodic trapezoid rules.

Points in R^2 are stored as complex numbers x = x1 + i*x2 throughout.

Quadrature
----------
    t_j  = 2*pi*j/N,            j = 0..N-1
    w_j  = (2*pi/N) |Z'(t_j)|   arclength weights
    cw_j = (2*pi/N) Z'(t_j)     complex weights (dy = Z'(t) dt)

Curves must be counter-clockwise so that the outward normal is -i times
the unit tangent, and the signed curvature of a circle of radius R is 1/R.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from bie2d.spectral import perispecdiff

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_N_NODES: int = 200
UNIT_NORMAL_ATOL: float = 1e-10
WINDING_ATOL: float = 1e-3


class SelfEvaluationError(ValueError):
    """Requested a quantity on the source curve itself that has no self-quadrature."""


# ---------------------------------------------------------------------------
# Side of the curve
# ---------------------------------------------------------------------------
class Side(enum.Enum):
    """Which side of a closed curve the targets lie on."""

    INTERIOR = "i"
    EXTERIOR = "e"

    @classmethod
    def parse(cls, side: Union["Side", str]) -> "Side":
        """Accept a Side member or one of 'i', 'e', 'interior', 'exterior'."""
        if isinstance(side, cls):
            return side
        if isinstance(side, str):
            key = side.strip().lower()
            if key in ("i", "interior"):
                return cls.INTERIOR
            if key in ("e", "exterior"):
                return cls.EXTERIOR
        raise ValueError(f"side must be interior or exterior, got {side!r}")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class Curve:
    """Discretized smooth closed curve with periodic trapezoid quadrature.

    Attributes
    ----------
    x : np.ndarray, complex128, shape (N,)
        Nodes Z(t_j).
    xp, xpp : np.ndarray, complex128, shape (N,)
        First and second parametric derivatives Z'(t_j), Z''(t_j).
    t : np.ndarray, shape (N,)
        Parameter nodes on [0, 2*pi).
    sp : np.ndarray, shape (N,)
        Speed |Z'(t_j)|.
    tang, nx : np.ndarray, complex128, shape (N,)
        Unit tangent and unit outward normal (nx = -i * tang).
    cur : np.ndarray, shape (N,)
        Signed curvature.
    w : np.ndarray, shape (N,)
        Arclength quadrature weights.
    cw : np.ndarray, complex128, shape (N,)
        Complex quadrature weights.
    a : complex
        Interior reference point, used by exterior close evaluation.
    """

    x: np.ndarray
    xp: np.ndarray
    xpp: np.ndarray
    t: np.ndarray
    sp: np.ndarray
    tang: np.ndarray
    nx: np.ndarray
    cur: np.ndarray
    w: np.ndarray
    cw: np.ndarray
    a: complex

    @property
    def n_nodes(self) -> int:
        """Number of quadrature nodes."""
        return len(self.x)

    @property
    def perimeter(self) -> float:
        return float(np.sum(self.w))

    def validate(self) -> None:
        """Check curve integrity. Raises ValueError on failure."""
        N = self.n_nodes
        for name in ("xp", "xpp", "t", "sp", "tang", "nx", "cur", "w", "cw"):
            arr = getattr(self, name)
            if arr.shape != (N,):
                raise ValueError(f"{name} shape {arr.shape} != ({N},)")
            if not np.all(np.isfinite(arr)):
                raise ValueError(f"Non-finite values in {name}")
        if not np.all(np.isfinite(self.x)):
            raise ValueError("Non-finite node coordinates")
        if np.any(self.sp <= 0):
            raise ValueError("Non-positive speed detected (degenerate parametrization)")
        norms = np.abs(self.nx)  # (N,)
        if not np.allclose(norms, 1.0, atol=UNIT_NORMAL_ATOL):
            raise ValueError(f"Normal vectors not unit: max deviation {np.max(np.abs(norms - 1.0)):.2e}")
        signed_area = 0.5 * float(np.imag(np.sum(np.conj(self.x) * self.cw)))
        if signed_area <= 0:
            raise ValueError(f"Curve must be counter-clockwise (signed area {signed_area:.3e})")


@dataclass(frozen=True, eq=False)
class TargetPoints:
    """Target points, optionally carrying unit normals.

    Attributes
    ----------
    x : np.ndarray, complex128, shape (M,)
    nx : np.ndarray or None, complex128, shape (M,)
        Unit target normals; needed for traction and normal derivatives.
    """

    x: np.ndarray
    nx: Optional[np.ndarray] = None

    def __post_init__(self):
        # frozen: coerce through object.__setattr__
        object.__setattr__(self, "x", _as_complex_points(self.x, "x"))
        if self.nx is not None:
            object.__setattr__(self, "nx", _as_complex_points(self.nx, "nx"))
        self.validate()

    @property
    def n_points(self) -> int:
        return len(self.x)

    def validate(self) -> None:
        """Check target integrity. Raises ValueError on failure."""
        if self.nx is None:
            return
        if self.nx.shape != self.x.shape:
            raise ValueError(f"nx shape {self.nx.shape} != x shape {self.x.shape}")
        norms = np.abs(self.nx)  # (M,)
        if not np.allclose(norms, 1.0, atol=UNIT_NORMAL_ATOL):
            raise ValueError(
                f"Target normals not unit: max deviation {np.max(np.abs(norms - 1.0)):.2e}; "
                "use as_targets to normalize"
            )


Target = Union[Curve, TargetPoints]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _as_complex_points(points: np.ndarray, name: str) -> np.ndarray:
    """Convert (M,) complex or (M, 2) real coordinates to contiguous complex128 (M,)."""
    arr = np.asarray(points)
    if np.iscomplexobj(arr) or arr.ndim == 1:
        if arr.ndim != 1:
            raise ValueError(f"{name} must be 1-D when given as complex numbers, got shape {arr.shape}")
        out = arr.astype(np.complex128)
    elif arr.ndim == 2 and arr.shape[1] == 2:
        out = arr[:, 0].astype(np.float64) + 1j * arr[:, 1].astype(np.float64)
    else:
        raise ValueError(f"{name} must have shape (M,) complex or (M, 2) real, got {arr.shape}")
    if not np.all(np.isfinite(out)):
        raise ValueError(f"{name} contains non-finite values.")
    return np.ascontiguousarray(out)


def as_targets(points: np.ndarray, normals: Optional[np.ndarray] = None) -> TargetPoints:
    """Build TargetPoints from coordinates and optional normals.

    Normals are normalized to unit length.
    """
    x = _as_complex_points(points, "points")
    nx = None
    if normals is not None:
        nx = _as_complex_points(normals, "normals")
        if nx.shape != x.shape:
            raise ValueError(f"normals shape {nx.shape} != points shape {x.shape}")
        mag = np.abs(nx)  # (M,)
        if np.any(mag == 0):
            raise ValueError("Zero-length target normal")
        nx = nx / mag
    return TargetPoints(x=x, nx=nx)


def is_same_curve(target: Target, source: Curve) -> bool:
    """True when target is the very same curve object as source (self-evaluation)."""
    return target is source


def winding_number(curve: Curve, point: complex) -> float:
    """Trapezoid approximation of the winding number of the curve about point."""
    return float(np.real(np.sum(curve.cw / (curve.x - point)) / (2j * np.pi)))


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------
def setup_quad(
    z: Union[Callable[[np.ndarray], np.ndarray], np.ndarray],
    zp: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    zpp: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    n_nodes: Optional[int] = None,
    interior_point: Optional[complex] = None,
) -> Curve:
    """Periodic trapezoid quadrature on a smooth closed curve.

    Parameters
    ----------
    z : callable or np.ndarray
        Either a 2*pi-periodic parametrization Z(t) (complex-valued), or the
        node samples Z(t_j) themselves.
    zp, zpp : callable, optional
        Analytic Z'(t) and Z''(t). Missing derivatives are computed
        spectrally from the samples.
    n_nodes : int, optional
        Number of nodes. Required when z is callable.
    interior_point : complex, optional
        Point inside the curve. Defaults to the mean of the nodes.

    Returns
    -------
    Curve
    """
    if callable(z):
        if n_nodes is None:
            raise ValueError("n_nodes is required when z is a parametrization")
        if n_nodes < 3:
            raise ValueError(f"Need at least 3 nodes, got {n_nodes}")
        t = 2.0 * np.pi * np.arange(n_nodes) / n_nodes  # (N,)
        x = np.asarray(z(t), dtype=np.complex128)  # (N,)
    else:
        if zp is not None or zpp is not None:
            raise ValueError("Analytic derivatives need a callable parametrization")
        x = _as_complex_points(z, "z")
        if n_nodes is not None and n_nodes != len(x):
            raise ValueError(f"n_nodes={n_nodes} does not match {len(x)} samples")
        n_nodes = len(x)
        if n_nodes < 3:
            raise ValueError(f"Need at least 3 nodes, got {n_nodes}")
        t = 2.0 * np.pi * np.arange(n_nodes) / n_nodes  # (N,)

    xp = np.asarray(zp(t), dtype=np.complex128) if zp is not None else perispecdiff(x)  # (N,)
    xpp = np.asarray(zpp(t), dtype=np.complex128) if zpp is not None else perispecdiff(xp)  # (N,)

    sp = np.abs(xp)  # (N,)
    tang = xp / sp  # (N,)
    nx = -1j * tang  # (N,), outward for CCW curves
    cur = -np.real(np.conj(xpp) * nx) / sp**2  # (N,)
    dt = 2.0 * np.pi / n_nodes
    a = complex(np.mean(x)) if interior_point is None else complex(interior_point)

    curve = Curve(
        x=x, xp=xp, xpp=xpp, t=t, sp=sp, tang=tang, nx=nx, cur=cur,
        w=dt * sp, cw=dt * xp, a=a,
    )
    curve.validate()

    wind = winding_number(curve, curve.a)
    if abs(wind - 1.0) > WINDING_ATOL:
        logger.warning(
            "Interior point %s has winding number %.3f; is it actually inside?", curve.a, wind,
        )
    logger.debug("Curve: N=%d, perimeter=%.6f, a=%s", n_nodes, curve.perimeter, curve.a)
    return curve


def circle_curve(radius: float, n_nodes: int = DEFAULT_N_NODES, center: complex = 0.0) -> Curve:
    """Uniformly discretized CCW circle (exact curvature 1/radius)."""
    if not radius > 0:
        raise ValueError(f"radius must be positive, got {radius}")
    c = complex(center)
    return setup_quad(
        lambda t: c + radius * np.exp(1j * t),
        lambda t: 1j * radius * np.exp(1j * t),
        lambda t: -radius * np.exp(1j * t),
        n_nodes=n_nodes,
        interior_point=c,
    )


def wobbly_curve(
    amp: float,
    freq: int,
    n_nodes: int = DEFAULT_N_NODES,
    r0: float = 1.0,
    center: complex = 0.0,
) -> Curve:
    """Smooth star-shaped curve r(theta) = r0 (1 + amp cos(freq theta)).

    Parameters
    ----------
    amp : float
        Relative radial amplitude, |amp| < 1.
    freq : int
        Number of wobbles.
    n_nodes : int
        Number of quadrature nodes.
    r0 : float
        Mean radius.
    center : complex
        Curve center, also used as the interior point.

    Returns
    -------
    Curve
    """
    if not abs(amp) < 1.0:
        raise ValueError(f"|amp| must be < 1 for a simple curve, got {amp}")
    c = complex(center)

    def radius(t):
        return r0 * (1.0 + amp * np.cos(freq * t))

    def radius_p(t):
        return -r0 * amp * freq * np.sin(freq * t)

    def radius_pp(t):
        return -r0 * amp * freq**2 * np.cos(freq * t)

    return setup_quad(
        lambda t: c + radius(t) * np.exp(1j * t),
        lambda t: (radius_p(t) + 1j * radius(t)) * np.exp(1j * t),
        lambda t: (radius_pp(t) + 2j * radius_p(t) - radius(t)) * np.exp(1j * t),
        n_nodes=n_nodes,
        interior_point=c,
    )
