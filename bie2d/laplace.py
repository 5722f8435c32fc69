"""Laplace double-layer potential (DLP) on smooth closed curves.

Definition (R^2 identified with C, r = x - y):

    u(x) = (1/2pi) int_Gamma  n_y . r / |r|^2  tau(y) ds_y
         = Re (1/2 pi i) int_Gamma  tau(y) / (x - y) dy

so that a constant density tau = 1 gives u = -1 inside, 0 outside and
-1/2 on the curve (principal value).

Two evaluators are provided:

    native : plain periodic trapezoid rule, O(N M). Spectrally accurate
             far from the curve, loses all digits within a few node
             spacings of it. On the curve itself (target is source) the
             Nystrom diagonal limit -kappa/(4 pi) is substituted.
    close  : Helsing-Ojala global close evaluation. Boundary values of
             the complex DLP v = u + i*(...) are built in O(N^2), then
             extended to the targets by compensated Cauchy quadrature.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

from bie2d.cauchy import cauchy_compeval
from bie2d.curves import Curve, SelfEvaluationError, Side, Target, is_same_curve
from bie2d.spectral import perispecdiff

logger = logging.getLogger(__name__)


class CloseDerivatives(enum.Enum):
    """Which first derivatives of u to return alongside u."""

    NONE = "none"
    PARTIALS = "partials"  # du/dx1, du/dx2
    NORMAL = "normal"  # du/dn along target normals


@dataclass
class LaplaceDLPMatrices:
    """Dense Laplace DLP matrices mapping density (N,) to target values (M,).

    potential : np.ndarray, shape (M, N)
    grad_x, grad_y : np.ndarray or None, shape (M, N)
    """

    potential: np.ndarray
    grad_x: Optional[np.ndarray] = None
    grad_y: Optional[np.ndarray] = None


@dataclass
class LaplaceDLPResult:
    """Laplace DLP values at targets, shapes (M,) or (M, n).

    Attributes
    ----------
    u : np.ndarray
        Potential.
    ux, uy : np.ndarray or None
        Cartesian partials, when derivatives were requested.
    un : np.ndarray or None
        Target-normal derivative, for CloseDerivatives.NORMAL.
    vb : np.ndarray or None
        Close evaluation only: boundary values of the complex DLP, (N,) or (N, n).
    imv : np.ndarray or None
        Close evaluation only: imaginary part of v at the targets.
    """

    u: np.ndarray
    ux: Optional[np.ndarray] = None
    uy: Optional[np.ndarray] = None
    un: Optional[np.ndarray] = None
    vb: Optional[np.ndarray] = None
    imv: Optional[np.ndarray] = None


# ---------------------------------------------------------------------------
# Helpers (private)
# ---------------------------------------------------------------------------
def _as_density(
    dens: np.ndarray, n_nodes: int, allow_complex: bool,
) -> Tuple[np.ndarray, bool]:
    """Reshape a density to (N, n); returns (array, was_1d)."""
    dens = np.asarray(dens)
    if dens.ndim not in (1, 2):
        raise ValueError(f"Density must be 1-D or 2-D, got shape {dens.shape}")
    if dens.shape[0] != n_nodes:
        raise ValueError(f"Density has {dens.shape[0]} rows, source has {n_nodes} nodes")
    if np.iscomplexobj(dens) and not allow_complex:
        raise ValueError("Complex density is not supported here; pass a real density")
    if not np.all(np.isfinite(dens)):
        raise ValueError("Density contains non-finite values")
    return dens.reshape(n_nodes, -1), dens.ndim == 1


def _squeeze(arr: Optional[np.ndarray], squeeze: bool) -> Optional[np.ndarray]:
    if arr is None or not squeeze:
        return arr
    return arr[:, 0]


def _normal_derivative(
    ux: np.ndarray, uy: np.ndarray, target: Target,
) -> np.ndarray:
    nx = target.nx[:, None]  # (M, 1)
    return ux * np.real(nx) + uy * np.imag(nx)  # (M, n)


def _check_normals(target: Target, derivatives: CloseDerivatives) -> None:
    if derivatives is CloseDerivatives.NORMAL and target.nx is None:
        raise ValueError("Normal derivatives requested but the target has no normals")


# ---------------------------------------------------------------------------
# Native quadrature
# ---------------------------------------------------------------------------
def laplace_dlp_matrix(
    target: Target,
    source: Curve,
    derivatives: bool = False,
) -> LaplaceDLPMatrices:
    """Native-quadrature Laplace DLP matrices.

    When target is source the potential matrix is the Nystrom
    self-interaction matrix with diagonal -kappa w / (4 pi). Gradient
    matrices have no self-evaluation.

    Parameters
    ----------
    target : Curve or TargetPoints
        M target points.
    source : Curve
        N source nodes.
    derivatives : bool
        Also return the x- and y-partial matrices.

    Returns
    -------
    LaplaceDLPMatrices
    """
    self_eval = is_same_curve(target, source)
    if derivatives and self_eval:
        raise SelfEvaluationError("No self-evaluation for Laplace DLP gradients (hypersingular)")

    d = target.x[:, None] - source.x[None, :]  # (M, N)
    if self_eval:
        np.fill_diagonal(d, 1.0)  # overwritten below
    irr = 1.0 / np.real(np.conj(d) * d)  # (M, N)
    ny = source.nx[None, :]  # (1, N)
    A = (1.0 / (2.0 * np.pi)) * (np.real(d) * np.real(ny) + np.imag(d) * np.imag(ny)) * irr  # (M, N)
    if self_eval:
        np.fill_diagonal(A, -source.cur / (4.0 * np.pi))
    A = A * source.w[None, :]  # quadr wei

    mats = LaplaceDLPMatrices(potential=A)
    if derivatives:
        G = (-1.0 / (2j * np.pi)) * source.cw[None, :] / d**2  # (M, N), v'(x) kernel
        mats.grad_x = np.real(G)
        mats.grad_y = -np.imag(G)

    if not np.all(np.isfinite(A)):
        raise ValueError(
            "Laplace DLP matrix contains non-finite values; a target coincides with a source node"
        )

    logger.debug(
        "Laplace DLP matrix: M=%d, N=%d, self=%s, derivatives=%s",
        len(target.x), source.n_nodes, self_eval, derivatives,
    )
    return mats


def laplace_dlp_eval(
    target: Target,
    source: Curve,
    dens: np.ndarray,
    derivatives: CloseDerivatives = CloseDerivatives.NONE,
) -> LaplaceDLPResult:
    """Evaluate the Laplace DLP with native quadrature.

    Parameters
    ----------
    target : Curve or TargetPoints
    source : Curve
    dens : np.ndarray, real, shape (N,) or (N, n)
    derivatives : CloseDerivatives

    Returns
    -------
    LaplaceDLPResult
        u (and ux, uy, un as requested), shapes (M,) or (M, n).
    """
    tau, squeeze = _as_density(dens, source.n_nodes, allow_complex=False)
    _check_normals(target, derivatives)
    want_grad = derivatives is not CloseDerivatives.NONE
    mats = laplace_dlp_matrix(target, source, derivatives=want_grad)

    res = LaplaceDLPResult(u=mats.potential @ tau)
    if want_grad:
        res.ux = mats.grad_x @ tau
        res.uy = mats.grad_y @ tau
        if derivatives is CloseDerivatives.NORMAL:
            res.un = _normal_derivative(res.ux, res.uy, target)
    for name in ("u", "ux", "uy", "un"):
        setattr(res, name, _squeeze(getattr(res, name), squeeze))
    return res


# ---------------------------------------------------------------------------
# Global close evaluation
# ---------------------------------------------------------------------------
def dlp_boundary_limit(
    source: Curve,
    tau: np.ndarray,
    side: Union[Side, str],
) -> np.ndarray:
    """One-sided boundary values of the complex DLP v at the source nodes.

        v(x) = (1 / (-2 pi i)) int tau(y) / (y - x) dy

    On the curve the integrand is regularized by subtracting tau(x); the
    smooth diagonal limit of (tau_j - tau_i)/(x_j - x_i) times cw_i is
    tau'(t_i) w_i / sp_i. The interior limit additionally subtracts tau.

    Parameters
    ----------
    source : Curve
    tau : np.ndarray, shape (N,) or (N, n)
        Density columns (real, or complex for advanced use).
    side : Side or str

    Returns
    -------
    vb : np.ndarray, complex128, shape (N,) or (N, n)
    """
    side = Side.parse(side)
    N = source.n_nodes
    tau, squeeze = _as_density(tau, N, allow_complex=True)  # (N, n)
    taup = perispecdiff(tau)  # (N, n)

    dx = source.x[None, :] - source.x[:, None]  # (N, N), x_j - x_i at [i, j]
    np.fill_diagonal(dx, 1.0)
    ratio = source.cw[None, :] / dx  # (N, N)
    np.fill_diagonal(ratio, 0.0)  # skip j == i

    vb = np.empty(tau.shape, dtype=np.complex128)  # (N, n)
    for k in range(tau.shape[1]):
        dtau = tau[None, :, k] - tau[:, None, k]  # (N, N), tau_j - tau_i
        vb[:, k] = np.sum(dtau * ratio, axis=1)
    vb += taup * (source.w / source.sp)[:, None]  # diagonal term
    vb *= 1.0 / (-2j * np.pi)
    if side is Side.INTERIOR:
        vb -= tau  # v^- = v^+ - tau
    logger.debug("DLP boundary limit: side=%s, N=%d, n=%d", side.name, N, tau.shape[1])
    return _squeeze(vb, squeeze)


def laplace_dlp_eval_close_global(
    target: Target,
    source: Curve,
    dens: np.ndarray,
    side: Union[Side, str],
    derivatives: CloseDerivatives = CloseDerivatives.NONE,
) -> LaplaceDLPResult:
    """Laplace DLP and its derivatives with global close-evaluation quadrature.

    Accurate for targets arbitrarily close to (but not on) the curve, all
    on one side of it. Costs O(N^2) for the boundary limit plus O(N M) for
    the compensated evaluation.

    Parameters
    ----------
    target : Curve or TargetPoints
        Targets, all on ``side`` of the source curve. Must not be the
        source curve itself (no self-evaluation, no hypersingular output).
    source : Curve
        Smooth closed curve with global periodic quadrature.
    dens : np.ndarray, shape (N,) or (N, n)
        Density values at the nodes. Should be real; complex densities are
        accepted for advanced use, in which case u = Re v is returned
        columnwise and is not itself the DLP of the density.
    side : Side or str
        Side of the curve the targets are on.
    derivatives : CloseDerivatives
        NONE, PARTIALS (ux, uy) or NORMAL (un along target normals, plus
        ux, uy).

    Returns
    -------
    LaplaceDLPResult
        u (and ux, uy, un), plus diagnostics vb and imv.
    """
    if is_same_curve(target, source):
        raise SelfEvaluationError(
            "Close evaluation does not support targets on the source nodes; "
            "use laplace_dlp_eval for the on-curve potential"
        )
    side = Side.parse(side)
    tau, squeeze = _as_density(dens, source.n_nodes, allow_complex=True)
    _check_normals(target, derivatives)
    want_grad = derivatives is not CloseDerivatives.NONE

    # Step 1: boundary values of v = complex DLP(tau)
    vb = dlp_boundary_limit(source, tau, side)  # (N, n)

    # Step 2: compensated close evaluation of v and v'
    v, vp = cauchy_compeval(target.x, source, vb, side, derivative=want_grad)  # (M, n)

    res = LaplaceDLPResult(u=np.real(v), vb=vb, imv=np.imag(v))
    if want_grad:
        res.ux = np.real(vp)
        res.uy = -np.imag(vp)  # v' = u_x - i u_y
        if derivatives is CloseDerivatives.NORMAL:
            res.un = _normal_derivative(res.ux, res.uy, target)
    for name in ("u", "ux", "uy", "un", "vb", "imv"):
        setattr(res, name, _squeeze(getattr(res, name), squeeze))
    return res
