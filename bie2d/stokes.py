"""Stokes double-layer potential (DLP): velocity, pressure and traction.

Normalization as in Hsiao & Wendland (2008) Sec 2.3, with r = x - y,
f the density (a force-like vector) and n_y the source normal:

    u(x) = (1/pi)    int  (r . n_y) (r (x) r) / |r|^4  f(y) ds_y
    p(x) = (mu/pi)   int  ( -n_y / |r|^2 + 2 (r . n_y) r / |r|^4 ) . f(y) ds_y
    T(x) = sigma(u, p) n_x,   sigma = -p I + mu (grad u + grad u^T)

A constant density f gives u = -f inside, -f/2 on the curve and 0
outside, with zero pressure.

Vector ordering is always node-fast, component-slow: a density on N nodes
is [f1(y_1..y_N), f2(y_1..y_N)], so every matrix has 2x2 large blocks.

Self-evaluation (target is source) replaces the velocity diagonal with the
smooth limit -kappa/(2 pi) t (x) t. Pressure and traction have no
self-quadrature; asking for them on the source curve raises
SelfEvaluationError unless allow_singular=True, which returns the plain
native formula with its non-finite diagonal.

Reference
---------
    Hsiao G. C., Wendland W. L. (2008) "Boundary Integral Equations".
    Marple G., Barnett A. H., Gillman A., Veerapaneni S. (2016) "A fast
    algorithm for simulating multiphase flows through periodic geometries
    of arbitrary shape", SIAM J. Sci. Comput.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from bie2d.curves import Curve, SelfEvaluationError, Target, is_same_curve

logger = logging.getLogger(__name__)

DEFAULT_VISCOSITY: float = 1.0


class StokesOutputs(enum.Enum):
    """Which fields to assemble or evaluate."""

    VELOCITY = 1
    VELOCITY_PRESSURE = 2
    VELOCITY_PRESSURE_TRACTION = 3

    @property
    def pressure(self) -> bool:
        return self.value >= 2

    @property
    def traction(self) -> bool:
        return self.value >= 3


@dataclass
class StokesDLPMatrices:
    """Dense Stokes DLP matrices for a source/target pair.

    velocity : np.ndarray, shape (2M, 2N)
    pressure : np.ndarray or None, shape (M, 2N)
    traction : np.ndarray or None, shape (2M, 2N)
    """

    velocity: np.ndarray
    pressure: Optional[np.ndarray] = None
    traction: Optional[np.ndarray] = None


@dataclass
class StokesDLPFields:
    """Stokes DLP fields on targets, one column per density column.

    velocity : np.ndarray, shape (2M,) or (2M, n)
    pressure : np.ndarray or None, shape (M,) or (M, n)
    traction : np.ndarray or None, shape (2M,) or (2M, n)
    """

    velocity: np.ndarray
    pressure: Optional[np.ndarray] = None
    traction: Optional[np.ndarray] = None


def _check_viscosity(mu: float) -> None:
    if not (np.isfinite(mu) and mu > 0):
        raise ValueError(f"mu must be positive and finite, got {mu}")


# ---------------------------------------------------------------------------
# Matrix assembly
# ---------------------------------------------------------------------------
def stokes_dlp_matrix(
    target: Target,
    source: Curve,
    mu: float = DEFAULT_VISCOSITY,
    outputs: StokesOutputs = StokesOutputs.VELOCITY,
    allow_singular: bool = False,
) -> StokesDLPMatrices:
    """Matrices taking DLP density to velocity, pressure and traction.

    Native quadrature is used, apart from target is source, when the
    velocity matrix is the Nystrom self-interaction matrix built from the
    smooth diagonal limit.

    Parameters
    ----------
    target : Curve or TargetPoints
        M target points. Traction needs target normals.
    source : Curve
        N source nodes.
    mu : float
        Viscosity.
    outputs : StokesOutputs
        Which matrices to build.
    allow_singular : bool
        Permit pressure/traction with target is source, returning the
        uncorrected native formula (non-finite diagonal entries).

    Returns
    -------
    StokesDLPMatrices
    """
    _check_viscosity(mu)
    if outputs.traction and target.nx is None:
        raise ValueError("Traction requested but the target has no normals")
    self_eval = is_same_curve(target, source)
    if self_eval and outputs.pressure and not allow_singular:
        raise SelfEvaluationError(
            "No self-evaluation for Stokes DLP pressure or traction; "
            "pass allow_singular=True to get the uncorrected native formula"
        )

    M = len(target.x)
    N = source.n_nodes
    wts = np.concatenate([source.w, source.w])[None, :]  # (1, 2N)

    quiet = {"divide": "ignore", "invalid": "ignore"} if self_eval else {}
    with np.errstate(**quiet):  # self diagonal is 0/0 until overwritten
        r = target.x[:, None] - source.x[None, :]  # (M, N) complex displacements
        irr = 1.0 / np.real(np.conj(r) * r)  # (M, N), 1/r^2
        d1 = np.real(r)  # (M, N)
        d2 = np.imag(r)  # (M, N)
        ny1 = np.real(source.nx)[None, :]  # (1, N)
        ny2 = np.imag(source.nx)[None, :]  # (1, N)
        rdotny = d1 * ny1 + d2 * ny2  # (M, N)
        rdotnir4 = rdotny * irr * irr  # (M, N)

        A12 = (1.0 / np.pi) * d1 * d2 * rdotnir4  # off diag vel block
        A = np.block([
            [(1.0 / np.pi) * d1**2 * rdotnir4, A12],
            [A12, (1.0 / np.pi) * d2**2 * rdotnir4],
        ])  # (2M, 2N), Ladyzhenskaya
        if self_eval:
            c = -source.cur / (2.0 * np.pi)  # (N,)
            t1 = np.real(source.tang)  # (N,)
            t2 = np.imag(source.tang)  # (N,)
            idx = np.arange(N)
            A[idx, idx] = c * t1**2  # overwrite diags of 4 blocks
            A[idx + N, idx] = c * t1 * t2
            A[idx, idx + N] = c * t1 * t2
            A[idx + N, idx + N] = c * t2**2
        mats = StokesDLPMatrices(velocity=A * wts)  # quadr wei

        if outputs.pressure:
            P = np.hstack([
                (mu / np.pi) * (-ny1 * irr + 2.0 * rdotnir4 * d1),
                (mu / np.pi) * (-ny2 * irr + 2.0 * rdotnir4 * d2),
            ])  # (M, 2N)
            mats.pressure = P * wts

        if outputs.traction:
            nx1 = np.real(target.nx)[:, None]  # (M, 1)
            nx2 = np.imag(target.nx)[:, None]  # (M, 1)
            rdotnx = d1 * nx1 + d2 * nx2  # (M, N)
            dx = rdotnx * irr  # (M, N)
            dy = rdotny * irr  # (M, N)
            dxdy = dx * dy  # (M, N)
            R12 = d1 * d2 * irr
            R = np.block([[d1**2 * irr, R12], [R12, d2**2 * irr]])  # (2M, 2N), r (x) r / r^2
            nydotnx = nx1 * ny1 + nx2 * ny2  # (M, N)
            ones2 = np.ones((2, 2))
            T = R * np.kron(ones2, nydotnx * irr - 8.0 * dxdy) + np.kron(np.eye(2), dxdy)
            T = T + np.block([
                [nx1 * ny1 * irr, nx1 * ny2 * irr],
                [nx2 * ny1 * irr, nx2 * ny2 * irr],
            ])
            T = T + np.kron(ones2, dx * irr) * np.block([[ny1 * d1, ny1 * d2], [ny2 * d1, ny2 * d2]])
            T = T + np.kron(ones2, dy * irr) * np.block([[d1 * nx1, d1 * nx2], [d2 * nx1, d2 * nx2]])
            mats.traction = (mu / np.pi) * T * wts  # (2M, 2N)

    checked = [("velocity", mats.velocity)]
    if not self_eval:
        checked += [("pressure", mats.pressure), ("traction", mats.traction)]
    for name, mat in checked:
        if mat is not None and not np.all(np.isfinite(mat)):
            raise ValueError(
                f"Stokes DLP {name} matrix contains non-finite values; "
                "a target coincides with a source node"
            )

    if self_eval and outputs.pressure:
        logger.warning(
            "Stokes DLP pressure/traction assembled on the source curve without "
            "self-correction (N=%d); diagonal entries are not finite", N,
        )
    logger.debug(
        "Stokes DLP matrices: M=%d, N=%d, self=%s, outputs=%s", M, N, self_eval, outputs.name,
    )
    return mats


# ---------------------------------------------------------------------------
# Evaluation wrapper
# ---------------------------------------------------------------------------
def _as_stokes_density(dens: np.ndarray, n_nodes: int) -> np.ndarray:
    dens = np.asarray(dens)
    if np.iscomplexobj(dens):
        raise ValueError("Stokes DLP density must be real-valued")
    if dens.ndim not in (1, 2):
        raise ValueError(f"Density must be 1-D or 2-D, got shape {dens.shape}")
    if dens.shape[0] != 2 * n_nodes:
        raise ValueError(
            f"Density has {dens.shape[0]} rows, expected 2N = {2 * n_nodes} "
            "(node-fast, component-slow)"
        )
    if not np.all(np.isfinite(dens)):
        raise ValueError("Density contains non-finite values")
    return dens.astype(np.float64)


def stokes_dlp_eval(
    target: Target,
    source: Curve,
    dens: np.ndarray,
    mu: float = DEFAULT_VISCOSITY,
    outputs: StokesOutputs = StokesOutputs.VELOCITY,
    allow_singular: bool = False,
) -> StokesDLPFields:
    """Evaluate Stokes DLP velocity, and optionally pressure and traction.

    Pure composition with stokes_dlp_matrix: every field is matrix @ dens.

    Parameters
    ----------
    target : Curve or TargetPoints
    source : Curve
    dens : np.ndarray, real, shape (2N,) or (2N, n)
        Density, nodes fast and components slow; columns are independent.
    mu : float
        Viscosity.
    outputs : StokesOutputs
    allow_singular : bool
        See stokes_dlp_matrix.

    Returns
    -------
    StokesDLPFields
    """
    f = _as_stokes_density(dens, source.n_nodes)
    mats = stokes_dlp_matrix(target, source, mu, outputs, allow_singular)
    fields = StokesDLPFields(velocity=mats.velocity @ f)
    if mats.pressure is not None:
        fields.pressure = mats.pressure @ f
    if mats.traction is not None:
        fields.traction = mats.traction @ f
    return fields


# ---------------------------------------------------------------------------
# Free-space point force (reference solutions)
# ---------------------------------------------------------------------------
def stokeslet_velocity(
    x: np.ndarray,
    x0: complex,
    force: Tuple[float, float],
    mu: float = DEFAULT_VISCOSITY,
) -> np.ndarray:
    """Velocity of a 2D Stokeslet at x0 with the given force.

        u = (1/(4 pi mu)) (-log|r| I + r (x) r / |r|^2) F,   r = x - x0

    Parameters
    ----------
    x : np.ndarray, complex128, shape (M,)
    x0 : complex
    force : (float, float)
    mu : float

    Returns
    -------
    u : np.ndarray, shape (2M,), component-slow ordering
    """
    _check_viscosity(mu)
    r = np.asarray(x, dtype=np.complex128) - complex(x0)  # (M,)
    r2 = np.real(np.conj(r) * r)  # (M,)
    d1, d2 = np.real(r), np.imag(r)
    f1, f2 = float(force[0]), float(force[1])
    rdotf = (d1 * f1 + d2 * f2) / r2  # (M,)
    logr = 0.5 * np.log(r2)  # (M,)
    u1 = (-logr * f1 + d1 * rdotf) / (4.0 * np.pi * mu)
    u2 = (-logr * f2 + d2 * rdotf) / (4.0 * np.pi * mu)
    return np.concatenate([u1, u2])


def stokeslet_pressure(
    x: np.ndarray,
    x0: complex,
    force: Tuple[float, float],
) -> np.ndarray:
    """Pressure of a 2D Stokeslet, p = (1/(2 pi)) r . F / |r|^2."""
    r = np.asarray(x, dtype=np.complex128) - complex(x0)  # (M,)
    r2 = np.real(np.conj(r) * r)  # (M,)
    return (np.real(r) * force[0] + np.imag(r) * force[1]) / (2.0 * np.pi * r2)
