"""Tests for the Stokes double-layer matrix assembler and evaluation wrapper.

Tests
-----
    TestVelocityMatrix:  self-interaction diagonal, block symmetry, rigid identities
    TestSingularSelf:    pressure/traction on the source curve stay uncorrected
    TestWrapper:         wrapper == matrix @ density, batched columns
    TestFieldIdentities: pressure of constant density, traction vs finite differences
    TestInteriorBVP:     Dirichlet solve reproduces a Stokeslet flow
    TestPreconditions:   checked errors for malformed requests

Usage
-----
    python -m pytest tests/test_stokes_dlp.py -v
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bie2d.curves import SelfEvaluationError, TargetPoints, wobbly_curve
from bie2d.stokes import (
    StokesOutputs,
    stokes_dlp_eval,
    stokes_dlp_matrix,
    stokeslet_pressure,
    stokeslet_velocity,
)

MU: float = 0.7


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def wobbly():
    """Smooth star-shaped test curve, radius in [0.7, 1.3]."""
    return wobbly_curve(0.3, 5, n_nodes=200)


@pytest.fixture
def inside():
    """Interior targets with unit normals."""
    theta = 2.0 * np.pi * np.arange(8) / 8
    return TargetPoints(x=0.3 * np.exp(1j * theta) + 0.05j, nx=np.exp(1j * (theta + 0.4)))


@pytest.fixture
def outside():
    theta = 2.0 * np.pi * np.arange(8) / 8
    return TargetPoints(x=2.0 * np.exp(1j * theta), nx=np.exp(1j * theta))


def _constant_density(n_nodes, f1=0.8, f2=-0.3):
    return np.concatenate([np.full(n_nodes, f1), np.full(n_nodes, f2)])


def _smooth_density(curve):
    return np.concatenate([np.cos(curve.t), np.sin(2 * curve.t)])


# ---------------------------------------------------------------------------
# Velocity matrix
# ---------------------------------------------------------------------------
class TestVelocityMatrix:
    def test_self_diagonal_is_analytic_limit(self, wobbly):
        """Diagonal of each block is -kappa/(2 pi) t_i t_j w, never the 0/0 formula."""
        N = wobbly.n_nodes
        A = stokes_dlp_matrix(wobbly, wobbly, MU).velocity
        c = -wobbly.cur / (2.0 * np.pi)
        t1, t2 = np.real(wobbly.tang), np.imag(wobbly.tang)
        idx = np.arange(N)
        np.testing.assert_allclose(A[idx, idx], c * t1**2 * wobbly.w, rtol=1e-14)
        np.testing.assert_allclose(A[idx + N, idx], c * t1 * t2 * wobbly.w, rtol=1e-14)
        np.testing.assert_allclose(A[idx, idx + N], c * t1 * t2 * wobbly.w, rtol=1e-14)
        np.testing.assert_allclose(A[idx + N, idx + N], c * t2**2 * wobbly.w, rtol=1e-14)
        assert np.all(np.isfinite(A))

    @pytest.mark.parametrize("use_self", [True, False])
    def test_off_diagonal_blocks_equal(self, wobbly, inside, use_self):
        """A12 and A21 are the same scalar field."""
        target = wobbly if use_self else inside
        M = len(target.x)
        N = wobbly.n_nodes
        A = stokes_dlp_matrix(target, wobbly, MU).velocity
        assert A.shape == (2 * M, 2 * N)
        np.testing.assert_array_equal(A[:M, N:], A[M:, :N])

    def test_constant_density_identities(self, wobbly, inside, outside):
        """Constant f: velocity -f inside, -f/2 on the curve, 0 outside."""
        N = wobbly.n_nodes
        f = _constant_density(N)
        u_in = stokes_dlp_eval(inside, wobbly, f, MU).velocity
        u_on = stokes_dlp_eval(wobbly, wobbly, f, MU).velocity
        u_out = stokes_dlp_eval(outside, wobbly, f, MU).velocity
        M = len(inside.x)
        np.testing.assert_allclose(u_in[:M], -0.8, atol=1e-12)
        np.testing.assert_allclose(u_in[M:], 0.3, atol=1e-12)
        np.testing.assert_allclose(u_on[:N], -0.4, atol=1e-10)
        np.testing.assert_allclose(u_on[N:], 0.15, atol=1e-10)
        np.testing.assert_allclose(u_out, 0.0, atol=1e-12)

    def test_weights_folded_into_columns(self, wobbly, inside):
        """Columns are the native kernel scaled by the source quadrature weight."""
        A = stokes_dlp_matrix(inside, wobbly, MU).velocity
        N = wobbly.n_nodes
        unweighted = A / np.concatenate([wobbly.w, wobbly.w])[None, :]
        r = inside.x[0] - wobbly.x[3]
        n = wobbly.nx[3]
        rdotn = r.real * n.real + r.imag * n.imag
        expected = rdotn * r.real * r.imag / abs(r) ** 4 / np.pi
        assert unweighted[0, 3 + N] == pytest.approx(expected, rel=1e-12)


# ---------------------------------------------------------------------------
# Pressure and traction on the source curve
# ---------------------------------------------------------------------------
class TestSingularSelf:
    @pytest.mark.parametrize("outputs", [
        StokesOutputs.VELOCITY_PRESSURE, StokesOutputs.VELOCITY_PRESSURE_TRACTION,
    ])
    def test_rejected_by_default(self, wobbly, outputs):
        with pytest.raises(SelfEvaluationError):
            stokes_dlp_matrix(wobbly, wobbly, MU, outputs)

    def test_uncorrected_when_allowed(self, wobbly):
        """allow_singular keeps the native formula: non-finite diagonals, no fix-up."""
        N = wobbly.n_nodes
        mats = stokes_dlp_matrix(
            wobbly, wobbly, MU, StokesOutputs.VELOCITY_PRESSURE_TRACTION, allow_singular=True,
        )
        idx = np.arange(N)
        assert not np.any(np.isfinite(mats.pressure[idx, idx]))
        assert not np.any(np.isfinite(mats.pressure[idx, idx + N]))
        assert not np.any(np.isfinite(mats.traction[idx, idx]))
        assert not np.any(np.isfinite(mats.traction[idx + N, idx + N]))
        off = ~np.eye(N, dtype=bool)
        assert np.all(np.isfinite(mats.pressure[:, :N][off]))
        # velocity is still self-corrected
        assert np.all(np.isfinite(mats.velocity))


# ---------------------------------------------------------------------------
# Evaluation wrapper
# ---------------------------------------------------------------------------
class TestWrapper:
    def test_wrapper_is_matrix_times_density(self, wobbly, inside):
        f = _smooth_density(wobbly)
        outputs = StokesOutputs.VELOCITY_PRESSURE_TRACTION
        mats = stokes_dlp_matrix(inside, wobbly, MU, outputs)
        fields = stokes_dlp_eval(inside, wobbly, f, MU, outputs)
        np.testing.assert_array_equal(fields.velocity, mats.velocity @ f)
        np.testing.assert_array_equal(fields.pressure, mats.pressure @ f)
        np.testing.assert_array_equal(fields.traction, mats.traction @ f)

    def test_only_requested_outputs(self, wobbly, inside):
        f = _smooth_density(wobbly)
        fields = stokes_dlp_eval(inside, wobbly, f, MU)
        assert fields.pressure is None and fields.traction is None
        fields = stokes_dlp_eval(inside, wobbly, f, MU, StokesOutputs.VELOCITY_PRESSURE)
        assert fields.pressure.shape == (len(inside.x),)
        assert fields.traction is None

    def test_batched_columns(self, wobbly, inside):
        """(2N, 3) density equals the column-wise stack of three single evaluations."""
        N = wobbly.n_nodes
        F = np.column_stack([
            _smooth_density(wobbly), _constant_density(N), np.sin(3 * np.arange(2 * N)),
        ])  # (2N, 3)
        outputs = StokesOutputs.VELOCITY_PRESSURE_TRACTION
        batch = stokes_dlp_eval(inside, wobbly, F, MU, outputs)
        M = len(inside.x)
        assert batch.velocity.shape == (2 * M, 3)
        assert batch.pressure.shape == (M, 3)
        for k in range(3):
            single = stokes_dlp_eval(inside, wobbly, F[:, k], MU, outputs)
            np.testing.assert_allclose(batch.velocity[:, k], single.velocity, rtol=1e-13, atol=1e-13)
            np.testing.assert_allclose(batch.pressure[:, k], single.pressure, rtol=1e-13, atol=1e-13)
            np.testing.assert_allclose(batch.traction[:, k], single.traction, rtol=1e-13, atol=1e-13)


# ---------------------------------------------------------------------------
# Pressure and traction identities
# ---------------------------------------------------------------------------
class TestFieldIdentities:
    def test_constant_density_has_zero_pressure(self, wobbly, inside, outside):
        f = _constant_density(wobbly.n_nodes)
        for target in (inside, outside):
            p = stokes_dlp_eval(target, wobbly, f, MU, StokesOutputs.VELOCITY_PRESSURE).pressure
            np.testing.assert_allclose(p, 0.0, atol=1e-10)

    def test_traction_matches_finite_difference_stress(self, wobbly, inside):
        """T = -p n + mu (grad u + grad u^T) n, gradients by central differences."""
        f = _smooth_density(wobbly)
        M = len(inside.x)
        h = 1e-5

        def vel(shift):
            u = stokes_dlp_eval(TargetPoints(x=inside.x + shift), wobbly, f, MU).velocity
            return u[:M], u[M:]

        u1_xp, u2_xp = vel(h)
        u1_xm, u2_xm = vel(-h)
        u1_yp, u2_yp = vel(1j * h)
        u1_ym, u2_ym = vel(-1j * h)
        d1u1 = (u1_xp - u1_xm) / (2 * h)
        d1u2 = (u2_xp - u2_xm) / (2 * h)
        d2u1 = (u1_yp - u1_ym) / (2 * h)
        d2u2 = (u2_yp - u2_ym) / (2 * h)

        fields = stokes_dlp_eval(inside, wobbly, f, MU, StokesOutputs.VELOCITY_PRESSURE_TRACTION)
        p = fields.pressure
        n1, n2 = np.real(inside.nx), np.imag(inside.nx)
        t1 = -p * n1 + MU * (2 * d1u1 * n1 + (d2u1 + d1u2) * n2)
        t2 = -p * n2 + MU * ((d1u2 + d2u1) * n1 + 2 * d2u2 * n2)
        np.testing.assert_allclose(fields.traction[:M], t1, atol=1e-6)
        np.testing.assert_allclose(fields.traction[M:], t2, atol=1e-6)


# ---------------------------------------------------------------------------
# Interior Dirichlet BVP
# ---------------------------------------------------------------------------
class TestInteriorBVP:
    def test_stokeslet_flow_reproduced(self, wobbly, inside):
        """(-I/2 + A) tau = g with a rank-one fix recovers an exterior Stokeslet flow."""
        N = wobbly.n_nodes
        x0, force = 1.8 + 1.5j, (0.3, -0.7)
        g = stokeslet_velocity(wobbly.x, x0, force, MU)
        nvec = np.concatenate([np.real(wobbly.nx), np.imag(wobbly.nx)])  # (2N,)
        wvec = nvec * np.concatenate([wobbly.w, wobbly.w])  # (2N,)
        K = -0.5 * np.eye(2 * N) + stokes_dlp_matrix(wobbly, wobbly, MU).velocity
        K = K + np.outer(nvec, wvec)  # removes the normal-vector nullspace
        tau = np.linalg.solve(K, g)

        fields = stokes_dlp_eval(inside, wobbly, tau, MU, StokesOutputs.VELOCITY_PRESSURE)
        np.testing.assert_allclose(
            fields.velocity, stokeslet_velocity(inside.x, x0, force, MU), atol=1e-9,
        )
        p_err = fields.pressure - stokeslet_pressure(inside.x, x0, force)
        assert np.ptp(p_err) < 1e-7  # pressure is unique up to a constant


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------
class TestPreconditions:
    def test_traction_needs_normals(self, wobbly):
        t = TargetPoints(x=np.array([0.1 + 0.2j]))
        with pytest.raises(ValueError, match="normals"):
            stokes_dlp_matrix(t, wobbly, MU, StokesOutputs.VELOCITY_PRESSURE_TRACTION)

    def test_complex_density_rejected(self, wobbly, inside):
        with pytest.raises(ValueError, match="real"):
            stokes_dlp_eval(inside, wobbly, 1j * _smooth_density(wobbly), MU)

    def test_density_length_checked(self, wobbly, inside):
        with pytest.raises(ValueError, match="2N"):
            stokes_dlp_eval(inside, wobbly, np.ones(wobbly.n_nodes), MU)

    @pytest.mark.parametrize("mu", [0.0, -1.0, np.inf])
    def test_bad_viscosity(self, wobbly, inside, mu):
        with pytest.raises(ValueError, match="mu"):
            stokes_dlp_matrix(inside, wobbly, mu)

    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_coincident_curve_rejected(self, wobbly):
        """An identical but distinct curve sits on every node: no self-correction, so an error."""
        twin = wobbly_curve(0.3, 5, n_nodes=200)
        with pytest.raises(ValueError, match="non-finite"):
            stokes_dlp_eval(twin, wobbly, _smooth_density(wobbly), MU)

    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_target_on_source_node_rejected(self, wobbly):
        t = TargetPoints(x=wobbly.x[:3])
        with pytest.raises(ValueError, match="non-finite"):
            stokes_dlp_matrix(t, wobbly, MU, StokesOutputs.VELOCITY_PRESSURE)
