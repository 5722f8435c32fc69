"""Interior Stokes Dirichlet BVP with a double-layer representation.

Boundary data g is the velocity of a Stokeslet placed outside the curve, so
the exact interior solution is known. We solve

    (-I/2 + A + n w^T) tau = g

where A is the Nystrom self-interaction matrix of the Stokes DLP and the
rank-one term removes the one-dimensional nullspace spanned by the normal.
Velocity and (mean-shifted) pressure errors at interior points are
reported against N.

Usage
-----
    python scripts/run_stokes_interior_dirichlet.py
    python scripts/run_stokes_interior_dirichlet.py --n-nodes 40 80 160 --mu 0.5
"""

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Dict, List

import matplotlib
import numpy as np

matplotlib.use("Agg")
import matplotlib.pyplot as plt

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bie2d.curves import Curve, TargetPoints, wobbly_curve
from bie2d.stokes import (
    StokesOutputs,
    stokes_dlp_eval,
    stokes_dlp_matrix,
    stokeslet_pressure,
    stokeslet_velocity,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("stokes_interior_dirichlet")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
WOBBLE_AMP: float = 0.3
WOBBLE_FREQ: int = 5
STOKESLET_POS: complex = 1.8 + 1.5j
STOKESLET_FORCE = (0.3, -0.7)
OUTPUT_DIR: Path = PROJECT_ROOT / "results" / "stokes_interior_dirichlet"


def solve_density(s: Curve, g: np.ndarray, mu: float) -> np.ndarray:
    """Solve the second-kind DLP equation for the interior Dirichlet problem."""
    N = s.n_nodes
    nvec = np.concatenate([np.real(s.nx), np.imag(s.nx)])  # (2N,)
    wvec = nvec * np.concatenate([s.w, s.w])  # (2N,)
    K = -0.5 * np.eye(2 * N) + stokes_dlp_matrix(s, s, mu).velocity  # (2N, 2N)
    K = K + np.outer(nvec, wvec)
    cond = np.linalg.cond(K)
    if cond > 1e10:
        logger.warning("High condition number: %.2e (N=%d)", cond, N)
    else:
        logger.debug("System condition: %.2e (N=%d)", cond, N)
    return np.linalg.solve(K, g)


def main() -> None:
    parser = argparse.ArgumentParser(description="Interior Stokes Dirichlet BVP convergence")
    parser.add_argument("--n-nodes", nargs="+", type=int, default=[20, 40, 60, 80, 120, 160, 200])
    parser.add_argument("--mu", type=float, default=1.0)
    parser.add_argument("--n-targets", type=int, default=50)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(args.seed)

    # interior targets well away from the curve
    targ = TargetPoints(x=0.5 * (rng.random(args.n_targets) + 1j * rng.random(args.n_targets) - (0.5 + 0.5j)))
    u_exact = stokeslet_velocity(targ.x, STOKESLET_POS, STOKESLET_FORCE, args.mu)
    p_exact = stokeslet_pressure(targ.x, STOKESLET_POS, STOKESLET_FORCE)

    rows: List[Dict[str, float]] = []
    for n_nodes in args.n_nodes:
        s = wobbly_curve(WOBBLE_AMP, WOBBLE_FREQ, n_nodes=n_nodes)
        g = stokeslet_velocity(s.x, STOKESLET_POS, STOKESLET_FORCE, args.mu)  # (2N,)
        tau = solve_density(s, g, args.mu)
        fields = stokes_dlp_eval(targ, s, tau, args.mu, StokesOutputs.VELOCITY_PRESSURE)
        err_u = float(np.max(np.abs(fields.velocity - u_exact)))
        p_diff = fields.pressure - p_exact
        err_p = float(np.max(np.abs(p_diff - np.mean(p_diff))))
        rows.append({"n_nodes": n_nodes, "err_velocity": err_u, "err_pressure": err_p})
        logger.info("N=%d: velocity err=%.3e, pressure err=%.3e", n_nodes, err_u, err_p)

    csv_path = OUTPUT_DIR / "stokes_interior_dirichlet.csv"
    with open(csv_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["n_nodes", "err_velocity", "err_pressure"])
        writer.writeheader()
        for r in rows:
            writer.writerow(r)
    logger.info("Saved: %s", csv_path)

    fig, ax = plt.subplots(figsize=(6, 4.5))
    ns = [r["n_nodes"] for r in rows]
    ax.semilogy(ns, [max(r["err_velocity"], 1e-17) for r in rows], "o-", label="velocity")
    ax.semilogy(ns, [max(r["err_pressure"], 1e-17) for r in rows], "s--", label="pressure (mean-shifted)")
    ax.set_xlabel("N")
    ax.set_ylabel("max error at interior targets")
    ax.set_title("Interior Stokes Dirichlet BVP, DLP representation")
    ax.grid(True, alpha=0.3)
    ax.legend()
    fig.tight_layout()
    fig.savefig(OUTPUT_DIR / "stokes_interior_dirichlet.pdf", dpi=300, bbox_inches="tight")
    fig.savefig(OUTPUT_DIR / "stokes_interior_dirichlet.png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Saved: stokes_interior_dirichlet.pdf")

    print("\n" + "=" * 50)
    print("INTERIOR STOKES DIRICHLET BVP")
    print("=" * 50)
    print(f"{'N':>6} {'velocity':>14} {'pressure':>14}")
    print("-" * 50)
    for r in rows:
        print(f"{r['n_nodes']:>6} {r['err_velocity']:>14.2e} {r['err_pressure']:>14.2e}")
    print("=" * 50)


if __name__ == "__main__":
    main()
