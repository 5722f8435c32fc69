"""Far-field check: Laplace DLP close evaluation vs native quadrature.

Far from the curve both rules are spectrally accurate, so the global close
evaluation must reproduce the native values (potential and target-normal
derivative) to near machine precision, on both sides of the curve.

Geometry: wobbly curve r = 1 + 0.3 cos(5 theta), density tau = sin(3 t).

Usage
-----
    python scripts/run_laplace_far_check.py
    python scripts/run_laplace_far_check.py --n-nodes 300 --n-targets 500
"""

import argparse
import logging
import sys
from pathlib import Path

import matplotlib
import numpy as np

matplotlib.use("Agg")
import matplotlib.pyplot as plt

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bie2d.curves import Side, TargetPoints, wobbly_curve
from bie2d.laplace import CloseDerivatives, laplace_dlp_eval, laplace_dlp_eval_close_global

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("laplace_far_check")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
WOBBLE_AMP: float = 0.3
WOBBLE_FREQ: int = 5
DENSITY_FREQ: int = 3
OUTPUT_DIR: Path = PROJECT_ROOT / "results" / "laplace_far_check"


def far_targets(side: Side, n: int, rng: np.random.Generator) -> TargetPoints:
    """Random targets far from the curve on one side, with random unit normals."""
    nx = np.exp(2j * np.pi * rng.random(n))  # (n,)
    if side is Side.EXTERIOR:
        x = 1.5 + 1j + rng.random(n) + 1j * rng.random(n)  # (n,)
    else:
        x = 0.6 * (rng.random(n) + 1j * rng.random(n) - (0.5 + 0.5j))  # (n,)
    return TargetPoints(x=x, nx=nx)


def main() -> None:
    parser = argparse.ArgumentParser(description="Laplace DLP far-field check")
    parser.add_argument("--n-nodes", type=int, default=200)
    parser.add_argument("--n-targets", type=int, default=100)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(args.seed)

    s = wobbly_curve(WOBBLE_AMP, WOBBLE_FREQ, n_nodes=args.n_nodes)
    tau = np.sin(DENSITY_FREQ * s.t)  # (N,)

    fig, ax = plt.subplots(figsize=(6, 6))
    ax.plot(np.append(s.x.real, s.x.real[0]), np.append(s.x.imag, s.x.imag[0]), "k-", lw=1)
    ax.quiver(s.x.real, s.x.imag, s.nx.real, s.nx.imag, scale=40, width=0.002)

    for side in (Side.INTERIOR, Side.EXTERIOR):
        t = far_targets(side, args.n_targets, rng)
        ax.plot(t.x.real, t.x.imag, ".", label=side.name.lower())
        nat = laplace_dlp_eval(t, s, tau, derivatives=CloseDerivatives.NORMAL)
        clo = laplace_dlp_eval_close_global(t, s, tau, side, derivatives=CloseDerivatives.NORMAL)
        err_u = float(np.max(np.abs(nat.u - clo.u)))
        err_un = float(np.max(np.abs(nat.un - clo.un)))
        logger.info("side=%s: max|u - uc| = %.3e, max|un - unc| = %.3e", side.name, err_u, err_un)

    ax.set_aspect("equal")
    ax.legend()
    ax.set_title(f"Wobbly curve (N={args.n_nodes}) and far targets")
    fig.tight_layout()
    fig.savefig(OUTPUT_DIR / "far_targets.png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Saved: %s", OUTPUT_DIR / "far_targets.png")


if __name__ == "__main__":
    main()
