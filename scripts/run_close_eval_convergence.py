"""Close-evaluation convergence study on the unit circle.

The Laplace DLP of tau = cos(k theta) on the unit circle is known in closed
form:

    u(r, theta) = -r^k cos(k theta) / 2     (r < 1)
    u(r, theta) =  r^-k cos(k theta) / 2    (r > 1)

For each node count N and each distance d to the curve, targets are placed
at r = 1 -/+ d and the max error of native and close evaluation is
recorded. Results go to CSV and HDF5, plus an error-vs-distance figure.

Usage
-----
    python scripts/run_close_eval_convergence.py
    python scripts/run_close_eval_convergence.py --n-nodes 50 100 200 --k 5
"""

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Dict, List

import h5py
import matplotlib
import numpy as np

matplotlib.use("Agg")
import matplotlib.pyplot as plt

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bie2d.curves import Side, TargetPoints, circle_curve
from bie2d.laplace import laplace_dlp_eval, laplace_dlp_eval_close_global

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("close_eval_convergence")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
DISTANCES: np.ndarray = np.logspace(-6, -0.5, 12)
N_TARGETS_PER_RING: int = 64
OUTPUT_DIR: Path = PROJECT_ROOT / "results" / "close_eval_convergence"


def exact_dlp_circle(x: np.ndarray, k: int, side: Side) -> np.ndarray:
    """Closed-form DLP of cos(k theta) on the unit circle."""
    if side is Side.INTERIOR:
        return np.real(-0.5 * x**k)
    return np.real(0.5 * x ** (-k))


def ring_targets(radius: float, n: int) -> TargetPoints:
    """Targets on a circle, rotated off the node angles."""
    theta = 2.0 * np.pi * (np.arange(n) + 0.5) / n  # (n,)
    return TargetPoints(x=radius * np.exp(1j * theta))


def run_study(n_nodes_list: List[int], k: int) -> List[Dict[str, float]]:
    rows: List[Dict[str, float]] = []
    for n_nodes in n_nodes_list:
        s = circle_curve(1.0, n_nodes=n_nodes)
        tau = np.cos(k * s.t)  # (N,)
        for side in (Side.INTERIOR, Side.EXTERIOR):
            sign = -1.0 if side is Side.INTERIOR else 1.0
            for dist in DISTANCES:
                t = ring_targets(1.0 + sign * dist, N_TARGETS_PER_RING)
                exact = exact_dlp_circle(t.x, k, side)
                err_native = float(np.max(np.abs(laplace_dlp_eval(t, s, tau).u - exact)))
                err_close = float(np.max(np.abs(
                    laplace_dlp_eval_close_global(t, s, tau, side).u - exact
                )))
                rows.append({
                    "n_nodes": n_nodes,
                    "side": side.value,
                    "distance": float(dist),
                    "err_native": err_native,
                    "err_close": err_close,
                })
            logger.info(
                "N=%d side=%s: worst native=%.2e, worst close=%.2e",
                n_nodes, side.name,
                max(r["err_native"] for r in rows if r["n_nodes"] == n_nodes and r["side"] == side.value),
                max(r["err_close"] for r in rows if r["n_nodes"] == n_nodes and r["side"] == side.value),
            )
    return rows


def main() -> None:
    parser = argparse.ArgumentParser(description="Close-evaluation convergence on the unit circle")
    parser.add_argument("--n-nodes", nargs="+", type=int, default=[50, 100, 200, 400])
    parser.add_argument("--k", type=int, default=3, help="density frequency cos(k theta)")
    args = parser.parse_args()

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    rows = run_study(args.n_nodes, args.k)

    # Save CSV
    csv_path = OUTPUT_DIR / "close_eval_convergence.csv"
    with open(csv_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["n_nodes", "side", "distance", "err_native", "err_close"])
        writer.writeheader()
        for r in rows:
            writer.writerow(r)
    logger.info("Saved: %s", csv_path)

    # Save HDF5, one group per (N, side)
    h5_path = OUTPUT_DIR / "close_eval_convergence.h5"
    with h5py.File(h5_path, "w") as h5:
        h5.attrs["k"] = args.k
        h5.create_dataset("distances", data=DISTANCES)
        for n_nodes in args.n_nodes:
            for side in (Side.INTERIOR, Side.EXTERIOR):
                sel = [r for r in rows if r["n_nodes"] == n_nodes and r["side"] == side.value]
                grp = h5.create_group(f"N{n_nodes}/{side.name.lower()}")
                grp.create_dataset("err_native", data=np.array([r["err_native"] for r in sel]))
                grp.create_dataset("err_close", data=np.array([r["err_close"] for r in sel]))
    logger.info("Saved: %s", h5_path)

    # Plot: error vs distance
    fig, axes = plt.subplots(1, 2, figsize=(11, 4.5), sharey=True)
    for ax, side in zip(axes, (Side.INTERIOR, Side.EXTERIOR)):
        for n_nodes in args.n_nodes:
            sel = [r for r in rows if r["n_nodes"] == n_nodes and r["side"] == side.value]
            d = [r["distance"] for r in sel]
            line, = ax.loglog(d, [max(r["err_native"], 1e-17) for r in sel], "--", lw=1)
            ax.loglog(d, [max(r["err_close"], 1e-17) for r in sel], "o-", ms=4,
                      color=line.get_color(), label=f"N={n_nodes}")
        ax.set_xlabel("distance to curve")
        ax.set_title(f"{side.name.lower()} (dashed: native, solid: close)")
        ax.grid(True, alpha=0.3)
    axes[0].set_ylabel("max error")
    axes[0].legend(fontsize=9)
    fig.tight_layout()
    fig.savefig(OUTPUT_DIR / "close_eval_convergence.pdf", dpi=300, bbox_inches="tight")
    fig.savefig(OUTPUT_DIR / "close_eval_convergence.png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Saved: close_eval_convergence.pdf")

    # Final summary
    print("\n" + "=" * 60)
    print("CLOSE EVALUATION: WORST ERROR OVER ALL DISTANCES")
    print("=" * 60)
    print(f"{'N':>6} {'side':>6} {'native':>12} {'close':>12}")
    print("-" * 60)
    for n_nodes in args.n_nodes:
        for side in (Side.INTERIOR, Side.EXTERIOR):
            sel = [r for r in rows if r["n_nodes"] == n_nodes and r["side"] == side.value]
            print(f"{n_nodes:>6} {side.value:>6} {max(r['err_native'] for r in sel):>12.2e} "
                  f"{max(r['err_close'] for r in sel):>12.2e}")
    print("=" * 60)


if __name__ == "__main__":
    main()
