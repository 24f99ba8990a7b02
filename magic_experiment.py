#!/usr/bin/env python
"""
Multi-trial experiment harness for the fixed-cell 5×5 magic-square annealer.

Runs many independent annealing trials in parallel, sorts them by penalty
and reports the perfect-solution rate together with the best board.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from magic_anneal import AnnealConfig, Result, run_trial
from magic_puzzle import ConfigurationError, PuzzleSpec, load_puzzle

log = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s : %(levelname)s - %(filename)s] %(message)s"


# --------------------------------------------------------------------------- #
#  Outcome of a batch
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class ExperimentOutcome:
    results: Tuple[Result, ...]         # ascending by score.total
    elapsed: float                      # wall-clock seconds, diagnostic only

    @property
    def best(self) -> Result:
        return self.results[0]

    @property
    def perfect_count(self) -> int:
        return sum(1 for r in self.results if r.score.total == 0)

    @property
    def perfect_rate(self) -> float:
        """Percentage of trials that ended on a zero-penalty board."""
        return 100.0 * self.perfect_count / len(self.results)

    def to_frame(self) -> pd.DataFrame:
        rows = [dict(trial=r.trial,
                     seed=r.seed,
                     total=r.score.total,
                     col_penalty=r.score.col_penalty,
                     row_penalty=r.score.row_penalty,
                     diag_down_penalty=r.score.diag_down_penalty,
                     diag_up_penalty=r.score.diag_up_penalty,
                     accepted_moves=r.accepted_moves)
                for r in self.results]
        return pd.DataFrame(rows)

    def summary(self) -> pd.Series:
        df = self.to_frame()
        return pd.Series(dict(Trials=len(df),
                              Perfect=self.perfect_count,
                              PerfectPct=self.perfect_rate,
                              BestTotal=int(df.total.min()),
                              MeanTotal=float(df.total.mean()),
                              MedianTotal=float(df.total.median()),
                              MeanAccepted=float(df.accepted_moves.mean()),
                              Elapsed=self.elapsed))


# --------------------------------------------------------------------------- #
#  Harness
# --------------------------------------------------------------------------- #
def trial_seeds(master_seed: Optional[int], count: int) -> List[int]:
    """Independent per-trial seeds derived from one master seed."""
    seq = np.random.SeedSequence(master_seed)
    return [int(s) for s in seq.generate_state(count, dtype=np.uint64)]


def run_experiments(puzzle: PuzzleSpec, cfg: AnnealConfig,
                    trial_count: Optional[int] = None) -> ExperimentOutcome:
    """Anneal ``trial_count`` random boards (default ``cfg.trial_count``) and
    return the results sorted by total penalty.

    With the same ``cfg.seed`` the outcome does not depend on ``cfg.workers``.
    """
    n = cfg.trial_count if trial_count is None else trial_count
    if n < 1:
        raise ConfigurationError(f"trial_count must be >= 1, got {n}")
    workers = cfg.workers or os.cpu_count() or 1
    workers = min(workers, n)
    seeds = trial_seeds(cfg.seed, n)
    job = partial(run_trial, puzzle, cfg)

    log.info("Started %d trials on %d worker(s), seed=%s", n, workers, cfg.seed)
    t0 = time.perf_counter()
    if workers == 1:
        results = list(map(job, range(n), seeds))
    else:
        chunk = max(1, n // (workers * 4))
        with ProcessPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(job, range(n), seeds, chunksize=chunk))
    elapsed = time.perf_counter() - t0

    results.sort(key=lambda r: r.score.total)
    outcome = ExperimentOutcome(tuple(results), elapsed)
    log.info("Finished %d trials in %.2fs, %d perfect", n, elapsed, outcome.perfect_count)
    return outcome


# --------------------------------------------------------------------------- #
#  Reporting
# --------------------------------------------------------------------------- #
def format_result(result: Result) -> str:
    s = result.score
    lines = [
        f"Solution with score: {s.total}",
        f"Solution with column penalty: {s.col_penalty}",
        f"Solution with row penalty: {s.row_penalty}",
        f"Solution with diagonal up penalty: {s.diag_up_penalty}",
        f"Solution with diagonal down penalty: {s.diag_down_penalty}",
        f"Number of accepted changes: {result.accepted_moves}",
    ]
    lines += [",".join(str(v) for v in column) for column in result.board.tolist()]
    lines.append("*" * 44)
    return "\n".join(lines)


def print_report(outcome: ExperimentOutcome, top: int = 1) -> None:
    print(f"Number of perfect results: {outcome.perfect_count} ({outcome.perfect_rate:g}%)")
    print("Best result:" if top == 1 else f"Best {top} results:")
    for result in outcome.results[:top]:
        print(format_result(result))
    print(f"Time taken: {outcome.elapsed:.3f}s")


def plot_outcome(outcome: ExperimentOutcome, path: str | Path | None = None) -> None:
    """Histogram of final penalties, plus the best trial's energy curve when
    histories were recorded.  Saves to ``path`` or shows the figure."""
    best = outcome.best
    ncols = 2 if best.history else 1
    fig, axes = plt.subplots(1, ncols, figsize=(6 * ncols, 4), squeeze=False)

    totals = [r.score.total for r in outcome.results]
    ax = axes[0, 0]
    ax.hist(totals, bins=range(0, max(totals) + 2), color="#ffad33", ec="black")
    ax.set_xlabel("Final penalty (lower is better)")
    ax.set_ylabel("Trials")
    ax.set_title(f"{len(totals)} trials | {outcome.perfect_rate:.1f}% perfect")
    ax.grid(True, alpha=0.3)

    if best.history:
        ax = axes[0, 1]
        ax.plot(range(len(best.history)), best.history, color="blue", linewidth=1)
        ax.set_xlabel("Iteration")
        ax.set_ylabel("Current penalty")
        ax.set_title(f"Best trial #{best.trial} | final {best.score.total}")
        ax.grid(True, alpha=0.3)

    fig.tight_layout()
    if path is None:
        plt.show()
    else:
        fig.savefig(path)
    plt.close(fig)


# --------------------------------------------------------------------------- #
#  CLI
# --------------------------------------------------------------------------- #
def build_parser() -> argparse.ArgumentParser:
    d = AnnealConfig()
    p = argparse.ArgumentParser(description="Annealing solver for a 5x5 magic square with fixed cells")
    p.add_argument("--puzzle", type=Path, help="puzzle file, one column per line (0 = free)")
    p.add_argument("--target", type=int, default=d.target_sum, help="line sum to reach")
    p.add_argument("--row-col-weight", type=int, default=d.row_col_weight)
    p.add_argument("--diag-weight", type=int, default=d.diag_weight)
    p.add_argument("--iters", type=int, default=d.max_iterations, help="proposals per trial")
    p.add_argument("--exp-factor", type=float, default=d.exp_factor, help="cooling rate")
    p.add_argument("--trials", type=int, default=d.trial_count, help="number of independent trials")
    p.add_argument("--workers", type=int, default=None, help="worker processes (default: all cores)")
    p.add_argument("--seed", type=int, default=None, help="master seed")
    p.add_argument("--top", type=int, default=1, help="how many best results to print")
    p.add_argument("--csv", type=Path, help="write per-trial results to this CSV file")
    p.add_argument("--plot", nargs="?", const="", default=None, metavar="PNG",
                   help="plot results (to PNG if given, else on screen)")
    p.add_argument("--no-checks", action="store_true", help="skip board invariant checks")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p


def config_from_args(args: argparse.Namespace) -> AnnealConfig:
    return AnnealConfig(target_sum=args.target,
                        row_col_weight=args.row_col_weight,
                        diag_weight=args.diag_weight,
                        max_iterations=args.iters,
                        exp_factor=args.exp_factor,
                        trial_count=args.trials,
                        workers=args.workers,
                        seed=args.seed,
                        check_invariants=not args.no_checks,
                        record_history=args.plot is not None)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    try:
        cfg = config_from_args(args)
        puzzle = load_puzzle(args.puzzle) if args.puzzle else PuzzleSpec()
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    outcome = run_experiments(puzzle, cfg)
    print_report(outcome, top=max(1, args.top))

    if args.csv:
        outcome.to_frame().to_csv(args.csv, index=False)
        print(f"Per-trial results saved to '{args.csv}'")
    if args.plot is not None:
        plot_outcome(outcome, args.plot or None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
