"""
Simulated-annealing trial for the fixed-cell 5×5 magic square.

One trial = one random initial board followed by ``max_iterations`` swap
proposals.  Improving candidates are always taken; non-improving ones are
taken with probability ``exp(-i * exp_factor / max_iterations)``, which
depends only on the iteration index and not on the size of the change.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from magic_puzzle import (
    MAGIC_SUM,
    Board,
    ConfigurationError,
    InternalInvariantViolation,
    PuzzleSpec,
    Score,
    Scorer,
    swap_cells,
)

log = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
#  Hyper-parameter bundle
# --------------------------------------------------------------------------- #
@dataclass
class AnnealConfig:
    target_sum: int = MAGIC_SUM
    row_col_weight: int = 1
    diag_weight: int = 1
    max_iterations: int = 2000          # proposals per trial
    exp_factor: float = 10.0            # cooling rate of the acceptance schedule
    trial_count: int = 4000
    workers: Optional[int] = None       # None → one per core, 1 → no pool
    seed: Optional[int] = None          # master seed for per-trial streams
    check_invariants: bool = True
    record_history: bool = False

    def __post_init__(self) -> None:
        if self.max_iterations < 0:
            raise ConfigurationError(f"max_iterations must be >= 0, got {self.max_iterations}")
        if self.trial_count < 1:
            raise ConfigurationError(f"trial_count must be >= 1, got {self.trial_count}")
        if self.exp_factor < 0:
            raise ConfigurationError(f"exp_factor must be >= 0, got {self.exp_factor}")
        if self.row_col_weight < 0 or self.diag_weight < 0:
            raise ConfigurationError("penalty weights must be non-negative")
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")

    def scorer(self) -> Scorer:
        return Scorer(self.target_sum, self.row_col_weight, self.diag_weight)


@dataclass(frozen=True, eq=False)
class Result:
    board: Board
    score: Score
    accepted_moves: int
    iterations: int
    trial: int = 0
    seed: Optional[int] = None
    history: Tuple[int, ...] = ()


@dataclass
class AnnealState:
    board: Board
    score: Score
    accepted_moves: int = 0
    iterations: int = 0
    history: List[int] = field(default_factory=list)

    def accept(self, board: Board, score: Score) -> None:
        self.board = board
        self.score = score
        self.accepted_moves += 1


# --------------------------------------------------------------------------- #
#  Neighbour generation
# --------------------------------------------------------------------------- #
def random_free_row(puzzle: PuzzleSpec, column: int, rng: random.Random) -> int:
    """Uniformly pick a free row of ``column``.

    Draws a free-slot ordinal and walks the column top to bottom, bumping the
    ordinal past every fixed cell, until the row index catches up with it.
    """
    k = rng.randrange(puzzle.free_slots_per_column[column])
    for row, cell in enumerate(puzzle.fixed[column]):
        if cell > 0:
            k += 1
        if row == k:
            return row
    raise InternalInvariantViolation(f"no free row for ordinal in column {column}")


def propose_swap(board: Board, puzzle: PuzzleSpec, rng: random.Random,
                 check: bool = True) -> Board:
    """Swap two random free cells (possibly the same one) into a new board."""
    cols = puzzle.open_columns
    if not cols:
        return board
    c1 = cols[rng.randrange(len(cols))]
    r1 = random_free_row(puzzle, c1, rng)
    c2 = cols[rng.randrange(len(cols))]
    r2 = random_free_row(puzzle, c2, rng)

    new_board = swap_cells(board, c1, r1, c2, r2)
    if check:
        puzzle.check_board(new_board)
    return new_board


# --------------------------------------------------------------------------- #
#  Annealing loop
# --------------------------------------------------------------------------- #
def acceptance_probability(i: int, max_iterations: int, exp_factor: float) -> float:
    """Chance of taking a non-improving move at iteration ``i``."""
    return math.exp(-i * (exp_factor / max_iterations))


def anneal(board: Board, puzzle: PuzzleSpec, cfg: AnnealConfig,
           rng: random.Random, scorer: Scorer | None = None) -> Result:
    """Run exactly ``cfg.max_iterations`` proposals starting from ``board``.

    The current board is also the reported one: there is no separate
    best-so-far, and no early exit on a zero-penalty board.
    """
    scorer = scorer or cfg.scorer()
    state = AnnealState(board, scorer(board))

    for i in range(cfg.max_iterations):
        candidate = propose_swap(state.board, puzzle, rng, check=cfg.check_invariants)
        cand_score = scorer(candidate)
        state.iterations += 1

        if cand_score.total < state.score.total:
            state.accept(candidate, cand_score)
        elif rng.random() < acceptance_probability(i, cfg.max_iterations, cfg.exp_factor):
            state.accept(candidate, cand_score)

        if cfg.record_history:
            state.history.append(state.score.total)

    return Result(state.board, state.score, state.accepted_moves, state.iterations,
                  history=tuple(state.history))


def run_trial(puzzle: PuzzleSpec, cfg: AnnealConfig, trial: int, seed: int) -> Result:
    """One independent trial with its own random stream.  Module-level so
    worker processes can pickle it."""
    rng = random.Random(seed)
    board = puzzle.random_board(rng)
    if cfg.check_invariants:
        puzzle.check_board(board)
    result = anneal(board, puzzle, cfg, rng)
    log.debug("trial %d (seed %d): total=%d accepted=%d",
              trial, seed, result.score.total, result.accepted_moves)
    return replace(result, trial=trial, seed=seed)
