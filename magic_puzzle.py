"""
Puzzle specification, boards and the penalty scorer for the 5×5
fixed-cell magic-square search.

Grids are indexed ``[column][row]``: ``board[c, r]`` is the cell in column
``c``, row ``r``.  A puzzle cell holding 0 is free, anything else is fixed.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

import numpy as np

ORDER = 5
N_CELLS = ORDER * ORDER
MAGIC_SUM = ORDER * (ORDER ** 2 + 1) // 2     # 65

Board = np.ndarray

DEFAULT_PUZZLE: Tuple[Tuple[int, ...], ...] = (
    (0, 16, 0, 0, 0),
    (0, 0, 5, 21, 0),
    (1, 0, 18, 0, 0),
    (0, 0, 0, 0, 0),
    (7, 3, 0, 0, 11),
)


# --------------------------------------------------------------------------- #
#  Errors
# --------------------------------------------------------------------------- #
class MagicSquareError(Exception):
    """Base class for everything raised by the solver."""


class ConfigurationError(MagicSquareError, ValueError):
    """Bad puzzle grid or bad search parameters; raised before any trial."""


class InternalInvariantViolation(MagicSquareError, AssertionError):
    """A board lost the permutation / fixed-cell invariant.  Always a bug."""


# --------------------------------------------------------------------------- #
#  Puzzle specification
# --------------------------------------------------------------------------- #
class PuzzleSpec:
    """Fixed-cell layout plus everything derived from it.

    ``free_values``           values 1..25 not used by a fixed cell, ascending
    ``free_slots_per_column`` number of free cells in each column
    ``free_rows``             free row indices of each column, top to bottom
    """

    def __init__(self, grid=DEFAULT_PUZZLE) -> None:
        try:
            fixed = np.array(grid, dtype=int)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"puzzle grid is not an integer grid: {exc}") from exc
        if fixed.shape != (ORDER, ORDER):
            raise ConfigurationError(f"puzzle grid must be {ORDER}x{ORDER}, got shape {fixed.shape}")
        if (fixed < 0).any() or (fixed > N_CELLS).any():
            bad = sorted(set(fixed[(fixed < 0) | (fixed > N_CELLS)].tolist()))
            raise ConfigurationError(f"fixed values must lie in 1..{N_CELLS}, got {bad}")

        values, counts = np.unique(fixed[fixed > 0], return_counts=True)
        dupes = values[counts > 1].tolist()
        if dupes:
            raise ConfigurationError(f"duplicate fixed values: {dupes}")

        fixed.setflags(write=False)
        self.fixed = fixed
        self.fixed_mask = fixed > 0
        self.fixed_mask.setflags(write=False)
        taken = set(values.tolist())
        self.free_values: Tuple[int, ...] = tuple(
            v for v in range(1, N_CELLS + 1) if v not in taken)
        self.free_slots_per_column: Tuple[int, ...] = tuple(
            int(ORDER - self.fixed_mask[c].sum()) for c in range(ORDER))
        self.free_rows: Tuple[Tuple[int, ...], ...] = tuple(
            tuple(r for r in range(ORDER) if not self.fixed_mask[c, r]) for c in range(ORDER))
        # columns the neighbour generator may draw from
        self.open_columns: Tuple[int, ...] = tuple(
            c for c in range(ORDER) if self.free_slots_per_column[c])

    @property
    def free_cell_count(self) -> int:
        return len(self.free_values)

    def __repr__(self) -> str:
        return f"PuzzleSpec({self.fixed.tolist()!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, PuzzleSpec) and np.array_equal(self.fixed, other.fixed)

    def __hash__(self) -> int:
        return hash(self.fixed.tobytes())

    # ---------- Boards ---------------------------------------------------- #
    def random_board(self, rng: random.Random | None = None) -> Board:
        """Fill every free cell from a uniform shuffle of ``free_values``.

        Cells are filled column by column, top to bottom, popping values off
        the end of the shuffled sequence.
        """
        rng = rng or random.Random()
        pool: List[int] = list(self.free_values)
        rng.shuffle(pool)                           # Fisher-Yates
        board = self.fixed.copy()
        for c in range(ORDER):
            for r in self.free_rows[c]:
                board[c, r] = pool.pop()
        board.setflags(write=False)
        return board

    def check_board(self, board: Board) -> None:
        """Raise :class:`InternalInvariantViolation` unless ``board`` is a
        permutation of 1..25 that agrees with every fixed cell."""
        if board.shape != (ORDER, ORDER):
            raise InternalInvariantViolation(f"board has shape {board.shape}")
        values, counts = np.unique(board, return_counts=True)
        if (counts > 1).any():
            raise InternalInvariantViolation(
                f"duplicate values on board: {values[counts > 1].tolist()}")
        if values.tolist() != list(range(1, N_CELLS + 1)):
            raise InternalInvariantViolation(f"board values are not 1..{N_CELLS}: {values.tolist()}")
        moved = self.fixed_mask & (board != self.fixed)
        if moved.any():
            cells = [tuple(int(i) for i in p) for p in np.argwhere(moved)]
            raise InternalInvariantViolation(f"fixed cells changed at {cells}")


def load_puzzle(path: str | Path) -> PuzzleSpec:
    """Read a puzzle file: one column per line, five integers each,
    separated by commas or whitespace.  Lines starting with ``#`` are ignored."""
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigurationError(f"cannot read puzzle file {path}: {exc}") from exc
    lines = [ln.replace(",", " ") for ln in text.splitlines()]
    try:
        grid = np.loadtxt(lines, dtype=int, ndmin=2)
    except ValueError as exc:
        raise ConfigurationError(f"malformed puzzle file {path}: {exc}") from exc
    return PuzzleSpec(grid)


def swap_cells(board: Board, c1: int, r1: int, c2: int, r2: int) -> Board:
    """Return a new read-only board with cells (c1, r1) and (c2, r2) exchanged."""
    out = board.copy()
    out[c1, r1], out[c2, r2] = board[c2, r2], board[c1, r1]
    out.setflags(write=False)
    return out


# --------------------------------------------------------------------------- #
#  Scoring
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class Score:
    col_penalty: int
    row_penalty: int
    diag_down_penalty: int
    diag_up_penalty: int
    total: int

    @property
    def is_perfect(self) -> bool:
        return self.total == 0


@dataclass(frozen=True)
class Scorer:
    target_sum: int = MAGIC_SUM
    row_col_weight: int = 1
    diag_weight: int = 1

    def score(self, board: Board) -> Score:
        """Lower is better; total 0 → every line sums to ``target_sum``.

        Components are stored already weighted, so ``total`` is their sum.
        """
        tgt = self.target_sum
        col = int(np.abs(board.sum(axis=1) - tgt).sum()) * self.row_col_weight
        row = int(np.abs(board.sum(axis=0) - tgt).sum()) * self.row_col_weight
        down = abs(int(board.trace()) - tgt) * self.diag_weight
        up = abs(int(np.flipud(board).trace()) - tgt) * self.diag_weight
        return Score(col, row, down, up, col + row + down + up)

    __call__ = score
