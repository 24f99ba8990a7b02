import random

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from magic_puzzle import DEFAULT_PUZZLE, PuzzleSpec


def siamese_square(n: int = 5) -> np.ndarray:
    """Odd-order magic square built with the Siamese method."""
    m = np.zeros((n, n), dtype=int)
    i, j = 0, n // 2
    for k in range(1, n * n + 1):
        m[i, j] = k
        i2, j2 = (i - 1) % n, (j + 1) % n
        if m[i2, j2]:
            i = (i + 1) % n
        else:
            i, j = i2, j2
    return m


@pytest.fixture
def puzzle():
    return PuzzleSpec(DEFAULT_PUZZLE)


@pytest.fixture
def open_puzzle():
    return PuzzleSpec(np.zeros((5, 5), dtype=int))


@pytest.fixture
def magic():
    board = siamese_square()
    board.setflags(write=False)
    return board


@pytest.fixture
def rng():
    return random.Random(1234)
