import numpy as np
import pandas as pd
import pytest

from magic_anneal import AnnealConfig, Result
from magic_experiment import (
    ExperimentOutcome,
    format_result,
    main,
    plot_outcome,
    print_report,
    run_experiments,
    trial_seeds,
)
from magic_puzzle import ConfigurationError, PuzzleSpec, Score


def quick(**kwargs):
    base = dict(max_iterations=200, trial_count=10, workers=1, seed=2024)
    base.update(kwargs)
    return AnnealConfig(**base)


def fake_outcome(magic, totals):
    results = []
    for i, t in enumerate(totals):
        s = Score(t, 0, 0, 0, t)
        results.append(Result(magic, s, accepted_moves=10 * i, iterations=100, trial=i, seed=i))
    return ExperimentOutcome(tuple(results), elapsed=1.5)


def test_single_trial(puzzle):
    outcome = run_experiments(puzzle, quick(), trial_count=1)
    assert len(outcome.results) == 1
    assert outcome.best is outcome.results[0]


def test_hundred_trials_sorted(puzzle):
    outcome = run_experiments(puzzle, quick(trial_count=100, max_iterations=100))
    totals = [r.score.total for r in outcome.results]
    assert len(totals) == 100
    assert totals == sorted(totals)
    assert outcome.results[0].score.total <= outcome.results[99].score.total
    assert sorted(r.trial for r in outcome.results) == list(range(100))


def test_every_result_keeps_fixed_cells(puzzle):
    outcome = run_experiments(puzzle, quick())
    for r in outcome.results:
        puzzle.check_board(r.board)
        assert r.iterations == 200


def test_worker_count_does_not_change_results(puzzle):
    serial = run_experiments(puzzle, quick(trial_count=8, max_iterations=100, workers=1))
    pooled = run_experiments(puzzle, quick(trial_count=8, max_iterations=100, workers=2))
    key = lambda o: [(r.trial, r.seed, r.score.total, r.accepted_moves, r.board.tolist()) for r in o.results]
    assert key(serial) == key(pooled)


def test_trial_seeds():
    assert trial_seeds(5, 4) == trial_seeds(5, 4)
    assert trial_seeds(5, 4) != trial_seeds(6, 4)
    assert len(set(trial_seeds(5, 50))) == 50


def test_bad_trial_count(puzzle):
    with pytest.raises(ConfigurationError):
        run_experiments(puzzle, quick(), trial_count=0)


def test_duplicate_fixed_value_stops_before_search():
    grid = np.zeros((5, 5), dtype=int)
    grid[0, 0] = grid[4, 4] = 7
    with pytest.raises(ConfigurationError):
        run_experiments(PuzzleSpec(grid), quick())


def test_perfect_statistics(magic):
    outcome = fake_outcome(magic, [0, 0, 4, 9])
    assert outcome.perfect_count == 2
    assert outcome.perfect_rate == 50.0


def test_frame_and_summary(magic):
    outcome = fake_outcome(magic, [0, 2, 4, 6])
    df = outcome.to_frame()
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ["trial", "seed", "total", "col_penalty", "row_penalty",
                                "diag_down_penalty", "diag_up_penalty", "accepted_moves"]
    assert len(df) == 4
    s = outcome.summary()
    assert s.Trials == 4
    assert s.Perfect == 1
    assert s.BestTotal == 0
    assert s.MeanTotal == 3.0
    assert s.MeanAccepted == 15.0


def test_format_result(magic):
    outcome = fake_outcome(magic, [3])
    text = format_result(outcome.best).splitlines()
    assert text[0] == "Solution with score: 3"
    assert text[5] == "Number of accepted changes: 0"
    assert text[6] == ",".join(str(v) for v in magic[0])
    assert len(text) == 12
    assert set(text[-1]) == {"*"}


def test_print_report(magic, capsys):
    print_report(fake_outcome(magic, [0, 1, 1, 5]), top=2)
    out = capsys.readouterr().out
    assert "Number of perfect results: 1 (25%)" in out
    assert out.count("Solution with score:") == 2
    assert "Time taken: 1.500s" in out


def test_plot_outcome_writes_file(puzzle, tmp_path):
    outcome = run_experiments(puzzle, quick(trial_count=4, record_history=True))
    assert len(outcome.best.history) == 200
    path = tmp_path / "penalties.png"
    plot_outcome(outcome, path)
    assert path.stat().st_size > 0


def test_cli_run_with_csv_and_plot(tmp_path, capsys):
    csv = tmp_path / "trials.csv"
    png = tmp_path / "plot.png"
    code = main(["--trials", "3", "--iters", "50", "--workers", "1", "--seed", "1",
                 "--csv", str(csv), "--plot", str(png)])
    assert code == 0
    assert len(pd.read_csv(csv)) == 3
    assert png.exists()
    assert "Best result:" in capsys.readouterr().out


def test_cli_reads_puzzle_file(tmp_path, capsys):
    path = tmp_path / "p.txt"
    path.write_text("0 0 0 0 0\n" * 4 + "1 2 3 4 5\n")
    assert main(["--puzzle", str(path), "--trials", "2", "--iters", "20", "--workers", "1"]) == 0
    assert "1,2,3,4,5" in capsys.readouterr().out


def test_cli_rejects_bad_puzzle(tmp_path, capsys):
    path = tmp_path / "dup.txt"
    path.write_text("7 0 0 0 0\n0 7 0 0 0\n" + "0 0 0 0 0\n" * 3)
    assert main(["--puzzle", str(path), "--trials", "1"]) == 2
    assert "duplicate" in capsys.readouterr().err


def test_cli_rejects_bad_config(capsys):
    assert main(["--iters", "-5"]) == 2
    assert "max_iterations" in capsys.readouterr().err
