"""
Tests for the command line entry point.
"""

import pytest

from morphevo.cli import build_parser, main, play_creature
from morphevo.evolution.session import SessionStore


@pytest.fixture
def trained(tmp_path):
    code = main(
        [
            "train",
            "cli-session",
            "--population", "2",
            "--elitism", "0.5",
            "--rand-percent", "0.0",
            "--test-time", "2",
            "--generations", "1",
            "--seed", "3",
            "--data-dir", str(tmp_path),
            "--silent",
        ]
    )
    assert code == 0
    return tmp_path


class TestParser:
    """Tests for argument parsing."""

    def test_train_defaults(self):
        args = build_parser().parse_args(["train", "s"])

        assert args.command == "train"
        assert args.population == 250
        assert args.elitism == 0.25
        assert args.rand_percent == 0.03
        assert args.fitness == "jump"
        assert not args.visual and not args.silent

    def test_unknown_fitness(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["train", "s", "--fitness", "swim"])

    def test_play_selectors_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["play", "s", "-c", "3", "-b"])

    def test_play_options(self):
        args = build_parser().parse_args(["play", "s", "-g", "--auto-cycle", "2.5"])

        assert args.generation
        assert args.auto_cycle == 2.5
        assert args.creature is None


class TestMain:
    """Tests for running the subcommands."""

    def test_train_writes_session(self, trained):
        store = SessionStore(trained, "cli-session")

        data = store.read_session()
        assert data.current_generation == 0
        assert data.current_id == 2
        assert store.creature_path(0).exists()
        assert store.creature_path(1).exists()

    def test_invalid_shares_exit_with_error(self, tmp_path):
        code = main(
            [
                "train", "s",
                "--population", "4",
                "--elitism", "0.9",
                "--rand-percent", "0.9",
                "--data-dir", str(tmp_path),
            ]
        )
        assert code == 1
        assert not (tmp_path / "s").exists()

    def test_play_best(self, trained):
        assert main(["play", "cli-session", "-b", "--auto-cycle", "0.05", "--data-dir", str(trained)]) == 0

    def test_play_generation(self, trained):
        assert main(["play", "cli-session", "-g", "--auto-cycle", "0.05", "--data-dir", str(trained)]) == 0

    def test_play_unknown_creature(self, trained):
        assert main(["play", "cli-session", "-c", "99", "--data-dir", str(trained)]) == 1

    def test_play_missing_session(self, tmp_path):
        assert main(["play", "nothing-here", "--data-dir", str(tmp_path)]) == 1

    def test_play_creature_summary(self, arm_graph):
        summary = play_creature(arm_graph, seconds=0.1)

        assert summary["creature"] == 7
        assert summary["limbs"] == 5
        assert summary["joints"] == 4
        assert summary["steps"] == 6
