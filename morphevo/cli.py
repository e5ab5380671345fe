"""Command line entry point: ``morphevo train`` and ``morphevo play``."""

from __future__ import annotations

import argparse
import math
from pathlib import Path
import sys

import numpy as np
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from tqdm import tqdm

from morphevo.controller import JointController
from morphevo.evolution.config import TestingConfig, TrainConfig, default_data_dir
from morphevo.evolution.engine import EvolutionEngine
from morphevo.evolution.fitness import FITNESS_EVALUATORS
from morphevo.evolution.population import GenerationPopulator
from morphevo.evolution.session import SessionStore
from morphevo.evolution.state import TrainingEventKind
from morphevo.exceptions import ConfigError, MorphEvoError, StorageError
from morphevo.morphology.graph import MorphologyGraph
from morphevo.simulation import HeadlessSimulator
from morphevo.utils.logger_setup import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="morphevo", description="Evolve virtual creatures and replay the results"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    train = sub.add_parser("train", help="Run or resume a training session")
    train.add_argument("session", type=str, help="Session name")
    train.add_argument("--visual", action="store_true", help="Request rendering (external)")
    train.add_argument("--silent", action="store_true", help="Only log warnings and errors")
    train.add_argument("--test-time", type=int, default=180, help="Scored steps per creature (default: 180)")
    train.add_argument("--population", type=int, default=250, help="Creatures per generation (default: 250)")
    train.add_argument("--elitism", type=float, default=0.25, help="Share retained (default: 0.25)")
    train.add_argument("--rand-percent", type=float, default=0.03, help="Share spawned fresh (default: 0.03)")
    train.add_argument("--max-mutations", type=int, default=20, help="Most mutation passes per offspring (default: 20)")
    train.add_argument(
        "--fitness",
        type=str,
        default="jump",
        choices=sorted(FITNESS_EVALUATORS),
        help="Fitness function (default: jump)",
    )
    train.add_argument("--seed", type=int, default=None, help="Seed for the random generator")
    train.add_argument("--data-dir", type=Path, default=None, help="Training data root")
    train.add_argument("--generations", type=int, default=None, help="Stop after N generations")

    play = sub.add_parser("play", help="Replay creatures of a session")
    play.add_argument("session", type=str, help="Session name")
    which = play.add_mutually_exclusive_group()
    which.add_argument("-c", "--creature", type=int, default=None, help="Replay creature ID")
    which.add_argument("-g", "--generation", action="store_true", help="Replay the last generation")
    which.add_argument("-b", "--best", action="store_true", help="Replay the best creature (default)")
    play.add_argument("--auto-cycle", type=float, default=10.0, help="Seconds per creature (default: 10)")
    play.add_argument("--visual", action="store_true", help="Request rendering (external)")
    play.add_argument("--data-dir", type=Path, default=None, help="Training data root")
    return parser


def train(args: argparse.Namespace) -> int:
    try:
        config = TrainConfig(
            session=args.session,
            data_dir=args.data_dir or default_data_dir(),
            test_time=args.test_time,
            population=args.population,
            elitism=args.elitism,
            rand_percent=args.rand_percent,
            max_mutations=args.max_mutations,
            fitness=args.fitness,
            seed=args.seed,
            generations=args.generations,
            visual=args.visual,
            silent=args.silent,
        )
        populator = GenerationPopulator(config.populator())
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid training options: {e}") from e

    store = SessionStore(config.data_dir, config.session)
    store.ensure_dirs()
    setup_logger(
        log_dir=str(store.session_dir / "logs"),
        level="WARNING" if config.silent else "INFO",
        file_level="INFO",
    )
    if config.visual:
        logger.warning("[cli] Rendering is provided by an external viewer; training headless")

    engine = EvolutionEngine(
        simulator=HeadlessSimulator(),
        populator=populator,
        fitness=FITNESS_EVALUATORS[config.fitness],
        testing=config.testing(),
        store=store,
        rng=np.random.default_rng(config.seed),
        max_generations=config.generations,
    )

    bar: tqdm | None = None
    try:
        while not engine.finished:
            engine.step()
            for event in engine.drain_events():
                if event.kind is TrainingEventKind.STARTED_GENERATION:
                    bar = tqdm(
                        total=len(engine.population),
                        desc=f"generation {event.generation}",
                        unit="creature",
                        disable=config.silent,
                        leave=False,
                    )
                elif event.kind is TrainingEventKind.FINISHED_TESTING_CREATURE and bar is not None:
                    bar.update(1)
                    bar.set_postfix(fitness=f"{event.fitness:.3f}")
                elif event.kind is TrainingEventKind.WROTE_GENERATION and bar is not None:
                    bar.close()
                    bar = None
    except KeyboardInterrupt:
        logger.info("[cli] Interrupted; the last written generation is kept")
    finally:
        if bar is not None:
            bar.close()
    return 0


def play_creature(graph: MorphologyGraph, seconds: float, testing: TestingConfig | None = None) -> dict:
    """Simulate one creature headlessly and summarise its trajectory."""
    testing = testing or TestingConfig()
    simulator = HeadlessSimulator()
    build = graph.evaluate(graph.root_transform(), max_limbs=testing.max_limbs)
    build.align_to_ground(testing.ground_height)
    snapshot = simulator.spawn(build)
    controller = JointController(build, testing.max_force)

    start = snapshot.centroid()
    peak = snapshot.lowest_point()
    steps = max(1, math.ceil(round(seconds / simulator.config.dt, 9)))
    for _ in range(steps):
        snapshot = simulator.step(controller.outputs(snapshot))
        peak = max(peak, snapshot.lowest_point())
    end = snapshot.centroid()

    return {
        "creature": graph.creature,
        "limbs": len(build.limbs),
        "joints": len(build.joints),
        "steps": steps,
        "peak_clearance": peak,
        "horizontal_distance": float(math.hypot(end[0] - start[0], end[2] - start[2])),
    }


def play(args: argparse.Namespace) -> int:
    setup_logger(log_dir=str(Path(args.data_dir or default_data_dir()) / "logs"), level="INFO")
    store = SessionStore(args.data_dir or default_data_dir(), args.session)
    if not store.exists():
        raise StorageError(f"Session '{args.session}' does not exist in {store.session_dir.parent}")
    if args.visual:
        logger.warning("[cli] Rendering is provided by an external viewer; replaying headless")

    if args.creature is not None:
        graphs = [store.load_creature(args.creature)]
    elif args.generation:
        graphs = store.load_generation()
    else:
        best = store.best_creature_id()
        if best is None:
            raise StorageError(f"Session '{args.session}' has no tested generation yet")
        graphs = [store.load_creature(best)]

    for graph in graphs:
        summary = play_creature(graph, args.auto_cycle)
        logger.info(
            "[cli] Creature {} | limbs={}, joints={}, peak_clearance={:.3f}, distance={:.3f}",
            summary["creature"],
            summary["limbs"],
            summary["joints"],
            summary["peak_clearance"],
            summary["horizontal_distance"],
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "train":
            return train(args)
        return play(args)
    except MorphEvoError as e:
        logger.error("[cli] {}: {}", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
