"""On-disk layout of a training session.

::

    <data_dir>/<session>/
        session.dat          session counters
        last-gen.dat         roster of the most recently tested generation
        creatures/id-<N>.json

Files are plain text and rewritten in place at generation boundaries; a
process killed mid-write can leave them inconsistent.
"""

from __future__ import annotations

from pathlib import Path
import re

from loguru import logger
from pydantic import BaseModel

from morphevo.evolution.population import FITNESS_SENTINEL, Member, PopulateFlag, Population
from morphevo.exceptions import SessionFormatError, StorageError
from morphevo.morphology.graph import CreatureID, MorphologyGraph
from morphevo.morphology.serialization import CREATURE_EXTENSION, read_creature, write_creature

SESSION_FILE = "session.dat"
GENERATION_FILE = "last-gen.dat"
CREATURES_DIR = "creatures"

_SESSION_HEADER = "--- Session data file ---"
_SESSION_FIELD = re.compile(r"^(\w+) = \[(.*)\]$")
_GENERATION_HEADER = re.compile(r"^--- Generation (-?\d+) ---$")
_ROSTER_LINE = re.compile(r"^id: \[(\d+)\]  fitness: \[([^\]]*)\]  flags: \[(\w+)\]$")


class SessionData(BaseModel):
    name: str
    current_generation: int = -1
    current_id: int = -1
    best_fitness: float = FITNESS_SENTINEL
    best_creature: CreatureID = 0

    @property
    def is_fresh(self) -> bool:
        return self.current_generation < 0


class RosterEntry(BaseModel):
    creature: CreatureID
    fitness: float
    flag: PopulateFlag


class SessionStore:
    """Reads and writes one named session under a data directory."""

    def __init__(self, data_dir: Path | str, session: str):
        self.session = session
        self.session_dir = Path(data_dir) / session
        self.creatures_dir = self.session_dir / CREATURES_DIR
        self.session_file = self.session_dir / SESSION_FILE
        self.generation_file = self.session_dir / GENERATION_FILE

    def ensure_dirs(self) -> None:
        try:
            self.creatures_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Unable to create session directory {self.session_dir}: {e}") from e

    def exists(self) -> bool:
        return self.session_file.exists()

    def creature_path(self, creature: CreatureID) -> Path:
        return self.creatures_dir / f"id-{creature}.{CREATURE_EXTENSION}"

    # ------------------------------------------------------------------ write
    def initialize(self) -> None:
        """Create the directories and a fresh session file if none exists yet."""
        self.ensure_dirs()
        if not self.exists():
            logger.info("[SessionStore] Creating session '{}' in {}", self.session, self.session_dir)
            self._write_session(SessionData(name=self.session))

    def write_generation(self, population: Population) -> int:
        """Persist every new creature, the roster and the session counters.

        Returns:
            Number of creature records written.
        """
        self.ensure_dirs()
        written = 0
        for member in population.members:
            path = self.creature_path(member.creature)
            if not path.exists():
                write_creature(path, member.graph)
                written += 1

        lines = [f"--- Generation {population.generation} ---", ""]
        for member in population.members:
            fitness = FITNESS_SENTINEL if member.fitness is None else member.fitness
            lines.append(
                f"id: [{member.creature}]  fitness: [{fitness}]  flags: [{member.flag.value}]"
            )
        self.generation_file.write_text("\n".join(lines) + "\n", encoding="utf-8")

        self._write_session(
            SessionData(
                name=self.session,
                current_generation=population.generation,
                current_id=population.current_id,
                best_fitness=population.best_fitness,
                best_creature=population.best_creature,
            )
        )
        logger.debug(
            "[SessionStore] Wrote generation {} ({} new creature record(s))",
            population.generation,
            written,
        )
        return written

    def _write_session(self, data: SessionData) -> None:
        text = (
            f"{_SESSION_HEADER}\n\n"
            f"name = [{data.name}]\n"
            f"current_generation = [{data.current_generation}]\n"
            f"current_id = [{data.current_id}]\n"
            f"best_fitness = [{float(data.best_fitness)}]\n"
            f"best_creature = [{data.best_creature}]"
        )
        self.session_file.write_text(text, encoding="utf-8")

    # ------------------------------------------------------------------ read
    def read_session(self) -> SessionData | None:
        if not self.exists():
            return None
        text = self.session_file.read_text(encoding="utf-8")
        lines = text.splitlines()
        if not lines or lines[0].strip() != _SESSION_HEADER:
            raise SessionFormatError(f"{self.session_file}: missing session header")

        fields: dict[str, str] = {}
        for line in lines[1:]:
            line = line.strip()
            if not line:
                continue
            match = _SESSION_FIELD.match(line)
            if match is None:
                raise SessionFormatError(f"{self.session_file}: unparseable line '{line}'")
            fields[match.group(1)] = match.group(2)

        try:
            return SessionData(
                name=fields["name"],
                current_generation=int(fields["current_generation"]),
                current_id=int(fields["current_id"]),
                best_fitness=float(fields["best_fitness"]),
                best_creature=int(fields["best_creature"]),
            )
        except (KeyError, ValueError) as e:
            raise SessionFormatError(f"{self.session_file}: invalid session data ({e})") from e

    def read_roster(self) -> tuple[int, list[RosterEntry]]:
        """Parse ``last-gen.dat`` into its generation number and entries."""
        if not self.generation_file.exists():
            raise SessionFormatError(f"{self.generation_file} does not exist")
        lines = self.generation_file.read_text(encoding="utf-8").splitlines()
        if not lines:
            raise SessionFormatError(f"{self.generation_file} is empty")
        header = _GENERATION_HEADER.match(lines[0].strip())
        if header is None:
            raise SessionFormatError(f"{self.generation_file}: missing generation header")

        entries: list[RosterEntry] = []
        for line in lines[1:]:
            if not line.strip():
                continue
            match = _ROSTER_LINE.match(line.rstrip())
            if match is None:
                raise SessionFormatError(f"{self.generation_file}: unparseable line '{line}'")
            try:
                entries.append(
                    RosterEntry(
                        creature=int(match.group(1)),
                        fitness=float(match.group(2)),
                        flag=PopulateFlag(match.group(3)),
                    )
                )
            except ValueError as e:
                raise SessionFormatError(f"{self.generation_file}: {e}") from e
        return int(header.group(1)), entries

    def load_creature(self, creature: CreatureID) -> MorphologyGraph:
        path = self.creature_path(creature)
        if not path.exists():
            raise SessionFormatError(f"Creature record {path} does not exist")
        return read_creature(path)

    def load_generation(self) -> list[MorphologyGraph]:
        _, entries = self.read_roster()
        return [self.load_creature(entry.creature) for entry in entries]

    def best_creature_id(self) -> CreatureID | None:
        data = self.read_session()
        if data is None or data.is_fresh:
            return None
        return data.best_creature

    def load(self) -> Population | None:
        """Resume a session.

        Returns:
            The last written generation with its fitnesses and counters, or
            ``None`` when the session does not exist or has no tested
            generation yet.

        Raises:
            SessionFormatError: If any of the session files is malformed.
        """
        data = self.read_session()
        if data is None or data.is_fresh:
            return None

        generation, entries = self.read_roster()
        if generation != data.current_generation:
            logger.warning(
                "[SessionStore] {} lists generation {} but session says {}",
                GENERATION_FILE,
                generation,
                data.current_generation,
            )
        members = [
            Member(graph=self.load_creature(e.creature), flag=e.flag, fitness=e.fitness)
            for e in entries
        ]
        logger.info(
            "[SessionStore] Resumed session '{}' at generation {} ({} creatures, best={} @ {:.4f})",
            data.name,
            data.current_generation,
            len(members),
            data.best_creature,
            data.best_fitness,
        )
        return Population(
            members=members,
            generation=data.current_generation,
            current_id=data.current_id,
            best_fitness=data.best_fitness,
            best_creature=data.best_creature,
        )
