class MorphEvoError(Exception):
    """Base for all morphevo exceptions."""

    pass


# High-level families
class MorphologyError(MorphEvoError):
    """Structural misuse of a morphology graph."""

    pass


class EvolutionError(MorphEvoError):
    """Evolution process failures."""

    pass


class StorageError(MorphEvoError):
    """Storage operation failures."""

    pass


class ConfigError(MorphEvoError):
    """Invalid configuration."""

    pass


# Evolution subtypes
class SelectionError(EvolutionError):
    """Ranking a generation failed (non-finite fitness values)."""

    pass


# Storage subtypes
class SessionFormatError(StorageError):
    """A persisted session, generation or creature file could not be parsed."""

    pass
