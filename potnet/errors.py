"""Exceptions raised while reading the pot configuration and its state."""

from __future__ import annotations


class PotError(Exception):
    """Base class for every error raised by this package."""


class IncompleteSystemConfError(PotError):
    """The system configuration lacks mandatory entries."""

    def __init__(self) -> None:
        super().__init__("System configuration incomplete")


class WhichError(PotError):
    """A command could not be located on the search path."""

    def __init__(self, command: str) -> None:
        super().__init__(f"Command {command} not found")
        self.command = command


class PathError(PotError):
    """A path has no parent directory."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Invalid Path {path} - no parent")
        self.path = path


class JlsError(PotError):
    """The jail listing command could not be run."""

    def __init__(self) -> None:
        super().__init__("jls failed")


class BridgeConfError(PotError):
    """A bridge configuration is incomplete or inconsistent."""

    def __init__(self) -> None:
        super().__init__("Invalid bridge configuration")