# backend/session_errors.py


class SessionError(Exception):
    """Base class for errors raised by the simulator session backend."""


class EngineNotRunning(SessionError):
    """A control command was issued while no engine process is held."""


class InvalidCommand(SessionError):
    """A control command outside N / R / E was requested."""


class ParseError(SessionError):
    """A line looks like a register snapshot but cannot be parsed as one."""


class SpawnFailure(SessionError):
    """The engine executable could not be started."""


class FileReadFailure(SessionError):
    """A memory dump file written by the engine is missing or unreadable."""
