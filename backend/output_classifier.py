# backend/output_classifier.py
import json
import logging
from collections import namedtuple

from backend.session_errors import ParseError

logger = logging.getLogger(__name__)

# One classified line of engine stdout
RegisterSnapshot = namedtuple("RegisterSnapshot", ["registers"]) # registers: list of {"id", "value"}
LogLine = namedtuple("LogLine", ["text"])


def looks_structured(line):
    """True if the trimmed line is wrapped in braces (a JSON object candidate)."""
    stripped = line.strip()
    return stripped.startswith("{") and stripped.endswith("}")


def _as_int(value, field, index):
    # bool is an int subclass, but never a valid register id/value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"Register entry {index}: '{field}' must be an integer, got {value!r}")
    return value


def parse_register_snapshot(text):
    """
    Parses a structured engine line into a list of {"id", "value"} dicts.
    Returns None if the line is a valid JSON object without a 'registers' key.
    Raises ParseError for anything malformed.
    """
    try:
        payload = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in engine output: {e}") from e

    if not isinstance(payload, dict):
        raise ParseError(f"Expected a JSON object, got {type(payload).__name__}")
    if "registers" not in payload:
        return None

    entries = payload["registers"]
    if not isinstance(entries, list):
        raise ParseError("'registers' must be an array")

    registers = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or "id" not in entry or "value" not in entry:
            raise ParseError(f"Register entry {index} is not an {{id, value}} pair: {entry!r}")
        registers.append({
            "id": _as_int(entry["id"], "id", index),
            "value": _as_int(entry["value"], "value", index),
        })
    return registers


def classify(line):
    """
    Decides whether one line of engine output is a register snapshot or a log line.
    Malformed snapshot-looking lines are logged and kept as log lines.
    """
    if not looks_structured(line):
        return LogLine(line)

    try:
        registers = parse_register_snapshot(line)
    except ParseError as e:
        logger.warning(f"Could not parse structured engine line, keeping it as text: {e}")
        return LogLine(line)

    if registers is None:
        return LogLine(line)
    return RegisterSnapshot(registers)
