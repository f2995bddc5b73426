# backend/memory_reader.py
import logging
import os

from backend.engine_consts import MEMORY_FILES
from backend.session_errors import FileReadFailure

logger = logging.getLogger(__name__)


def parse_memory_lines(lines):
    """Turns 'address value' lines into [{"address", "value"}], skipping blank lines."""
    entries = []
    for line in lines:
        tokens = line.split()
        if not tokens:
            continue
        address = tokens[0]
        value = tokens[1] if len(tokens) > 1 else ""
        entries.append({"address": address, "value": value})
    return entries


def read_memory_file(path):
    """Reads one dump file. Raises FileReadFailure if it cannot be read."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return parse_memory_lines(f)
    except OSError as e:
        raise FileReadFailure(f"Cannot read memory file {path}: {e}") from e


def read_memory_snapshot(workdir):
    """
    Reads the data, stack and instruction dumps from workdir.
    A missing file yields an empty segment rather than an error.
    """
    snapshot = {}
    for segment, filename in MEMORY_FILES.items():
        path = os.path.join(workdir, filename)
        try:
            snapshot[segment] = read_memory_file(path)
            logger.debug(f"Loaded {filename}: {len(snapshot[segment])} entries")
        except FileReadFailure as e:
            logger.warning(f"{e}; serving an empty '{segment}' segment")
            snapshot[segment] = []
    return snapshot
