# backend/tests/test_memory_reader.py
import logging
import os

import pytest
from backend.memory_reader import parse_memory_lines, read_memory_file, read_memory_snapshot
from backend.session_errors import FileReadFailure


def write(workdir, name, text):
    with open(os.path.join(workdir, name), "w") as f:
        f.write(text)


def test_parse_memory_lines_keeps_file_order():
    lines = ["0x10000004 0x00000002\n", "\n", "0x10000000   0x00000001\n", "0x10000008\n"]
    assert parse_memory_lines(lines) == [
        {"address": "0x10000004", "value": "0x00000002"},
        {"address": "0x10000000", "value": "0x00000001"},
        {"address": "0x10000008", "value": ""},
    ]

def test_read_memory_file_missing(workdir):
    with pytest.raises(FileReadFailure):
        read_memory_file(os.path.join(workdir, "nope.mc"))

def test_read_memory_snapshot_all_segments(workdir):
    write(workdir, "data.mc", "0x10000000 0x0000002a\n")
    write(workdir, "stack.mc", "0x7FFFFFF0 0x00000000\n0x7FFFFFF4 0x00000001\n")
    write(workdir, "instruction.mc", "0x00000000 0x00500093\n")
    snapshot = read_memory_snapshot(workdir)
    assert snapshot["data"] == [{"address": "0x10000000", "value": "0x0000002a"}]
    assert len(snapshot["stack"]) == 2
    assert snapshot["instructions"][0]["value"] == "0x00500093"

def test_missing_file_yields_empty_segment(workdir, caplog):
    write(workdir, "data.mc", "0x10000000 0x00000001\n")
    with caplog.at_level(logging.WARNING, logger="backend.memory_reader"):
        snapshot = read_memory_snapshot(workdir)
    assert snapshot["stack"] == []
    assert snapshot["instructions"] == []
    assert len(snapshot["data"]) == 1
    assert "stack.mc" in caplog.text
