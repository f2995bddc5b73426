# backend/tests/test_session_state.py
import threading

import pytest
from backend.engine_consts import default_registers
from backend.session_state import (
    SessionStateStore, normalize_registers, STATE_IDLE, STATE_RUNNING, STATE_COMPLETE
)


class DummyProcess:
    """Placeholder process handle; the store never calls into it."""
    pid = 4242


@pytest.fixture
def store():
    """Provides a new SessionStateStore for each test."""
    return SessionStateStore()

# --- Initial / fresh sessions ---

def test_initial_state_is_idle(store):
    state = store.read()
    assert state["state"] == STATE_IDLE
    assert state["complete"] is True, "No process held, so execution counts as complete"
    assert state["registers"] == default_registers()
    assert state["logs"] == []
    assert state["memory"] == {"data": [], "stack": [], "instructions": []}

def test_new_session_with_process_is_running(store):
    store.append_log("old line")
    generation = store.new_session(DummyProcess())
    state = store.read()
    assert generation == 1
    assert state["state"] == STATE_RUNNING
    assert state["complete"] is False
    assert state["logs"] == [], "Logs are cleared on a new session"
    assert state["suppress_updates"] is False

def test_new_session_without_process_is_complete(store):
    store.new_session()
    state = store.read()
    assert state["state"] == STATE_COMPLETE
    assert state["complete"] is True

# --- Logs ---

def test_log_buffer_keeps_newest_fifty(store):
    for i in range(1, 61):
        store.append_log(f"line {i}")
    logs = store.read()["logs"]
    assert len(logs) == 50
    assert logs[0] == "line 11"
    assert logs[-1] == "line 60"

def test_read_returns_detached_copy(store):
    store.append_log("a")
    state = store.read()
    state["logs"].append("b")
    state["registers"][0]["value"] = 99
    again = store.read()
    assert again["logs"] == ["a"]
    assert again["registers"][0]["value"] == 0

# --- Registers ---

def test_normalize_registers_always_32():
    registers = normalize_registers([{"id": 3, "value": 9}, {"id": 40, "value": 1}, {"id": 3, "value": 10}])
    assert len(registers) == 32
    assert registers[3] == {"id": 3, "value": 10}, "Last duplicate wins"
    assert all(r["value"] == 0 for r in registers if r["id"] != 3)

def test_last_snapshot_wins_wholesale(store):
    store.apply_registers([{"id": 1, "value": 7}, {"id": 2, "value": 8}])
    store.apply_registers([{"id": 0, "value": 5}])
    registers = store.read()["registers"]
    assert registers[0]["value"] == 5
    # Not a per-id merge: ids absent from the newest snapshot drop back to zero
    assert registers[1]["value"] == 0
    assert registers[2]["value"] == 0

def test_suppressed_snapshots_are_held_back(store):
    generation = store.new_session(DummyProcess())
    store.apply_registers([{"id": 1, "value": 1}], generation)
    store.set_suppress(True, generation)
    store.apply_registers([{"id": 1, "value": 2}], generation)
    store.apply_registers([{"id": 1, "value": 3}], generation)
    assert store.read()["registers"][1]["value"] == 1, "Intermediate run snapshots stay hidden"

    store.finish_run(generation)
    state = store.read()
    assert state["registers"][1]["value"] == 3
    assert state["suppress_updates"] is False

def test_mark_exited_publishes_final_snapshot(store):
    generation = store.new_session(DummyProcess())
    store.set_suppress(True, generation)
    store.apply_registers([{"id": 5, "value": 55}], generation)
    assert store.mark_exited(0, generation)
    state = store.read()
    assert state["complete"] is True
    assert state["state"] == STATE_COMPLETE
    assert state["exit_code"] == 0
    assert state["registers"][5]["value"] == 55
    assert store.current_process() is None

# --- Generations ---

def test_stale_generation_updates_are_dropped(store):
    old = store.new_session(DummyProcess())
    new = store.new_session(DummyProcess())
    assert not store.append_log("late output", old)
    assert not store.apply_registers([{"id": 1, "value": 1}], old)
    assert not store.mark_exited(-9, old)
    state = store.read()
    assert state["generation"] == new
    assert state["logs"] == []
    assert state["registers"] == default_registers()
    assert state["complete"] is False, "Old process exit must not complete the new session"

def test_concurrent_snapshots_never_mix(store):
    """Readers only ever see registers that all come from one snapshot."""
    stop = threading.Event()

    def writer():
        value = 0
        while not stop.is_set():
            value += 1
            store.apply_registers([{"id": i, "value": value} for i in range(32)])

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        for _ in range(2000):
            values = {r["value"] for r in store.read()["registers"]}
            assert len(values) == 1, f"Observed a mixed snapshot: {values}"
    finally:
        stop.set()
        thread.join()
