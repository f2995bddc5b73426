# backend/session_state.py
import copy
import logging
import threading
from collections import deque

from backend.engine_consts import NUM_REGISTERS, LOG_CAPACITY, MEMORY_FILES, default_registers

logger = logging.getLogger(__name__)

# Execution states reported to pollers
STATE_IDLE = "idle"         # Nothing submitted yet
STATE_RUNNING = "running"   # An engine process is held
STATE_COMPLETE = "complete" # The engine exited (cleanly, by request, or crashed) or never started


def normalize_registers(registers):
    """
    Builds a full register file from a snapshot. Ids missing from the snapshot
    read as zero; nothing is carried over from any earlier snapshot.
    """
    values = [0] * NUM_REGISTERS
    for entry in registers:
        reg_id = entry["id"]
        if 0 <= reg_id < NUM_REGISTERS:
            values[reg_id] = entry["value"] # Duplicate ids: last one wins
        else:
            logger.debug(f"Ignoring out-of-range register id {reg_id} in snapshot")
    return [{"id": i, "value": v} for i, v in enumerate(values)]


def empty_memory():
    return {segment: [] for segment in MEMORY_FILES}


class Session:
    """
    All mutable state of one submission-to-exit lifecycle.
    Only ever touched while holding the owning store's lock.
    """
    def __init__(self, generation=0, process=None):
        self.generation = generation
        self.process = process # subprocess.Popen handle, or None
        self.complete = process is None
        self.exit_code = None
        self.registers = default_registers()
        self.pending_registers = None # Latest snapshot held back while suppressed
        self.suppress_updates = False
        self.memory = empty_memory()
        self.logs = deque(maxlen=LOG_CAPACITY)

    @property
    def state(self):
        if self.process is not None:
            return STATE_RUNNING
        if self.generation == 0:
            return STATE_IDLE
        return STATE_COMPLETE


class SessionStateStore:
    """
    Thread-safe holder of the single current Session.

    Both the engine output threads and the HTTP handlers go through read() and
    update(); a coarse lock makes every mutation atomic, so a reader never sees
    half of a register snapshot.

    Writers that belong to a particular engine process pass its generation;
    once a newer session has replaced theirs, their mutations are dropped.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._session = Session()

    # --- Core contract ---

    def read(self):
        """Returns a consistent, detached copy of the session state."""
        with self._lock:
            s = self._session
            return {
                "generation": s.generation,
                "state": s.state,
                "complete": s.complete,
                "exit_code": s.exit_code,
                "registers": copy.deepcopy(s.registers),
                "suppress_updates": s.suppress_updates,
                "memory": copy.deepcopy(s.memory),
                "logs": list(s.logs),
            }

    def update(self, mutator, generation=None):
        """
        Applies mutator(session) atomically. Returns False (and does nothing)
        if generation is given and no longer current.
        """
        with self._lock:
            if generation is not None and generation != self._session.generation:
                logger.debug(f"Discarding update from stale session generation {generation} "
                             f"(current={self._session.generation})")
                return False
            mutator(self._session)
            return True

    def new_session(self, process=None):
        """Replaces the current session with a fresh one. Returns the new generation."""
        with self._lock:
            generation = self._session.generation + 1
            self._session = Session(generation=generation, process=process)
        logger.info(f"Started session generation {generation} (process={'yes' if process else 'none'})")
        return generation

    def current_process(self):
        """Returns the engine process handle of the current session, or None."""
        with self._lock:
            return self._session.process

    # --- Mutations used by the process manager and the controller ---

    def append_log(self, line, generation=None):
        def mutate(session):
            session.logs.append(line) # deque(maxlen) evicts the oldest entry
        return self.update(mutate, generation)

    def apply_registers(self, registers, generation=None):
        """Replaces the register file wholesale, or parks the snapshot while suppressed."""
        normalized = normalize_registers(registers)

        def mutate(session):
            if session.suppress_updates:
                session.pending_registers = normalized
            else:
                session.registers = normalized
        return self.update(mutate, generation)

    def set_memory(self, memory, generation=None):
        def mutate(session):
            session.memory = memory
        return self.update(mutate, generation)

    def set_suppress(self, enabled, generation=None):
        def mutate(session):
            session.suppress_updates = enabled
        return self.update(mutate, generation)

    def finish_run(self, generation=None):
        """Clears the suppress flag and publishes the last snapshot seen during the run."""
        return self.update(_publish_pending, generation)

    def mark_exited(self, exit_code, generation):
        """Records engine exit: drops the handle, sets completion, publishes the final snapshot."""
        def mutate(session):
            session.process = None
            session.complete = True
            session.exit_code = exit_code
            _publish_pending(session)
        return self.update(mutate, generation)


def _publish_pending(session):
    if session.pending_registers is not None:
        session.registers = session.pending_registers
        session.pending_registers = None
    session.suppress_updates = False
