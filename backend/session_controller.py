# backend/session_controller.py
import logging
import threading
import time

from backend.engine_consts import (
    CMD_STEP, CMD_RUN, CMD_EXIT, STEP_REFRESH_DELAY, RUN_POLL_INTERVAL,
    NOT_RUNNING_MESSAGE, NUM_REGISTERS, WORKDIR, default_registers
)
from backend.engine_process import EngineProcessManager
from backend.memory_reader import read_memory_snapshot
from backend.output_classifier import looks_structured
from backend.session_errors import EngineNotRunning, InvalidCommand
from backend.session_state import SessionStateStore, STATE_RUNNING

logger = logging.getLogger(__name__)

VALID_COMMANDS = (CMD_STEP, CMD_RUN, CMD_EXIT)


# --- Refresh strategies ---
# After a control command the controller re-reads the engine's memory dumps.
# A step is answered almost immediately, a run may take a long time.

class DelayedRefresh:
    """Refreshes once, a fixed short delay after the command was sent (STEP, EXIT)."""
    def __init__(self, delay=STEP_REFRESH_DELAY):
        self.delay = delay

    def schedule(self, controller, generation):
        timer = threading.Timer(self.delay, controller.refresh, kwargs={"generation": generation})
        timer.daemon = True
        timer.start()
        return timer


class PollUntilComplete:
    """
    Polls the completion flag at a fixed interval on a background thread (RUN).
    Once the engine has exited, clears the suppress flag, publishes the final
    register snapshot and refreshes exactly once. Gives up silently if the
    session is replaced by a new submission meanwhile.
    """
    def __init__(self, interval=RUN_POLL_INTERVAL):
        self.interval = interval

    def schedule(self, controller, generation):
        thread = threading.Thread(
            target=self._poll,
            args=(controller, generation),
            name=f"run-poll-{generation}",
            daemon=True,
        )
        thread.start()
        return thread

    def _poll(self, controller, generation):
        while True:
            time.sleep(self.interval)
            state = controller.store.read()
            if state["generation"] != generation:
                logger.debug(f"Run poll for generation {generation} abandoned, session replaced")
                return
            if state["complete"]:
                logger.info("Run finished, publishing final state")
                controller.store.finish_run(generation)
                controller.refresh(generation=generation)
                return


class SessionController:
    """
    Operations behind the HTTP API: submit a program, drive the engine with
    step / run / exit, and query the state collected from it.
    """
    def __init__(self, store=None, engine=None, workdir=None, engine_command=None,
                 step_refresh=None, run_refresh=None):
        self.store = store or SessionStateStore()
        self.workdir = workdir or WORKDIR
        self.engine = engine or EngineProcessManager(self.store, engine_command=engine_command,
                                                     workdir=self.workdir)
        self.step_refresh = step_refresh or DelayedRefresh()
        self.run_refresh = run_refresh or PollUntilComplete()

    # --- Commands ---

    def submit(self, code):
        """(Re)starts the engine on the given program. Does not wait for it to finish."""
        logger.info(f"Received program submission ({len(code)} chars)")
        # Fresh session: logs cleared, suppress off, registers zeroed
        generation = self.engine.start(code)
        self.refresh(generation=generation)

    def control(self, command):
        """Forwards N / R / E to the engine and schedules the matching refresh."""
        if command not in VALID_COMMANDS:
            logger.error(f"Invalid command received: {command!r}")
            raise InvalidCommand("Invalid command")

        state = self.store.read()
        if state["state"] != STATE_RUNNING:
            logger.error("Control command rejected, simulator is not running")
            raise EngineNotRunning(NOT_RUNNING_MESSAGE)
        generation = state["generation"]

        if command == CMD_RUN:
            # Snapshots printed during the run are held back until it completes
            self.store.set_suppress(True, generation)

        try:
            self.engine.send(command)
        except EngineNotRunning:
            if command == CMD_RUN:
                self.store.finish_run(generation)
            raise EngineNotRunning(NOT_RUNNING_MESSAGE)

        strategy = self.run_refresh if command == CMD_RUN else self.step_refresh
        strategy.schedule(self, generation)
        logger.debug(f"Command {command} sent, refresh scheduled via {type(strategy).__name__}")

    def refresh(self, generation=None):
        """Re-reads the memory dumps into the session (dropped if the session moved on)."""
        memory = read_memory_snapshot(self.workdir)
        if not self.store.set_memory(memory, generation):
            logger.debug(f"Skipped memory refresh for stale generation {generation}")

    def shutdown(self):
        self.engine.terminate()

    # --- Queries ---

    def query_registers(self):
        registers = self.store.read()["registers"]
        if len(registers) != NUM_REGISTERS:
            logger.warning("Register values are empty, sending default values")
            return default_registers()
        return registers

    def query_memory(self):
        return self.store.read()["memory"]

    def query_logs(self):
        # Snapshot lines never reach the buffer through classify(); filtered again regardless
        return [line for line in self.store.read()["logs"] if not looks_structured(line)]

    def query_execution_status(self):
        return self.store.read()["complete"]

    def query_status(self):
        """Completion flag plus the explicit execution state and the engine's exit code."""
        state = self.store.read()
        return {
            "executionComplete": state["complete"],
            "state": state["state"],
            "exitCode": state["exit_code"],
        }
