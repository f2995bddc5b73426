# backend/engine_process.py
import logging
import os
import subprocess
import threading

from backend.engine_consts import (
    ENGINE_COMMAND, WORKDIR, INPUT_FILE, DATA_FILE, STACK_FILE, INSTRUCTION_FILE
)
from backend.output_classifier import classify, RegisterSnapshot
from backend.session_errors import EngineNotRunning, SpawnFailure

logger = logging.getLogger(__name__)

EXIT_DRAIN_TIMEOUT = 2.0 # Seconds to wait for stdout EOF after the engine exits


class EngineProcessManager:
    """
    Owns the lifecycle of the external simulator engine.

    Every started process gets its own stdout pump, stderr pump and exit
    watcher thread. All three are bound to the session generation the process
    was started under, so output from a killed process can never leak into the
    session that replaced it.
    """
    def __init__(self, store, engine_command=None, workdir=None):
        self.store = store
        self.engine_command = list(engine_command or ENGINE_COMMAND)
        self.workdir = workdir or WORKDIR
        self._lifecycle_lock = threading.Lock() # Serializes start() / terminate()

    def _path(self, filename):
        return os.path.join(self.workdir, filename)

    def start(self, source_text):
        """
        Persists the program, replaces any running engine with a new one and
        attaches output consumers. Returns the new session generation.
        Raises SpawnFailure if the engine cannot start.
        """
        with self._lifecycle_lock:
            with open(self._path(INPUT_FILE), "w", encoding="utf-8") as f:
                f.write(source_text)
            logger.debug(f"Program saved to {INPUT_FILE} ({len(source_text)} chars)")

            self._kill(self.store.current_process())

            args = self.engine_command + [INPUT_FILE, DATA_FILE, STACK_FILE, INSTRUCTION_FILE]
            try:
                process = subprocess.Popen(
                    args,
                    cwd=self.workdir,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace", # A stray byte from the engine must not stop the pumps
                    bufsize=1, # Line buffered, commands reach the engine immediately
                )
            except OSError as e:
                # Fresh session without a process: complete, default registers
                self.store.new_session()
                logger.error(f"Failed to start engine {args}: {e}")
                raise SpawnFailure(f"Failed to start simulator '{args[0]}': {e}") from e

            generation = self.store.new_session(process)
            logger.info(f"Engine started (pid={process.pid}, generation={generation})")

            stdout_thread = self._spawn_thread(self._pump_stdout, "stdout", process, generation)
            stderr_thread = self._spawn_thread(self._pump_stderr, "stderr", process, generation)
            self._spawn_thread(self._watch_exit, "exit", process, generation, stdout_thread, stderr_thread)
            return generation

    def _spawn_thread(self, target, name, *args):
        thread = threading.Thread(
            target=target,
            args=args,
            name=f"engine-{name}-{args[1]}",
            daemon=True,
        )
        thread.start()
        return thread

    def send(self, command):
        """Writes one command line to the engine. Raises EngineNotRunning if there is none."""
        process = self.store.current_process()
        if process is None or process.stdin is None:
            raise EngineNotRunning("Simulator is not running")
        try:
            process.stdin.write(command + "\n")
            process.stdin.flush()
        except (BrokenPipeError, ValueError, OSError) as e:
            # The engine exited between the check and the write
            raise EngineNotRunning(f"Simulator input closed: {e}") from e
        logger.debug(f"Sent command to engine: {command}")

    def is_complete(self):
        return self.store.current_process() is None

    def terminate(self):
        """Best-effort kill of the current engine, if any."""
        with self._lifecycle_lock:
            self._kill(self.store.current_process())

    def _kill(self, process):
        if process is None or process.poll() is not None:
            return
        logger.info(f"Terminating engine process (pid={process.pid})")
        try:
            process.kill()
        except OSError as e:
            logger.warning(f"Could not kill engine process {process.pid}: {e}")

    # --- Consumer threads ---

    def _pump_stdout(self, process, generation):
        try:
            for raw in process.stdout:
                line = raw.rstrip("\r\n")
                if not line.strip():
                    continue
                result = classify(line)
                if isinstance(result, RegisterSnapshot):
                    applied = self.store.apply_registers(result.registers, generation)
                    logger.debug(f"Register snapshot ({len(result.registers)} entries) applied={applied}")
                else:
                    applied = self.store.append_log(result.text, generation)
                    logger.debug(f"Engine: {result.text}")
                if not applied:
                    # Session was replaced; the rest of this stream is stale
                    break
        except (OSError, ValueError) as e:
            # Pipe torn down by kill()
            logger.debug(f"Engine stdout closed (generation={generation}): {e}")

    def _pump_stderr(self, process, generation):
        try:
            for raw in process.stderr:
                line = raw.strip()
                if not line:
                    continue
                logger.error(f"Simulator error: {line}")
                if not self.store.append_log("[ERROR] " + line, generation):
                    break
        except (OSError, ValueError) as e:
            logger.debug(f"Engine stderr closed (generation={generation}): {e}")

    def _watch_exit(self, process, generation, stdout_thread, stderr_thread):
        exit_code = process.wait()
        # Let the final register snapshot land before completion becomes visible
        stdout_thread.join(timeout=EXIT_DRAIN_TIMEOUT)
        stderr_thread.join(timeout=EXIT_DRAIN_TIMEOUT)
        self._close_pipes(process, stdout_thread, stderr_thread)
        # A crash and a clean exit both complete the session; the code is kept for pollers
        if self.store.mark_exited(exit_code, generation):
            logger.info(f"Engine process exited with code {exit_code} (generation={generation})")
        else:
            logger.debug(f"Stale engine process exited with code {exit_code} (generation={generation})")

    def _close_pipes(self, process, stdout_thread, stderr_thread):
        # A pipe still held open by a lingering reader is left to that reader
        pipes = [process.stdin]
        if not stdout_thread.is_alive():
            pipes.append(process.stdout)
        if not stderr_thread.is_alive():
            pipes.append(process.stderr)
        for pipe in pipes:
            if pipe is None:
                continue
            try:
                pipe.close()
            except OSError as e:
                logger.debug(f"Error closing engine pipe (pid={process.pid}): {e}")
