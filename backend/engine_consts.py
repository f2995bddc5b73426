# backend/engine_consts.py
import os
import shlex

# --- Engine invocation ---
# The engine is started as: <command...> <input> <data> <stack> <instruction>
# SIM_ENGINE_COMMAND may carry an interpreter prefix, e.g. "python3 fake_engine.py"
ENGINE_COMMAND = shlex.split(os.environ.get("SIM_ENGINE_COMMAND", "./simulator"))
WORKDIR = os.environ.get("SIM_WORKDIR", ".")

# Files shared with the engine (relative to WORKDIR)
INPUT_FILE = "input.mc"
DATA_FILE = "data.mc"
STACK_FILE = "stack.mc"
INSTRUCTION_FILE = "instruction.mc"

# Memory segment name (as served by /memory) -> file written by the engine
MEMORY_FILES = {
    "data": DATA_FILE,
    "stack": STACK_FILE,
    "instructions": INSTRUCTION_FILE,
}

# --- Session limits ---
NUM_REGISTERS = 32
LOG_CAPACITY = 50 # Trailing window of engine log lines kept per session

# --- Refresh timing (seconds) ---
STEP_REFRESH_DELAY = 0.5 # Engine output for a single step is synchronous and fast
RUN_POLL_INTERVAL = 0.5

# --- Control commands (single characters understood by the engine) ---
CMD_STEP = "N"
CMD_RUN = "R"
CMD_EXIT = "E"

# --- Server ---
PORT = int(os.environ.get("SIM_PORT", "5000"))
LOG_LEVEL = os.environ.get("SIM_LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = os.environ.get("SIM_CORS_ORIGINS", "*")

# Message returned by /control when no engine is held
NOT_RUNNING_MESSAGE = "Simulator is not running. Submit code first."


def default_registers():
    """Returns a fresh all-zero register file in the wire format."""
    return [{"id": i, "value": 0} for i in range(NUM_REGISTERS)]
