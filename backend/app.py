# backend/app.py
from flask import Flask, request, jsonify
from flask_cors import CORS
import logging

from backend.engine_consts import PORT, LOG_LEVEL, CORS_ORIGINS, NOT_RUNNING_MESSAGE
from backend.session_controller import SessionController
from backend.session_errors import EngineNotRunning, InvalidCommand, SpawnFailure

#logging.basicConfig(level=logging.DEBUG) # Use DEBUG for development
logger = logging.getLogger(__name__)


def create_app(controller=None):
    """Builds the Flask app around a session controller (a default one if not given)."""
    controller = controller or SessionController()

    app = Flask(__name__)
    app.config["SESSION_CONTROLLER"] = controller
    # The UI polls from its own dev server origin
    CORS(app, resources={r"/*": {"origins": CORS_ORIGINS}})

    @app.route('/')
    def index():
        return "Simulator Backend is running!"

    @app.route('/api/ping', methods=['GET'])
    def ping():
        logger.debug("Ping endpoint called")
        return jsonify({"message": "pong"})

    # --- Session lifecycle ---

    @app.route('/submit', methods=['POST'])
    def handle_submit():
        """Saves the submitted program and (re)starts the simulator on it."""
        data = request.get_json(silent=True)
        if not data or not isinstance(data.get('code'), str):
            return jsonify({"error": "Missing 'code' string in request."}), 400
        code = data['code']
        logger.debug(f"Received code submission: {code[:100]}...")
        try:
            controller.submit(code)
        except SpawnFailure as e:
            logger.error(f"Simulator could not be started: {e}")
            return jsonify({"error": str(e)}), 500
        except Exception as e:
            logger.error(f"Error during submission: {e}", exc_info=True)
            return jsonify({"error": f"Internal server error during submission: {e}"}), 500
        return jsonify({"message": "Code saved & Simulator started!"})

    @app.route('/control', methods=['POST'])
    def handle_control():
        """Sends N (step), R (run) or E (exit) to the running simulator."""
        data = request.get_json(silent=True) or {}
        command = data.get('command')
        logger.debug(f"Received execution command: {command}")
        try:
            controller.control(command)
        except InvalidCommand:
            return jsonify({"error": "Invalid command"}), 400
        except EngineNotRunning:
            return jsonify({"error": NOT_RUNNING_MESSAGE}), 400
        except Exception as e:
            logger.error(f"Error during control command {command}: {e}", exc_info=True)
            return jsonify({"error": f"Internal server error during control: {e}"}), 500
        return jsonify({"message": f"Sent command: {command}"})

    # --- State queries (polled by the UI) ---

    @app.route('/logs', methods=['GET'])
    def handle_logs():
        try:
            return jsonify({"logs": controller.query_logs()})
        except Exception as e:
            logger.error(f"Error getting simulator logs: {e}", exc_info=True)
            return jsonify({"error": f"Internal server error getting logs: {e}"}), 500

    @app.route('/registers', methods=['GET'])
    def handle_registers():
        try:
            return jsonify({"registers": controller.query_registers()})
        except Exception as e:
            logger.error(f"Error getting registers: {e}", exc_info=True)
            return jsonify({"error": f"Internal server error getting registers: {e}"}), 500

    @app.route('/memory', methods=['GET'])
    def handle_memory():
        try:
            return jsonify(controller.query_memory())
        except Exception as e:
            logger.error(f"Error getting memory: {e}", exc_info=True)
            return jsonify({"error": f"Internal server error getting memory: {e}"}), 500

    @app.route('/execution-status', methods=['GET'])
    def handle_execution_status():
        try:
            return jsonify(controller.query_status())
        except Exception as e:
            logger.error(f"Error getting execution status: {e}", exc_info=True)
            return jsonify({"error": f"Internal server error getting execution status: {e}"}), 500

    return app


app = create_app()


if __name__ == '__main__':
    # Run with `python -m backend.app` from the root directory,
    # or `flask --app backend.app run --port 5000`
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        app.run(debug=False, port=PORT, threaded=True)
    finally:
        app.config["SESSION_CONTROLLER"].shutdown()
