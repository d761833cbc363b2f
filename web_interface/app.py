"""
Flask web interface for the code generation bridge.

This provides a REST API for generating code from serialized workspaces.
The code generator manager is resumed when the app is created and paused
when the process exits.
"""

import atexit
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from codegen_bridge.config import BridgeConfig, configure_logging, create_manager
from codegen_bridge.manager import CodeGeneratorManager
from web_interface.codegen_api import init_codegen


def create_app(config: Optional[BridgeConfig] = None,
               manager: Optional[CodeGeneratorManager] = None) -> Flask:
    """Build the Flask app around a (new or given) code generator manager."""
    config = config or BridgeConfig.from_env()
    manager = manager or create_manager(config)

    app = Flask(__name__)
    app.config['CODEGEN_CONFIG'] = config
    CORS(app)

    init_codegen(app, manager)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'success': True, 'active': manager.is_active})

    manager.on_resume()
    atexit.register(manager.on_pause)
    return app


if __name__ == '__main__':
    bridge_config = BridgeConfig.from_env()
    configure_logging(bridge_config.log_level)

    host = os.environ.get('CODEGEN_HOST', '127.0.0.1')
    port = int(os.environ.get('CODEGEN_PORT', '5002'))

    print("Starting Code Generation Bridge...")
    print(f"Access the API at: http://localhost:{port}/api/codegen/languages")

    # The reloader would start a second manager (and engine) in the parent process
    create_app(bridge_config).run(host=host, port=port, use_reloader=False)
