"""
Code generation routes.

Routes:
    GET  /api/codegen/languages   registered target languages
    GET  /api/codegen/status      manager state and queue length
    POST /api/codegen/generate    generate code for a workspace

Call  init_codegen(app, manager)  from app.py to wire everything up.
"""
import logging
import threading

from flask import Blueprint, request, jsonify

from codegen_bridge.exceptions import LoadError, UnknownLanguageError
from codegen_bridge.language_definition import get_language, get_supported_languages
from codegen_bridge.request import CodeGenerationRequest

codegen_bp = Blueprint('codegen', __name__)
logger = logging.getLogger('codegen.web')

_manager = None

DEFAULT_WAIT_SECONDS = 60.0


def init_codegen(app, manager):
    """Register the blueprint and remember the manager serving its requests."""
    global _manager
    _manager = manager
    app.register_blueprint(codegen_bp)


class _PendingGeneration:
    """Collects the outcome of one request for a waiting HTTP handler."""

    def __init__(self):
        self.done = threading.Event()
        self.code = None
        self.error = None

    def on_code(self, code):
        self.code = code
        self.done.set()

    def on_error(self, error):
        self.error = error
        self.done.set()


def _string_list(data, key):
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f'{key} must be a list of strings')
    return value


@codegen_bp.route('/api/codegen/languages', methods=['GET'])
def list_languages():
    """List the languages code can be generated for."""
    languages = []
    for name in get_supported_languages():
        definition = get_language(name)
        languages.append({
            'name': definition.name,
            'generator_namespace': definition.generator_namespace,
            'required_scripts': list(definition.required_scripts),
        })
    return jsonify({'success': True, 'languages': languages})


@codegen_bp.route('/api/codegen/status', methods=['GET'])
def codegen_status():
    """Report whether the generator is running and how many requests wait."""
    if _manager is None:
        return jsonify({'success': False, 'error': 'Code generation not initialized'}), 500
    return jsonify({
        'success': True,
        'active': _manager.is_active,
        'pending': _manager.pending_count,
        'session_state': _manager.service.state.value,
    })


@codegen_bp.route('/api/codegen/generate', methods=['POST'])
def generate_code():
    """Generate code for a workspace.

    Body: { workspace, language, block_definitions?, generator_scripts?, timeout? }
    """
    if _manager is None:
        return jsonify({'success': False, 'error': 'Code generation not initialized'}), 500

    data = request.get_json(silent=True) or {}
    workspace = data.get('workspace')
    if not isinstance(workspace, str) or not workspace:
        return jsonify({'success': False, 'error': 'workspace required'}), 400

    try:
        language = get_language(str(data.get('language', '')))
        block_definitions = _string_list(data, 'block_definitions')
        generator_scripts = _string_list(data, 'generator_scripts')
        wait_seconds = float(data.get('timeout', DEFAULT_WAIT_SECONDS))
    except UnknownLanguageError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except (TypeError, ValueError) as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    pending = _PendingGeneration()
    _manager.request_code_generation(CodeGenerationRequest(
        workspace_content=workspace,
        language=language,
        block_definitions=block_definitions,
        generator_scripts=generator_scripts,
        callback=pending.on_code,
        error_callback=pending.on_error,
    ))

    if not pending.done.wait(wait_seconds):
        logger.warning(f"No {language.name} code generated within {wait_seconds}s")
        return jsonify({'success': False, 'error': 'Code generation timed out'}), 504

    if pending.error is not None:
        payload = {'success': False, 'error': str(pending.error)}
        if isinstance(pending.error, LoadError):
            payload['resource'] = pending.error.resource_id
        return jsonify(payload), 422

    return jsonify({'success': True, 'language': language.name, 'code': pending.code})
