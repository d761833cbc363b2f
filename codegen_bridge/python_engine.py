"""
In-process script engine running Python generator scripts.

Generator scripts are executed in a single shared, restricted namespace
(limited builtins and a whitelist of importable modules). Each script
attaches its generator to the ``Blockly`` root object, e.g.::

    class LuaGenerator:
        def workspace_to_code(self, workspace_xml):
            ...

    Blockly.Lua = LuaGenerator()

Block definitions are JSON documents (a list of block objects or a single
object) stored by type in ``Blockly.Blocks``.
"""

import asyncio
import builtins
import json
import logging
from types import SimpleNamespace
from typing import Any, Dict, Optional

from .engine import EngineResult, ResourceKind, ScriptEngine
from .escaping import EscapingTier, parse_command
from .exceptions import CodeGenerationError, EngineStartError, LoadError


logger = logging.getLogger(__name__)

ALLOWED_MODULES = frozenset([
    'math', 're', 'json', 'string', 'textwrap', 'itertools', 'functools',
    'collections', 'operator', 'unicodedata', 'html', 'xml.etree.ElementTree',
    'xml.etree', 'xml',
])

RESTRICTED_BUILTINS = frozenset([
    'eval', 'exec', 'compile', 'open', 'input', 'breakpoint', 'globals',
    'locals', 'vars', 'exit', 'quit', 'help', 'memoryview',
])


class GeneratorSandbox:
    """Restricted namespace shared by every generator script of one engine."""

    def __init__(self):
        self.blockly = SimpleNamespace(Blocks={})
        self.namespace: Dict[str, Any] = {
            '__builtins__': self._build_builtins(),
            '__name__': 'codegen_sandbox',
            'Blockly': self.blockly,
        }

    def _build_builtins(self) -> Dict[str, Any]:
        safe = {
            name: value for name, value in vars(builtins).items()
            if name not in RESTRICTED_BUILTINS
        }
        safe['__import__'] = self._restricted_import
        return safe

    def _restricted_import(self, name, globals=None, locals=None, fromlist=(), level=0):
        if level != 0 or name not in ALLOWED_MODULES:
            raise ImportError(f"Module '{name}' is not allowed in the generator sandbox")
        return __import__(name, globals, locals, fromlist, level)

    def run_script(self, resource_id: str, source: str):
        code = compile(source, resource_id, 'exec')
        exec(code, self.namespace)

    def resolve(self, symbol: str) -> Any:
        """Resolve a dotted namespace symbol such as ``Blockly.Python``."""
        root, *path = symbol.split('.')
        if root not in self.namespace:
            raise NameError(f"{root} is not defined")
        target = self.namespace[root]
        for attribute in path:
            target = getattr(target, attribute)
        return target


class PythonScriptEngine(ScriptEngine):
    """Engine that evaluates generator scripts inside the Python process."""

    def __init__(self, legacy_commands: bool = False):
        super().__init__()
        self.supports_modern_commands = not legacy_commands
        self._tier = EscapingTier.for_host(self.supports_modern_commands)
        self._sandbox: Optional[GeneratorSandbox] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Dict[int, asyncio.Handle] = {}

    @property
    def sandbox(self) -> Optional[GeneratorSandbox]:
        return self._sandbox

    async def start(self) -> None:
        if self._sandbox is not None:
            raise EngineStartError("Python script engine already started")
        self._loop = asyncio.get_running_loop()
        self._sandbox = GeneratorSandbox()
        logger.debug(f"Python script engine started (tier={self._tier.value})")

    async def load_resource(self, kind: ResourceKind, resource_id: str, source: str) -> None:
        sandbox = self._require_sandbox()
        if kind is ResourceKind.BLOCK_DEFINITIONS:
            try:
                self._load_block_definitions(sandbox, source)
            except (ValueError, TypeError, KeyError) as e:
                raise LoadError(f"Invalid block definitions in {resource_id}: {e}", resource_id) from e
            return
        try:
            sandbox.run_script(resource_id, source)
        except Exception as e:
            raise LoadError(f"Generator script {resource_id} failed to load: {e}", resource_id) from e

    @staticmethod
    def _load_block_definitions(sandbox: GeneratorSandbox, source: str):
        definitions = json.loads(source)
        if isinstance(definitions, dict):
            definitions = [definitions]
        if not isinstance(definitions, list):
            raise ValueError("expected a JSON object or array")
        for definition in definitions:
            sandbox.blockly.Blocks[definition['type']] = definition

    async def submit(self, command_id: int, command: str) -> None:
        self._require_sandbox()
        # Results are always delivered on a later loop iteration
        handle = self._loop.call_soon(self._generate, command_id, command)
        self._pending[command_id] = handle

    def _generate(self, command_id: int, command: str):
        self._pending.pop(command_id, None)
        sandbox = self._sandbox
        if sandbox is None:
            return
        try:
            content, namespace = parse_command(command, self._tier)
            generator = sandbox.resolve(namespace)
            code = generator.workspace_to_code(content)
        except CodeGenerationError as e:
            self._emit(EngineResult(command_id, error=str(e)))
            return
        except Exception as e:
            logger.debug(f"Generator raised for command {command_id}", exc_info=True)
            self._emit(EngineResult(command_id, error=f"{type(e).__name__}: {e}"))
            return
        self._emit(EngineResult(command_id, code=str(code)))

    async def close(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        self._sandbox = None
        logger.debug("Python script engine closed")

    def _require_sandbox(self) -> GeneratorSandbox:
        if self._sandbox is None:
            raise EngineStartError("Python script engine is not running")
        return self._sandbox
