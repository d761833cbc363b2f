"""
Script engine backed by a long-lived Node.js process.

The process runs ``assets/engine_host.js`` and speaks a JSON-lines protocol:

    → {"op": "load", "seq": 1, "kind": "generator", "id": "...", "source": "..."}
    ← {"type": "loaded", "seq": 1}            | {"type": "load_error", "seq": 1, "message": "..."}
    → {"op": "invoke", "command_id": 7, "command": "javascript:invoke(...);"}
    ← {"type": "result", "command_id": 7, "code": "..."}
                                               | {"type": "error", "command_id": 7, "message": "..."}

The host announces itself with ``{"type": "ready", "modern": true}``.
"""

import asyncio
import itertools
import json
import logging
import os
import shutil
from typing import Dict, Optional

from .engine import EngineResult, ResourceKind, ScriptEngine
from .exceptions import EngineError, EngineStartError, LoadError


logger = logging.getLogger(__name__)

DEFAULT_HOST_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'assets', 'engine_host.js')

# Generated code can be far larger than asyncio's default 64 KiB line limit
STREAM_LIMIT = 16 * 1024 * 1024


class NodeScriptEngine(ScriptEngine):
    """Runs generator scripts inside a sandboxed Node.js ``vm`` context."""

    def __init__(self, node_path: Optional[str] = None, host_script: Optional[str] = None,
                 legacy_commands: bool = False, startup_timeout: float = 10.0,
                 script_timeout: float = 30.0):
        super().__init__()
        self.node_path = node_path or shutil.which('node')
        self.host_script = host_script or DEFAULT_HOST_SCRIPT
        self.legacy_commands = legacy_commands
        self.startup_timeout = startup_timeout
        self.script_timeout = script_timeout

        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._loads: Dict[int, asyncio.Future] = {}
        self._commands: set = set()
        self._seq = itertools.count(1)
        self._closing = False

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        if self.is_running:
            raise EngineStartError("Node.js engine already started")
        if not self.node_path:
            raise EngineStartError("Node.js runtime not found on PATH; install Node.js to generate code")
        if not os.path.exists(self.host_script):
            raise EngineStartError(f"Engine host script not found: {self.host_script}")

        args = [self.host_script, f'--script-timeout={int(self.script_timeout * 1000)}']
        if self.legacy_commands:
            args.append('--legacy')

        loop = asyncio.get_running_loop()
        self._closing = False
        self._ready = loop.create_future()
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.node_path, *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise EngineStartError(f"Failed to start Node.js engine: {e}") from e

        self._reader_task = loop.create_task(self._read_messages())
        self._stderr_task = loop.create_task(self._read_stderr())

        try:
            modern = await asyncio.wait_for(self._ready, self.startup_timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise EngineStartError(
                f"Node.js engine did not become ready within {self.startup_timeout}s"
            ) from None
        except EngineError as e:
            await self.close()
            raise EngineStartError(str(e)) from e

        self.supports_modern_commands = bool(modern)
        logger.info(f"Node.js engine started (pid={self._process.pid}, modern={modern})")

    async def load_resource(self, kind: ResourceKind, resource_id: str, source: str) -> None:
        self._require_running()
        seq = next(self._seq)
        future = asyncio.get_running_loop().create_future()
        self._loads[seq] = future
        try:
            await self._send({
                'op': 'load',
                'seq': seq,
                'kind': kind.value,
                'id': resource_id,
                'source': source,
            })
            message = await future
        except EngineError as e:
            raise LoadError(f"Engine failed while loading {resource_id}: {e}", resource_id) from e
        finally:
            self._loads.pop(seq, None)
        if message is not None:
            raise LoadError(f"{resource_id} failed to load: {message}", resource_id)

    async def submit(self, command_id: int, command: str) -> None:
        self._require_running()
        self._commands.add(command_id)
        await self._send({'op': 'invoke', 'command_id': command_id, 'command': command})

    async def close(self) -> None:
        self._closing = True
        process = self._process
        self._process = None

        for task in (self._reader_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
        self._reader_task = self._stderr_task = None

        self._fail_pending(EngineError("Engine closed"), emit=False)

        if process is not None and process.returncode is None:
            if process.stdin is not None:
                process.stdin.close()
            try:
                await asyncio.wait_for(process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
            logger.info(f"Node.js engine stopped (pid={process.pid})")

    async def _send(self, message: dict):
        process = self._process
        if process is None or process.stdin is None:
            raise EngineError("Node.js engine is not running")
        process.stdin.write((json.dumps(message) + '\n').encode('utf-8'))
        try:
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EngineError(f"Lost connection to Node.js engine: {e}") from e

    async def _read_messages(self):
        process = self._process
        error = EngineError("Node.js engine exited unexpectedly")
        try:
            while True:
                try:
                    line = await process.stdout.readline()
                except ValueError as e:
                    # Raised for a line longer than STREAM_LIMIT; the stream is unusable afterwards
                    error = EngineError(f"Unreadable Node.js engine output: {e}")
                    break
                if not line:
                    break
                try:
                    message = json.loads(line.decode('utf-8'))
                except ValueError:
                    logger.warning(f"Discarding unparseable engine output: {line[:200]!r}")
                    continue
                if not isinstance(message, dict):
                    logger.warning(f"Discarding non-object engine message: {line[:200]!r}")
                    continue
                self._dispatch(message)
        finally:
            if not self._closing:
                logger.warning(f"{error} (code={process.returncode})")
                if process.returncode is None:
                    try:
                        process.kill()
                    except ProcessLookupError:
                        pass
                self._fail_pending(error, emit=True)

    def _dispatch(self, message: dict):
        kind = message.get('type')
        if kind == 'ready':
            if self._ready is not None and not self._ready.done():
                self._ready.set_result(message.get('modern', True))
        elif kind in ('loaded', 'load_error'):
            future = self._loads.get(message.get('seq'))
            if future is not None and not future.done():
                future.set_result(message.get('message') if kind == 'load_error' else None)
        elif kind in ('result', 'error'):
            command_id = message.get('command_id')
            self._commands.discard(command_id)
            if kind == 'result':
                self._emit(EngineResult(command_id, code=message.get('code', '')))
            else:
                self._emit(EngineResult(command_id, error=message.get('message', 'Unknown engine error')))
        else:
            logger.debug(f"Ignoring engine message of type {kind!r}")

    async def _read_stderr(self):
        process = self._process
        while True:
            line = await process.stderr.readline()
            if not line:
                break
            logger.warning(f"engine: {line.decode('utf-8', errors='replace').rstrip()}")

    def _fail_pending(self, error: EngineError, emit: bool):
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(error)
        for future in self._loads.values():
            if not future.done():
                future.set_exception(error)
        self._loads.clear()
        if emit:
            for command_id in sorted(self._commands):
                self._emit(EngineResult(command_id, error=str(error)))
        self._commands.clear()

    def _require_running(self):
        if not self.is_running or (self._reader_task is not None and self._reader_task.done()):
            raise EngineError("Node.js engine is not running")
