"""
CodeGeneratorService - owner of the script engine session.

The service creates the engine on activation, loads block definitions and
generator scripts into it at most once per session, and executes one
command at a time. Each command gets its own future that the engine's
result channel completes; execute() awaits that future.
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from .engine import EngineResult, ResourceKind, ScriptEngine
from .escaping import EscapingTier, build_command
from .exceptions import EngineError, GenerationTimeout, SessionStateError
from .language_definition import LanguageDefinition
from .resources import ResourceLoader


class SessionState(Enum):
    """Lifecycle states of the engine session."""
    UNINITIALIZED = 'uninitialized'
    READY = 'ready'
    GENERATING = 'generating'
    DISPOSED = 'disposed'


class CodeGeneratorService:
    """
    Hosts a single script engine session.

    All coroutines must run on the same event loop; the service is not
    thread-safe and relies on its caller (the CodeGeneratorManager) to
    serialize calls.
    """

    def __init__(self, engine_factory: Callable[[], ScriptEngine],
                 resource_loader: ResourceLoader,
                 generation_timeout: Optional[float] = None):
        """
        Initialize the service.

        Args:
            engine_factory: Creates a fresh, unstarted engine for each session
            resource_loader: Fetches block definitions and generator scripts
            generation_timeout: Seconds to wait for a generation result, or
                None to wait indefinitely
        """
        self.logger = logging.getLogger(__name__)
        self._engine_factory = engine_factory
        self._resource_loader = resource_loader
        self.generation_timeout = generation_timeout

        self._state = SessionState.UNINITIALIZED
        self._engine: Optional[ScriptEngine] = None
        self._tier: Optional[EscapingTier] = None
        self._loaded: Dict[ResourceKind, Set[str]] = {kind: set() for kind in ResourceKind}
        self._command_ids = itertools.count(1)
        self._in_flight: Optional[Tuple[int, asyncio.Future]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def tier(self) -> Optional[EscapingTier]:
        """Escaping tier chosen when the session was activated."""
        return self._tier

    def loaded_resources(self, kind: ResourceKind) -> Set[str]:
        return set(self._loaded[kind])

    async def activate(self):
        """Create the engine session. Does nothing if a session is already live."""
        if self._state in (SessionState.READY, SessionState.GENERATING):
            return

        engine = self._engine_factory()
        engine.set_result_handler(self._on_engine_result)
        await engine.start()

        self._engine = engine
        self._tier = EscapingTier.for_host(engine.supports_modern_commands)
        for resources in self._loaded.values():
            resources.clear()
        self._state = SessionState.READY
        self.logger.info(f"Engine session ready ({type(engine).__name__}, tier={self._tier.value})")

    async def deactivate(self):
        """Dispose the session. An in-flight command is abandoned."""
        engine = self._engine
        self._engine = None
        self._state = SessionState.DISPOSED
        for resources in self._loaded.values():
            resources.clear()

        if self._in_flight is not None:
            command_id, future = self._in_flight
            self._in_flight = None
            future.cancel()
            self.logger.info(f"Abandoned in-flight command {command_id}")

        if engine is not None:
            engine.set_result_handler(None)
            await engine.close()
            self.logger.info("Engine session disposed")

    async def ensure_resources_loaded(self, block_definitions: Iterable[str],
                                      generator_scripts: Iterable[str]):
        """
        Load any resources the session has not loaded yet.

        Block definitions are loaded before generator scripts, each group in
        the given order.

        Raises:
            LoadError: If a resource cannot be fetched or fails to load.
                Resources loaded before the failure stay loaded.
            SessionStateError: If the session is not READY.
        """
        self._require_state(SessionState.READY, 'load resources')
        loop = asyncio.get_running_loop()

        for kind, resource_ids in ((ResourceKind.BLOCK_DEFINITIONS, block_definitions),
                                   (ResourceKind.GENERATOR_SCRIPT, generator_scripts)):
            for resource_id in resource_ids:
                if resource_id in self._loaded[kind]:
                    continue
                source = await loop.run_in_executor(None, self._resource_loader.fetch, resource_id)
                self._require_state(SessionState.READY, 'load resources')
                await self._engine.load_resource(kind, resource_id, source)
                self._loaded[kind].add(resource_id)
                self.logger.debug(f"Loaded {kind.value} resource {resource_id}")

    def build_command(self, workspace_content: str, language: LanguageDefinition) -> str:
        """Build the engine command for a workspace using the session's tier."""
        if self._tier is None or self._state is SessionState.DISPOSED:
            raise SessionStateError("No live engine session to build commands for", self._state)
        return build_command(workspace_content, language.generator_namespace, self._tier)

    async def execute(self, command: str) -> str:
        """
        Run a command in the engine and return the generated code.

        Raises:
            SessionStateError: If the session is not READY
            EngineError: If the engine reports a failure
            GenerationTimeout: If no result arrives within generation_timeout
        """
        self._require_state(SessionState.READY, 'execute')

        command_id = next(self._command_ids)
        future = asyncio.get_running_loop().create_future()
        self._in_flight = (command_id, future)
        self._state = SessionState.GENERATING

        try:
            await self._engine.submit(command_id, command)
            if self.generation_timeout is None:
                result = await future
            else:
                result = await asyncio.wait_for(future, self.generation_timeout)
        except asyncio.TimeoutError:
            raise GenerationTimeout(
                f"No result for command {command_id} after {self.generation_timeout}s",
                self.generation_timeout,
                {'command_id': command_id},
            ) from None
        finally:
            if self._in_flight is not None and self._in_flight[0] == command_id:
                self._in_flight = None
            if self._state is SessionState.GENERATING:
                self._state = SessionState.READY

        if not result.success:
            raise EngineError(result.error, {'command_id': command_id})
        return result.code

    def _on_engine_result(self, result: EngineResult):
        in_flight = self._in_flight
        if in_flight is None or in_flight[0] != result.command_id:
            self.logger.debug(f"Discarding result for abandoned command {result.command_id}")
            return
        future = in_flight[1]
        if not future.done():
            future.set_result(result)

    def _require_state(self, expected: SessionState, operation: str):
        if self._state is not expected:
            raise SessionStateError(
                f"Cannot {operation} while the session is {self._state.value}",
                self._state,
            )
