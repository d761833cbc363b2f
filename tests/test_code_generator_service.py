"""
Tests for CodeGeneratorService session handling.
"""

import asyncio
import os

import pytest

from codegen_bridge.engine import EngineResult, ResourceKind, ScriptEngine
from codegen_bridge.escaping import EscapingTier
from codegen_bridge.exceptions import (
    EngineError, EngineStartError, GenerationTimeout, LoadError, SessionStateError
)
from codegen_bridge.language_definition import LUA_LANGUAGE_DEFINITION, JAVASCRIPT_LANGUAGE_DEFINITION
from codegen_bridge.python_engine import PythonScriptEngine
from codegen_bridge.resources import FileResourceLoader, ResourceLoader
from codegen_bridge.service import CodeGeneratorService, SessionState


FIXTURES = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'fixtures')


class ManualEngine(ScriptEngine):
    """Engine whose results are emitted by the test."""

    def __init__(self, modern=True, fail_start=False):
        super().__init__()
        self.supports_modern_commands = modern
        self.fail_start = fail_start
        self.loaded = []
        self.submitted = []
        self.closed = False

    async def start(self):
        if self.fail_start:
            raise EngineStartError("no engine available")

    async def load_resource(self, kind, resource_id, source):
        self.loaded.append((kind, resource_id))

    async def submit(self, command_id, command):
        self.submitted.append((command_id, command))

    async def close(self):
        self.closed = True

    def respond(self, code=None, error=None, command_id=None):
        if command_id is None:
            command_id = self.submitted[-1][0]
        self._emit(EngineResult(command_id, code=code, error=error))


class CountingLoader(ResourceLoader):
    """Loader returning the identifier as content and counting fetches."""

    def __init__(self, missing=()):
        self.fetched = []
        self.missing = set(missing)

    def fetch(self, resource_id):
        self.fetched.append(resource_id)
        if resource_id in self.missing:
            raise LoadError(f"missing {resource_id}", resource_id)
        return resource_id


def make_service(engine=None, loader=None, generation_timeout=None):
    engines = []

    def factory():
        created = engine if engine is not None else ManualEngine()
        engines.append(created)
        return created

    service = CodeGeneratorService(factory, loader or CountingLoader(), generation_timeout)
    return service, engines


async def wait_for_submission(engine):
    while not engine.submitted:
        await asyncio.sleep(0)


class TestSessionLifecycle:
    """Test cases for activate and deactivate."""

    def test_initial_state(self):
        """Test that a new service has no session."""
        service, _ = make_service()
        assert service.state is SessionState.UNINITIALIZED
        assert service.tier is None
        assert not service.is_ready

    def test_activate_is_idempotent(self):
        """Test that a second activate keeps the existing session."""
        service, engines = make_service()

        async def scenario():
            await service.activate()
            await service.activate()

        asyncio.run(scenario())
        assert service.state is SessionState.READY
        assert len(engines) == 1

    @pytest.mark.parametrize('modern,tier', [(True, EscapingTier.MODERN), (False, EscapingTier.LEGACY)])
    def test_tier_follows_engine_capability(self, modern, tier):
        """Test the escaping tier is chosen once from the engine."""
        service, _ = make_service(engine=ManualEngine(modern=modern))
        asyncio.run(service.activate())
        assert service.tier is tier
        assert service.build_command("a'b", LUA_LANGUAGE_DEFINITION).endswith(', Blockly.Lua);')

    def test_engine_start_failure(self):
        """Test that a failed start leaves the session uninitialized."""
        service, _ = make_service(engine=ManualEngine(fail_start=True))
        with pytest.raises(EngineStartError):
            asyncio.run(service.activate())
        assert service.state is SessionState.UNINITIALIZED

    def test_deactivate_closes_engine(self):
        """Test disposal of the session."""
        engine = ManualEngine()
        service, _ = make_service(engine=engine)

        async def scenario():
            await service.activate()
            await service.deactivate()

        asyncio.run(scenario())
        assert engine.closed
        assert service.state is SessionState.DISPOSED

    def test_reactivation_reloads_resources(self):
        """Test that a new session starts with nothing loaded."""
        loader = CountingLoader()
        service, engines = make_service(loader=loader)

        async def scenario():
            await service.activate()
            await service.ensure_resources_loaded(['blocks.json'], ['gen.js'])
            await service.deactivate()
            await service.activate()
            assert service.loaded_resources(ResourceKind.GENERATOR_SCRIPT) == set()
            await service.ensure_resources_loaded(['blocks.json'], ['gen.js'])

        asyncio.run(scenario())
        assert len(engines) == 2
        assert loader.fetched == ['blocks.json', 'gen.js', 'blocks.json', 'gen.js']


class TestResourceLoading:
    """Test cases for ensure_resources_loaded."""

    def test_loads_blocks_before_generators(self):
        """Test load order and loaded-set bookkeeping."""
        engine = ManualEngine()
        service, _ = make_service(engine=engine)

        async def scenario():
            await service.activate()
            await service.ensure_resources_loaded(['a.json', 'b.json'], ['gen.js'])

        asyncio.run(scenario())
        assert engine.loaded == [
            (ResourceKind.BLOCK_DEFINITIONS, 'a.json'),
            (ResourceKind.BLOCK_DEFINITIONS, 'b.json'),
            (ResourceKind.GENERATOR_SCRIPT, 'gen.js'),
        ]
        assert service.loaded_resources(ResourceKind.BLOCK_DEFINITIONS) == {'a.json', 'b.json'}

    def test_resources_load_once_per_session(self):
        """Test that loaded resources are not fetched again."""
        loader = CountingLoader()
        service, _ = make_service(loader=loader)

        async def scenario():
            await service.activate()
            await service.ensure_resources_loaded(['a.json'], ['lua.js'])
            await service.ensure_resources_loaded(['a.json'], ['lua.js', 'dart.js'])

        asyncio.run(scenario())
        assert loader.fetched == ['a.json', 'lua.js', 'dart.js']

    def test_load_failure_keeps_session_usable(self):
        """Test that a failed resource stays unloaded and the session stays ready."""
        loader = CountingLoader(missing={'missing.js'})
        service, _ = make_service(loader=loader)

        async def scenario():
            await service.activate()
            with pytest.raises(LoadError):
                await service.ensure_resources_loaded(['a.json'], ['missing.js'])

        asyncio.run(scenario())
        assert service.state is SessionState.READY
        assert service.loaded_resources(ResourceKind.BLOCK_DEFINITIONS) == {'a.json'}
        assert service.loaded_resources(ResourceKind.GENERATOR_SCRIPT) == set()

    def test_requires_ready_session(self):
        """Test loading before activation."""
        service, _ = make_service()
        with pytest.raises(SessionStateError):
            asyncio.run(service.ensure_resources_loaded(['a.json'], []))


class TestExecute:
    """Test cases for executing commands."""

    def test_result_completes_execute(self):
        """Test that the engine's out-of-band result is returned."""
        engine = ManualEngine()
        service, _ = make_service(engine=engine)

        async def scenario():
            await service.activate()
            task = asyncio.ensure_future(service.execute('command'))
            await wait_for_submission(engine)
            assert service.state is SessionState.GENERATING
            engine.respond(code="'test';")
            return await task

        assert asyncio.run(scenario()) == "'test';"
        assert service.state is SessionState.READY

    def test_engine_error(self):
        """Test that an error result raises EngineError."""
        engine = ManualEngine()
        service, _ = make_service(engine=engine)

        async def scenario():
            await service.activate()
            task = asyncio.ensure_future(service.execute('command'))
            await wait_for_submission(engine)
            engine.respond(error='ReferenceError: Blockly is not defined')
            return await task

        with pytest.raises(EngineError, match='ReferenceError'):
            asyncio.run(scenario())
        assert service.state is SessionState.READY

    def test_execute_requires_ready(self):
        """Test execute without a session and after disposal."""
        service, _ = make_service()
        with pytest.raises(SessionStateError):
            asyncio.run(service.execute('command'))

        async def disposed():
            await service.activate()
            await service.deactivate()
            await service.execute('command')

        with pytest.raises(SessionStateError):
            asyncio.run(disposed())

    def test_build_command_after_disposal(self):
        """Test that commands cannot be built for a disposed session."""
        service, _ = make_service()

        async def scenario():
            await service.activate()
            await service.deactivate()

        asyncio.run(scenario())
        with pytest.raises(SessionStateError):
            service.build_command('<xml/>', JAVASCRIPT_LANGUAGE_DEFINITION)

    def test_timeout_discards_late_result(self):
        """Test GenerationTimeout and that the late result is ignored."""
        engine = ManualEngine()
        service, _ = make_service(engine=engine, generation_timeout=0.05)

        async def scenario():
            await service.activate()
            with pytest.raises(GenerationTimeout) as exc_info:
                await service.execute('slow')
            late_id = engine.submitted[-1][0]
            engine.respond(code='late', command_id=late_id)

            task = asyncio.ensure_future(service.execute('fast'))
            await asyncio.sleep(0)
            engine.respond(code='fresh')
            return exc_info.value, await task

        error, code = asyncio.run(scenario())
        assert error.timeout == 0.05
        assert code == 'fresh'

    def test_deactivate_abandons_in_flight_command(self):
        """Test that disposal cancels the awaiting execute."""
        engine = ManualEngine()
        service, _ = make_service(engine=engine)

        async def scenario():
            await service.activate()
            task = asyncio.ensure_future(service.execute('command'))
            await wait_for_submission(engine)
            await service.deactivate()
            engine.respond(code='too late', command_id=1)
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert service.state is SessionState.DISPOSED


class TestWithPythonEngine:
    """End-to-end checks against the in-process engine and fixture files."""

    def test_generate_lua(self):
        """Test loading fixtures and generating Lua."""
        service = CodeGeneratorService(PythonScriptEngine, FileResourceLoader(FIXTURES), 5.0)
        with open(os.path.join(FIXTURES, 'simple_workspace.xml'), encoding='utf-8') as f:
            workspace = f.read()

        async def scenario():
            await service.activate()
            await service.ensure_resources_loaded(['default/test_blocks.json'],
                                                  ['generators/lua_generator.py'])
            code = await service.execute(service.build_command(workspace, LUA_LANGUAGE_DEFINITION))
            await service.deactivate()
            return code

        assert asyncio.run(scenario()) == "local _ = 'test'"
