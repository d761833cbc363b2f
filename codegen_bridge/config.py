"""
Configuration for the code generation bridge.

Values resolve in two tiers: environment variable (the shell or a ``.env``
file), then the hard-coded default.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .engine import ScriptEngine
from .manager import CodeGeneratorManager
from .node_engine import NodeScriptEngine
from .python_engine import PythonScriptEngine
from .resources import ChainedResourceLoader, FileResourceLoader, HttpResourceLoader, ResourceLoader
from .service import CodeGeneratorService


ENGINE_NODE = 'node'
ENGINE_PYTHON = 'python'

DEFAULT_RESOURCE_DIRNAME = 'assets'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def default_resource_dir() -> str:
    """The assets folder of the current working directory."""
    return os.path.join(os.getcwd(), DEFAULT_RESOURCE_DIRNAME)


@dataclass
class BridgeConfig:
    """Code generation bridge settings."""
    engine: str = ENGINE_NODE
    node_path: Optional[str] = None
    host_script: Optional[str] = None
    resource_dir: str = field(default_factory=default_resource_dir)
    resource_base_url: Optional[str] = None
    legacy_commands: bool = False
    generation_timeout: Optional[float] = 30.0
    startup_timeout: float = 10.0
    script_timeout: float = 30.0
    http_timeout: float = 10.0
    log_level: str = 'INFO'

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.engine = self.engine.strip().lower()
        if self.engine not in (ENGINE_NODE, ENGINE_PYTHON):
            raise ValueError(f"engine must be '{ENGINE_NODE}' or '{ENGINE_PYTHON}', got {self.engine!r}")
        if self.generation_timeout is not None and self.generation_timeout <= 0:
            raise ValueError("generation_timeout must be positive or None")
        for name in ('startup_timeout', 'script_timeout', 'http_timeout'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ValueError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'BridgeConfig':
        """Build a configuration from ``CODEGEN_*`` environment variables."""
        load_dotenv(dotenv_path or os.path.join(os.getcwd(), '.env'))
        defaults = cls()

        timeout = _env('CODEGEN_GENERATION_TIMEOUT', '')
        if timeout.lower() in ('none', '0'):
            generation_timeout = None
        elif timeout:
            generation_timeout = float(timeout)
        else:
            generation_timeout = defaults.generation_timeout

        return cls(
            engine=_env('CODEGEN_ENGINE', defaults.engine),
            node_path=_env('CODEGEN_NODE_PATH', '') or None,
            host_script=_env('CODEGEN_HOST_SCRIPT', '') or None,
            resource_dir=_env('CODEGEN_RESOURCE_DIR', defaults.resource_dir),
            resource_base_url=_env('CODEGEN_RESOURCE_BASE_URL', '') or None,
            legacy_commands=_env('CODEGEN_LEGACY_COMMANDS', 'false').lower() in ('1', 'true', 'yes', 'on'),
            generation_timeout=generation_timeout,
            startup_timeout=float(_env('CODEGEN_STARTUP_TIMEOUT', str(defaults.startup_timeout))),
            script_timeout=float(_env('CODEGEN_SCRIPT_TIMEOUT', str(defaults.script_timeout))),
            http_timeout=float(_env('CODEGEN_HTTP_TIMEOUT', str(defaults.http_timeout))),
            log_level=_env('CODEGEN_LOG_LEVEL', defaults.log_level),
        )


def _env(name: str, default: str) -> str:
    value = os.environ.get(name, '').strip()
    return value if value else default


def configure_logging(level: str = 'INFO'):
    """Configure root logging for scripts and the web interface."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_engine(config: BridgeConfig) -> ScriptEngine:
    """Create an unstarted engine as described by the configuration."""
    if config.engine == ENGINE_PYTHON:
        return PythonScriptEngine(legacy_commands=config.legacy_commands)
    return NodeScriptEngine(
        node_path=config.node_path,
        host_script=config.host_script,
        legacy_commands=config.legacy_commands,
        startup_timeout=config.startup_timeout,
        script_timeout=config.script_timeout,
    )


def create_resource_loader(config: BridgeConfig) -> ResourceLoader:
    """Files under resource_dir first, then resource_base_url when configured."""
    file_loader = FileResourceLoader(config.resource_dir)
    if not config.resource_base_url:
        return file_loader
    return ChainedResourceLoader([
        file_loader,
        HttpResourceLoader(config.resource_base_url, timeout=config.http_timeout),
    ])


def create_manager(config: Optional[BridgeConfig] = None) -> CodeGeneratorManager:
    """Wire an engine factory, resource loader, service and manager together."""
    config = config or BridgeConfig.from_env()
    service = CodeGeneratorService(
        engine_factory=lambda: create_engine(config),
        resource_loader=create_resource_loader(config),
        generation_timeout=config.generation_timeout,
    )
    return CodeGeneratorManager(service)
