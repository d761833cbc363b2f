"""
Script engine interface used by the CodeGeneratorService.

An engine hosts the generator scripts and block definitions and runs one
command at a time. Commands are submitted without waiting; the generated
code comes back out of band through the result handler registered by the
service, tagged with the id of the command that produced it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class ResourceKind(Enum):
    """Kinds of resources an engine can load."""
    BLOCK_DEFINITIONS = 'blocks'
    GENERATOR_SCRIPT = 'generator'


@dataclass(frozen=True)
class EngineResult:
    """Message emitted by an engine on its result channel."""
    command_id: int
    code: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


ResultHandler = Callable[[EngineResult], None]


class ScriptEngine(ABC):
    """Base class for embedded script engines."""

    #: Whether the engine accepts commands escaped with the modern tier.
    supports_modern_commands: bool = True

    def __init__(self):
        self._result_handler: Optional[ResultHandler] = None

    def set_result_handler(self, handler: Optional[ResultHandler]):
        """Register the callable receiving every EngineResult."""
        self._result_handler = handler

    def _emit(self, result: EngineResult):
        handler = self._result_handler
        if handler is not None:
            handler(result)

    @abstractmethod
    async def start(self) -> None:
        """Start the engine. Raises EngineStartError on failure."""

    @abstractmethod
    async def load_resource(self, kind: ResourceKind, resource_id: str, source: str) -> None:
        """Load a resource into the engine. Raises LoadError if it fails to parse."""

    @abstractmethod
    async def submit(self, command_id: int, command: str) -> None:
        """Hand a command to the engine; the result arrives through the handler."""

    @abstractmethod
    async def close(self) -> None:
        """Release the engine. Results of pending commands are never emitted."""
