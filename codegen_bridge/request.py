"""
Code generation requests submitted to the CodeGeneratorManager.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from .language_definition import LanguageDefinition


CodeGeneratorCallback = Callable[[str], None]
CodeGeneratorErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class CodeGenerationRequest:
    """A single workspace to generate code for.

    The request is immutable once built. Exactly one of ``callback`` or
    ``error_callback`` is invoked for a request that reaches the engine;
    a request dropped by a lifecycle pause invokes neither.

    Attributes:
        workspace_content: Serialized workspace (XML) to generate code from.
        language: Target language definition.
        block_definitions: Block definition resources used by the workspace.
        generator_scripts: Generator script resources to load for the request.
        callback: Receives the generated code.
        error_callback: Receives the LoadError or EngineError when generation
            fails, or the unexpected exception that aborted it. Failures are
            only logged when it is not set.
    """
    workspace_content: str
    language: LanguageDefinition
    block_definitions: Tuple[str, ...]
    generator_scripts: Tuple[str, ...]
    callback: CodeGeneratorCallback
    error_callback: Optional[CodeGeneratorErrorCallback] = None
    _completed: threading.Event = field(
        default_factory=threading.Event, init=False, repr=False, compare=False
    )
    _claim_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not callable(self.callback):
            raise TypeError("callback must be callable")
        if self.error_callback is not None and not callable(self.error_callback):
            raise TypeError("error_callback must be callable")
        object.__setattr__(self, 'block_definitions', tuple(self.block_definitions))
        object.__setattr__(self, 'generator_scripts', tuple(self.generator_scripts))

    @property
    def completed(self) -> bool:
        return self._completed.is_set()

    def required_generator_scripts(self) -> Tuple[str, ...]:
        """Language scripts followed by the request's own scripts, without duplicates."""
        scripts = []
        for resource_id in self.language.required_scripts + self.generator_scripts:
            if resource_id not in scripts:
                scripts.append(resource_id)
        return tuple(scripts)

    def deliver(self, generated_code: str) -> bool:
        """Invoke the completion callback. Returns False if the request already completed."""
        if not self._claim():
            return False
        self.callback(generated_code)
        return True

    def fail(self, error: Exception) -> bool:
        """Invoke the error callback, if any. Returns False if nothing was invoked."""
        if self.error_callback is None or not self._claim():
            return False
        self.error_callback(error)
        return True

    def _claim(self) -> bool:
        with self._claim_lock:
            if self._completed.is_set():
                return False
            self._completed.set()
            return True

