"""
Exceptions raised by the code generation bridge.
"""

from typing import Optional, Any, Dict


class CodeGenerationError(Exception):
    """Base exception for all code generation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class LoadError(CodeGenerationError):
    """Raised when a block definition or generator script cannot be fetched or parsed."""

    def __init__(self, message: str, resource_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.resource_id = resource_id


class EngineError(CodeGenerationError):
    """Raised when the script engine reports a failure for a command."""
    pass


class EngineStartError(EngineError):
    """Raised when the script engine process cannot be started."""
    pass


class SessionStateError(CodeGenerationError):
    """Raised when a session operation is attempted in a state that forbids it."""

    def __init__(self, message: str, state: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.state = state


class GenerationTimeout(CodeGenerationError):
    """Raised when the engine does not answer a command before the deadline."""

    def __init__(self, message: str, timeout: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.timeout = timeout


class CommandFormatError(CodeGenerationError):
    """Raised when a string is not a well-formed engine command."""
    pass


class UnknownLanguageError(CodeGenerationError):
    """Raised when a language name has no registered definition."""

    def __init__(self, name: str):
        super().__init__(f"Unknown language: {name}", {'language': name})
        self.name = name
