"""
Code Generation Bridge - generates source code from visual-program workspaces.

This package drives an embedded script engine loaded with per-language
code generators. Requests are queued by the CodeGeneratorManager, run one
at a time by the CodeGeneratorService, and answered through callbacks.
"""

__version__ = "0.1.0"
__author__ = "Codegen Bridge Development Team"

from .exceptions import (
    CodeGenerationError, LoadError, EngineError, EngineStartError,
    SessionStateError, GenerationTimeout, CommandFormatError, UnknownLanguageError
)
from .language_definition import (
    LanguageDefinition, get_language, register_language, get_supported_languages,
    JAVASCRIPT_LANGUAGE_DEFINITION, PYTHON_LANGUAGE_DEFINITION, LUA_LANGUAGE_DEFINITION,
    PHP_LANGUAGE_DEFINITION, DART_LANGUAGE_DEFINITION
)
from .request import CodeGenerationRequest
from .escaping import EscapingTier, encode, decode, build_command, parse_command
from .engine import ScriptEngine, EngineResult, ResourceKind
from .node_engine import NodeScriptEngine
from .python_engine import PythonScriptEngine
from .resources import ResourceLoader, FileResourceLoader, HttpResourceLoader, ChainedResourceLoader
from .service import CodeGeneratorService, SessionState
from .manager import CodeGeneratorManager
from .config import BridgeConfig, create_manager, configure_logging

__all__ = [
    # Errors
    "CodeGenerationError",
    "LoadError",
    "EngineError",
    "EngineStartError",
    "SessionStateError",
    "GenerationTimeout",
    "CommandFormatError",
    "UnknownLanguageError",
    # Languages and requests
    "LanguageDefinition",
    "get_language",
    "register_language",
    "get_supported_languages",
    "JAVASCRIPT_LANGUAGE_DEFINITION",
    "PYTHON_LANGUAGE_DEFINITION",
    "LUA_LANGUAGE_DEFINITION",
    "PHP_LANGUAGE_DEFINITION",
    "DART_LANGUAGE_DEFINITION",
    "CodeGenerationRequest",
    # Escaping
    "EscapingTier",
    "encode",
    "decode",
    "build_command",
    "parse_command",
    # Engines
    "ScriptEngine",
    "EngineResult",
    "ResourceKind",
    "NodeScriptEngine",
    "PythonScriptEngine",
    # Resources
    "ResourceLoader",
    "FileResourceLoader",
    "HttpResourceLoader",
    "ChainedResourceLoader",
    # Service and manager
    "CodeGeneratorService",
    "SessionState",
    "CodeGeneratorManager",
    "BridgeConfig",
    "create_manager",
    "configure_logging",
]
