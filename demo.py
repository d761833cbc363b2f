#!/usr/bin/env python3
"""
Demo script for the code generation bridge.

Generates code for a serialized workspace in one or more languages:
1. Resumes a CodeGeneratorManager built from CODEGEN_* settings
2. Queues one request per language
3. Prints each result as its callback fires, in submission order

Example:
    python demo.py tests/fixtures/simple_workspace.xml \\
        --resource-dir tests/fixtures --blocks default/test_blocks.json \\
        --generator javascript=generators/test_javascript.js \\
        --generator dart=generators/test_dart.js
"""

import argparse
import sys
import threading

from codegen_bridge import (
    BridgeConfig, CodeGenerationRequest, configure_logging, create_manager, get_language
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate code from a workspace file")
    parser.add_argument('workspace', help="Path to the serialized workspace (XML)")
    parser.add_argument('--resource-dir', help="Directory holding block and generator resources")
    parser.add_argument('--engine', choices=['node', 'python'], help="Script engine to use")
    parser.add_argument('--blocks', action='append', default=[],
                        help="Block definition resource (repeatable)")
    parser.add_argument('--generator', action='append', default=[], metavar='LANGUAGE=SCRIPT',
                        help="Language and the generator script to load for it (repeatable)")
    parser.add_argument('--legacy', action='store_true', help="Percent-encode engine commands")
    parser.add_argument('--timeout', type=float, default=60.0, help="Seconds to wait for all results")
    return parser.parse_args(argv)


def main(argv=None):
    """Run the demo."""
    args = parse_args(argv)
    config = BridgeConfig.from_env()
    if args.resource_dir:
        config.resource_dir = args.resource_dir
    if args.engine:
        config.engine = args.engine
    config.legacy_commands = config.legacy_commands or args.legacy
    configure_logging(config.log_level)

    with open(args.workspace, 'r', encoding='utf-8') as f:
        workspace = f.read()

    jobs = []
    for spec in args.generator or ['javascript=']:
        name, _, script = spec.partition('=')
        jobs.append((get_language(name), [script] if script else []))

    print("Code Generation Bridge - Demo")
    print("=" * 50)

    finished = threading.Semaphore(0)

    def report(language_name):
        def on_code(code):
            print(f"\n=== {language_name} ===")
            print(code)
            finished.release()

        def on_error(error):
            print(f"\n=== {language_name} failed: {error}", file=sys.stderr)
            finished.release()
        return on_code, on_error

    manager = create_manager(config)
    with manager:
        for language, scripts in jobs:
            on_code, on_error = report(language.name)
            manager.request_code_generation(CodeGenerationRequest(
                workspace_content=workspace,
                language=language,
                block_definitions=args.blocks,
                generator_scripts=scripts,
                callback=on_code,
                error_callback=on_error,
            ))
        for _ in jobs:
            if not finished.acquire(timeout=args.timeout):
                print("\nTimed out waiting for generated code", file=sys.stderr)
                return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
