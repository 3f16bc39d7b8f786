"""Server-side execution of python blocks.

A block's value is whatever it passes to `export(...)`. Blocks that never call
export get last-expression capture: the final meaningful line is classified
by `classify_last_line` and the code is rewritten so that line's value (or the
return value of the whole block) is exported.

Each run gets its own globals dict holding `require`, `content`, and `export`
(removed again when the run ends, even if an exported function still refers
to that dict), and its own `<litpress-block-...>` filename registered in linecache so
tracebacks point at block lines. This is isolation between blocks, not a
security boundary.
"""

import ast
import builtins
import importlib
import json
import linecache
import logging
import re
import sys
import time
import traceback
import uuid
from typing import Any, Optional

from litpress.core.content import ContentHelpers, create_content_helpers
from litpress.core.errors import UnsupportedLanguageError
from litpress.core.models import ExecutionError, ExecutionErrorKind, ExecutionResult


logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("python", "py", "python3", "pycon")
UNSERIALIZABLE = "[Object cannot be serialized]"
INJECTED_NAMES = ("require", "content", "export")

_BLOCK_FUNCTION = "__litpress_block__"
_EXPORT_RE = re.compile(r'^\s*export\(', re.MULTILINE)
_RETURN_RE = re.compile(r'^return\b')
_DECLARATION_RE = re.compile(r'^(?:async\s+def|def|class|import|from|global|nonlocal)\b|^@')
_CONTROL_FLOW_RE = re.compile(
    r'^(?:if|elif|else|for|while|try|except|finally|with|async\s+with|async\s+for'
    r'|raise|match|case|pass|break|continue|assert|del)\b'
)
_CLOSING_RE = re.compile(r'^[)\]}][)\]},;\s]*$')
_ASSIGNMENT_RE = re.compile(
    r'^[A-Za-z_][\w.]*(?:\[[^\]]*\])?\s*'
    r'(?::[^=]+)?(?:\+|-|\*\*|\*|//|/|%|@|&|\||\^|>>|<<)?=(?!=)'
)


def is_supported(language: str) -> bool:
    return language in SUPPORTED_LANGUAGES


def transpile(code: str, language: str) -> str:
    """Native python for a block; console transcripts lose prompts and output."""
    if language != "pycon":
        return code
    lines = []
    for line in code.splitlines():
        if line.startswith(">>> ") or line == ">>>":
            lines.append(line[4:])
        elif line.startswith("... ") or line == "...":
            lines.append(line[4:])
    return "\n".join(lines)


def has_explicit_export(code: str) -> bool:
    return bool(_EXPORT_RE.search(code))


def _last_line_index(lines: list[str]) -> Optional[int]:
    """Index of the last non-empty, non-comment line."""
    for i in range(len(lines) - 1, -1, -1):
        stripped = lines[i].strip()
        if stripped and not stripped.startswith("#"):
            return i
    return None


def classify_last_line(line: Optional[str]) -> str:
    """Classify a block's final meaningful line.

    Returns one of: none, return, declaration, control_flow, closing_brace,
    assignment, expression. Indented lines belong to an enclosing statement
    and count as control_flow, as does any line that only parses as the
    tail of a multi-line statement.
    """
    if line is None or not line.strip():
        return "none"
    if line[0] in " \t":
        return "control_flow"

    stripped = line.strip()
    if _RETURN_RE.match(stripped):
        return "return"
    if _DECLARATION_RE.match(stripped):
        return "declaration"
    if _CONTROL_FLOW_RE.match(stripped):
        return "control_flow"
    if _CLOSING_RE.match(stripped):
        return "closing_brace"

    try:
        body = ast.parse(stripped).body
    except SyntaxError:
        body = None
    if body and len(body) == 1:
        if isinstance(body[0], (ast.Assign, ast.AugAssign, ast.AnnAssign)):
            return "assignment"
        if isinstance(body[0], ast.Expr):
            return "expression"

    # tail of a multi-line statement
    if _ASSIGNMENT_RE.match(stripped):
        return "assignment"
    return "control_flow"


def _wrap_in_function(code: str, filename: str):
    """Compile code as the body of a function whose return value is exported."""
    module = ast.parse(code, filename=filename)
    template = ast.parse(f"def {_BLOCK_FUNCTION}():\n    pass\nexport({_BLOCK_FUNCTION}())\n")
    if module.body:
        template.body[0].body = module.body
    ast.fix_missing_locations(template)
    return compile(template, filename, "exec")


def prepare(code: str, filename: str):
    """Compile code with last-expression capture applied.

    Returns (code_object, source) where source is the text registered for
    tracebacks.
    """
    if has_explicit_export(code):
        return compile(code, filename, "exec"), code

    lines = code.split("\n")
    index = _last_line_index(lines)
    kind = classify_last_line(lines[index] if index is not None else None)
    logger.debug("Last line of %s classified as %s", filename, kind)

    if kind == "expression":
        stripped = lines[index].strip()
        expr = ast.get_source_segment(stripped, ast.parse(stripped).body[0].value)
        lines[index] = f"export({expr})"
        source = "\n".join(lines)
        return compile(source, filename, "exec"), source
    if kind == "return":
        return _wrap_in_function(code, filename), code
    try:
        return compile(code, filename, "exec"), code
    except SyntaxError as e:
        # a return nested in top-level control flow
        if e.msg != "'return' outside function":
            raise
    return _wrap_in_function(code, filename), code


def serialize_output(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, indent=2)
        except (TypeError, ValueError):
            return UNSERIALIZABLE
    return str(value)


def _is_browser() -> bool:
    return sys.platform == "emscripten"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def execute_server_block(
    code: str,
    language: str = "python",
    content_helpers: Optional[ContentHelpers] = None,
    ) -> ExecutionResult:
    """Run one block and capture its exported value. Never raises."""
    start = time.perf_counter()

    if not is_supported(language):
        err = UnsupportedLanguageError(language, list(SUPPORTED_LANGUAGES))
        return ExecutionResult(
            error=ExecutionError(kind=ExecutionErrorKind.unsupported_language, message=str(err)),
            execution_time_ms=_elapsed_ms(start),
        )
    if _is_browser():
        return ExecutionResult(
            error=ExecutionError(
                kind=ExecutionErrorKind.environment,
                message="Server execution is not supported in browser environment",
            ),
            execution_time_ms=_elapsed_ms(start),
        )

    captured: dict[str, Any] = {}

    def export(value: Any = None) -> Any:
        captured["value"] = value
        return value

    filename = f"<litpress-block-{uuid.uuid4().hex}>"
    namespace: dict[str, Any] = {
        "__name__": _BLOCK_FUNCTION,
        "__builtins__": builtins,
        "require": importlib.import_module,
        "content": content_helpers or create_content_helpers(),
        "export": export,
    }
    try:
        source = transpile(code, language)
        linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)
        compiled, registered = prepare(source, filename)
        if registered != source:
            linecache.cache[filename] = (len(registered), None, registered.splitlines(True), filename)
        exec(compiled, namespace)
    except (Exception, SystemExit) as e:
        logger.debug("Block %s raised %s", filename, e)
        return ExecutionResult(
            error=ExecutionError(
                kind=ExecutionErrorKind.execution,
                message=f"{type(e).__name__}: {e}",
                stack=traceback.format_exc(),
            ),
            execution_time_ms=_elapsed_ms(start),
        )
    finally:
        linecache.cache.pop(filename, None)
        for name in INJECTED_NAMES:
            namespace.pop(name, None)

    value = captured.get("value")
    return ExecutionResult(
        output=serialize_output(value),
        value=value,
        execution_time_ms=_elapsed_ms(start),
    )
