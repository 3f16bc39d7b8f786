"""Block annotation parsing and `:use` pipe decomposition.

A fenced block's info string carries the language followed by an annotation:

    ```python :use server | json?indent=4 :name totals :height 400px

`parse_block_parameters` turns the annotation into a key/value map and
`parse_pipe` splits the `:use` value into ordered segments. The first segment
is the mode; the rest are wrappers. Segment config comes either as a query
string (`withTabs?defaultTab=source&resultLabel=Output`) or inline JSON
(`withContainer:{"className": "x"}`). A segment naming another document
(`./lib.md#shout`, `../lib.md?name=shout`) is an external reference, resolved
later by an injected resolver instead of the registry.
"""

import json
import re
from typing import Any, Optional

from litpress.core.models import PipeSegment


DEFAULT_MODE = "preview"
SOURCE_WRAPPER = "withSourceCode"
NATIVE_EXTENSION = ".md"
SOURCE_POSITIONS = ("before", "after", "replace")

_KEY_RE = re.compile(r'(?:^|(?<=\s)):([A-Za-z_][\w-]*)')
_EXTERNAL_RE = re.compile(r'^(?:\.{1,2}/|/)[^?#|]*\.md(?=$|[?#])')
_JSON_SEGMENT_RE = re.compile(r'^([^:]+):(\{.+\})$', re.DOTALL)
_QUERY_SEGMENT_RE = re.compile(r'^([^?]+)\?(.+)$')
_NUMBER_RE = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')


def parse_block_parameters(annotation: Optional[str]) -> dict[str, str]:
    """Parse `:key value` pairs; flags (no value) map to "".

    A value runs until the next `:key` token, so `:use server | json` keeps its
    whole pipeline. A key followed by end of string, another key, or only
    whitespace is a flag.
    """
    if not annotation:
        return {}

    params: dict[str, str] = {}
    matches = list(_KEY_RE.finditer(annotation))
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(annotation)
        params[m.group(1)] = annotation[m.end():end].strip()
    return params


def parse_value(value: str) -> Any:
    """Coerce a query-string value: quoted strings, booleans, numbers, null."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    if value == "true":
        return True
    if value == "false":
        return False
    if value in ("null", "none", "None"):
        return None
    if _NUMBER_RE.match(value):
        if re.fullmatch(r'[+-]?\d+', value):
            return int(value)
        return float(value)
    return value


def parse_query_string(query: str) -> dict[str, Any]:
    """Parse `k=v&flag` into a dict; a bare key means True."""
    result: dict[str, Any] = {}
    for pair in query.split("&"):
        if not pair.strip():
            continue
        key, sep, value = pair.partition("=")
        if not sep:
            result[key.strip()] = True
            continue
        result[key.strip()] = parse_value(value.strip())
    return result


def is_external_reference(name: str) -> bool:
    """True for `./file.md#block`-style cross-document references."""
    return bool(_EXTERNAL_RE.match(name))


def _parse_external(segment: str) -> PipeSegment:
    """Split `path.md#block?k=v` / `path.md?name=block&k=v` into a segment."""
    m = _EXTERNAL_RE.match(segment)
    path, rest = m.group(0), segment[m.end():]

    block_name = None
    query = ""
    if rest.startswith("#"):
        fragment, _, query = rest[1:].partition("?")
        block_name = fragment or None
    elif rest.startswith("?"):
        query = rest[1:]

    config = parse_query_string(query) if query else {}
    if block_name is None and "name" in config:
        block_name = str(config.pop("name"))
    return PipeSegment(name=path, config=config, is_external=True, block_name=block_name)


def parse_segment(segment: str) -> PipeSegment:
    """Parse one pipe segment into name + config."""
    if is_external_reference(segment):
        return _parse_external(segment)

    m = _JSON_SEGMENT_RE.match(segment)
    if m:
        try:
            config = json.loads(m.group(2))
        except json.JSONDecodeError:
            return PipeSegment(name=segment)
        if isinstance(config, dict):
            return PipeSegment(name=m.group(1).strip(), config=config)
        return PipeSegment(name=segment)

    m = _QUERY_SEGMENT_RE.match(segment)
    if m:
        return PipeSegment(name=m.group(1).strip(), config=parse_query_string(m.group(2)))

    return PipeSegment(name=segment)


def parse_pipe(use_value: Optional[str]) -> list[PipeSegment]:
    """Split a `:use` value on `|` into ordered segments (empty parts dropped)."""
    if not use_value or not isinstance(use_value, str):
        return []
    parts = [p.strip() for p in use_value.split("|")]
    return [parse_segment(p) for p in parts if p]


def get_mode(use_value: Optional[str]) -> str:
    """First segment name, defaulting to "preview"."""
    segments = parse_pipe(use_value)
    return segments[0].name if segments else DEFAULT_MODE


def get_wrappers(use_value: Optional[str]) -> list[PipeSegment]:
    """Segments after the mode."""
    return parse_pipe(use_value)[1:]


def _is_simple_config(config: dict[str, Any]) -> bool:
    return all(isinstance(v, (str, int, float, bool)) for v in config.values())


def _serialize_config(config: dict[str, Any]) -> str:
    return "&".join(k if v is True else f"{k}={v}" for k, v in config.items())


def serialize_segment(segment: PipeSegment) -> str:
    """Render a segment back to `:use` syntax."""
    result = segment.name
    if segment.is_external:
        if segment.block_name:
            result += f"#{segment.block_name}"
        if segment.config:
            result += "?" + _serialize_config(segment.config)
    elif segment.config:
        if _is_simple_config(segment.config):
            result += "?" + _serialize_config(segment.config)
        else:
            result += ":" + json.dumps(segment.config)
    return result


def resolve_use(
    use_param: Optional[str],
    language: str,
    default_use: str = DEFAULT_MODE,
    language_defaults: Optional[dict[str, str]] = None,
    ) -> str:
    """Resolve a block's `:use`: explicit > language default > configured default."""
    if use_param:
        return use_param
    if language and language_defaults and language_defaults.get(language):
        return language_defaults[language]
    return default_use or DEFAULT_MODE


def should_export_block(params: dict[str, str]) -> bool:
    """Everything but `silent` contributes to output."""
    return get_mode(params.get("use")) != "silent"


def is_server_block(params: dict[str, str]) -> bool:
    return get_mode(params.get("use")) == "server"


def should_show_source(params: dict[str, str]) -> bool:
    """sourceOnly mode or a withSourceCode stage in the pipeline."""
    if get_mode(params.get("use")) == "sourceOnly":
        return True
    return any(s.name == SOURCE_WRAPPER for s in get_wrappers(params.get("use")))


def source_position(params: dict[str, str]) -> Optional[str]:
    """Where the original source goes relative to the output; None = hidden."""
    if get_mode(params.get("use")) == "sourceOnly":
        return "replace"
    for segment in get_wrappers(params.get("use")):
        if segment.name == SOURCE_WRAPPER:
            position = segment.config.get("position", "before")
            return position if position in SOURCE_POSITIONS else "before"
    return None
