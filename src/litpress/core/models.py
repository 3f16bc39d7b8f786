"""Data models for the block-processing pipeline"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field


RenderFunction = Callable[[Any, "BlockContext"], Optional[str]]
Wrapper = Callable[[RenderFunction], RenderFunction]
WrapperFactory = Callable[[Optional[dict]], Wrapper]
ModeFactory = Callable[[Optional[dict]], RenderFunction]


class PipeSegment(BaseModel):
    """One `|`-separated stage of a `:use` pipeline."""
    name: str
    config: dict[str, Any] = Field(default_factory=dict)
    is_external: bool = False           # cross-document reference (./file.md#block)
    block_name: Optional[str] = None    # target block for external references


class ExecutionErrorKind(str, Enum):
    """Categories of execution failure reported by the sandbox"""
    unsupported_language = "unsupported_language"
    execution = "execution"
    environment = "environment"
    timeout = "timeout"


class ExecutionError(BaseModel):
    """Normalized execution failure; never raised, always returned."""
    kind: ExecutionErrorKind = ExecutionErrorKind.execution
    message: str
    stack: Optional[str] = None


class ExecutionResult(BaseModel):
    """Outcome of running one block in the sandbox."""
    output: str = ""
    error: Optional[ExecutionError] = None
    execution_time_ms: float = 0.0
    value: Any = None                   # raw captured value, consumed by render functions

    @property
    def ok(self) -> bool:
        return self.error is None


class TransformResult(BaseModel):
    """Client-track plugin output."""
    code: str
    exports_render: bool = False        # block module exports a custom render function


class ServerResult(BaseModel):
    """Server-track plugin output: the code the sandbox should run."""
    code: str
    execute_on_server: bool = True


class CollectedBlock(BaseModel):
    """A client-track block awaiting hydration."""
    id: str
    container_id: str
    cache_path: str                     # absolute location of the cached module
    module_reference: str               # cache key, relative to the cache root
    name: Optional[str] = None
    language: str
    extension: str
    render_mode: str = "default"        # "render" when the module exports render()


class PageInfo(BaseModel):
    """A content page as seen by content helpers."""
    file: str
    url: str
    title: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    draft: bool = False


class BuildReport(BaseModel):
    """Summary of a multi-document build."""
    successful: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    loaders: list[str] = Field(default_factory=list)


@dataclass
class CodeBlock:
    """The plugin-facing view of a fenced code block."""
    language: str
    code: str
    annotation_string: str = ""


@dataclass
class ParsedCodeBlock:
    """A code block found during one document pass; discarded after it."""
    language: str
    code: str
    annotation_string: str
    annotation: dict[str, str]
    index: int
    name: Optional[str] = None

    def as_code_block(self) -> CodeBlock:
        return CodeBlock(self.language, self.code, self.annotation_string)


@dataclass(frozen=True)
class FileInfo:
    path: str
    absolute: str


@dataclass(frozen=True)
class BlockInfo:
    content: str
    language: str
    name: Optional[str]
    params: dict[str, str]
    index: int


@dataclass(frozen=True)
class RuntimeInfo:
    is_dev: bool
    base_url: str


@dataclass(frozen=True)
class BlockContext:
    """Context handed to every render function."""
    file: FileInfo
    block: BlockInfo
    runtime: RuntimeInfo


def create_block_context(
    block: ParsedCodeBlock,
    document_path: str,
    absolute_path: str = "",
    is_dev: bool = False,
    base_url: str = "/",
    ) -> BlockContext:
    """Build a BlockContext for a parsed block."""
    return BlockContext(
        file=FileInfo(path=document_path, absolute=absolute_path or document_path),
        block=BlockInfo(
            content=block.code,
            language=block.language,
            name=block.name,
            params=dict(block.annotation),
            index=block.index,
        ),
        runtime=RuntimeInfo(is_dev=is_dev, base_url=base_url),
    )


@dataclass
class ParsedDoc:
    """Internal parse result carrying the markdown-it syntax tree; not persisted."""
    path:         Path
    rel_path:     str          # path relative to the content root, '/'-separated
    slug:         str
    raw_markdown: str          # full file content (includes frontmatter)
    markdown:     str          # body only (frontmatter stripped)
    hash:         str
    frontmatter:  dict[str, Any]
    tree:         Any          # markdown_it.tree.SyntaxTreeNode


@dataclass
class DocumentResult:
    """Output of processing one document."""
    path: str
    html: str
    collected_blocks: list[CollectedBlock] = field(default_factory=list)
    cache_keys: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
