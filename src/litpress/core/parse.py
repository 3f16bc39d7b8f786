"""File discovery, frontmatter extraction, and markdown-it syntax trees"""

import re
from pathlib import Path
from typing import Any, Optional

import yaml
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from litpress.core.errors import DuplicateBlockNameError
from litpress.core.models import ParsedCodeBlock, ParsedDoc
from litpress.core.params import NATIVE_EXTENSION, parse_block_parameters
from litpress.core.utils.hashing import sha256
from litpress.core.utils.slug import slugify


FRONTMATTER_RE = re.compile(r'^---\s*\n(.*?)\n---\s*\n', re.DOTALL)


def make_parser(preset: str = 'gfm-like') -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name."""
    return MarkdownIt(preset, options_update={"linkify": False})


def _strip_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Return (frontmatter_dict, body) with YAML header removed."""
    m = FRONTMATTER_RE.match(text)
    if m:
        try:
            fm = yaml.safe_load(m.group(1)) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML frontmatter: {e}") from e
        if not isinstance(fm, dict):
            raise ValueError(f"Invalid YAML frontmatter: expected a mapping, got {type(fm).__name__}")
        return fm, text[m.end():]
    return {}, text


def discover_files(path: Path) -> list[Path]:
    """Return sorted .md files under path, or [path] if a single file."""
    if path.is_file():
        return [path] if path.suffix == NATIVE_EXTENSION else []
    return sorted(p for p in path.rglob('*') if p.suffix == NATIVE_EXTENSION)


def relative_path(path: Path, root: Optional[Path] = None) -> str:
    """'/'-separated path relative to root, or the path itself if outside it."""
    if root is not None:
        try:
            return path.resolve().relative_to(root.resolve()).as_posix()
        except ValueError:
            pass
    return path.as_posix()


def parse_text(text: str, parser_config: str = 'gfm-like') -> SyntaxTreeNode:
    return SyntaxTreeNode(make_parser(parser_config).parse(text))


def parse_file(path: Path, parser_config: str = 'gfm-like', root: Optional[Path] = None) -> ParsedDoc:
    """Parse a single markdown file into a ParsedDoc with a syntax tree."""
    raw = path.read_text(encoding='utf-8')
    frontmatter, body = _strip_frontmatter(raw)
    slug = frontmatter.get('slug') or slugify(path.stem)
    return ParsedDoc(
        path=path,
        rel_path=relative_path(path, root),
        slug=slug,
        raw_markdown=raw,
        markdown=body,
        hash=sha256(raw),
        frontmatter=frontmatter,
        tree=parse_text(body, parser_config),
    )


def split_info(info: str) -> tuple[str, str]:
    """Fence info string -> (language, annotation string)."""
    info = info.strip()
    if not info:
        return "", ""
    language, _, annotation = info.partition(" ")
    return language, annotation.strip()


def find_code_blocks(
    tree: SyntaxTreeNode,
    document_path: str = "",
    ) -> list[tuple[SyntaxTreeNode, ParsedCodeBlock]]:
    """Fenced code blocks in depth-first document order, paired with their nodes.

    Raises DuplicateBlockNameError if two blocks share an explicit `:name`.
    """
    found = []
    names: dict[str, int] = {}
    fences = (n for n in tree.walk() if n.type == "fence")
    for index, node in enumerate(fences):
        language, annotation_string = split_info(node.info)
        annotation = parse_block_parameters(annotation_string)
        name = annotation.get("name") or None
        if name:
            if name in names:
                raise DuplicateBlockNameError(document_path, name, (names[name], index))
            names[name] = index
        block = ParsedCodeBlock(
            language=language,
            code=node.content.removesuffix("\n"),
            annotation_string=annotation_string,
            annotation=annotation,
            index=index,
            name=name,
        )
        found.append((node, block))
    return found
