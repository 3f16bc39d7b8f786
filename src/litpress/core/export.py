"""Page output: render processed trees to HTML pages plus a sidecar JSON"""

import json
import os
from pathlib import Path
from typing import Optional

from markdown_it.tree import SyntaxTreeNode

from litpress.core.hydrate import generate_hydrate_script
from litpress.core.models import CollectedBlock, ParsedDoc
from litpress.core.parse import make_parser
from litpress.core.utils.html import escape_html


PAGE_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
</head>
<body>
<main>
{body}</main>
{scripts}</body>
</html>
"""


def render_body(tree: SyntaxTreeNode, parser_config: str = "gfm-like") -> str:
    md = make_parser(parser_config)
    return md.renderer.render(tree.to_tokens(), md.options, {})


def page_path(doc: ParsedDoc, output_dir: Path) -> Path:
    """Output path mirrors the source layout: blog/post.md -> output_dir/blog/post.html"""
    return output_dir / Path(doc.rel_path).with_suffix(".html")


def build_page(doc: ParsedDoc, body: str, loader_src: Optional[str] = None) -> str:
    title = doc.frontmatter.get("title") or doc.slug
    scripts = generate_hydrate_script(loader_src) + "\n" if loader_src else ""
    return PAGE_TEMPLATE.format(title=escape_html(str(title)), body=body, scripts=scripts)


def build_sidecar(doc: ParsedDoc, blocks: list[CollectedBlock], loader: Optional[str], errors: list[str]) -> dict:
    """Sidecar JSON: source path, slug, frontmatter, hydrated blocks, and block errors."""
    return {
        "path": doc.rel_path,
        "slug": doc.slug,
        "hash": doc.hash,
        "frontmatter": doc.frontmatter,
        "loader": loader,
        "blocks": [b.model_dump() for b in blocks],
        "errors": errors,
    }


def write_page(
    doc: ParsedDoc,
    body: str,
    output_dir: Path,
    blocks: list[CollectedBlock] = (),
    loader_path: Optional[Path] = None,
    errors: list[str] = (),
    ) -> tuple[Path, Path]:
    """Write HTML + sidecar JSON for a single document. Returns (html_path, json_path)."""
    html_path = page_path(doc, output_dir)
    html_path.parent.mkdir(parents=True, exist_ok=True)

    loader_src = None
    if loader_path is not None:
        loader_src = Path(os.path.relpath(loader_path.resolve(), html_path.parent.resolve())).as_posix()

    json_path = html_path.with_suffix(".json")
    html_path.write_text(build_page(doc, body, loader_src), encoding="utf-8")
    json_path.write_text(
        json.dumps(build_sidecar(doc, list(blocks), loader_src, list(errors)), indent=2, default=str),
        encoding="utf-8",
    )
    return html_path, json_path
