"""Page-set queries exposed to server blocks as `content`"""

from pathlib import PurePosixPath
from typing import Iterable, Optional

from litpress.core.models import PageInfo, ParsedDoc
from litpress.core.params import NATIVE_EXTENSION
from litpress.core.utils.html import escape_html


SORT_FIELDS = ("file", "date", "title")


def page_url(rel_path: str) -> str:
    """'/blog/post' for 'blog/post.md'; index pages map to their directory."""
    path = rel_path.replace("\\", "/")
    if path.endswith(NATIVE_EXTENSION):
        path = path[:-len(NATIVE_EXTENSION)]
    url = "/" + path
    if url.endswith("/index"):
        url = url[:-len("/index")]
    return url or "/"


def page_href(rel_path: str, base_url: str = "/") -> str:
    """Link to the written page: output files mirror the source layout, case included."""
    return base_url.rstrip("/") + "/" + PurePosixPath(rel_path).with_suffix(".html").as_posix()


def page_info(doc: ParsedDoc) -> PageInfo:
    """PageInfo from a parsed document's frontmatter."""
    fm = doc.frontmatter
    date = fm.get("date")
    return PageInfo(
        file=doc.rel_path,
        url=page_url(doc.rel_path),
        title=str(fm["title"]) if fm.get("title") else None,
        date=str(date) if date else None,
        description=fm.get("description"),
        author=fm.get("author"),
        draft=bool(fm.get("draft")) or fm.get("status") == "draft",
    )


def sort_pages(pages: list[PageInfo], sort_by: str = "file", sort_order: str = "desc") -> list[PageInfo]:
    """Return a new list sorted by file, date, or title."""
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {sort_by}")
    return sorted(pages, key=lambda p: getattr(p, sort_by) or "", reverse=sort_order != "asc")


def render_page_list(
    pages: list[PageInfo],
    show_date: bool = False,
    show_author: bool = False,
    show_excerpt: bool = False,
    base_url: str = "/",
    ) -> str:
    """HTML list of links to pages."""
    if not pages:
        return "<p>No posts found.</p>"

    items = []
    for page in pages:
        title = page.title or page.file.removesuffix(NATIVE_EXTENSION)
        parts = [f'<a href="{page_href(page.file, base_url)}">{escape_html(title)}</a>']
        if show_date and page.date:
            parts.append(f"<time>{escape_html(page.date)}</time>")
        if show_author and page.author:
            parts.append(f'<span class="author">by {escape_html(page.author)}</span>')
        if show_excerpt and page.description:
            parts.append(f'<p class="excerpt">{escape_html(page.description)}</p>')
        items.append(f"<li>{' '.join(parts)}</li>")
    return f'<ul class="content-list">{"".join(items)}</ul>'


class ContentHelpers:
    """Read-only view over the pages of the current build."""

    def __init__(self, pages: Iterable[PageInfo] = (), is_dev: bool = False, base_url: str = "/"):
        self._pages = list(pages)
        self._is_dev = is_dev
        self._base_url = base_url

    def is_development(self) -> bool:
        return self._is_dev

    def get_pages(
        self,
        include_drafts: Optional[bool] = None,
        sort_by: str = "file",
        sort_order: str = "desc",
        directory: Optional[str] = None,
        ) -> list[PageInfo]:
        """Pages in the build; drafts are included only in development by default."""
        if include_drafts is None:
            include_drafts = self._is_dev
        pages = [p for p in self._pages if include_drafts or not p.draft]
        if directory:
            prefix = directory.strip("/") + "/"
            pages = [p for p in pages if p.file.startswith(prefix)]
        return sort_pages(pages, sort_by, sort_order)

    def get_pages_in_directory(self, directory: str, **options) -> list[PageInfo]:
        return self.get_pages(directory=directory, **options)

    def render_page_list(self, pages: list[PageInfo], show_date: bool = False, **options) -> str:
        options.setdefault("base_url", self._base_url)
        return render_page_list(pages, show_date=show_date, **options)


def create_content_helpers(docs: Iterable[ParsedDoc] = (), is_dev: bool = False, base_url: str = "/") -> ContentHelpers:
    return ContentHelpers((page_info(d) for d in docs), is_dev=is_dev, base_url=base_url)
