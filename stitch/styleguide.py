"""Style guide step for Stitch.

Renders ``src/styleguide/index.md`` into ``<dist>/styleguide.html``. The
Markdown document is divided into sections by lines made of four or more
``=`` characters. Each section is converted with mistune, fenced code is
highlighted with Pygments, and the sections are poured into the Jinja2
template ``src/styleguide/template.html``, which receives:

- ``sections``: list of Section objects (``title``, ``anchor``, ``body``).
- ``pygments_css``: stylesheet for the highlighted code blocks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import mistune
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from markupsafe import Markup
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .config import BuildConfig
from .executor import StepExecutionError

SECTION_SPLIT_RE = re.compile(r"^={4,}\s*$", re.MULTILINE)
HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)


@dataclass
class Section:
    """One style guide section."""

    title: str
    anchor: str
    body: Markup


def _anchor(text: str) -> str:
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with Pygments syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        if info:
            lang = info.split()[0]
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{info}"' if info else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


def split_sections(markdown_text: str) -> list[Section]:
    """Split a style guide document into rendered sections.

    Args:
        markdown_text: Full Markdown source.

    Returns:
        Sections in document order; blank chunks are dropped.
    """
    markdown = mistune.create_markdown(
        renderer=_HighlightRenderer(), plugins=["strikethrough", "table", "url"]
    )
    sections = []
    seen: dict[str, int] = {}
    for chunk in SECTION_SPLIT_RE.split(markdown_text):
        if not chunk.strip():
            continue
        heading = HEADING_RE.search(chunk)
        title = heading.group(1) if heading else f"Section {len(sections) + 1}"
        anchor = _anchor(title) or f"section-{len(sections) + 1}"
        if anchor in seen:
            seen[anchor] += 1
            anchor = f"{anchor}-{seen[anchor]}"
        else:
            seen[anchor] = 0
        sections.append(Section(title=title, anchor=anchor, body=Markup(markdown(chunk))))
    return sections


class StyleGuideStep:
    """Builds the style guide page.

    Attributes:
        source: Markdown content file.
        template: Jinja2 page template.
        dest: Output HTML file.
    """

    name = "styleguide"

    def __init__(self, config: BuildConfig):
        self.config = config
        guide_dir = config.source_dir / "styleguide"
        self.source = guide_dir / "index.md"
        self.template = guide_dir / "template.html"
        self.dest = config.output_dir / "styleguide.html"

    def run(self) -> None:
        if not self.source.exists():
            return
        if not self.template.exists():
            raise StepExecutionError(
                self.name, f"template not found: {self._rel(self.template)}", kind="styleguide"
            )
        sections = split_sections(self.source.read_text(encoding="utf-8"))
        env = Environment(
            loader=FileSystemLoader(str(self.template.parent)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        try:
            html = env.get_template(self.template.name).render(
                sections=sections,
                pygments_css=HtmlFormatter().get_style_defs(".highlight"),
            )
        except TemplateError as exc:
            raise StepExecutionError(
                self.name, f"{self._rel(self.template)}: {exc}", exc, kind="styleguide"
            ) from exc
        self.dest.parent.mkdir(parents=True, exist_ok=True)
        self.dest.write_text(html, encoding="utf-8")

    def _rel(self, path: Path) -> str:
        return path.relative_to(self.config.project_root).as_posix()
