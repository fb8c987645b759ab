from pathlib import Path

import pytest

from stitch.config import load_config

CONFIG_YML = """\
PORT: 8000
COMPATIBILITY:
  - "last 2 versions"
PATHS:
  dist: "dist"
  assets:
    - "src/assets/**/*"
    - "!src/assets/{js,scss,tailwind}/**/*"
  sass: []
  entries:
    - "src/assets/js/app.js"
"""


def create_project(root: Path) -> Path:
    src = root / "src"
    for folder in [
        "pages/blog",
        "layouts",
        "partials",
        "data",
        "helpers",
        "assets/scss",
        "assets/js",
        "assets/img",
        "assets/fonts",
        "styleguide",
    ]:
        (src / folder).mkdir(parents=True, exist_ok=True)

    (root / "config.yml").write_text(CONFIG_YML, encoding="utf-8")
    (src / "layouts" / "default.html").write_text(
        "<html><head><title>{{ title }}</title></head>"
        "<body>{% include 'header.html' %}{{ body }}</body></html>\n",
        encoding="utf-8",
    )
    (src / "partials" / "header.html").write_text(
        "<header>{{ data.site.name }}</header>", encoding="utf-8"
    )
    (src / "data" / "site.yml").write_text("name: Demo\n", encoding="utf-8")
    (src / "helpers" / "text.py").write_text(
        "def shout(value):\n    return str(value).upper()\n", encoding="utf-8"
    )
    (src / "pages" / "index.html").write_text(
        "---\ntitle: Home\n---\n<h1>{{ 'welcome' | shout }}</h1>\n", encoding="utf-8"
    )
    (src / "pages" / "blog" / "post.html").write_text(
        "---\ntitle: Post\n---\n<a href=\"{{ root }}index.html\">home</a>\n",
        encoding="utf-8",
    )
    (src / "assets" / "scss" / "app.scss").write_text(
        "body { color: red; }\n", encoding="utf-8"
    )
    (src / "assets" / "scss" / "_settings.scss").write_text(
        "$primary: blue;\n", encoding="utf-8"
    )
    (src / "assets" / "js" / "app.js").write_text(
        "function add(a, b) {\n  // sum\n  return a + b;\n}\n", encoding="utf-8"
    )
    (src / "assets" / "img" / "logo.svg").write_text("<svg></svg>", encoding="utf-8")
    (src / "assets" / "fonts" / "font.woff2").write_bytes(b"\x00font")
    (src / "styleguide" / "index.md").write_text(
        "# Colors\n\nPrimary is blue.\n\n====\n\n# Buttons\n\n```html\n<button>Go</button>\n```\n",
        encoding="utf-8",
    )
    (src / "styleguide" / "template.html").write_text(
        "<html><body>{% for section in sections %}"
        "<section id=\"{{ section.anchor }}\"><h2>{{ section.title }}</h2>{{ section.body }}</section>"
        "{% endfor %}</body></html>",
        encoding="utf-8",
    )
    return root


@pytest.fixture(autouse=True)
def no_external_tools(monkeypatch):
    """Pretend sass, tailwindcss, esbuild and postcss are not installed."""
    monkeypatch.setattr("stitch.styles.find_executable", lambda name, root=None: None)
    monkeypatch.setattr("stitch.scripts.find_executable", lambda name, root=None: None)


@pytest.fixture
def project(tmp_path):
    return create_project(tmp_path)


@pytest.fixture
def config(project):
    return load_config(project)
