import pytest

from stitch.executor import StepExecutionError
from stitch.pages import PageRenderer


def test_renders_pages_with_layout_partials_data_and_helpers(config):
    PageRenderer(config).run()
    index = (config.output_dir / "index.html").read_text(encoding="utf-8")
    assert "<title>Home</title>" in index
    assert "<header>Demo</header>" in index
    assert "<h1>WELCOME</h1>" in index

    post = (config.output_dir / "blog" / "post.html").read_text(encoding="utf-8")
    assert '<a href="../index.html">home</a>' in post


def test_handlebars_extension_becomes_html(config):
    (config.source_dir / "pages" / "about.hbs").write_text(
        "---\nlayout: none\n---\nabout", encoding="utf-8"
    )
    PageRenderer(config).run()
    assert (config.output_dir / "about.html").read_text(encoding="utf-8") == "about"


def test_partial_change_is_stale_until_refresh(config):
    renderer = PageRenderer(config)
    renderer.run()
    assert renderer.cached_templates > 0

    partial = config.source_dir / "partials" / "header.html"
    partial.write_text("<header>Changed</header>", encoding="utf-8")
    renderer.run()
    index = config.output_dir / "index.html"
    assert "<header>Demo</header>" in index.read_text(encoding="utf-8")

    renderer.refresh()
    assert renderer.cached_templates == 0
    renderer.run()
    html = index.read_text(encoding="utf-8")
    assert "<header>Changed</header>" in html
    assert "Demo" not in html


def test_refresh_reloads_data_and_helpers(config):
    renderer = PageRenderer(config)
    renderer.run()
    (config.source_dir / "data" / "site.yml").write_text("name: Renamed\n", encoding="utf-8")
    (config.source_dir / "helpers" / "text.py").write_text(
        "def shout(value):\n    return str(value).upper() + '!'\n", encoding="utf-8"
    )
    renderer.refresh()
    renderer.run()
    html = (config.output_dir / "index.html").read_text(encoding="utf-8")
    assert "<header>Renamed</header>" in html
    assert "WELCOME!" in html


def test_failed_render_writes_nothing(config):
    renderer = PageRenderer(config)
    renderer.run()
    index = config.output_dir / "index.html"
    before = index.read_bytes()

    (config.source_dir / "pages" / "index.html").write_text("<p>new</p>", encoding="utf-8")
    (config.source_dir / "pages" / "zz-broken.html").write_text("{% if %}", encoding="utf-8")
    with pytest.raises(StepExecutionError) as exc:
        renderer.run()
    assert exc.value.kind == "render"
    assert "syntax error" in exc.value.message
    assert index.read_bytes() == before


def test_missing_layout_is_a_render_failure(config):
    (config.source_dir / "pages" / "odd.html").write_text(
        "---\nlayout: nowhere\n---\nx", encoding="utf-8"
    )
    with pytest.raises(StepExecutionError, match="layout not found: nowhere"):
        PageRenderer(config).run()


def test_rendering_twice_is_byte_identical(config):
    renderer = PageRenderer(config)
    renderer.run()
    first = {p: p.read_bytes() for p in config.output_dir.rglob("*.html")}
    renderer.run()
    second = {p: p.read_bytes() for p in config.output_dir.rglob("*.html")}
    assert first == second
