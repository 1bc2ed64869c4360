import importlib
from datetime import date
from pathlib import Path

import pytest

from conftest import make_config, write
from staticforge.context import DiscoveredFile, RenderContext
from staticforge.discovery import ExtensionRegistry
from staticforge.events import Event, EventBus
from staticforge.services import Services
from staticforge.templates import TemplateRenderer


def load_feature(dirname: str):
    return importlib.import_module(f"staticforge.features.{dirname}.feature")


def make_services(tmp_path: Path, **config) -> Services:
    return Services(
        {
            "config": make_config(**config),
            "extension_registry": ExtensionRegistry(),
            "source_dir": tmp_path / "content",
            "output_dir": tmp_path / "public",
            "template_renderer": TemplateRenderer(tmp_path / "templates"),
        }
    )


def boot(dirname: str, services: Services):
    module = load_feature(dirname)
    feature = module.Feature()
    bus = EventBus(services)
    feature.register(bus, services)
    return module, feature, bus


def context_for(path: Path, **metadata) -> RenderContext:
    return RenderContext.for_file(DiscoveredFile(path=path, metadata=metadata))


def test_markdown_renderer_renders_markdown(tmp_path):
    services = make_services(tmp_path)
    _, feature, bus = boot("markdown_renderer", services)
    source = write(tmp_path / "content" / "post.md", "# Big Title\n\nSome *text*.\n")

    context = bus.fire(Event.RENDER, context_for(source))

    assert services["extension_registry"].registered_extensions() == [".md"]
    assert "<em>text</em>" in context.rendered_content
    assert context.metadata["title"] == "Big Title"
    assert context.metadata["template"] == "base"
    assert context.output_path == tmp_path / "public" / "post.html"
    assert feature.get_event_listeners() == [Event.RENDER]


def test_markdown_metadata_precedence(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("markdown_renderer", services)
    source = write(
        tmp_path / "content" / "post.md",
        "---\ntitle: From Frontmatter\nauthor: Ann\n---\nBody\n",
    )
    context = context_for(source)
    context.metadata["author"] = "Set Earlier"

    context = bus.fire(Event.RENDER, context)

    assert context.metadata["title"] == "From Frontmatter"
    assert context.metadata["author"] == "Set Earlier"


def test_markdown_renderer_ignores_other_extensions(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("markdown_renderer", services)
    source = write(tmp_path / "content" / "page.html", "<p>x</p>")
    context = bus.fire(Event.RENDER, context_for(source))
    assert context.rendered_content is None
    assert context.output_path is None


def test_markdown_renderer_uses_layout(tmp_path):
    write(
        tmp_path / "templates" / "default" / "post.html.jinja",
        "<h2>{{ title }}</h2>{{ toc }}<div>{{ content }}</div>",
    )
    services = make_services(tmp_path)
    _, _, bus = boot("markdown_renderer", services)
    source = write(
        tmp_path / "content" / "post.md",
        "---\ntemplate: post\ntitle: A & B\n---\n## Part\n\ntext\n",
    )

    context = bus.fire(Event.RENDER, context_for(source))

    assert "<h2>A &amp; B</h2>" in context.rendered_content
    assert '<a href="#part">Part</a>' in context.rendered_content
    assert '<h2 id="part">Part</h2>' in context.rendered_content


def test_html_renderer_strips_frontmatter_comment(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("html_renderer", services)
    source = write(
        tmp_path / "content" / "about.html",
        "<!--\n---\ndescription: Team\n---\n-->\n<h1>About <em>us</em></h1>\n",
    )

    context = bus.fire(Event.RENDER, context_for(source))

    assert context.rendered_content == "<h1>About <em>us</em></h1>\n"
    assert context.metadata["title"] == "About us"
    assert context.metadata["description"] == "Team"
    assert context.output_path == tmp_path / "public" / "about.html"


def test_first_renderer_wins(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("markdown_renderer", services)
    source = write(tmp_path / "content" / "post.md", "Body")
    context = context_for(source)
    context.rendered_content = "already rendered"
    assert bus.fire(Event.RENDER, context).rendered_content == "already rendered"


def test_reading_time(tmp_path):
    services = make_services(tmp_path, reading_time={"wpm": 2, "label_plural": "mins"})
    module, _, bus = boot("reading_time", services)
    source = write(tmp_path / "content" / "post.md", "---\ntitle: x y z\n---\none two <b>three</b>\n")

    context = bus.fire(Event.PRE_RENDER, context_for(source))

    assert context.metadata["reading_time_minutes"] == 2
    assert context.metadata["reading_time_label"] == "2 mins"
    assert module.estimate_reading_time("") == (1, "1 min read")
    assert module.estimate_reading_time("word " * 401) == (3, "3 min read")


def test_reading_time_exclude(tmp_path):
    services = make_services(tmp_path, reading_time={"exclude": ["legal/"]})
    _, _, bus = boot("reading_time", services)
    source = write(tmp_path / "content" / "legal" / "terms.md", "words")
    context = bus.fire(Event.PRE_RENDER, context_for(source))
    assert "reading_time_minutes" not in context.metadata


@pytest.mark.parametrize(
    ("draft", "include", "skipped"),
    [(True, False, True), (True, True, False), (False, False, False), ("true", False, False)],
)
def test_drafts(tmp_path, draft, include, skipped):
    services = make_services(tmp_path, include_drafts=include)
    _, _, bus = boot("drafts", services)
    context = bus.fire(Event.PRE_RENDER, context_for(tmp_path / "a.md", draft=draft))
    assert context.skip_file is skipped


def test_tags_index_and_related_files(tmp_path):
    services = make_services(tmp_path)
    module, _, bus = boot("tags", services)
    services["features"] = {}
    services["discovered_files"] = [
        DiscoveredFile(path=Path("a.md"), metadata={"tags": ["Python", "web"]}),
        DiscoveredFile(path=Path("b.md"), metadata={"tags": "python, web"}),
        DiscoveredFile(path=Path("c.md"), metadata={"tags": ["python"]}),
        DiscoveredFile(path=Path("d.md"), metadata={}),
    ]

    bus.fire(Event.POST_GLOB, {})

    published = services["features"]["Tags"]
    assert published["all_tags"] == ["python", "web"]
    assert published["tag_counts"] == {"python": 3, "web": 2}
    assert published["tag_index"]["web"] == ["a.md", "b.md"]

    context = bus.fire(Event.PRE_RENDER, context_for(Path("a.md"), tags=["python", "web"]))
    assert context.extra["tag_data"]["tags"] == ["python", "web"]
    assert context.extra["tag_data"]["related_files"] == ["b.md", "c.md"]
    assert module.normalize_tags(None) == []
    assert module.normalize_tags(" A , a,b ") == ["a", "b"]


def test_sitemap_collects_and_writes(tmp_path):
    services = make_services(tmp_path, site_base_url="https://example.com/")
    module, _, bus = boot("sitemap", services)
    out = tmp_path / "public"

    for name, metadata in (("a.md", {"date": date(2024, 1, 2)}), ("b.md", {"date": "2023-05-06"})):
        context = context_for(tmp_path / "content" / name)
        context.metadata.update(metadata)
        context.rendered_content = "x"
        context.output_path = out / "blog" / name.replace(".md", ".html")
        bus.fire(Event.POST_RENDER, context)
    bus.fire(Event.POST_RENDER, context_for(tmp_path / "content" / "skipped.md"))

    bus.fire(Event.POST_LOOP, {})

    xml = (out / module.SITEMAP_FILENAME).read_text(encoding="utf-8")
    assert "<loc>https://example.com/blog/a.html</loc><lastmod>2024-01-02</lastmod>" in xml
    assert "<loc>https://example.com/blog/b.html</loc><lastmod>2023-05-06</lastmod>" in xml
    assert "skipped" not in xml


def test_sitemap_without_pages_writes_nothing(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("sitemap", services)
    bus.fire(Event.POST_LOOP, {})
    assert not (tmp_path / "public" / "sitemap.xml").exists()


def test_renderer_base_is_abstract():
    from staticforge.features.base import BaseRendererFeature

    with pytest.raises(TypeError):
        BaseRendererFeature()


def rendered_context(path: Path, output_path: Path, **metadata) -> RenderContext:
    context = context_for(path, **metadata)
    context.metadata.update(metadata)
    context.rendered_content = "<p>Body</p>"
    context.output_path = output_path
    return context


def test_categories_move_top_level_pages(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("categories", services)
    out = tmp_path / "public"

    moved = bus.fire(
        Event.RENDER,
        rendered_context(tmp_path / "content" / "post.md", out / "post.html", category="Release Notes"),
    )
    nested = bus.fire(
        Event.RENDER,
        rendered_context(tmp_path / "content" / "docs" / "a.md", out / "docs" / "a.html", category="Blog"),
    )
    plain = bus.fire(Event.RENDER, rendered_context(tmp_path / "content" / "b.md", out / "b.html"))

    assert moved.output_path == out / "release-notes" / "post.html"
    assert nested.output_path == out / "docs" / "a.html"
    assert plain.output_path == out / "b.html"


def test_category_output_matches_discovered_url(tmp_path):
    from staticforge.discovery import FileDiscovery

    source = tmp_path / "content"
    page = write(source / "post.md", "---\ncategory: Release Notes\n---\nBody\n")
    registry = ExtensionRegistry()
    registry.register_extension(".md")
    discovered = FileDiscovery(source, registry).describe(page)

    services = make_services(tmp_path)
    _, _, bus = boot("categories", services)
    out = tmp_path / "public"
    context = bus.fire(
        Event.RENDER, rendered_context(page, out / "post.html", category="Release Notes")
    )

    assert "/" + context.output_path.relative_to(out).as_posix() == discovered.url


def test_category_templates_apply_to_members(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("categories", services)
    services["features"] = {}
    services["discovered_files"] = [
        DiscoveredFile(path=Path("news.md"), metadata={"type": "category", "template": "listing"}),
        DiscoveredFile(path=Path("a.md"), metadata={"category": "News"}),
        DiscoveredFile(path=Path("b.md"), metadata={"category": "News", "template": "custom"}),
        DiscoveredFile(path=Path("c.md"), metadata={"category": "Other"}),
    ]

    bus.fire(Event.POST_GLOB, {})

    assert services["features"]["Categories"] == {
        "categories": {"news": 2, "other": 1},
        "templates": {"news": "listing"},
    }
    member = bus.fire(Event.PRE_RENDER, context_for(Path("a.md"), category="News"))
    own = bus.fire(Event.PRE_RENDER, context_for(Path("b.md"), category="News", template="custom"))
    other = bus.fire(Event.PRE_RENDER, context_for(Path("c.md"), category="Other"))
    assert member.metadata["template"] == "listing"
    assert "template" not in own.metadata
    assert "template" not in other.metadata


def test_rss_description():
    module = load_feature("rss_feed")
    assert module.extract_description("<p>ignored</p>", {"description": "Given"}) == "Given"
    assert module.extract_description("<p>Short\n  text</p>", {}) == "Short text"
    long_text = "<p>" + "word " * 100 + "</p>"
    description = module.extract_description(long_text, {})
    assert description.endswith("word...")
    assert len(description) <= module.DESCRIPTION_LIMIT + 3


def test_rss_feed_per_category(tmp_path):
    services = make_services(
        tmp_path, site_name="Test Site", site_base_url="https://example.com/"
    )
    module, _, bus = boot("rss_feed", services)
    out = tmp_path / "public"

    for name, published in (("old.md", "2023-01-01"), ("new.md", "2024-06-01")):
        bus.fire(
            Event.POST_RENDER,
            rendered_context(
                tmp_path / "content" / name,
                out / "news" / name.replace(".md", ".html"),
                category="News",
                title=f"{name} & more",
                date=published,
            ),
        )
    bus.fire(Event.POST_RENDER, rendered_context(tmp_path / "content" / "x.md", out / "x.html"))

    bus.fire(Event.POST_LOOP, {})

    xml = (out / "news" / module.RSS_FILENAME).read_text(encoding="utf-8")
    assert "<title>Test Site - News</title>" in xml
    assert "<link>https://example.com/news/</link>" in xml
    assert "<title>new.md &amp; more</title>" in xml
    assert xml.index("new.html") < xml.index("old.html")
    assert "<pubDate>Sat, 01 Jun 2024 00:00:00 +0000</pubDate>" in xml
    assert "<content:encoded><![CDATA[<p>Body</p>]]></content:encoded>" in xml
    assert [p.name for p in out.iterdir()] == ["news"]


def test_rss_cdata_escapes_terminator():
    module = load_feature("rss_feed")
    assert module._cdata("a]]>b") == "<![CDATA[a]]]]><![CDATA[>b]]>"


def test_robots_txt(tmp_path):
    services = make_services(tmp_path, site_base_url="https://example.com")
    module, _, bus = boot("robots_txt", services)
    services["discovered_files"] = [
        DiscoveredFile(path=Path("secret.md"), url="/secret.html", metadata={"robots": "no"}),
        DiscoveredFile(path=Path("open.md"), url="/open.html", metadata={}),
        DiscoveredFile(
            path=Path("drafts.md"), url="/drafts.html", metadata={"type": "category", "robots": "No"}
        ),
    ]

    bus.fire(Event.POST_GLOB, {})
    bus.fire(Event.POST_LOOP, {})

    text = (tmp_path / "public" / module.ROBOTS_FILENAME).read_text(encoding="utf-8")
    assert text == (
        "User-agent: *\n"
        "Disallow: /secret.html\n"
        "Disallow: /drafts/\n"
        "\n"
        "Sitemap: https://example.com/sitemap.xml\n"
    )


def test_robots_txt_allows_everything_by_default():
    module = load_feature("robots_txt")
    assert module.build_robots_txt([]) == "User-agent: *\nDisallow:\n"


def test_robots_txt_skipped_without_files(tmp_path):
    services = make_services(tmp_path)
    _, _, bus = boot("robots_txt", services)
    bus.fire(Event.POST_GLOB, {})
    bus.fire(Event.POST_LOOP, {})
    assert not (tmp_path / "public" / "robots.txt").exists()
