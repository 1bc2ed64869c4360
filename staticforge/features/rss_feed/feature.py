"""RSS feed feature: one RSS 2.0 feed per category.

Every rendered page with a ``category`` is collected after rendering. Once the
loop is over, ``<category>/rss.xml`` is written for each category with its pages
newest first. Item links come from the page's output location, so they follow
the Categories feature when it moves a page.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from markupsafe import escape

from staticforge.context import RenderContext
from staticforge.events import Event
from staticforge.features.base import BaseFeature
from staticforge.services import Services
from staticforge.utils import file_date, slugify, strip_tags, write_text_file

RSS_FILENAME = "rss.xml"
DESCRIPTION_LIMIT = 200
RFC822_FORMAT = "%a, %d %b %Y %H:%M:%S +0000"
WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class FeedItem:
    title: str
    url: str
    published: date
    description: str = ""
    content: str = ""
    author: str | None = None


@dataclass
class CategoryFeed:
    name: str
    slug: str
    items: list[FeedItem] = field(default_factory=list)


def extract_description(html: str, metadata: dict[str, Any]) -> str:
    """Return ``description`` metadata or the first words of the page text.

    Text longer than DESCRIPTION_LIMIT characters is cut at a word boundary and
    ends with ``...``.
    """
    if metadata.get("description"):
        return str(metadata["description"])
    text = WHITESPACE_RE.sub(" ", strip_tags(html)).strip()
    if len(text) <= DESCRIPTION_LIMIT:
        return text
    text = text[:DESCRIPTION_LIMIT]
    if " " in text:
        text = text[: text.rindex(" ")]
    return f"{text}..."


def _cdata(text: str) -> str:
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def build_feed(feed: CategoryFeed, site_name: str, base_url: str) -> str:
    """Render one category feed as RSS 2.0.

    Args:
        feed: Category and its items, in the order they should appear.
        site_name: Used in the channel title and description.
        base_url: Site root; item and channel links are absolute under it.
    """
    base_url = base_url.rstrip("/")
    channel_link = f"{base_url}/{feed.slug}/"
    build_date = datetime.now(timezone.utc).strftime(RFC822_FORMAT)
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom"'
        ' xmlns:content="http://purl.org/rss/1.0/modules/content/">',
        "  <channel>",
        f"    <title>{escape(f'{site_name} - {feed.name}')}</title>",
        f"    <link>{escape(channel_link)}</link>",
        f"    <description>{escape(f'{feed.name} articles from {site_name}')}</description>",
        "    <language>en-us</language>",
        f"    <lastBuildDate>{build_date}</lastBuildDate>",
        f'    <atom:link href="{escape(channel_link + RSS_FILENAME)}"'
        ' rel="self" type="application/rss+xml" />',
    ]
    for item in feed.items:
        link = escape(f"{base_url}/{item.url.lstrip('/')}")
        published = datetime.combine(item.published, datetime.min.time(), tzinfo=timezone.utc)
        lines.extend(
            [
                "    <item>",
                f"      <title>{escape(item.title)}</title>",
                f"      <link>{link}</link>",
                f"      <guid>{link}</guid>",
                f"      <pubDate>{published.strftime(RFC822_FORMAT)}</pubDate>",
            ]
        )
        if item.description:
            lines.append(f"      <description>{escape(item.description)}</description>")
        if item.content:
            lines.append(f"      <content:encoded>{_cdata(item.content)}</content:encoded>")
        if item.author:
            lines.append(f"      <author>{escape(item.author)}</author>")
        lines.append("    </item>")
    lines.extend(["  </channel>", "</rss>"])
    return "\n".join(lines) + "\n"


class Feature(BaseFeature):
    name = "RssFeed"
    event_listeners = {
        Event.POST_RENDER: {"method": "handle_post_render", "priority": 110},
        Event.POST_LOOP: {"method": "handle_post_loop", "priority": 90},
    }

    def __init__(self) -> None:
        super().__init__()
        self.feeds: dict[str, CategoryFeed] = {}

    def handle_post_render(self, services: Services, context: RenderContext) -> RenderContext:
        category = context.metadata.get("category")
        slug = slugify(str(category)) if category else ""
        if not slug or not context.output_path or context.rendered_content is None:
            return context
        output_dir = Path(services.require("output_dir"))
        try:
            relative = Path(context.output_path).relative_to(output_dir)
        except ValueError:
            return context

        metadata = context.metadata
        author = metadata.get("author")
        item = FeedItem(
            title=str(metadata.get("title") or "Untitled"),
            url="/" + relative.as_posix(),
            published=file_date(
                metadata.get("published_date") or metadata.get("date"), context.file_path
            ),
            description=extract_description(context.rendered_content, metadata),
            content=context.rendered_content,
            author=str(author) if author else None,
        )
        feed = self.feeds.setdefault(slug, CategoryFeed(name=str(category), slug=slug))
        feed.items.append(item)
        self.logger.debug("Collected feed item", file=str(context.file_path), category=slug)
        return context

    def handle_post_loop(self, services: Services, parameters: dict[str, Any]) -> None:
        feeds, self.feeds = self.feeds, {}
        if not feeds:
            self.logger.info("No categorized pages, skipping RSS feeds")
            return None
        config = self.config(services)
        site_name = str(config.get("site_name") or "")
        base_url = str(config.get("site_base_url") or "")
        output_dir = Path(services.require("output_dir"))
        for slug, feed in sorted(feeds.items()):
            feed.items.sort(key=lambda item: item.published, reverse=True)
            path = output_dir / slug / RSS_FILENAME
            write_text_file(path, build_feed(feed, site_name, base_url))
            self.logger.info("Wrote RSS feed", path=str(path), item_count=len(feed.items))
        return None
