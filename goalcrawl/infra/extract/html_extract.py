"""HTML content and link extraction built on the stdlib HTML tokenizer."""
from __future__ import annotations

import html.parser
import re
from collections import Counter
from urllib.parse import urljoin

from loguru import logger

from goalcrawl.core.models import EntityMention
from goalcrawl.core.ports import ContentExtractor, Extraction, LinkExtractor, RawLink
from goalcrawl.core.text import normalize_space

SKIP_TAGS = {"script", "style", "noscript", "template", "iframe", "svg", "nav", "header", "footer", "aside"}
MAIN_TAGS = {"main", "article"}
BLOCK_TAGS = {
    "p", "div", "section", "br", "li", "ul", "ol", "h1", "h2", "h3", "h4", "h5", "h6",
    "tr", "td", "th", "table", "blockquote", "pre", "dd", "dt", "main", "article",
}
SPA_MARKERS = ("data-reactroot", "ng-app", "v-app", "__NEXT_DATA__", "id=\"__nuxt\"")
_SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "data:")

_PHRASE = re.compile(r"\b([A-Z][a-zA-Z0-9]+(?:\s+[A-Z][a-zA-Z0-9]+)+)\b")
_ACRONYM = re.compile(r"\b([A-Z]{2,}[0-9]*)\b")


class _ContentParser(html.parser.HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.title_parts: list[str] = []
        self.body_parts: list[str] = []
        self.main_parts: list[str] = []
        self._in_title = False
        self._skip_depth = 0
        self._main_depth = 0

    def handle_starttag(self, tag, attrs):
        tag = tag.lower()
        if tag == "title":
            self._in_title = True
        elif tag in SKIP_TAGS:
            self._skip_depth += 1
        elif tag in MAIN_TAGS:
            self._main_depth += 1
        if tag in BLOCK_TAGS:
            self._append(" ")

    def handle_endtag(self, tag):
        tag = tag.lower()
        if tag == "title":
            self._in_title = False
        elif tag in SKIP_TAGS and self._skip_depth > 0:
            self._skip_depth -= 1
        elif tag in MAIN_TAGS and self._main_depth > 0:
            self._main_depth -= 1
        if tag in BLOCK_TAGS:
            self._append(" ")

    def handle_data(self, data):
        if self._in_title:
            self.title_parts.append(data)
            return
        if self._skip_depth:
            return
        self._append(data)

    def _append(self, data: str) -> None:
        self.body_parts.append(data)
        if self._main_depth:
            self.main_parts.append(data)


def extract_entities(text: str, *, limit: int = 20) -> tuple[EntityMention, ...]:
    counts: Counter[tuple[str, str]] = Counter()
    for match in _PHRASE.findall(text or ""):
        counts[(match, "phrase")] += 1
    for match in _ACRONYM.findall(text or ""):
        counts[(match, "acronym")] += 1
    return tuple(
        EntityMention(name=name, type=kind, mentions=n)
        for (name, kind), n in counts.most_common(limit)
    )


class HtmlContentExtractor(ContentExtractor):
    def __init__(self, max_chars: int = 60000):
        self.max_chars = max(1, int(max_chars))

    def extract(self, html: str, url: str) -> Extraction:
        if not html:
            return Extraction(title="Empty Page", text="")
        parser = _ContentParser()
        try:
            parser.feed(html)
            parser.close()
        except Exception as exc:
            logger.warning("HTML parse failed for {}: {}", url, exc)
        title = normalize_space("".join(parser.title_parts)) or "Untitled Page"
        main_text = normalize_space("".join(parser.main_parts))
        text = main_text or normalize_space("".join(parser.body_parts))
        text = text[: self.max_chars]
        return Extraction(title=title, text=text, content_type="text/html", entities=extract_entities(text))


class _LinkParser(html.parser.HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.text_parts: list[str] = []
        self.offset = 0
        self.anchors: list[tuple[str, int, int, str]] = []
        self._open: tuple[str, int, list[str]] | None = None
        self._skip_depth = 0

    def _close_anchor(self):
        if self._open is None:
            return
        href, start, parts = self._open
        self.anchors.append((href, start, self.offset, normalize_space("".join(parts))))
        self._open = None

    def handle_starttag(self, tag, attrs):
        tag = tag.lower()
        if tag in {"script", "style", "template"}:
            self._skip_depth += 1
            return
        if tag == "a":
            self._close_anchor()
            href = next((v for k, v in attrs if k.lower() == "href" and v), None)
            if href:
                self._open = (href.strip(), self.offset, [])
        elif tag in BLOCK_TAGS:
            self._write(" ")

    def handle_endtag(self, tag):
        tag = tag.lower()
        if tag in {"script", "style", "template"}:
            if self._skip_depth > 0:
                self._skip_depth -= 1
            return
        if tag == "a":
            self._close_anchor()
        elif tag in BLOCK_TAGS:
            self._write(" ")

    def handle_data(self, data):
        if self._skip_depth:
            return
        if self._open is not None:
            self._open[2].append(data)
        self._write(data)

    def _write(self, data: str) -> None:
        self.text_parts.append(data)
        self.offset += len(data)

    def close(self):
        super().close()
        self._close_anchor()


class HtmlLinkExtractor(LinkExtractor):
    def __init__(self, context_chars: int = 80):
        self.context_chars = max(0, int(context_chars))

    def extract_links(self, html: str, base_url: str) -> list[RawLink]:
        if not html:
            return []
        if any(marker in html for marker in SPA_MARKERS):
            logger.info("SPA markers detected on {}; link extraction may be incomplete", base_url)
        parser = _LinkParser()
        try:
            parser.feed(html)
            parser.close()
        except Exception as exc:
            logger.warning("Link extraction failed for {}: {}", base_url, exc)
        text = "".join(parser.text_parts)

        links: list[RawLink] = []
        seen: set[str] = set()
        for href, start, end, anchor_text in parser.anchors:
            lowered = href.lower()
            if not href or href == "#" or lowered.startswith(_SKIP_HREF_PREFIXES):
                continue
            try:
                absolute = urljoin(base_url, href)
            except ValueError:
                logger.debug("dropping malformed link {!r} on {}", href, base_url)
                continue
            if absolute in seen:
                continue
            seen.add(absolute)
            ctx_start = max(0, start - self.context_chars)
            ctx_end = min(len(text), end + self.context_chars)
            links.append(RawLink(url=absolute, anchor_text=anchor_text, context=normalize_space(text[ctx_start:ctx_end])))
        return links
