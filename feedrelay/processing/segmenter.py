"""
Structural Segmenter
====================

Turns a stored body into either an article (body passed through untouched)
or a slideshow: an intro plus an ordered list of image-anchored slides.

Slideshow segmentation over the flattened node sequence:

- sidebars are removed and grouping containers unwrapped
- a slide anchor is an image figure whose ``img`` has a usable ``src`` or
  ``data-src``; figures without one are not slides but still end the
  previous slide
- a slide's title is the first matching heading after its anchor, its text
  is the markup of the element siblings after that heading up to the next
  image figure, and its attribution is the figure caption; a slide with no
  heading has empty text
- the intro is the tag-stripped text of everything before the first slide
  anchor, with word breaks only at block elements and whitespace collapsed

The result depends only on the input markup.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from bs4.element import Declaration, Doctype, ProcessingInstruction

from ..database.models import Slide


SLIDESHOW_FLAG = "slideshow"
DEFAULT_IMAGE_DESCRIPTION = "Image Provided by Source"

BLOCK_TAGS = frozenset([
    "address", "blockquote", "br", "dd", "div", "dl", "dt", "figcaption", "figure",
    "h1", "h2", "h3", "h4", "h5", "h6", "hr", "li", "ol", "p", "pre", "table",
    "td", "th", "tr", "ul",
])
NON_TEXT_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)


@dataclass(frozen=True)
class SegmentedBody:
    """Normalized body of one item."""
    is_slideshow: bool
    body: str
    intro: str = ""
    slides: List[Slide] = field(default_factory=list)


class StructuralSegmenter:
    """Segments WordPress block markup into slides."""

    SIDEBAR_SELECTORS = [".entry__sidebar", "aside"]
    GROUPING_TAGS = ["html", "body", "div", "section", "article", "main"]
    IMAGE_URL_ATTRIBUTES = ("src", "data-src")

    def __init__(
        self,
        anchor_class: str = "wp-block-image",
        heading_tag: str = "h2",
        heading_class: Optional[str] = "wp-block-heading",
        caption_class: str = "wp-element-caption",
    ):
        self.anchor_class = anchor_class
        self.heading_tag = heading_tag
        self.heading_class = heading_class
        self.caption_class = caption_class
        self.parser = "html.parser"
        self._whitespace = re.compile(r"\s+")

    def normalize(self, raw_body: Optional[str], content_type: Optional[str]) -> SegmentedBody:
        """Normalize one body according to the feed's content type flag."""
        if not raw_body:
            return SegmentedBody(is_slideshow=False, body="")

        if (content_type or "").strip().lower() != SLIDESHOW_FLAG:
            return SegmentedBody(is_slideshow=False, body=raw_body)

        return self.segment_slideshow(raw_body)

    def segment_slideshow(self, raw_body: str) -> SegmentedBody:
        soup = BeautifulSoup(raw_body, self.parser)
        self._flatten(soup)

        anchors = self._find_anchors(soup)
        if not anchors:
            intro = self._collapse(self._text_of(soup))
            return SegmentedBody(is_slideshow=True, body=intro, intro=intro, slides=[])

        slides = [self._build_slide(figure, img, url) for figure, img, url in anchors]
        intro = self._intro_before(anchors[0][0])

        return SegmentedBody(is_slideshow=True, body=intro, intro=intro, slides=slides)

    def _flatten(self, soup: BeautifulSoup) -> None:
        for selector in self.SIDEBAR_SELECTORS:
            for element in soup.select(selector):
                element.decompose()

        for element in soup.find_all(self.GROUPING_TAGS):
            element.unwrap()

    def _is_boundary(self, node) -> bool:
        return (
            isinstance(node, Tag)
            and node.name == "figure"
            and self.anchor_class in (node.get("class") or [])
        )

    def _is_heading(self, node) -> bool:
        if not isinstance(node, Tag) or node.name != self.heading_tag:
            return False
        return self.heading_class is None or self.heading_class in (node.get("class") or [])

    def _find_anchors(self, soup: BeautifulSoup) -> List[Tuple[Tag, Tag, str]]:
        anchors = []
        for figure in soup.find_all("figure", class_=self.anchor_class):
            img = figure.find("img")
            if img is None:
                continue
            url = self._image_url(img)
            if not url:
                continue
            anchors.append((figure, img, url))
        return anchors

    def _image_url(self, img: Tag) -> Optional[str]:
        for attribute in self.IMAGE_URL_ATTRIBUTES:
            value = (img.get(attribute) or "").strip()
            if value:
                return value
        return None

    def _build_slide(self, figure: Tag, img: Tag, url: str) -> Slide:
        heading = None
        for sibling in figure.next_siblings:
            if self._is_boundary(sibling):
                break
            if self._is_heading(sibling):
                heading = sibling
                break

        parts = []
        if heading is not None:
            for sibling in heading.next_siblings:
                if self._is_boundary(sibling):
                    break
                if isinstance(sibling, Tag):
                    parts.append(str(sibling))

        caption = figure.find(class_=self.caption_class)

        return Slide(
            url=url,
            title=heading.get_text().strip() if heading is not None else "",
            text="".join(parts),
            description=(img.get("alt") or "").strip() or DEFAULT_IMAGE_DESCRIPTION,
            attribution=caption.get_text().strip() if caption is not None else "",
        )

    def _intro_before(self, first_anchor: Tag) -> str:
        parts = [self._text_of(sibling) for sibling in first_anchor.previous_siblings]
        parts.reverse()
        return self._collapse("".join(parts))

    def _text_of(self, node) -> str:
        """Tag-stripped text; only block elements add word breaks."""
        if isinstance(node, NON_TEXT_STRINGS):
            return ""
        if isinstance(node, NavigableString):
            return str(node)
        inner = "".join(self._text_of(child) for child in node.children)
        if node.name in BLOCK_TAGS:
            return f" {inner} "
        return inner

    def _collapse(self, text: str) -> str:
        return self._whitespace.sub(" ", text).strip()
