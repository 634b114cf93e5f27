"""Convert XHTML content documents into Markdown."""

import html
import logging
import posixpath
import re
from collections.abc import Callable
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Comment, NavigableString, Tag, UnicodeDammit
from markdownify import MarkdownConverter, chomp, should_remove_whitespace_inside

from epub2mdbook.core.navigation import first_heading
from epub2mdbook.core.paths import is_external
from epub2mdbook.errors import TransformError
from epub2mdbook.models.book import ManifestItem
from epub2mdbook.models.output import Reference, ReferenceKind, TransformedDocument

log = logging.getLogger(__name__)

MARKUP_SUFFIXES = frozenset({"", ".xhtml", ".html", ".htm", ".xml"})
NEEDS_ANGLE_BRACKETS = re.compile(r"[\s()<>]")
UTF16_BOMS = (b"\xff\xfe", b"\xfe\xff")

# Unicode noncharacters, never present in interchanged text, stand in for
# links and anchors until their output targets are known.
REFERENCE_MARK = "\ufdd0"
ANCHOR_MARK = "\ufdd1"
MARK_END = "\ufdd2"
MARKER_PATTERN = re.compile(f"([{REFERENCE_MARK}{ANCHOR_MARK}])(\\d+){MARK_END}")
MARKER_CHARS = dict.fromkeys(map(ord, (REFERENCE_MARK, ANCHOR_MARK, MARK_END)))

# Elements whose anchor goes in front of them rather than inside
ANCHOR_BEFORE = frozenset(
    {"ol", "ul", "dl", "table", "thead", "tbody", "tfoot", "tr", "pre", "img", "image", "svg", "br", "hr"}
)


def format_target(target: str) -> str:
    """Wrap a link target in angle brackets when Markdown needs them."""
    if NEEDS_ANGLE_BRACKETS.search(target):
        return "<" + target.replace("<", "%3C").replace(">", "%3E") + ">"
    return target


def format_link(text: str, target: str, title: str | None = None, is_image: bool = False) -> str:
    title_part = ' "%s"' % title.replace('"', r"\"") if title else ""
    bang = "!" if is_image else ""
    return f"{bang}[{text}]({format_target(target)}{title_part})"


def escape_label(text: str) -> str:
    """Flatten and escape text used inside ``[...]``."""
    text = " ".join(text.split())
    return text.replace("[", r"\[").replace("]", r"\]")


def classify_reference(raw: str, is_image: bool) -> ReferenceKind:
    """Tag a raw href or image source by what it points at."""
    if is_external(raw):
        return ReferenceKind.EXTERNAL
    if is_image:
        return ReferenceKind.RESOURCE
    suffix = posixpath.splitext(urlsplit(raw).path)[1].lower()
    if suffix in MARKUP_SUFFIXES:
        return ReferenceKind.CONTENT
    return ReferenceKind.RESOURCE


class BookMarkdownConverter(MarkdownConverter):
    """markdownify converter for the markup publishing tools emit.

    Every link, image and anchor it emits is recorded and left in the
    Markdown as a marker; ``render_markdown`` expands the markers once
    targets are known. Brackets in text are escaped so prose never reads
    as a link. Tables degrade to their text.
    """

    def __init__(self, **options):
        options.setdefault("heading_style", "ATX")
        options.setdefault("bullets", "-")
        options.setdefault("autolinks", False)
        options.setdefault("newline_style", "BACKSLASH")
        super().__init__(**options)
        self.references: list[Reference] = []
        self.anchors: list[str] = []

    def escape(self, text, parent_tags):
        text = super().escape(text, parent_tags)
        return text.replace("[", r"\[").replace("]", r"\]")

    def _mark_reference(self, raw: str, text: str, title: str | None, is_image: bool) -> str:
        self.references.append(
            Reference(
                raw=raw,
                kind=classify_reference(raw, is_image),
                is_image=is_image,
                text=text,
                title=title or None,
            )
        )
        return f"{REFERENCE_MARK}{len(self.references) - 1}{MARK_END}"

    def _mark_anchor(self, el) -> str:
        anchor_id = (el.get("id") or el.get("name") or "").strip()
        if not anchor_id:
            return ""
        self.anchors.append(anchor_id)
        return f"{ANCHOR_MARK}{len(self.anchors) - 1}{MARK_END}"

    def convert_a(self, el, text, parent_tags=None, **kwargs):
        if parent_tags and "_noformat" in parent_tags:
            return text
        anchor = self._mark_anchor(el)
        prefix, suffix, text = chomp(text)
        href = (el.get("href") or "").strip()
        if not text or not href:
            return f"{prefix}{anchor}{text}{suffix}"
        link = self._mark_reference(href, text, el.get("title"), is_image=False)
        return f"{prefix}{anchor}{link}{suffix}"

    def convert_img(self, el, text, parent_tags=None, **kwargs):
        src = (el.get("src") or el.get("xlink:href") or el.get("href") or "").strip()
        alt = escape_label(el.get("alt") or "")
        if not src:
            return alt
        return self._mark_reference(src, alt, el.get("title"), is_image=True)

    # SVG <image xlink:href="..."> as used on cover pages
    convert_image = convert_img

    def convert_table(self, el, text, parent_tags=None, **kwargs):
        return f"\n\n{text.strip()}\n\n"

    def convert_caption(self, el, text, parent_tags=None, **kwargs):
        return f"{text.strip()}\n"

    def convert_tr(self, el, text, parent_tags=None, **kwargs):
        return f"{text.strip()}\n"

    def convert_td(self, el, text, parent_tags=None, **kwargs):
        return f"{text.strip()} "

    convert_th = convert_td


class ContentTransformer:
    """Turn content documents into Markdown plus their raw references."""

    def transform(self, item: ManifestItem, content: bytes) -> TransformedDocument:
        """Convert one content document.

        Raises:
            TransformError: If the bytes are not readable markup
        """
        soup = self._parse(item, content)

        for tag in soup(["script", "style"]):
            tag.decompose()

        body = soup.body or soup
        self._expose_anchors(soup, body)
        converter = BookMarkdownConverter()
        try:
            markdown = converter.convert_soup(body)
        except Exception as e:
            raise TransformError(f"markdown conversion failed: {e}", item=item.id, path=item.path) from e

        document = TransformedDocument(
            item_id=item.id,
            source_path=item.path,
            title=first_heading(body),
            markdown=normalize_whitespace(markdown),
            references=converter.references,
            anchors=converter.anchors,
        )
        log.debug(
            f"Transformed {item.path}: {len(document.markdown)} chars, "
            f"{len(document.references)} references, {len(document.anchors)} anchors"
        )
        return document

    def _parse(self, item: ManifestItem, content: bytes) -> BeautifulSoup:
        if not content.strip():
            return BeautifulSoup("", "lxml")

        # NUL bytes only belong in UTF-16, which must carry a byte order mark
        if b"\x00" in content and not content.startswith(UTF16_BOMS):
            raise TransformError("binary data, not markup", item=item.id, path=item.path)

        markup = UnicodeDammit(content, is_html=True).unicode_markup
        if markup is None:
            raise TransformError("cannot decode document", item=item.id, path=item.path)

        try:
            return BeautifulSoup(markup.translate(MARKER_CHARS), "lxml")
        except Exception as e:
            raise TransformError(f"cannot parse markup: {e}", item=item.id, path=item.path) from e

    def _expose_anchors(self, soup: BeautifulSoup, body: Tag | BeautifulSoup) -> None:
        """Give each element id an empty ``<a>`` the converter keeps."""
        for el in body.find_all(id=True):
            if el.name == "a" or el.find_parent(["pre", "svg"]) is not None:
                continue
            anchor = soup.new_tag("a", attrs={"id": el["id"]})
            if el.name in ANCHOR_BEFORE:
                el.insert_before(anchor)
                continue
            first = el.contents[0] if el.contents else None
            if (
                should_remove_whitespace_inside(el)
                and isinstance(first, NavigableString)
                and not isinstance(first, Comment)
            ):
                first.replace_with(first.lstrip())
            el.insert(0, anchor)


def render_markdown(
    document: TransformedDocument,
    resolve: Callable[[Reference], str | None] | None = None,
    keep_anchor: Callable[[str], bool] | None = None,
) -> str:
    """Expand the link, image and anchor markers in a document.

    ``resolve`` gives the final target of a reference, or ``None`` to drop
    the link and keep its text. Without it raw targets are kept. Without
    ``keep_anchor`` every anchor is kept.
    """

    def replace(match: re.Match) -> str:
        index = int(match.group(2))
        if match.group(1) == ANCHOR_MARK:
            anchor_id = document.anchors[index]
            if keep_anchor is not None and not keep_anchor(anchor_id):
                return ""
            return f'<a id="{html.escape(anchor_id)}"></a>'

        reference = document.references[index]
        text = MARKER_PATTERN.sub(replace, reference.text)
        target = reference.raw if resolve is None else resolve(reference)
        if target is None:
            return text
        return format_link(text, target, reference.title, reference.is_image)

    return MARKER_PATTERN.sub(replace, document.markdown)


def normalize_whitespace(markdown: str) -> str:
    """Strip trailing whitespace and collapse runs of blank lines."""
    lines = [line.rstrip() for line in markdown.split("\n")]
    cleaned = []
    prev_blank = False
    for line in lines:
        is_blank = not line.strip()
        if is_blank and prev_blank:
            continue
        cleaned.append(line)
        prev_blank = is_blank

    text = "\n".join(cleaned).strip("\n")
    return f"{text}\n" if text else ""


def placeholder_document(item: ManifestItem, reason: str, title: str | None = None) -> TransformedDocument:
    """Stand-in for a document that could not be transformed."""
    heading = title or posixpath.basename(item.path)
    markdown = (
        f"# {heading}\n\n"
        f"> This section could not be converted from `{item.path}`: {reason}\n"
    )
    return TransformedDocument(
        item_id=item.id,
        source_path=item.path,
        title=heading,
        markdown=markdown,
        placeholder=True,
    )
