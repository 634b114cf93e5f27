"""Table of contents resolution from the nav document, the NCX, or the spine."""

import logging

from bs4 import BeautifulSoup, Tag

from epub2mdbook.core.container import EpubArchive
from epub2mdbook.core.paths import is_external, split_href
from epub2mdbook.errors import ContainerError, NavigationError
from epub2mdbook.models.book import ManifestItem, ParsedEpub, TocNode, TocTarget
from epub2mdbook.models.navigation import NavigationResult, NavigationSource

log = logging.getLogger(__name__)

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def first_heading(soup: BeautifulSoup) -> str | None:
    """Text of the first heading in a parsed document."""
    for heading in soup.find_all(HEADING_TAGS):
        text = " ".join(heading.get_text(" ", strip=True).split())
        if text:
            return text
    return None


def _clean_label(text: str) -> str:
    return " ".join(text.split())


class NavigationResolver:
    """Build the table of contents tree for a parsed EPUB.

    Tries the EPUB 3 navigation document, then the legacy NCX, and finally
    synthesizes a flat list from the spine. Never fails.
    """

    def __init__(self, parsed: ParsedEpub, archive: EpubArchive):
        self.parsed = parsed
        self.archive = archive
        self.warnings: list[str] = []

    def resolve(self) -> NavigationResult:
        """Resolve the table of contents, falling back as needed."""
        attempts = [
            (NavigationSource.NAV, self.parsed.navigation_document(), self._parse_nav),
            (NavigationSource.NCX, self.parsed.ncx(), self._parse_ncx),
        ]
        for source, item, parse_fn in attempts:
            if item is None:
                continue
            # Warnings from a failed attempt do not describe the result
            attempt_start = len(self.warnings)
            try:
                nodes = parse_fn(item)
            except NavigationError as e:
                log.warning(f"Navigation source {source.value} unusable: {e}")
                del self.warnings[attempt_start:]
                self.warnings.append(f"Ignored {source.value} navigation: {e.message}")
                continue
            except Exception as e:
                log.warning(f"Navigation source {source.value} failed with error: {e}")
                del self.warnings[attempt_start:]
                self.warnings.append(f"Ignored {source.value} navigation: {e}")
                continue

            log.info(f"Table of contents taken from {source.value} ({item.path})")
            self._report_divergence(nodes)
            return NavigationResult(nodes=nodes, source=source, warnings=self.warnings)

        log.info("No usable navigation document, building table of contents from spine")
        return NavigationResult(
            nodes=self._from_spine(), source=NavigationSource.SPINE, warnings=self.warnings
        )

    # ------------------------------------------------------------------
    # EPUB 3 navigation document
    # ------------------------------------------------------------------

    def _parse_nav(self, item: ManifestItem) -> list[TocNode]:
        soup = BeautifulSoup(self._read(item), "lxml")

        navs = soup.find_all("nav")
        toc_nav = next(
            (n for n in navs if "toc" in (n.get("epub:type") or "").split()),
            next((n for n in navs if n.get("role") == "doc-toc"), navs[0] if navs else None),
        )
        if toc_nav is None:
            raise NavigationError("no <nav> element", path=item.path)

        top_list = toc_nav.find(["ol", "ul"])
        if top_list is None:
            raise NavigationError("table of contents has no list", path=item.path)

        nodes = self._walk_nav_list(top_list, item.path)
        if not nodes:
            raise NavigationError("table of contents has no usable entries", path=item.path)
        return nodes

    def _walk_nav_list(self, list_tag: Tag, base_path: str) -> list[TocNode]:
        nodes: list[TocNode] = []
        for li in list_tag.find_all("li", recursive=False):
            label_tag = li.find("a", recursive=False) or li.find("span", recursive=False)
            if label_tag is None:
                # Some producers wrap the anchor in another element
                label_tag = next(
                    (a for a in li.find_all("a") if a.find_parent(["ol", "ul"]) is list_tag),
                    None,
                )
            sublist = li.find(["ol", "ul"], recursive=False)
            children = self._walk_nav_list(sublist, base_path) if sublist else []

            title = _clean_label(label_tag.get_text(" ", strip=True)) if label_tag else ""
            href = label_tag.get("href") if label_tag is not None else None
            nodes.extend(self._make_node(title, href, base_path, children))
        return nodes

    # ------------------------------------------------------------------
    # Legacy NCX
    # ------------------------------------------------------------------

    def _parse_ncx(self, item: ManifestItem) -> list[TocNode]:
        soup = BeautifulSoup(self._read(item), "xml")
        nav_map = soup.find("navMap")
        if not isinstance(nav_map, Tag):
            raise NavigationError("NCX has no navMap", path=item.path)

        nodes = self._walk_nav_points(nav_map, item.path)
        if not nodes:
            raise NavigationError("NCX has no usable entries", path=item.path)
        return nodes

    def _walk_nav_points(self, parent: Tag, base_path: str) -> list[TocNode]:
        nodes: list[TocNode] = []
        for point in parent.find_all("navPoint", recursive=False):
            label = point.find("navLabel", recursive=False)
            content = point.find("content", recursive=False)
            title = _clean_label(label.get_text(" ", strip=True)) if label else ""
            href = content.get("src") if content is not None else None
            children = self._walk_nav_points(point, base_path)
            nodes.extend(self._make_node(title, href, base_path, children))
        return nodes

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _read(self, item: ManifestItem) -> bytes:
        try:
            return self.archive.read(item.path)
        except ContainerError as e:
            raise NavigationError(e.message, path=item.path) from e

    def _make_node(
        self,
        title: str,
        href: str | None,
        base_path: str,
        children: list[TocNode],
    ) -> list[TocNode]:
        """Create a node, or promote its children when the target is unusable."""
        if not href:
            if not children:
                return []
            return [TocNode(title=title or "Untitled", children=children)]

        target = self._resolve_target(href, base_path)
        if target is None:
            self.warnings.append(f"Dropped navigation entry {title!r}: unresolved target {href!r}")
            return children
        return [TocNode(title=title or "Untitled", target=target, children=children)]

    def _resolve_target(self, href: str, base_path: str) -> TocTarget | None:
        if is_external(href):
            return None
        path, fragment = split_href(base_path, href)
        if path is None:
            return None
        item = self.parsed.item_by_path(path)
        if item is None or not item.is_content_document:
            return None
        return TocTarget(item_id=item.id, fragment=fragment)

    def _report_divergence(self, nodes: list[TocNode]) -> None:
        """Flag entries present in only one of navigation and spine."""
        nav_ids: list[str] = []
        stack = list(reversed(nodes))
        while stack:
            node = stack.pop()
            if node.target and node.target.item_id not in nav_ids:
                nav_ids.append(node.target.item_id)
            stack.extend(reversed(node.children))

        spine_ids = [entry.idref for entry in self.parsed.spine]
        for item_id in nav_ids:
            if item_id not in spine_ids:
                path = self.parsed.manifest[item_id].path
                self.warnings.append(f"Navigation lists {path}, which is not in the spine")

        nav_doc = self.parsed.navigation_document()
        for item_id in dict.fromkeys(spine_ids):
            item = self.parsed.manifest[item_id]
            if item_id in nav_ids or not item.is_content_document:
                continue
            if nav_doc is not None and item_id == nav_doc.id:
                continue
            self.warnings.append(f"Spine document {item.path} is not listed in the navigation")

    # ------------------------------------------------------------------
    # Spine fallback
    # ------------------------------------------------------------------

    def _from_spine(self) -> list[TocNode]:
        nodes = []
        for position, entry in enumerate(self.parsed.spine, start=1):
            item = self.parsed.manifest[entry.idref]
            if not item.is_content_document:
                self.warnings.append(f"Spine entry {item.id} is not a content document")
                continue
            title = self._title_from_document(item) or f"Section {position}"
            nodes.append(TocNode(title=title, target=TocTarget(item_id=item.id)))
        return nodes

    def _title_from_document(self, item: ManifestItem) -> str | None:
        try:
            content = self.archive.read(item.path)
        except ContainerError as e:
            log.debug(f"Cannot read {item.path} for a title: {e}")
            return None
        return first_heading(BeautifulSoup(content, "lxml"))


def resolve_navigation(parsed: ParsedEpub, archive: EpubArchive) -> NavigationResult:
    """Resolve the table of contents for a parsed EPUB."""
    return NavigationResolver(parsed, archive).resolve()
