"""Output path planning and archive href resolution."""

import logging
import posixpath
import re
from urllib.parse import unquote, urlsplit

from epub2mdbook.errors import PathPlanError
from epub2mdbook.models.book import ManifestItem, ParsedEpub
from epub2mdbook.models.output import PathPlan, PlannedPath, ReferenceKind

log = logging.getLogger(__name__)

MARKDOWN_SUFFIX = ".md"
SUMMARY_FILE = "SUMMARY.md"

# Scheme-qualified references, e.g. https:, mailto:, data:
URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
UNSAFE_NAME_CHARS = re.compile(r"[^\w.-]+")

FONT_MEDIA_TYPES = frozenset(
    {
        "application/vnd.ms-opentype",
        "application/font-woff",
        "application/font-sfnt",
        "application/x-font-ttf",
        "application/x-font-truetype",
        "application/x-font-opentype",
    }
)


def is_external(raw: str) -> bool:
    """Check whether a reference points outside the archive."""
    return bool(URL_SCHEME.match(raw)) or raw.startswith("//")


def split_href(base_path: str, raw: str) -> tuple[str | None, str | None]:
    """Resolve an in-archive href against the archive path of its document.

    Returns ``(archive_path, fragment)``. The path is ``None`` for
    fragment-only references.
    """
    parts = urlsplit(raw.strip())
    fragment = unquote(parts.fragment) or None
    if not parts.path:
        return None, fragment
    path = posixpath.normpath(posixpath.join(posixpath.dirname(base_path), unquote(parts.path)))
    return path, fragment


def resource_subdir(media_type: str) -> str:
    """Pick the output sub-directory for a resource."""
    if media_type.startswith("image/"):
        return "images"
    if media_type.startswith("font/") or media_type in FONT_MEDIA_TYPES:
        return "fonts"
    if media_type == "text/css":
        return "styles"
    if media_type.startswith(("audio/", "video/")):
        return "media"
    return "assets"


def sanitize_name(name: str) -> str:
    """Make a file name safe for Markdown links and any filesystem."""
    cleaned = UNSAFE_NAME_CHARS.sub("-", name).strip("-.")
    return cleaned or "untitled"


class NameAllocator:
    """Hands out unique names, disambiguating collisions in encounter order.

    Uniqueness is case-insensitive so the tree stays valid on
    case-insensitive filesystems.
    """

    def __init__(self, reserved: tuple[str, ...] = ()):
        self._taken: set[str] = {name.casefold() for name in reserved}
        self._counters: dict[str, int] = {}

    def allocate(self, directory: str, stem: str, suffix: str) -> str:
        base_key = posixpath.join(directory, f"{stem}{suffix}").casefold()
        counter = self._counters.get(base_key, 0)
        path = posixpath.join(directory, f"{stem}{suffix}")
        while path.casefold() in self._taken:
            counter += 1
            path = posixpath.join(directory, f"{stem}-{counter}{suffix}")
        self._counters[base_key] = counter
        self._taken.add(path.casefold())
        return path


def _plan_content(item: ManifestItem, allocator: NameAllocator) -> PlannedPath:
    stem, _ = posixpath.splitext(posixpath.basename(item.path))
    output_path = allocator.allocate("", sanitize_name(stem), MARKDOWN_SUFFIX)
    return PlannedPath(
        source_path=item.path,
        output_path=output_path,
        item_id=item.id,
        kind=ReferenceKind.CONTENT,
    )


def _plan_resource(item: ManifestItem, allocator: NameAllocator) -> PlannedPath:
    stem, suffix = posixpath.splitext(posixpath.basename(item.path))
    output_path = allocator.allocate(
        resource_subdir(item.media_type), sanitize_name(stem), suffix.lower()
    )
    return PlannedPath(
        source_path=item.path,
        output_path=output_path,
        item_id=item.id,
        kind=ReferenceKind.RESOURCE,
    )


def build_path_plan(parsed: ParsedEpub) -> PathPlan:
    """Assign an output path to every content document and resource.

    Content documents in spine order come first so the main reading stream
    gets the plain names, followed by the remaining content documents and
    then the resources, both in manifest order.
    """
    allocator = NameAllocator(reserved=(SUMMARY_FILE,))
    entries: dict[str, PlannedPath] = {}

    ordered = [item for item in parsed.spine_items() if item.is_content_document]
    ordered += parsed.content_documents()
    for item in ordered:
        if item.path not in entries:
            entries[item.path] = _plan_content(item, allocator)

    for item in parsed.manifest.values():
        if item.is_content_document or item.is_ncx or item.path in entries:
            continue
        entries[item.path] = _plan_resource(item, allocator)

    _validate(entries)
    log.info(f"Planned {len(entries)} output paths")
    return PathPlan(entries=entries)


def _validate(entries: dict[str, PlannedPath]) -> None:
    seen: dict[str, str] = {}
    for entry in entries.values():
        key = entry.output_path.casefold()
        if key in seen:
            raise PathPlanError(
                f"output path collides with {seen[key]}",
                item=entry.item_id,
                path=entry.output_path,
            )
        seen[key] = entry.source_path
