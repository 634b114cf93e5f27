"""Data models for the EPUB package structure."""

from pydantic import BaseModel, ConfigDict, Field

CONTENT_MEDIA_TYPES = frozenset({"application/xhtml+xml", "text/html"})
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


class BookMetadata(BaseModel):
    """Book-level metadata."""

    model_config = ConfigDict(frozen=True)

    title: str
    authors: list[str] = Field(default_factory=list)
    description: str | None = None
    language: str | None = None


class ManifestItem(BaseModel):
    """Single item declared in the package manifest."""

    model_config = ConfigDict(frozen=True)

    id: str
    href: str  # As written in the package document
    path: str  # Normalized path inside the archive
    media_type: str
    properties: list[str] = Field(default_factory=list)

    @property
    def is_content_document(self) -> bool:
        return self.media_type in CONTENT_MEDIA_TYPES

    @property
    def is_navigation_document(self) -> bool:
        return "nav" in self.properties

    @property
    def is_ncx(self) -> bool:
        return self.media_type == NCX_MEDIA_TYPE


class SpineEntry(BaseModel):
    """Reference to a manifest item in reading order."""

    model_config = ConfigDict(frozen=True)

    idref: str
    linear: bool = True


class TocTarget(BaseModel):
    """Where a table of contents entry points."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    fragment: str | None = None


class TocNode(BaseModel):
    """Single entry in the table of contents tree."""

    title: str
    target: TocTarget | None = None
    children: list["TocNode"] = Field(default_factory=list)
    href: str | None = None  # Output link, filled in once paths are planned


class ParsedEpub(BaseModel):
    """Package document contents: metadata, manifest and spine."""

    metadata: BookMetadata
    manifest: dict[str, ManifestItem] = Field(default_factory=dict)
    spine: list[SpineEntry] = Field(default_factory=list)
    package_path: str
    ncx_id: str | None = None
    warnings: list[str] = Field(default_factory=list)

    def item_by_path(self, path: str) -> ManifestItem | None:
        """Find the manifest item stored at an archive path."""
        for item in self.manifest.values():
            if item.path == path:
                return item
        return None

    def spine_items(self) -> list[ManifestItem]:
        """Manifest items in spine order, duplicates included."""
        return [self.manifest[entry.idref] for entry in self.spine]

    def content_documents(self) -> list[ManifestItem]:
        """Content documents in manifest order."""
        return [item for item in self.manifest.values() if item.is_content_document]

    def navigation_document(self) -> ManifestItem | None:
        for item in self.manifest.values():
            if item.is_navigation_document and item.is_content_document:
                return item
        return None

    def ncx(self) -> ManifestItem | None:
        if self.ncx_id:
            return self.manifest.get(self.ncx_id)
        return None
