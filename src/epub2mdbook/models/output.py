"""Data models for transformed documents, the path plan and run results."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from epub2mdbook.models.navigation import NavigationSource


class ReferenceKind(str, Enum):
    """What a link or image source inside a content document points at."""

    CONTENT = "content"
    RESOURCE = "resource"
    EXTERNAL = "external"


class Reference(BaseModel):
    """Link or image emitted while transforming a document."""

    model_config = ConfigDict(frozen=True)

    raw: str
    kind: ReferenceKind
    is_image: bool = False
    text: str = ""  # Link text or image alt, may hold nested markers
    title: str | None = None


class TransformedDocument(BaseModel):
    """Markdown produced for one content document."""

    item_id: str
    source_path: str
    title: str | None = None  # First heading, if any
    markdown: str  # Links and anchors appear as markers
    references: list[Reference] = Field(default_factory=list)
    anchors: list[str] = Field(default_factory=list)  # Element ids, indexed by anchor markers
    placeholder: bool = False


class PlannedPath(BaseModel):
    """Final location of one archive member, relative to ``src/``."""

    model_config = ConfigDict(frozen=True)

    source_path: str
    output_path: str
    item_id: str
    kind: ReferenceKind  # CONTENT or RESOURCE


class PathPlan(BaseModel):
    """Mapping from archive paths to output paths, fixed once built."""

    model_config = ConfigDict(frozen=True)

    entries: dict[str, PlannedPath] = Field(default_factory=dict)

    def entry_for(self, source_path: str) -> PlannedPath | None:
        return self.entries.get(source_path)

    def output_for(self, source_path: str) -> str | None:
        entry = self.entries.get(source_path)
        return entry.output_path if entry else None

    def content_entries(self) -> list[PlannedPath]:
        return [e for e in self.entries.values() if e.kind == ReferenceKind.CONTENT]

    def resource_entries(self) -> list[PlannedPath]:
        return [e for e in self.entries.values() if e.kind == ReferenceKind.RESOURCE]


class ConversionOptions(BaseModel):
    """Knobs for a conversion run."""

    flat: bool = False
    max_workers: int | None = Field(default=None, ge=1)
    book_name: str | None = None  # Overrides the derived sub-directory name


class SkippedItem(BaseModel):
    """Content document that could not be transformed."""

    item_id: str
    source_path: str
    reason: str


class ConversionReport(BaseModel):
    """Summary of a finished conversion run."""

    book_dir: Path
    title: str
    navigation_source: NavigationSource
    documents_written: int = 0
    resources_copied: int = 0
    skipped: list[SkippedItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
