"""Data models."""

from epub2mdbook.models.book import (
    BookMetadata,
    ManifestItem,
    ParsedEpub,
    SpineEntry,
    TocNode,
    TocTarget,
)
from epub2mdbook.models.navigation import (
    NavigationResult,
    NavigationSource,
)
from epub2mdbook.models.output import (
    ConversionOptions,
    ConversionReport,
    PathPlan,
    PlannedPath,
    Reference,
    ReferenceKind,
    SkippedItem,
    TransformedDocument,
)

__all__ = [
    # Package models
    "BookMetadata",
    "ManifestItem",
    "SpineEntry",
    "TocTarget",
    "TocNode",
    "ParsedEpub",
    # Navigation models
    "NavigationSource",
    "NavigationResult",
    # Output models
    "ReferenceKind",
    "Reference",
    "TransformedDocument",
    "PlannedPath",
    "PathPlan",
    "ConversionOptions",
    "SkippedItem",
    "ConversionReport",
]
