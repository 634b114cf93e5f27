"""Data models for table of contents resolution."""

from enum import Enum

from pydantic import BaseModel, Field

from epub2mdbook.models.book import TocNode


class NavigationSource(str, Enum):
    """Where the table of contents came from."""

    NAV = "nav"
    NCX = "ncx"
    SPINE = "spine"


class NavigationResult(BaseModel):
    """Resolved table of contents."""

    nodes: list[TocNode] = Field(default_factory=list)
    source: NavigationSource
    warnings: list[str] = Field(default_factory=list)
