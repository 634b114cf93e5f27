"""Write the mdBook directory tree."""

import json
import logging
from pathlib import Path

from epub2mdbook.core.container import EpubArchive
from epub2mdbook.core.paths import SUMMARY_FILE
from epub2mdbook.core.transformer import escape_label, format_target
from epub2mdbook.core.workers import run_parallel
from epub2mdbook.errors import AssemblyError, ContainerError
from epub2mdbook.models.book import BookMetadata, TocNode
from epub2mdbook.models.output import PathPlan, PlannedPath

log = logging.getLogger(__name__)

BOOK_TOML = "book.toml"
SRC_DIR = "src"


def toml_string(value: str) -> str:
    """Quote a value as a TOML basic string."""
    # JSON string escapes are a subset of TOML basic string escapes
    return json.dumps(value, ensure_ascii=False)


def render_book_toml(metadata: BookMetadata) -> str:
    """Render the ``[book]`` table, omitting empty optional fields."""
    lines = ["[book]", f"title = {toml_string(metadata.title)}"]
    if metadata.authors:
        authors = ", ".join(toml_string(a) for a in metadata.authors)
        lines.append(f"authors = [{authors}]")
    if metadata.description:
        lines.append(f"description = {toml_string(metadata.description)}")
    if metadata.language:
        lines.append(f"language = {toml_string(metadata.language)}")
    return "\n".join(lines) + "\n"


def render_summary(title: str, nodes: list[TocNode]) -> str:
    """Render SUMMARY.md as a nested bulleted outline, depth first."""
    lines = [f"# {' '.join(title.split())}", ""]

    def walk(children: list[TocNode], depth: int) -> None:
        for node in children:
            target = format_target(node.href) if node.href else ""
            lines.append(f"{'  ' * depth}- [{escape_label(node.title)}]({target})")
            walk(node.children, depth + 1)

    walk(nodes, 0)
    return "\n".join(lines) + "\n"


class OutputAssembler:
    """Write the book descriptor, summary, chapters and resources."""

    def __init__(self, book_dir: Path, archive: EpubArchive, max_workers: int | None = None):
        """Initialize output assembler.

        Args:
            book_dir: Directory that receives book.toml and src/
            archive: Open archive resources are copied from
            max_workers: Worker pool size for parallel writes
        """
        self.book_dir = book_dir
        self.src_dir = book_dir / SRC_DIR
        self.archive = archive
        self.max_workers = max_workers
        self.warnings: list[str] = []

    def write_book_toml(self, metadata: BookMetadata) -> Path:
        """Write the metadata descriptor."""
        filepath = self.book_dir / BOOK_TOML
        self._write(filepath, render_book_toml(metadata).encode("utf-8"))
        return filepath

    def write_summary(self, title: str, nodes: list[TocNode]) -> Path:
        """Write the navigation manifest."""
        filepath = self.src_dir / SUMMARY_FILE
        self._write(filepath, render_summary(title, nodes).encode("utf-8"))
        return filepath

    def write_documents(self, documents: dict[str, str], plan: PathPlan) -> int:
        """Write Markdown for each planned content document.

        Args:
            documents: Rewritten Markdown keyed by archive path
            plan: Path plan giving each document's output location

        Returns:
            Number of files written
        """
        jobs = [
            (self.src_dir / entry.output_path, documents[entry.source_path].encode("utf-8"))
            for entry in plan.content_entries()
            if entry.source_path in documents
        ]
        run_parallel(lambda job: self._write(*job), jobs, self.max_workers)
        log.info(f"Wrote {len(jobs)} Markdown files")
        return len(jobs)

    def copy_resources(self, plan: PathPlan) -> int:
        """Copy every planned resource once.

        Returns:
            Number of resources copied
        """
        entries = plan.resource_entries()
        failures = [f for f in run_parallel(self._copy_resource, entries, self.max_workers) if f]
        self.warnings.extend(failures)
        copied = len(entries) - len(failures)
        log.info(f"Copied {copied} of {len(entries)} resources")
        return copied

    def _copy_resource(self, entry: PlannedPath) -> str | None:
        """Copy one resource, returning a warning if it cannot be read."""
        try:
            content = self.archive.read(entry.source_path)
        except ContainerError as e:
            log.warning(f"Skipping resource {entry.source_path}: {e}")
            return f"Resource {entry.source_path} could not be read: {e.message}"
        self._write(self.src_dir / entry.output_path, content)
        return None

    def _write(self, filepath: Path, content: bytes) -> None:
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            filepath.write_bytes(content)
        except OSError as e:
            raise AssemblyError(f"cannot write output: {e.strerror or e}", path=str(filepath)) from e
