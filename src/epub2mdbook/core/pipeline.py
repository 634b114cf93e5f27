"""Conversion pipeline driver: EPUB in, mdBook tree out."""

import logging
import re
from pathlib import Path

from epub2mdbook.core.assembler import OutputAssembler
from epub2mdbook.core.container import EpubArchive, load_container
from epub2mdbook.core.navigation import resolve_navigation
from epub2mdbook.core.paths import build_path_plan
from epub2mdbook.core.rewriter import collect_anchor_targets, rewrite_document, rewrite_toc
from epub2mdbook.core.transformer import ContentTransformer, placeholder_document
from epub2mdbook.core.workers import run_parallel
from epub2mdbook.errors import ContainerError, TransformError
from epub2mdbook.models.book import BookMetadata, ManifestItem, TocNode
from epub2mdbook.models.output import (
    ConversionOptions,
    ConversionReport,
    SkippedItem,
    TransformedDocument,
)

log = logging.getLogger(__name__)


def get_book_dir_name(metadata: BookMetadata, epub_path: Path) -> str:
    """Directory name for the book, from its title or the archive name."""
    for candidate in (metadata.title, epub_path.stem):
        clean = re.sub(r"[^\w\s-]", "", candidate).strip()
        clean = re.sub(r"[-\s]+", "_", clean)
        if clean:
            return clean
    return "book"


def _toc_titles(nodes: list[TocNode], titles: dict[str, str] | None = None) -> dict[str, str]:
    """Map item ids to their first table of contents title."""
    titles = {} if titles is None else titles
    for node in nodes:
        if node.target and node.target.item_id not in titles:
            titles[node.target.item_id] = node.title
        _toc_titles(node.children, titles)
    return titles


class ConversionPipeline:
    """Run the conversion stages in order over one archive."""

    def __init__(self, archive: EpubArchive, options: ConversionOptions):
        self.archive = archive
        self.options = options
        self.transformer = ContentTransformer()

    def _transform_one(self, item: ManifestItem) -> TransformedDocument | TransformError:
        """Transform one document; per-item failures are returned, not raised."""
        try:
            content = self.archive.read(item.path)
        except ContainerError as e:
            return TransformError(e.message, item=item.id, path=item.path)
        try:
            return self.transformer.transform(item, content)
        except TransformError as e:
            return e

    def run(self, output_dir: Path) -> ConversionReport:
        parsed = self.archive.parse()
        warnings_list = list(parsed.warnings)

        navigation = resolve_navigation(parsed, self.archive)
        warnings_list.extend(navigation.warnings)

        plan = build_path_plan(parsed)

        # Transform every planned content document
        items = [parsed.manifest[entry.item_id] for entry in plan.content_entries()]
        log.info(f"Transforming {len(items)} content documents")
        results = run_parallel(self._transform_one, items, self.options.max_workers)

        titles = _toc_titles(navigation.nodes)
        skipped: list[SkippedItem] = []
        documents: list[TransformedDocument] = []
        for item, result in zip(items, results):
            if isinstance(result, TransformError):
                log.warning(f"Skipping {item.path}: {result}")
                skipped.append(
                    SkippedItem(item_id=item.id, source_path=item.path, reason=result.message)
                )
                result = placeholder_document(item, result.message, titles.get(item.id))
            documents.append(result)

        anchor_targets = collect_anchor_targets(documents, navigation.nodes, parsed.manifest)
        rewritten: dict[str, str] = {}
        for document in documents:
            rewrite = rewrite_document(document, plan, anchor_targets)
            warnings_list.extend(rewrite.warnings)
            rewritten[document.source_path] = rewrite.markdown

        toc = rewrite_toc(navigation.nodes, parsed.manifest, plan)

        # Assemble the output tree
        if self.options.flat:
            book_dir = output_dir
        else:
            book_dir = output_dir / (
                self.options.book_name or get_book_dir_name(parsed.metadata, self.archive.path)
            )
        log.info(f"Writing book to {book_dir}")

        assembler = OutputAssembler(book_dir, self.archive, self.options.max_workers)
        assembler.write_book_toml(parsed.metadata)
        documents_written = assembler.write_documents(rewritten, plan)
        resources_copied = assembler.copy_resources(plan)
        assembler.write_summary(parsed.metadata.title, toc)
        warnings_list.extend(assembler.warnings)

        if skipped:
            log.warning(f"{len(skipped)} content document(s) could not be converted")

        return ConversionReport(
            book_dir=book_dir,
            title=parsed.metadata.title,
            navigation_source=navigation.source,
            documents_written=documents_written,
            resources_copied=resources_copied,
            skipped=skipped,
            warnings=warnings_list,
        )


def convert_epub_to_mdbook(
    epub_path: Path | str,
    output_dir: Path | str | None = None,
    options: ConversionOptions | None = None,
) -> ConversionReport:
    """Convert an EPUB file to an mdBook source tree.

    Args:
        epub_path: Path to the EPUB file
        output_dir: Output directory, the current directory by default
        options: Flat mode, worker count and book-name override

    Returns:
        ConversionReport describing what was written

    Raises:
        ContainerError: If the archive or its package document is unusable
        PathPlanError: If two output paths collide
        AssemblyError: If the output tree cannot be written
    """
    options = options or ConversionOptions()
    output_root = Path(output_dir) if output_dir is not None else Path(".")

    with load_container(Path(epub_path)) as archive:
        return ConversionPipeline(archive, options).run(output_root)
