"""Rewrite links, image sources and TOC targets to the planned output layout."""

import logging
import posixpath
from dataclasses import dataclass, field

from epub2mdbook.core.paths import is_external, split_href
from epub2mdbook.core.transformer import normalize_whitespace, render_markdown
from epub2mdbook.models.book import ManifestItem, TocNode
from epub2mdbook.models.output import PathPlan, Reference, ReferenceKind, TransformedDocument

log = logging.getLogger(__name__)


@dataclass
class RewriteResult:
    """Rewritten Markdown for one document."""

    markdown: str
    rewritten: int = 0
    warnings: list[str] = field(default_factory=list)


class LinkRewriter:
    """Rewrite the references a document's converter emitted.

    Every in-archive target is looked up in the path plan and replaced by
    its output path relative to the document's own output location.
    Targets missing from the plan are unwrapped so no broken link survives.
    Anchors are kept only when ``anchor_targets`` names them, or always
    when it is ``None``.
    """

    def __init__(self, plan: PathPlan, anchor_targets: set[tuple[str, str]] | None = None):
        self.plan = plan
        self.anchor_targets = anchor_targets

    def rewrite(self, document: TransformedDocument) -> RewriteResult:
        own_output = self.plan.output_for(document.source_path) or ""
        result = RewriteResult(markdown="")

        def resolve(reference: Reference) -> str | None:
            new_target = self.resolve(document.source_path, own_output, reference.raw)
            if new_target is None:
                result.warnings.append(
                    f"Unresolved reference {reference.raw!r} in {document.source_path} removed"
                )
            elif new_target != reference.raw:
                result.rewritten += 1
            return new_target

        def keep_anchor(anchor_id: str) -> bool:
            if self.anchor_targets is None:
                return True
            return (document.source_path, anchor_id) in self.anchor_targets

        result.markdown = normalize_whitespace(render_markdown(document, resolve, keep_anchor))
        if result.rewritten:
            log.debug(f"Rewrote {result.rewritten} references in {document.source_path}")
        return result

    def resolve(self, source_path: str, own_output: str, raw: str) -> str | None:
        """Output-relative target for a raw reference, or None if unresolvable."""
        if is_external(raw):
            return raw

        path, fragment = split_href(source_path, raw)
        if path is None:
            return raw  # Fragment-only, stays within the same file

        target = self.plan.output_for(path)
        if target is None:
            return None

        relative = posixpath.relpath(target, posixpath.dirname(own_output) or ".")
        if fragment:
            relative = f"{relative}#{fragment}"
        return relative


def rewrite_document(
    document: TransformedDocument,
    plan: PathPlan,
    anchor_targets: set[tuple[str, str]] | None = None,
) -> RewriteResult:
    """Rewrite every reference in a transformed document."""
    return LinkRewriter(plan, anchor_targets).rewrite(document)


def collect_anchor_targets(
    documents: list[TransformedDocument],
    nodes: list[TocNode],
    manifest: dict[str, ManifestItem],
) -> set[tuple[str, str]]:
    """``(archive path, fragment)`` pairs some link or TOC entry points at."""
    targets: set[tuple[str, str]] = set()
    for document in documents:
        for reference in document.references:
            if reference.kind != ReferenceKind.CONTENT:
                continue
            path, fragment = split_href(document.source_path, reference.raw)
            if fragment:
                targets.add((path or document.source_path, fragment))

    stack = list(nodes)
    while stack:
        node = stack.pop()
        stack.extend(node.children)
        if node.target and node.target.fragment and node.target.item_id in manifest:
            targets.add((manifest[node.target.item_id].path, node.target.fragment))
    return targets


def rewrite_toc(
    nodes: list[TocNode],
    manifest: dict[str, ManifestItem],
    plan: PathPlan,
) -> list[TocNode]:
    """Fill in each node's output link from the path plan."""
    rewritten = []
    for node in nodes:
        href = None
        if node.target is not None:
            item = manifest[node.target.item_id]
            href = plan.output_for(item.path)
            if href and node.target.fragment:
                href = f"{href}#{node.target.fragment}"
        rewritten.append(
            node.model_copy(
                update={
                    "href": href,
                    "children": rewrite_toc(node.children, manifest, plan),
                }
            )
        )
    return rewritten
