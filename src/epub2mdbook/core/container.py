"""EPUB container and package document loading."""

import logging
import posixpath
import threading
import warnings
import zipfile
from pathlib import Path
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning

from epub2mdbook.errors import ContainerError
from epub2mdbook.models.book import (
    NCX_MEDIA_TYPE,
    BookMetadata,
    ManifestItem,
    ParsedEpub,
    SpineEntry,
)

# Suppress XML parsing warnings - EPUB files often use XHTML
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

log = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_MEDIA_TYPE = "application/oebps-package+xml"


class EpubArchive:
    """Read-only view of an EPUB archive.

    A single ``ZipFile`` handle is shared by every worker, so member reads
    go through one lock.
    """

    def __init__(self, epub_path: Path):
        self.path = epub_path
        if not epub_path.is_file():
            raise ContainerError("not a file", path=str(epub_path))
        try:
            self._zip = zipfile.ZipFile(epub_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise ContainerError(f"cannot open archive: {e}", path=str(epub_path)) from e
        self._names = set(self._zip.namelist())
        self._lock = threading.Lock()

    def __enter__(self) -> "EpubArchive":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def has(self, name: str) -> bool:
        """Check whether the archive holds a member."""
        return name in self._names

    def read(self, name: str) -> bytes:
        """Read one archive member."""
        with self._lock:
            try:
                return self._zip.read(name)
            except KeyError as e:
                raise ContainerError("missing archive member", path=name) from e
            except (zipfile.BadZipFile, OSError, EOFError) as e:
                raise ContainerError(f"corrupt archive member: {e}", path=name) from e

    def parse(self) -> ParsedEpub:
        """Parse the package document and return the book structure."""
        package_path = self._locate_package()
        soup = BeautifulSoup(self.read(package_path), "xml")
        package = soup.find("package")
        if not isinstance(package, Tag):
            raise ContainerError("package document could not be parsed", path=package_path)

        manifest_tag = package.find("manifest")
        if not isinstance(manifest_tag, Tag):
            raise ContainerError("package document has no manifest", path=package_path)
        spine_tag = package.find("spine")
        if not isinstance(spine_tag, Tag):
            raise ContainerError("package document has no spine", path=package_path)

        warnings_list: list[str] = []
        manifest = self._get_manifest(manifest_tag, posixpath.dirname(package_path), warnings_list)
        spine = self._get_spine(spine_tag, manifest, warnings_list)

        parsed = ParsedEpub(
            metadata=self._get_metadata(package.find("metadata")),
            manifest=manifest,
            spine=spine,
            package_path=package_path,
            ncx_id=self._get_ncx_id(spine_tag, manifest),
            warnings=warnings_list,
        )
        log.info(
            f"Loaded package {package_path}: {len(manifest)} manifest items, "
            f"{len(spine)} spine entries"
        )
        return parsed

    def _locate_package(self) -> str:
        """Follow META-INF/container.xml to the package document."""
        if not self.has(CONTAINER_PATH):
            raise ContainerError("archive has no container pointer file", path=CONTAINER_PATH)

        soup = BeautifulSoup(self.read(CONTAINER_PATH), "xml")
        rootfiles = [r for r in soup.find_all("rootfile") if r.get("full-path")]
        if not rootfiles:
            raise ContainerError("container lists no package document", path=CONTAINER_PATH)

        # Prefer the OPF rendition when several rootfiles are listed
        preferred = next(
            (r for r in rootfiles if r.get("media-type") == PACKAGE_MEDIA_TYPE),
            rootfiles[0],
        )
        package_path = unquote(preferred["full-path"].strip()).lstrip("/")
        if not self.has(package_path):
            raise ContainerError("package document not found in archive", path=package_path)
        return package_path

    def _get_metadata(self, metadata: Tag | None) -> BookMetadata:
        """Extract book metadata."""
        if not isinstance(metadata, Tag):
            return BookMetadata(title=self.path.stem)

        titles = [t.get_text(strip=True) for t in metadata.find_all("title")]
        languages = [t.get_text(strip=True) for t in metadata.find_all("language")]
        descriptions = [t.get_text(strip=True) for t in metadata.find_all("description")]

        description = next((d for d in descriptions if d), None)
        if description:
            # Descriptions frequently carry escaped HTML
            description = BeautifulSoup(description, "lxml").get_text(" ", strip=True) or None

        return BookMetadata(
            title=next((t for t in titles if t), self.path.stem),
            authors=self._get_authors(metadata),
            description=description,
            language=next((lang for lang in languages if lang), None),
        )

    def _get_authors(self, metadata: Tag) -> list[str]:
        """Collect creators, keeping only authors when roles are declared."""
        refined_roles: dict[str, str] = {}
        for meta in metadata.find_all("meta", attrs={"property": "role"}):
            refines = meta.get("refines", "")
            if refines.startswith("#"):
                refined_roles[refines[1:]] = meta.get_text(strip=True)

        creators: list[tuple[str, str | None]] = []
        for creator in metadata.find_all("creator"):
            name = creator.get_text(strip=True)
            if not name:
                continue
            role = creator.get("opf:role") or creator.get("role") or refined_roles.get(
                creator.get("id", "")
            )
            creators.append((name, role))

        authors = [name for name, role in creators if role in (None, "", "aut")]
        return authors or [name for name, _ in creators]

    def _get_manifest(
        self, manifest_tag: Tag, package_dir: str, warnings_list: list[str]
    ) -> dict[str, ManifestItem]:
        """Build manifest items keyed by id, in declaration order."""
        manifest: dict[str, ManifestItem] = {}

        for item in manifest_tag.find_all("item"):
            item_id = item.get("id")
            href = item.get("href")
            if not item_id or not href:
                warnings_list.append(f"Manifest item without id or href skipped: {item}")
                continue
            if item_id in manifest:
                warnings_list.append(f"Duplicate manifest id skipped: {item_id}")
                continue

            path = posixpath.normpath(posixpath.join(package_dir, unquote(href.split("#")[0])))
            if not self.has(path):
                warnings_list.append(f"Manifest item {item_id} missing from archive: {path}")
                continue

            media_type = (item.get("media-type") or "application/octet-stream").strip().lower()
            # People use wrong content types
            if media_type == "image/jpg":
                media_type = "image/jpeg"

            manifest[item_id] = ManifestItem(
                id=item_id,
                href=href,
                path=path,
                media_type=media_type,
                properties=(item.get("properties") or "").split(),
            )

        return manifest

    def _get_spine(
        self,
        spine_tag: Tag,
        manifest: dict[str, ManifestItem],
        warnings_list: list[str],
    ) -> list[SpineEntry]:
        """Get reading order from spine."""
        spine = []
        for itemref in spine_tag.find_all("itemref"):
            idref = itemref.get("idref", "")
            if idref not in manifest:
                warnings_list.append(f"Spine references unknown manifest item: {idref!r}")
                continue
            spine.append(SpineEntry(idref=idref, linear=itemref.get("linear", "yes") != "no"))
        return spine

    def _get_ncx_id(self, spine_tag: Tag, manifest: dict[str, ManifestItem]) -> str | None:
        """Locate the legacy NCX table of contents."""
        toc_id = spine_tag.get("toc")
        if toc_id and toc_id in manifest:
            return toc_id
        for item in manifest.values():
            if item.media_type == NCX_MEDIA_TYPE:
                return item.id
        return None


def load_container(epub_path: Path) -> EpubArchive:
    """Open an EPUB archive for reading."""
    return EpubArchive(Path(epub_path))
