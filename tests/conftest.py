"""Shared fixtures: EPUB archives written with zipfile."""

import zipfile
from pathlib import Path

import pytest

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

XHTML_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>{title}</title></head>
<body>
{body}
</body>
</html>
"""


def xhtml(body: str, title: str = "Chapter") -> str:
    """Wrap body markup in a minimal XHTML document."""
    return XHTML_TEMPLATE.format(title=title, body=body)


def nav_document(list_markup: str) -> str:
    """EPUB 3 navigation document around an <ol> of entries."""
    return xhtml(f'<nav epub:type="toc" id="toc"><h1>Contents</h1>{list_markup}</nav>', "Contents")


def ncx_document(nav_points: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head/>
  <docTitle><text>Book</text></docTitle>
  <navMap>{nav_points}</navMap>
</ncx>
"""


def nav_point(point_id: str, label: str, src: str, children: str = "") -> str:
    return (
        f'<navPoint id="{point_id}"><navLabel><text>{label}</text></navLabel>'
        f'<content src="{src}"/>{children}</navPoint>'
    )


class EpubBuilder:
    """Assemble an EPUB archive item by item."""

    def __init__(
        self,
        title: str | None = "Test Book",
        authors: tuple[str, ...] = ("Jane Doe",),
        language: str | None = "en",
        description: str | None = None,
        opf_dir: str = "OEBPS",
    ):
        self.title = title
        self.authors = authors
        self.language = language
        self.description = description
        self.opf_dir = opf_dir
        self.items: list[tuple[str, str, str, str, bytes | None]] = []
        self.spine: list[str] = []
        self.spine_toc: str | None = None
        self.extra_metadata = ""
        self.extra_files: dict[str, bytes] = {}
        self.include_container = True
        self.include_spine = True
        self.include_manifest = True

    def add(
        self,
        item_id: str,
        href: str,
        content: str | bytes | None,
        media_type: str = "application/xhtml+xml",
        properties: str = "",
        in_spine: bool = True,
    ) -> "EpubBuilder":
        """Add a manifest item. ``content=None`` declares it without a file."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.items.append((item_id, href, media_type, properties, content))
        if in_spine:
            self.spine.append(item_id)
        return self

    def add_nav(self, list_markup: str, href: str = "nav.xhtml") -> "EpubBuilder":
        return self.add("nav", href, nav_document(list_markup), properties="nav", in_spine=False)

    def add_ncx(self, nav_points: str, href: str = "toc.ncx") -> "EpubBuilder":
        self.spine_toc = "ncx"
        return self.add(
            "ncx", href, ncx_document(nav_points), "application/x-dtbncx+xml", in_spine=False
        )

    def _package_path(self, name: str) -> str:
        return f"{self.opf_dir}/{name}" if self.opf_dir else name

    def package_document(self) -> str:
        metadata = []
        if self.title is not None:
            metadata.append(f"<dc:title>{self.title}</dc:title>")
        for author in self.authors:
            metadata.append(f"<dc:creator>{author}</dc:creator>")
        if self.language:
            metadata.append(f"<dc:language>{self.language}</dc:language>")
        if self.description:
            metadata.append(f"<dc:description>{self.description}</dc:description>")
        metadata.append(self.extra_metadata)

        manifest = "".join(
            f'<item id="{item_id}" href="{href}" media-type="{media_type}"'
            + (f' properties="{properties}"' if properties else "")
            + "/>"
            for item_id, href, media_type, properties, _ in self.items
        )
        toc_attr = f' toc="{self.spine_toc}"' if self.spine_toc else ""
        spine = "".join(f'<itemref idref="{idref}"/>' for idref in self.spine)

        parts = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">',
            '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/" '
            'xmlns:opf="http://www.idpf.org/2007/opf">',
            "".join(metadata),
            "</metadata>",
        ]
        if self.include_manifest:
            parts.append(f"<manifest>{manifest}</manifest>")
        if self.include_spine:
            parts.append(f"<spine{toc_attr}>{spine}</spine>")
        parts.append("</package>")
        return "\n".join(parts)

    def write(self, path: Path) -> Path:
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
            if self.include_container:
                zf.writestr(
                    "META-INF/container.xml",
                    CONTAINER_XML.format(opf_path=self._package_path("content.opf")),
                )
            zf.writestr(self._package_path("content.opf"), self.package_document())
            for _, href, _, _, content in self.items:
                if content is not None:
                    zf.writestr(self._package_path(href), content)
            for name, content in self.extra_files.items():
                zf.writestr(name, content)
        return path


@pytest.fixture
def simple_epub(tmp_path: Path) -> Path:
    """Two chapters, a nested navigation document and a shared image."""
    builder = EpubBuilder(title="Foo", authors=("Ada Lovelace", "Charles Babbage"))
    builder.add(
        "ch1",
        "text/ch1.xhtml",
        xhtml(
            '<h1>Chapter One</h1><p>Intro with <img src="../images/cover.png" alt="Cover"/></p>'
            '<h2 id="sec1">Section One</h2><p>See <a href="ch2.xhtml">the next chapter</a>.</p>',
            "Chapter One",
        ),
    )
    builder.add(
        "ch2",
        "text/ch2.xhtml",
        xhtml(
            '<h1>Chapter Two</h1><p><img src="../images/cover.png" alt="Again"/></p>'
            '<p>Back to <a href="ch1.xhtml#sec1">section one</a> or '
            '<a href="https://example.com/">the web</a>.</p>',
            "Chapter Two",
        ),
    )
    builder.add("cover", "images/cover.png", b"\x89PNG\r\n\x1a\nfake", "image/png", in_spine=False)
    builder.add_nav(
        '<ol><li><a href="text/ch1.xhtml">Chapter One</a>'
        '<ol><li><a href="text/ch1.xhtml#sec1">Section One</a></li></ol></li>'
        '<li><a href="text/ch2.xhtml">Chapter Two</a></li></ol>'
    )
    return builder.write(tmp_path / "simple.epub")
