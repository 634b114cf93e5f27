"""Tests for EPUB container and package document loading."""

import zipfile

import pytest

from conftest import CONTAINER_XML, EpubBuilder, xhtml
from epub2mdbook.core.container import EpubArchive, load_container
from epub2mdbook.errors import ContainerError


def load(path):
    with load_container(path) as archive:
        return archive.parse()


class TestArchiveOpening:
    """Test failures raised before the package document is read."""

    def test_missing_file(self, tmp_path):
        """Test a path that does not exist is rejected."""
        with pytest.raises(ContainerError) as exc_info:
            EpubArchive(tmp_path / "nope.epub")
        assert exc_info.value.stage == "container"
        assert "not a file" in str(exc_info.value)

    def test_not_a_zip(self, tmp_path):
        """Test arbitrary bytes are rejected as an archive."""
        path = tmp_path / "broken.epub"
        path.write_bytes(b"this is not a zip archive")
        with pytest.raises(ContainerError, match="cannot open archive"):
            EpubArchive(path)

    def test_missing_container_file(self, tmp_path):
        """Test an archive without META-INF/container.xml."""
        builder = EpubBuilder()
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        builder.include_container = False
        path = builder.write(tmp_path / "book.epub")

        with pytest.raises(ContainerError, match="container pointer file"):
            load(path)

    def test_container_points_at_missing_package(self, tmp_path):
        """Test a rootfile path that is absent from the archive."""
        path = tmp_path / "book.epub"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("META-INF/container.xml", CONTAINER_XML.format(opf_path="OEBPS/gone.opf"))

        with pytest.raises(ContainerError) as exc_info:
            load(path)
        assert exc_info.value.path == "OEBPS/gone.opf"

    def test_missing_spine(self, tmp_path):
        """Test a package document without a spine."""
        builder = EpubBuilder()
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        builder.include_spine = False
        path = builder.write(tmp_path / "book.epub")

        with pytest.raises(ContainerError, match="no spine"):
            load(path)

    def test_missing_manifest(self, tmp_path):
        """Test a package document without a manifest."""
        builder = EpubBuilder()
        builder.include_manifest = False
        path = builder.write(tmp_path / "book.epub")

        with pytest.raises(ContainerError, match="no manifest"):
            load(path)

    def test_read_missing_member(self, simple_epub):
        """Test reading a member that is not in the archive."""
        with EpubArchive(simple_epub) as archive:
            assert archive.has("OEBPS/content.opf")
            assert not archive.has("OEBPS/nothing.xhtml")
            with pytest.raises(ContainerError, match="missing archive member"):
                archive.read("OEBPS/nothing.xhtml")


class TestMetadata:
    """Test book metadata extraction."""

    def test_basic_metadata(self, tmp_path):
        """Test title, authors, language and description."""
        builder = EpubBuilder(
            title="Foo",
            authors=("Ada Lovelace", "Charles Babbage"),
            language="fr",
            description="A short book",
        )
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.metadata.title == "Foo"
        assert parsed.metadata.authors == ["Ada Lovelace", "Charles Babbage"]
        assert parsed.metadata.language == "fr"
        assert parsed.metadata.description == "A short book"

    def test_title_falls_back_to_file_name(self, tmp_path):
        """Test a book without a title is named after the archive."""
        builder = EpubBuilder(title=None, authors=(), language=None)
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        parsed = load(builder.write(tmp_path / "my-novel.epub"))

        assert parsed.metadata.title == "my-novel"
        assert parsed.metadata.authors == []
        assert parsed.metadata.language is None
        assert parsed.metadata.description is None

    def test_description_markup_is_stripped(self, tmp_path):
        """Test escaped HTML in the description is reduced to text."""
        builder = EpubBuilder(description="&lt;p&gt;An &lt;b&gt;important&lt;/b&gt; book&lt;/p&gt;")
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.metadata.description == "An important book"

    def test_non_author_creators_are_excluded(self, tmp_path):
        """Test creators with other roles are left out of the authors."""
        builder = EpubBuilder(authors=())
        builder.extra_metadata = (
            '<dc:creator opf:role="aut">Main Author</dc:creator>'
            '<dc:creator opf:role="edt">Some Editor</dc:creator>'
            '<dc:creator id="c3">Second Author</dc:creator>'
            '<meta refines="#c3" property="role">aut</meta>'
        )
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.metadata.authors == ["Main Author", "Second Author"]


class TestManifestAndSpine:
    """Test manifest paths and reading order."""

    def test_paths_resolve_against_package_directory(self, simple_epub):
        """Test hrefs are resolved relative to the package document."""
        parsed = load(simple_epub)

        assert parsed.package_path == "OEBPS/content.opf"
        assert parsed.manifest["ch1"].path == "OEBPS/text/ch1.xhtml"
        assert parsed.manifest["cover"].path == "OEBPS/images/cover.png"
        assert parsed.manifest["nav"].is_navigation_document
        assert parsed.navigation_document().id == "nav"

    def test_spine_order(self, simple_epub):
        """Test the spine keeps declaration order."""
        parsed = load(simple_epub)

        assert [entry.idref for entry in parsed.spine] == ["ch1", "ch2"]
        assert [item.id for item in parsed.spine_items()] == ["ch1", "ch2"]

    def test_package_at_archive_root(self, tmp_path):
        """Test a package document that is not in a sub-directory."""
        builder = EpubBuilder(opf_dir="")
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.package_path == "content.opf"
        assert parsed.manifest["ch1"].path == "ch1.xhtml"

    def test_escaped_href(self, tmp_path):
        """Test percent-encoded hrefs match the stored member name."""
        builder = EpubBuilder()
        builder.add("ch1", "my%20chapter.xhtml", None)
        builder.extra_files["OEBPS/my chapter.xhtml"] = xhtml("<p>Hi</p>").encode()
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.manifest["ch1"].path == "OEBPS/my chapter.xhtml"

    def test_missing_manifest_file_is_dropped(self, tmp_path):
        """Test a declared item without an archive member is skipped with a warning."""
        builder = EpubBuilder()
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        builder.add("ghost", "ghost.xhtml", None)
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert "ghost" not in parsed.manifest
        assert [entry.idref for entry in parsed.spine] == ["ch1"]
        assert any("ghost" in w and "missing from archive" in w for w in parsed.warnings)
        assert any("unknown manifest item" in w for w in parsed.warnings)

    def test_duplicate_manifest_id(self, tmp_path):
        """Test the first item wins when two share an id."""
        builder = EpubBuilder()
        builder.add("ch1", "a.xhtml", xhtml("<p>A</p>"))
        builder.add("ch1", "b.xhtml", xhtml("<p>B</p>"), in_spine=False)
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.manifest["ch1"].path == "OEBPS/a.xhtml"
        assert any("Duplicate manifest id" in w for w in parsed.warnings)

    def test_jpg_media_type_is_normalized(self, tmp_path):
        """Test the common image/jpg mistake is corrected."""
        builder = EpubBuilder()
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        builder.add("pic", "pic.jpg", b"\xff\xd8\xff", "image/jpg", in_spine=False)
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.manifest["pic"].media_type == "image/jpeg"

    def test_linear_attribute(self, tmp_path):
        """Test non-linear spine entries are flagged."""
        builder = EpubBuilder()
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        path = builder.write(tmp_path / "book.epub")
        opf = builder.package_document().replace('idref="ch1"', 'idref="ch1" linear="no"')
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("META-INF/container.xml", CONTAINER_XML.format(opf_path="OEBPS/content.opf"))
            zf.writestr("OEBPS/content.opf", opf)
            zf.writestr("OEBPS/ch1.xhtml", xhtml("<p>Hi</p>"))

        parsed = load(path)
        assert parsed.spine[0].linear is False

    def test_ncx_located_from_spine(self, tmp_path):
        """Test the spine toc attribute selects the NCX."""
        builder = EpubBuilder()
        builder.add("ch1", "ch1.xhtml", xhtml("<p>Hi</p>"))
        builder.add_ncx("")
        parsed = load(builder.write(tmp_path / "book.epub"))

        assert parsed.ncx_id == "ncx"
        assert parsed.ncx().is_ncx
