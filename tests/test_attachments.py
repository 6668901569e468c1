"""
Tests for reading file attachments.
"""
import pytest

from termcraft.attachments import FileReader, FileType
from termcraft.errors import InputError
from termcraft.providers import BinaryPart, TextPart


class TestFileReader:
    """Reading and classifying files."""

    def test_reads_text_file(self, tmp_path):
        path = tmp_path / "README.md"
        path.write_text("# title\n")
        content = FileReader().read(path)
        assert content.type is FileType.TEXT
        assert content.name == "README.md"
        assert content.size == 8
        assert content.text() == "# title\n"
        assert content.metadata["extension"] == ".md"

    def test_image_mime_type(self, tmp_path):
        path = tmp_path / "photo.JPG"
        path.write_bytes(b"\xff\xd8\xff")
        content = FileReader().read(path)
        assert content.type is FileType.IMAGE
        assert content.mime_type == "image/jpeg"
        assert content.text() == ""

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError) as excinfo:
            FileReader().read(tmp_path / "nope.txt")
        assert "file not found" in str(excinfo.value)

    def test_file_too_large(self, tmp_path):
        path = tmp_path / "big.txt"
        path.write_text("x" * 20)
        with pytest.raises(InputError) as excinfo:
            FileReader(max_size=10).read(path)
        assert "file too large" in str(excinfo.value)

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "program.exe"
        path.write_bytes(b"MZ")
        with pytest.raises(InputError) as excinfo:
            FileReader().read(path)
        assert "unsupported file extension: .exe" in str(excinfo.value)

    def test_custom_allowed_types(self, tmp_path):
        reader = FileReader(allowed_types={FileType.TEXT: (".log",)})
        assert reader.file_type("server.log") is FileType.TEXT
        with pytest.raises(InputError):
            reader.file_type("notes.txt")


class TestToPart:
    """Turning file contents into backend parts."""

    def test_text_and_image(self, tmp_path):
        reader = FileReader()
        text = tmp_path / "a.txt"
        text.write_text("hello")
        image = tmp_path / "b.gif"
        image.write_bytes(b"GIF89a")
        assert reader.to_part(reader.read(text)) == TextPart("hello")
        assert reader.to_part(reader.read(image)) == BinaryPart("image/gif", b"GIF89a")

    def test_pdf_not_supported(self, tmp_path):
        reader = FileReader()
        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        with pytest.raises(InputError) as excinfo:
            reader.to_part(reader.read(pdf))
        assert "failed to extract text from PDF" in str(excinfo.value)

    def test_audio_not_sent(self, tmp_path):
        reader = FileReader()
        audio = tmp_path / "clip.wav"
        audio.write_bytes(b"RIFF")
        with pytest.raises(InputError) as excinfo:
            reader.to_part(reader.read(audio))
        assert "unsupported file type: audio" in str(excinfo.value)
