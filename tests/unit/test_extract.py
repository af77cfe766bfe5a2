"""Unit tests for text extraction and tokenization."""

import pytest

from backend.app.docs.extract import PlainTextExtractor, file_type_of
from backend.app.docs.tokens import query_terms, tokenize
from backend.app.errors import ProcessingError
from backend.app.models.docs import UploadedFile


def _file(name: str, data: bytes, content_type: str = "text/plain") -> UploadedFile:
    return UploadedFile(file_name=name, content_type=content_type, data=data)


class TestPlainTextExtractor:
    def test_decodes_utf8_text(self) -> None:
        text = PlainTextExtractor().extract_text(_file("notes.txt", "Café policy".encode()))

        assert text == "Café policy"

    def test_normalizes_line_endings(self) -> None:
        text = PlainTextExtractor().extract_text(_file("a.txt", b"one\r\ntwo\rthree\n"))

        assert text == "one\ntwo\nthree\n"

    def test_markdown_by_extension(self) -> None:
        file = _file("README.MD", b"# Title", content_type="application/octet-stream")

        assert PlainTextExtractor().extract_text(file) == "# Title"

    def test_markdown_by_content_type(self) -> None:
        file = _file("notes", b"*hi*", content_type="text/markdown")

        assert PlainTextExtractor().extract_text(file) == "*hi*"

    def test_unsupported_type_raises(self) -> None:
        file = _file("report.pdf", b"%PDF-1.4", content_type="application/pdf")

        with pytest.raises(ProcessingError, match="Unsupported file type"):
            PlainTextExtractor().extract_text(file)

    def test_undecodable_bytes_raise(self) -> None:
        with pytest.raises(ProcessingError, match="Could not decode"):
            PlainTextExtractor().extract_text(_file("bad.txt", b"\xff\xfe\xfa"))


@pytest.mark.parametrize(
    ("name", "expected"),
    [("report.PDF", "pdf"), ("notes.txt", "txt"), ("archive.tar.gz", "gz"), ("README", "")],
)
def test_file_type_of(name: str, expected: str) -> None:
    assert file_type_of(_file(name, b"x")) == expected


def test_tokenize_lowercases_and_drops_stopwords() -> None:
    assert tokenize("What is the Vacation-Policy for 2024?") == ["vacation", "policy", "2024"]


def test_query_terms_are_distinct_in_order() -> None:
    assert query_terms("leave policy and sick leave") == ["leave", "policy", "sick"]


def test_query_of_only_stopwords_has_no_terms() -> None:
    assert query_terms("what is the") == []
