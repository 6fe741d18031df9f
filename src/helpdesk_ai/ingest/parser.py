"""Parsing interfaces and concrete parsers for knowledge-base documents."""

from __future__ import annotations

import html
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from helpdesk_ai.types import ParsedDocument

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`\n]+`")
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_TAG = re.compile(r"<[^>]+>")
_SCRIPT_OR_STYLE = re.compile(r"<(script|style)\b[\s\S]*?</\1\s*>", re.IGNORECASE)
_BLOCK_TAG = re.compile(r"</?(?:p|div|br|li|ul|ol|tr|table|section|article|h[1-6])\b[^>]*>", re.IGNORECASE)


def extract_text_from_markdown(content: str) -> str:
    """Strip markdown syntax that carries no meaning for retrieval.

    Headers are kept because the chunker uses them as section boundaries.
    Code is replaced by placeholders.
    """

    text = _CODE_BLOCK.sub("\n[code block]\n", content)
    text = _INLINE_CODE.sub("[code]", text)
    text = _IMAGE.sub(r"\1", text)
    text = _LINK.sub(r"\1", text)
    return _TAG.sub("", text)


def extract_text_from_html(content: str) -> str:
    text = _SCRIPT_OR_STYLE.sub("", content)
    text = _BLOCK_TAG.sub("\n\n", text)
    text = _TAG.sub(" ", text)
    text = html.unescape(text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


class Parser(ABC):
    """Base parser interface used by the ingest pipeline."""

    format: str = ""
    extensions: tuple[str, ...] = ()

    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        document = self.parse_text(path.read_text(encoding="utf-8"), doc_id=doc_id or path.stem)
        document.metadata["source"] = str(path)
        return document

    def parse_text(
        self, content: str, *, doc_id: str, metadata: dict[str, Any] | None = None
    ) -> ParsedDocument:
        return ParsedDocument(
            doc_id=doc_id,
            text=self.extract(content),
            metadata={"format": self.format, **(metadata or {})},
        )

    @abstractmethod
    def extract(self, content: str) -> str:
        """Turn raw file content into plain text ready for chunking."""


class TextParser(Parser):
    format = "text"
    extensions = (".txt", ".log")

    def extract(self, content: str) -> str:
        return content


class MarkdownParser(Parser):
    format = "markdown"
    extensions = (".md", ".markdown")

    def extract(self, content: str) -> str:
        return extract_text_from_markdown(content)


class HtmlParser(Parser):
    format = "html"
    extensions = (".html", ".htm")

    def extract(self, content: str) -> str:
        return extract_text_from_html(content)


class ParserRegistry:
    """Maps file extensions and format names to parser implementations."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._by_extension: dict[str, Parser] = {}
        self._by_format: dict[str, Parser] = {}
        for parser in parsers or [TextParser(), MarkdownParser(), HtmlParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        self._by_format[parser.format] = parser
        for extension in parser.extensions:
            self._by_extension[extension.lower()] = parser

    def formats(self) -> list[str]:
        return sorted(self._by_format)

    def for_format(self, format: str) -> Parser:
        parser = self._by_format.get(format.lower())
        if parser is None:
            raise ValueError(f"No parser registered for format: {format}")
        return parser

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> ParsedDocument:
        file_path = Path(path)
        parser = self._by_extension.get(file_path.suffix.lower())
        if parser is None:
            raise ValueError(f"No parser registered for extension: {file_path.suffix}")
        return parser.parse(file_path, doc_id=doc_id)
