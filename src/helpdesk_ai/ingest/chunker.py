"""Header-aware paragraph chunking with overlap."""

from __future__ import annotations

import re

from helpdesk_ai.config import ChunkingConfig
from helpdesk_ai.obs.tracing import CHARS_PER_TOKEN, estimate_tokens
from helpdesk_ai.types import Chunk

_HEADER = re.compile(r"^#{1,6}[ \t]+\S", flags=re.MULTILINE)
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_END = re.compile(r"([.!?]+)\s+")
_SENTENCE_START = re.compile(r"[.!?]+\s+|\n[ \t]*\n\s*")

Span = tuple[int, int]


def normalize_text(text: str) -> str:
    """Normalize line endings, tabs and runs of spaces, then trim."""

    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ")
    text = re.sub(r" {2,}", " ", text)
    return text.strip()


class TextChunker:
    """Splits documents into overlapping, size-bounded chunks.

    Design notes:
    1. Topic boundaries first.
       When the document contains markdown headers, it is cut into
       header-delimited sections and no chunk ever spans two sections
       (except when a tiny section is folded into its predecessor, see 4).

    2. Paragraph packing second.
       Paragraphs are appended to a running buffer until the next one would
       push the buffer past `max_tokens` (token ~= ceil(chars / 4)). The
       buffer is then emitted and the next buffer starts with an overlap tail
       copied from the end of the emitted one. The tail prefers to start at a
       sentence boundary and falls back to a hard character cut. The tail is
       shortened whenever keeping it whole would push the new buffer past
       `max_tokens`.

    3. Oversized paragraphs.
       A paragraph larger than `max_tokens` is broken into sentences that are
       packed with the same overlap rule. A single sentence larger than
       `max_tokens` is emitted as-is.

    4. Small tails.
       A final buffer below `min_tokens` absorbs the end of the previous
       chunk: it is widened backwards until it reaches `min_tokens`, since
       appending it to the previous chunk would overflow `max_tokens`. A
       section that yields a single chunk below `min_tokens` is merged into
       the previous section's last chunk when the result fits `max_tokens`.

    Every chunk is a verbatim slice of the normalized document, so
    `start_char`/`end_char` index straight into it and dropping the overlap
    regions of consecutive chunks reproduces the document text.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str) -> list[Chunk]:
        document = normalize_text(text)
        if not document:
            return []

        spans: list[Span] = []
        for section_start, section_end in self._sections(document):
            section_spans = self._chunk_section(document, section_start, section_end)
            if (
                len(section_spans) == 1
                and spans
                and _span_tokens(section_spans[0]) < self.config.min_tokens
                and _span_tokens((spans[-1][0], section_spans[0][1])) <= self.config.max_tokens
            ):
                spans[-1] = (spans[-1][0], section_spans[0][1])
                continue
            spans.extend(section_spans)

        return [
            Chunk(
                content=document[start:end],
                index=index,
                start_char=start,
                end_char=end,
                token_estimate=estimate_tokens(document[start:end]),
            )
            for index, (start, end) in enumerate(spans)
        ]

    def _sections(self, document: str) -> list[Span]:
        starts = [match.start() for match in _HEADER.finditer(document)]
        if not starts:
            return [(0, len(document))]
        if starts[0] != 0:
            starts.insert(0, 0)
        bounds = starts + [len(document)]
        sections = []
        for start, end in zip(bounds, bounds[1:]):
            span = _trim(document, start, end)
            if span is not None:
                sections.append(span)
        return sections

    def _chunk_section(self, document: str, start: int, end: int) -> list[Span]:
        units: list[Span] = []
        for paragraph in _paragraph_spans(document, start, end):
            if _span_tokens(paragraph) > self.config.max_tokens:
                units.extend(_sentence_spans(document, *paragraph))
            else:
                units.append(paragraph)

        chunks: list[Span] = []
        buffer: Span | None = None
        for unit_start, unit_end in units:
            if buffer is None:
                buffer = (unit_start, unit_end)
                continue
            if _span_tokens((buffer[0], unit_end)) <= self.config.max_tokens:
                buffer = (buffer[0], unit_end)
                continue
            chunks.append(buffer)
            buffer = (self._overlap_start(document, buffer, unit_start, unit_end), unit_end)

        if buffer is None:
            return chunks
        if not chunks or _span_tokens(buffer) >= self.config.min_tokens:
            chunks.append(buffer)
            return chunks

        # The buffer was flushed because the previous chunk could not hold it.
        previous = chunks[-1]
        widened = buffer[1] - self.config.min_tokens * CHARS_PER_TOKEN
        widened = max(previous[0], min(widened, buffer[0]))
        while widened > previous[0] and document[widened].isspace():
            widened -= 1
        while widened > previous[0] and not document[widened - 1].isspace():
            widened -= 1
        chunks.append((widened, buffer[1]))
        return chunks

    def _overlap_start(
        self, document: str, buffer: Span, unit_start: int, unit_end: int
    ) -> int:
        """Where the next buffer starts so it carries a tail of `buffer`.

        Returns `unit_start` when there is no room for any overlap.
        """

        buffer_start, buffer_end = buffer
        target_chars = self.config.overlap_tokens * CHARS_PER_TOKEN
        if target_chars <= 0:
            return unit_start

        lower = max(buffer_start, buffer_end - target_chars)
        if buffer_end - buffer_start <= target_chars:
            candidate = buffer_start
        else:
            candidate = lower
            for match in _SENTENCE_START.finditer(document, max(buffer_start, lower - 8), buffer_end):
                if lower <= match.end() < buffer_end:
                    candidate = match.end()
                    break

        candidate = max(candidate, unit_end - self.config.max_tokens * CHARS_PER_TOKEN)
        if candidate > buffer_start and not document[candidate - 1].isspace():
            # hard cut landed inside a word; start at the next word instead
            while candidate < buffer_end and not document[candidate].isspace():
                candidate += 1
        while candidate < buffer_end and document[candidate].isspace():
            candidate += 1
        if candidate >= buffer_end:
            return unit_start
        return candidate


def _span_tokens(span: Span) -> int:
    start, end = span
    return -(-(end - start) // CHARS_PER_TOKEN)


def _trim(document: str, start: int, end: int) -> Span | None:
    while start < end and document[start].isspace():
        start += 1
    while end > start and document[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return start, end


def _paragraph_spans(document: str, start: int, end: int) -> list[Span]:
    spans: list[Span] = []
    position = start
    for match in _PARAGRAPH_BREAK.finditer(document, start, end):
        span = _trim(document, position, match.start())
        if span is not None:
            spans.append(span)
        position = match.end()
    span = _trim(document, position, end)
    if span is not None:
        spans.append(span)
    return spans


def _sentence_spans(document: str, start: int, end: int) -> list[Span]:
    spans: list[Span] = []
    position = start
    for match in _SENTENCE_END.finditer(document, start, end):
        sentence_end = match.start() + len(match.group(1))
        span = _trim(document, position, sentence_end)
        if span is not None:
            spans.append(span)
        position = match.end()
    span = _trim(document, position, end)
    if span is not None:
        spans.append(span)
    return spans
