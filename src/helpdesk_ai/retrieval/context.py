"""Token-bounded context assembly for prompts."""

from __future__ import annotations

from dataclasses import dataclass, field

from helpdesk_ai.obs.tracing import CHARS_PER_TOKEN, estimate_tokens
from helpdesk_ai.types import RetrievalResult, SourceCitation

CHUNK_DELIMITER = "\n---\n"
TRUNCATION_MARKER = "..."
MIN_TRUNCATED_CHARS = 100


@dataclass(slots=True)
class CitedContext:
    context: str
    sources: list[SourceCitation] = field(default_factory=list)


def assemble_context(
    chunks: list[RetrievalResult],
    max_tokens: int = 2000,
    *,
    min_truncated_chars: int = MIN_TRUNCATED_CHARS,
) -> str:
    """Join the best chunks until the token budget is spent.

    Chunks are taken by descending score. The chunk that would overflow the
    budget contributes a truncated prefix only when that prefix is longer than
    `min_truncated_chars`; assembly stops there. The estimate of the returned
    string never exceeds `max_tokens`.
    """

    if not chunks or max_tokens <= 0:
        return ""

    budget_chars = max_tokens * CHARS_PER_TOKEN
    context = ""
    for chunk in sorted(chunks, key=lambda item: item.score, reverse=True):
        separator = CHUNK_DELIMITER if context else ""
        candidate = f"{context}{separator}{chunk.content}"
        if estimate_tokens(candidate) <= max_tokens:
            context = candidate
            continue

        room = budget_chars - len(context) - len(separator) - len(TRUNCATION_MARKER)
        truncated = chunk.content[: max(room, 0)].rstrip()
        if len(truncated) > min_truncated_chars:
            context = f"{context}{separator}{truncated}{TRUNCATION_MARKER}"
        break

    return context.strip()


def assemble_context_with_sources(
    chunks: list[RetrievalResult], max_tokens: int = 2000
) -> CitedContext:
    """Like `assemble_context`, but labels chunks with numbered sources.

    Sources are deduplicated by (kb_id, doc_id) and numbered in the order they
    are first referenced. Chunks that do not fit are dropped whole.
    """

    if not chunks or max_tokens <= 0:
        return CitedContext(context="")

    sources: list[SourceCitation] = []
    numbers: dict[tuple[str, str], int] = {}
    context = ""
    for chunk in sorted(chunks, key=lambda item: item.score, reverse=True):
        key = (chunk.metadata.kb_id, chunk.metadata.doc_id)
        number = numbers.get(key, len(sources) + 1)
        separator = "\n" if context else ""
        candidate = f"{context}{separator}[Source {number}]\n{chunk.content}"
        if estimate_tokens(candidate) > max_tokens:
            break
        if key not in numbers:
            numbers[key] = number
            sources.append(
                SourceCitation(
                    kb_id=chunk.metadata.kb_id,
                    doc_id=chunk.metadata.doc_id,
                    product=chunk.metadata.product,
                )
            )
        context = candidate

    return CitedContext(context=context, sources=sources)
