import pytest

from helpdesk_ai.config import ChunkingConfig
from helpdesk_ai.ingest.chunker import TextChunker, normalize_text


def _paragraphs(count: int, topic: str = "router") -> str:
    return "\n\n".join(
        f"Sentence number {index} explains the {topic} setup." for index in range(count)
    )


def test_empty_and_whitespace_documents_produce_no_chunks() -> None:
    chunker = TextChunker()

    assert chunker.chunk("") == []
    assert chunker.chunk("  \n\t \r\n ") == []


def test_short_document_is_a_single_chunk() -> None:
    chunks = TextChunker().chunk("Restart the router and wait two minutes.")

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].start_char == 0
    assert chunks[0].content == "Restart the router and wait two minutes."


def test_chunks_are_bounded_ordered_verbatim_and_overlapping() -> None:
    config = ChunkingConfig(max_tokens=50, min_tokens=10, overlap_tokens=10)
    document = normalize_text(_paragraphs(20))

    chunks = TextChunker(config).chunk(document)

    assert len(chunks) > 2
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert chunk.content == document[chunk.start_char : chunk.end_char]
        assert config.min_tokens <= chunk.token_estimate <= config.max_tokens
    for previous, current in zip(chunks, chunks[1:]):
        assert previous.start_char < current.start_char
        assert current.start_char < previous.end_char
    assert chunks[0].start_char == 0
    assert chunks[-1].end_char == len(document)


def test_chunks_never_span_header_sections() -> None:
    config = ChunkingConfig(max_tokens=60, min_tokens=5, overlap_tokens=10)
    document = "# Alpha\n\n" + _paragraphs(6, "alpha") + "\n\n# Beta\n\n" + _paragraphs(6, "beta")

    chunks = TextChunker(config).chunk(document)

    assert any("# Beta" in chunk.content for chunk in chunks)
    for chunk in chunks:
        assert not ("alpha" in chunk.content and "beta" in chunk.content)


def test_oversized_sentence_is_emitted_whole() -> None:
    config = ChunkingConfig(max_tokens=20, min_tokens=0, overlap_tokens=0)
    sentence = " ".join(["word"] * 60)

    chunks = TextChunker(config).chunk(sentence)

    assert len(chunks) == 1
    assert chunks[0].content == sentence
    assert chunks[0].token_estimate > config.max_tokens


def test_normalize_text_collapses_whitespace_and_line_endings() -> None:
    assert normalize_text("  a\r\nb\rc\t\td   e  ") == "a\nb\nc d e"


def test_overlap_tail_starts_at_a_sentence_boundary() -> None:
    config = ChunkingConfig(max_tokens=20, min_tokens=1, overlap_tokens=5)
    document = (
        "Unplug the router now. Wait ten seconds.\n\n"
        "Then plug it back in and check the green status light."
    )

    chunks = TextChunker(config).chunk(document)

    assert [chunk.content for chunk in chunks] == [
        "Unplug the router now. Wait ten seconds.",
        "Wait ten seconds.\n\nThen plug it back in and check the green status light.",
    ]
    assert chunks[1].start_char == 23


def test_small_final_chunk_is_widened_into_the_previous_text() -> None:
    config = ChunkingConfig(max_tokens=20, min_tokens=10, overlap_tokens=0)
    document = (
        "Then plug it back in and check the green status light. Wait two minutes.\n\n"
        "All done."
    )

    chunks = TextChunker(config).chunk(document)

    assert len(chunks) == 2
    assert chunks[0].content == "Then plug it back in and check the green status light. Wait two minutes."
    assert chunks[1].content == "status light. Wait two minutes.\n\nAll done."
    assert chunks[1].token_estimate >= config.min_tokens
    assert chunks[1].end_char == len(document)


def test_tiny_final_section_is_merged_into_the_previous_chunk() -> None:
    config = ChunkingConfig(max_tokens=20, min_tokens=5, overlap_tokens=0)
    document = "# Reset\n\nUnplug the router now. Wait ten seconds.\n\n# Done\n\nOk."

    chunks = TextChunker(config).chunk(document)

    assert len(chunks) == 1
    assert chunks[0].content == document
    assert chunks[0].end_char == len(document)


def test_inconsistent_bounds_are_rejected() -> None:
    with pytest.raises(ValueError, match="overlap_tokens must be less than max_tokens"):
        ChunkingConfig(max_tokens=20, overlap_tokens=20, min_tokens=0)
    with pytest.raises(ValueError, match="min_tokens must not exceed max_tokens"):
        ChunkingConfig(max_tokens=20, min_tokens=30, overlap_tokens=0)
