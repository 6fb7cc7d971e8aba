import pytest

from local_rag.domain.errors import EmptyInputError, ValidationError
from local_rag.domain.models import Page
from local_rag.domain.services.chunking import (
    ChunkingParams,
    canonical_text,
    chunk_pages,
    detect_heading,
    validate_pages,
)


def _sentences(start: int, count: int) -> str:
    # Ten-word sentences: w0001 ... w0010.
    words = []
    for i in range(start, start + count):
        token = f"w{i:04d}"
        if (i + 1) % 10 == 0:
            token += "."
        words.append(token)
    return " ".join(words)


SMALL = ChunkingParams(
    target_words=40,
    overlap_words=8,
    boundary_window=6,
    max_words=60,
    min_tail_words=5,
)


def test_three_pages_of_1200_words_give_two_overlapping_chunks():
    pages = [Page(n + 1, _sentences(n * 400, 400)) for n in range(3)]

    chunks = chunk_pages("doc", pages, ChunkingParams(target_words=900, overlap_words=150))

    assert len(chunks) == 2
    first, second = chunks[0].text.split(), chunks[1].text.split()
    assert second[:150] == first[-150:]
    assert chunks[0].page_start == 1
    assert chunks[0].page_end == 3
    assert chunks[1].page_end == 3
    assert [c.id for c in chunks] == ["doc::chunk::0", "doc::chunk::1"]
    assert chunks[0].word_count == len(first)


def _stitch(chunks) -> str:  # type: ignore[no-untyped-def]
    """Join chunks back together, dropping each chunk's leading overlap."""
    rebuilt = chunks[0].text
    for prev, nxt in zip(chunks, chunks[1:]):
        shared = max(
            (k for k in range(1, len(nxt.text) + 1) if prev.text.endswith(nxt.text[:k])),
            default=0,
        )
        assert len(nxt.text[:shared].split()) == SMALL.overlap_words
        rebuilt += nxt.text[shared:]
    return rebuilt


def test_chunks_reconstruct_canonical_text_minus_overlaps():
    pages = [
        Page(1, "Introduction\n\n" + _sentences(0, 55)),
        Page(2, _sentences(55, 47) + "\n\n2. Results\n" + _sentences(102, 63)),
        Page(3, ""),
        Page(4, _sentences(165, 31)),
    ]

    chunks = chunk_pages("doc", pages, SMALL)
    text = canonical_text(pages)

    assert len(chunks) > 2
    assert _stitch(chunks) == text
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.text.split()[: SMALL.overlap_words] == prev.text.split()[-SMALL.overlap_words :]
    for c in chunks:
        assert c.text in text
        assert c.word_count <= SMALL.max_words
        assert c.page_start <= c.page_end


def test_ordinals_are_contiguous_from_zero():
    chunks = chunk_pages("d", [Page(1, _sentences(0, 300))], SMALL)
    assert [c.ordinal for c in chunks] == list(range(len(chunks)))


def test_short_document_is_one_chunk():
    chunks = chunk_pages("short", [Page(1, "Only a handful of words here.")], SMALL)
    assert len(chunks) == 1
    assert chunks[0].text == "Only a handful of words here."
    assert chunks[0].page_label == "p. 1"


def test_single_long_page_without_punctuation_respects_max_words():
    words = " ".join(f"t{i}" for i in range(500))
    chunks = chunk_pages("long", [Page(7, words)], SMALL)
    assert len(chunks) > 1
    assert all(c.word_count <= SMALL.max_words for c in chunks)
    assert all(c.page_start == c.page_end == 7 for c in chunks)


def test_heading_stays_with_following_text():
    body = _sentences(0, 38)
    pages = [Page(1, body + "\n\n## Methods\n" + _sentences(100, 40))]

    chunks = chunk_pages("h", pages, SMALL)

    assert "Methods" not in chunks[0].text
    assert chunks[0].section is None
    assert chunks[1].section == "Methods"
    assert "## Methods" in chunks[1].text


def test_short_tail_is_absorbed():
    chunks = chunk_pages("t", [Page(1, _sentences(0, 43))], SMALL)
    assert len(chunks) == 1
    assert chunks[0].word_count == 43


def test_empty_pages_raise_empty_input():
    with pytest.raises(EmptyInputError):
        chunk_pages("e", [Page(1, "   "), Page(2, "\n\n")], SMALL)


def test_page_numbers_must_be_positive_and_non_decreasing():
    with pytest.raises(ValidationError):
        validate_pages([Page(0, "x")])
    with pytest.raises(ValidationError):
        validate_pages([Page(2, "x"), Page(1, "y")])
    validate_pages([Page(1, "a"), Page(1, "b"), Page(3, "c")])


def test_params_validation():
    with pytest.raises(ValidationError):
        ChunkingParams(target_words=100, overlap_words=95, boundary_window=10).validate()
    with pytest.raises(ValidationError):
        ChunkingParams(target_words=100, overlap_words=10, max_words=50).validate()
    ChunkingParams().validate()


def test_detect_heading_variants():
    assert detect_heading("# Intro") == "Intro"
    assert detect_heading("Chapter 3 Cell Division") == "Chapter 3 Cell Division"
    assert detect_heading("1.2 Introduction") == "1.2 Introduction"
    assert detect_heading("INTRODUCTION") == "INTRODUCTION"
    assert detect_heading("This is an ordinary sentence.") is None
    assert detect_heading("") is None
    long_line = "CHAPTER 1 " + " ".join(["WORD"] * 20)
    assert detect_heading(long_line) is None
