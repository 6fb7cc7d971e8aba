from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from local_rag.domain.errors import EmptyInputError, ValidationError
from local_rag.domain.models import Chunk, Page, chunk_id_for

# ---------- Value Objects ----------


@dataclass(frozen=True)
class ChunkingParams:
    target_words: int = 900
    overlap_words: int = 150
    boundary_window: int = 90
    max_words: int = 1200
    min_tail_words: int = 50
    heading_max_words: int = 12

    def validate(self) -> None:
        if self.target_words <= 0:
            raise ValidationError("target_words must be > 0")
        if self.overlap_words < 0 or self.boundary_window < 0 or self.min_tail_words < 0:
            raise ValidationError("overlap_words, boundary_window and min_tail_words must be >= 0")
        if self.overlap_words >= self.target_words - self.boundary_window:
            raise ValidationError("overlap_words must be smaller than target_words - boundary_window")
        if self.max_words < self.target_words:
            raise ValidationError("max_words must be >= target_words")


@dataclass(frozen=True)
class _Word:
    start: int  # char offsets into the canonical text
    end: int
    page: int
    paragraph_break_before: bool
    heading_start: bool
    in_heading: bool
    sentence_end: bool
    section: str | None


# ---------- Structure heuristics ----------

PAGE_SEPARATOR = "\n\n"

_WORD = re.compile(r"\S+")
_SENT_END = re.compile(r"[.!?][\"'”’)\]]*$")

_HEADING_PATTERNS = [
    re.compile(r"^#{1,6}\s+\S"),  # Markdown #, ##, ...
    re.compile(r"^(chapter|section|unit|part|appendix)\s+([0-9]+|[IVXLC]+)\b", re.IGNORECASE),
    # 1 / 1. / 1.2 / 1.2.3 followed by a capitalised title
    re.compile(r"^\d+(?:\.\d+){0,3}\.?\s+[A-Z]"),
    re.compile(r"^[IVXLC]+\.\s+\S"),  # roman numerals
]


def detect_heading(line: str, max_words: int = 12) -> str | None:
    """Return the heading title if `line` looks like a section heading.

    Headings are short lines that do not end like a sentence and match a
    markdown, keyword, numbered or all-caps pattern. A miss only loses
    section metadata.
    """
    stripped = line.strip()
    if not stripped or len(stripped.split()) > max_words:
        return None
    is_markdown = stripped.startswith("#")
    if not is_markdown and stripped[-1] in ".!?;,":
        return None
    for pat in _HEADING_PATTERNS:
        if pat.match(stripped):
            return stripped.lstrip("#").strip() or None
    letters = [c for c in stripped if c.isalpha()]
    if len(letters) >= 3 and all(c.isupper() for c in letters):
        return stripped
    return None


def validate_pages(pages: Sequence[Page]) -> None:
    """Decoder contract: positive page numbers, monotonically non-decreasing."""
    previous = 0
    for page in pages:
        if page.number < 1:
            raise ValidationError(f"page numbers must be positive, got {page.number}")
        if page.number < previous:
            raise ValidationError(
                f"page numbers must be non-decreasing ({page.number} after {previous})"
            )
        previous = page.number


def canonical_text(pages: Sequence[Page]) -> str:
    """Stripped text of the non-empty pages, joined by a blank line."""
    return PAGE_SEPARATOR.join(p.text.strip() for p in pages if p.text.strip())


def _scan_words(pages: Sequence[Page], p: ChunkingParams) -> tuple[str, list[_Word]]:
    words: list[_Word] = []
    section: str | None = None
    offset = 0
    first_page = True
    for page in pages:
        page_text = page.text.strip()
        if not page_text:
            continue
        if not first_page:
            offset += len(PAGE_SEPARATOR)
        first_page = False

        paragraph_break = bool(words)  # page break counts as a paragraph boundary
        line_offset = offset
        for line in page_text.split("\n"):
            if not line.strip():
                paragraph_break = bool(words)
                line_offset += len(line) + 1
                continue
            title = detect_heading(line, p.heading_max_words)
            if title is not None:
                section = title
            first_in_line = True
            for m in _WORD.finditer(line):
                token = m.group(0)
                words.append(
                    _Word(
                        start=line_offset + m.start(),
                        end=line_offset + m.end(),
                        page=page.number,
                        paragraph_break_before=paragraph_break,
                        heading_start=title is not None and first_in_line,
                        in_heading=title is not None,
                        sentence_end=title is None and bool(_SENT_END.search(token)),
                        section=section,
                    )
                )
                paragraph_break = False
                first_in_line = False
            line_offset += len(line) + 1
        offset += len(page_text)
    return canonical_text(pages), words


# ---------- Cut selection ----------


def _boundary_rank(words: Sequence[_Word], e: int) -> int:
    """Rank of cutting between words[e-1] and words[e]; -1 means never cut here."""
    prev, nxt = words[e - 1], words[e]
    if prev.in_heading:
        return -1  # a heading stays with the text that follows it
    if nxt.heading_start:
        return 3
    if nxt.paragraph_break_before:
        return 2
    if prev.sentence_end:
        return 1
    return 0


def _choose_cut(words: Sequence[_Word], start: int, p: ChunkingParams) -> int:
    n = len(words)
    ideal = start + p.target_words
    lo = max(start + p.overlap_words + 1, ideal - p.boundary_window)
    hi = min(n - 1, ideal + p.boundary_window, start + p.max_words)
    best: int | None = None
    best_key: tuple[int, int, int] | None = None
    for e in range(lo, hi + 1):
        rank = _boundary_rank(words, e)
        if rank < 0:
            continue
        key = (rank, -abs(e - ideal), -e)
        if best_key is None or key > best_key:
            best, best_key = e, key
    return best if best is not None else min(ideal, hi)


def _make_chunk(
    document_id: str,
    ordinal: int,
    text: str,
    words: Sequence[_Word],
    start: int,
    end: int,
    first_new: int,
) -> Chunk:
    return Chunk(
        id=chunk_id_for(document_id, ordinal),
        document_id=document_id,
        ordinal=ordinal,
        page_start=words[start].page,
        page_end=words[end - 1].page,
        text=text[words[start].start : words[end - 1].end],
        word_count=end - start,
        section=words[first_new].section,
    )


# ---------- Chunk packer ----------


def chunk_pages(
    document_id: str,
    pages: Sequence[Page],
    params: ChunkingParams | None = None,
) -> list[Chunk]:
    """Split decoded pages into overlapping, section-aware chunks.

    Greedy word packing towards `target_words`, cutting at the best boundary
    inside the tolerance window; each following chunk starts `overlap_words`
    before the previous cut. Raises EmptyInputError if no words remain.
    """
    p = params or ChunkingParams()
    p.validate()
    validate_pages(pages)
    text, words = _scan_words(pages, p)
    if not words:
        raise EmptyInputError(f"document '{document_id}' has no text to chunk")

    n = len(words)
    chunks: list[Chunk] = []
    start = 0
    while True:
        if n - start <= p.target_words:
            end = n
        else:
            end = _choose_cut(words, start, p)
            # Absorb a short tail instead of emitting a near-duplicate final chunk.
            if n - end <= p.min_tail_words and n - start <= p.max_words:
                end = n
        first_new = start + p.overlap_words if chunks else start
        chunks.append(_make_chunk(document_id, len(chunks), text, words, start, end, first_new))
        if end >= n:
            break
        start = end - p.overlap_words
    return chunks


# Properties:
#
# - No I/O, no globals, no external NLP libs.
# - Chunks are exact slices of canonical_text(pages); stripping the first
#   overlap_words words of every chunk but the first and concatenating the
#   remainders reproduces canonical_text(pages).
# - Consecutive chunks share exactly overlap_words words.
