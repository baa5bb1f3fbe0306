"""
Section-aware document chunking.

Splits document text into overlapping, token-budgeted chunks for chunk-level
retrieval:

- Split by known section headings first (Experience, Education, Skills, ...)
- Split each section into ~300 token chunks
- Carry ~50 tokens of overlap from one chunk into the next
- Tag each chunk with its section and a provenance string

Token counts are estimated from word counts (1 word ~ 1.3 tokens for English
text), so no tokenizer is needed. Everything here is pure and deterministic.

Example:
    chunks = chunk_document_by_sections(cv_text)
    for chunk in chunks:
        print(chunk.chunk_index, chunk.section, chunk.token_count)
"""

import math
import re
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidInputError

TOKENS_PER_WORD = 1.3
TARGET_TOKENS_PER_CHUNK = 300
OVERLAP_TOKENS = 50

SECTION_HEADINGS = (
    "Summary",
    "Objective",
    "Professional",
    "Experience",
    "Education",
    "Skills",
    "Certifications",
    "Projects",
    "Awards",
    "Languages",
    "References",
)

FULL_TEXT_SECTION = "Full Text"

# A word plus the whitespace that follows it
_WORD_RE = re.compile(r"\S+\s*")
_HEADING_ALTERNATION = "|".join(SECTION_HEADINGS)


@dataclass
class TextChunk:
    """One chunk produced by split_into_chunks()."""

    text: str
    token_count: int
    word_count: int


@dataclass
class Section:
    """A section located by extract_section()."""

    label: str
    content: str
    start: int
    end: int


@dataclass
class DocumentChunk:
    """
    One chunk of a document, ready for embedding and storage.

    Attributes:
        text: Chunk text
        section: Section label the chunk came from ("Full Text" if none)
        chunk_index: Position across the whole document, from 0
        token_count: Estimated token count
        source: Provenance, e.g. "Experience_chunk_2_of_3"
    """

    text: str
    section: str
    chunk_index: int
    token_count: int
    source: str


def estimate_tokens(text: Optional[str]) -> int:
    """Estimate token count as ceil(words * 1.3)."""
    if not text:
        return 0
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def _words_for(tokens: int) -> int:
    return math.ceil(tokens / TOKENS_PER_WORD)


def _make_chunk(words: list[str]) -> Optional[TextChunk]:
    text = "".join(words).strip()
    if not text:
        return None
    return TextChunk(text=text, token_count=estimate_tokens(text), word_count=len(words))


def split_into_chunks(
    text: Optional[str],
    target_tokens: int = TARGET_TOKENS_PER_CHUNK,
    overlap_tokens: int = OVERLAP_TOKENS,
) -> list[TextChunk]:
    """
    Split text into overlapping chunks of roughly target_tokens each.

    Words keep their trailing whitespace so chunk text reads like the
    source. Once a chunk holds ceil(target_tokens / 1.3) words it is
    emitted, and the next chunk starts with the last
    ceil(overlap_tokens / 1.3) words of the previous one. The remainder is
    emitted even if it is under target, unless it only repeats overlap.

    Args:
        text: Text to split
        target_tokens: Token budget per chunk
        overlap_tokens: Tokens repeated between consecutive chunks

    Returns:
        List of TextChunk, empty for empty or whitespace-only text

    Raises:
        InvalidInputError: If target_tokens <= 0, overlap_tokens < 0, or
            overlap_tokens >= target_tokens
    """
    if target_tokens <= 0:
        raise InvalidInputError("target_tokens must be positive")
    if overlap_tokens < 0 or overlap_tokens >= target_tokens:
        raise InvalidInputError("overlap_tokens must be >= 0 and smaller than target_tokens")

    target_words = _words_for(target_tokens)
    overlap_words = _words_for(overlap_tokens)
    if overlap_words >= target_words:
        raise InvalidInputError("overlap must cover fewer words than a chunk")

    if not text or not text.strip():
        return []

    words = _WORD_RE.findall(text.strip())

    chunks: list[TextChunk] = []
    current: list[str] = []
    carried = 0  # words at the head of `current` already emitted

    for word in words:
        current.append(word)
        if len(current) >= target_words:
            chunk = _make_chunk(current)
            if chunk is not None:
                chunks.append(chunk)
            current = current[-overlap_words:] if overlap_words else []
            carried = len(current)

    if len(current) > carried:
        chunk = _make_chunk(current)
        if chunk is not None:
            chunks.append(chunk)

    return chunks


def extract_section(text: Optional[str], label: str) -> Optional[Section]:
    """
    Find a section by its heading.

    The section runs from the heading to the next recognised heading (or
    the end of the text). Matching is case-insensitive.

    Args:
        text: Document text
        label: Heading to look for

    Returns:
        Section, or None if the heading is absent
    """
    if not text or not label:
        return None

    pattern = re.compile(
        rf"\b{re.escape(label)}\b\s*(.+?)(?=\b(?:{_HEADING_ALTERNATION})\b|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(text)
    if match is None:
        return None

    return Section(
        label=label,
        content=match.group(1).strip(),
        start=match.start(),
        end=match.end(),
    )


def chunk_document_by_sections(
    text: Optional[str],
    target_tokens: int = TARGET_TOKENS_PER_CHUNK,
    overlap_tokens: int = OVERLAP_TOKENS,
) -> list[DocumentChunk]:
    """
    Chunk a document section by section.

    Sections are visited in SECTION_HEADINGS order and chunk_index keeps
    counting across sections, so indexes are contiguous from 0. A document
    without any recognised heading is chunked as a single "Full Text"
    section.

    Args:
        text: Document text
        target_tokens: Token budget per chunk
        overlap_tokens: Tokens repeated between consecutive chunks

    Returns:
        List of DocumentChunk in chunk_index order
    """
    chunks: list[DocumentChunk] = []
    if not text or not text.strip():
        return chunks

    for label in SECTION_HEADINGS:
        section = extract_section(text, label)
        if section is None or not section.content:
            continue

        pieces = split_into_chunks(section.content, target_tokens, overlap_tokens)
        for i, piece in enumerate(pieces):
            chunks.append(
                DocumentChunk(
                    text=piece.text,
                    section=label,
                    chunk_index=len(chunks),
                    token_count=piece.token_count,
                    source=f"{label}_chunk_{i + 1}_of_{len(pieces)}",
                )
            )

    if not chunks:
        pieces = split_into_chunks(text, target_tokens, overlap_tokens)
        for i, piece in enumerate(pieces):
            chunks.append(
                DocumentChunk(
                    text=piece.text,
                    section=FULL_TEXT_SECTION,
                    chunk_index=i,
                    token_count=piece.token_count,
                    source=f"full_text_chunk_{i + 1}_of_{len(pieces)}",
                )
            )

    return chunks
