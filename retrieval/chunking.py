"""Deterministic text chunking for RAG ingestion."""

import re
from typing import List

HEADER_PATTERN = re.compile(r"^\s*#+\s+.*$", re.MULTILINE)
LEVEL_HEADER_PATTERN = re.compile(r"^\s*(#+)\s+.*$")


def chunk_text(text: str, chunk_size: int, overlap: int) -> List[str]:
    """
    Split text into fixed-size windows.

    Consecutive windows share `overlap` characters.

    Raises:
        ValueError: chunk_size <= 0, overlap < 0, or overlap >= chunk_size
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(
            f"overlap must be in [0, chunk_size), got {overlap} for chunk_size {chunk_size}"
        )

    step = chunk_size - overlap
    return [text[start:start + chunk_size] for start in range(0, len(text), step)]


def split_text_with_delimiter(text: str, delimiter: str) -> List[str]:
    if not delimiter:
        raise ValueError("delimiter must not be empty")
    return text.split(delimiter)


def _split_at(markdown: str, positions: List[int]) -> List[str]:
    sections = []

    preamble = markdown[:positions[0]].strip()
    if preamble:
        sections.append(preamble)

    bounds = positions + [len(markdown)]
    for start, end in zip(bounds, bounds[1:]):
        section = markdown[start:end].strip()
        if section:
            sections.append(section)
    return sections


def split_markdown_by_sections(markdown: str) -> List[str]:
    """
    Split markdown at every header line.

    Content before the first header is kept as its own section. Sections are
    trimmed and empty ones dropped. Text without headers comes back whole.
    """
    if not markdown:
        return []

    positions = [match.start() for match in HEADER_PATTERN.finditer(markdown)]
    if not positions:
        stripped = markdown.strip()
        return [stripped] if stripped else []
    return _split_at(markdown, positions)


def split_markdown_by_level(markdown: str, level: int) -> List[str]:
    """
    Split markdown only at headers of the given level (1 for #, 2 for ##...).

    Deeper and shallower headers stay inside the surrounding section.
    """
    if not markdown or level < 1:
        return []

    positions = []
    offset = 0
    for line in markdown.split("\n"):
        match = LEVEL_HEADER_PATTERN.match(line)
        if match and len(match.group(1)) == level:
            positions.append(offset)
        offset += len(line) + 1

    if not positions:
        stripped = markdown.strip()
        return [stripped] if stripped else []
    return _split_at(markdown, positions)


def chunk_xml(xml: str, tag: str) -> List[str]:
    """Extract every complete element with the given tag (paired or self-closing)."""
    if not xml or not tag:
        return []

    name = re.escape(tag)
    pattern = re.compile(rf"<{name}(?:\s[^>]*)?(?:/>|>[\s\S]*?</{name}>)")
    chunks = []
    for match in pattern.finditer(xml):
        element = match.group(0).strip()
        if element:
            chunks.append(element)
    return chunks


def chunk_document(text: str, chunk_size: int = 1024, overlap: int = 128) -> List[str]:
    """
    Default ingestion policy.

    Markdown sections become chunks. A section longer than chunk_size is cut
    into overlapping windows; every window after the first is prefixed with
    the section header so it stays meaningful on its own.
    """
    chunks = []
    for section in split_markdown_by_sections(text):
        if len(section) <= chunk_size:
            chunks.append(section)
            continue

        first_line = section.split("\n", 1)[0]
        header = first_line.strip() if HEADER_PATTERN.match(first_line) else ""
        for index, window in enumerate(chunk_text(section, chunk_size, overlap)):
            if header and index > 0:
                window = f"{header}\n{window}"
            chunks.append(window)
    return chunks
