"""Transcript cleanup, paragraph splitting and chunking for analysis requests."""

import logging
import re
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4000


@dataclass
class Paragraph:
    index: int
    text: str
    start_offset: int
    end_offset: int


@dataclass
class TextChunk:
    """
    A paragraph-aligned slice of the transcript.

    ``first_paragraph`` is the global index of the chunk's first paragraph;
    paragraph indexes reported against the chunk are shifted by it.
    """
    text: str
    start_char: int
    end_char: int
    chunk_index: int
    first_paragraph: int = 0


def normalize_text(text: str) -> str:
    if not text:
        return ""
    text = text.replace("\r", "")
    text = text.replace("-\n", "")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def split_to_paragraphs(text: str) -> List[Paragraph]:
    paragraphs = []
    offset = 0
    for index, part in enumerate(re.split(r"\n{2,}", text or "")):
        start = offset
        end = start + len(part)
        paragraphs.append(Paragraph(index=index, text=part, start_offset=start, end_offset=end))
        offset = end + 2
    return paragraphs


def create_smart_chunks(text: str, max_chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[TextChunk]:
    """
    Split normalized text into paragraph-aligned chunks of at most ``max_chunk_size``.

    A single paragraph longer than the limit becomes its own chunk.
    """
    text = text or ""
    if len(text) <= max_chunk_size:
        return [TextChunk(text=text, start_char=0, end_char=len(text), chunk_index=0)]

    chunks: List[TextChunk] = []
    current = ""
    current_start = 0
    current_first = 0

    for paragraph in split_to_paragraphs(text):
        if current and len(current) + 2 + len(paragraph.text) > max_chunk_size:
            chunks.append(TextChunk(
                text=current,
                start_char=current_start,
                end_char=current_start + len(current),
                chunk_index=len(chunks),
                first_paragraph=current_first,
            ))
            current = ""

        if not current:
            current = paragraph.text
            current_start = paragraph.start_offset
            current_first = paragraph.index
        else:
            current += "\n\n" + paragraph.text

    if current:
        chunks.append(TextChunk(
            text=current,
            start_char=current_start,
            end_char=current_start + len(current),
            chunk_index=len(chunks),
            first_paragraph=current_first,
        ))

    logger.info("Created %d chunks from %d characters", len(chunks), len(text))
    return chunks
