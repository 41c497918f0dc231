"""
Tests for transcript cleanup, paragraph splitting and chunking.

Run with: pytest negotiation_python_backend/tests/unit/test_text_segmentation.py -v
"""

from negotiation_python_backend.services.text_segmentation import (
    Paragraph,
    create_smart_chunks,
    normalize_text,
    split_to_paragraphs,
)


def test_normalize_text():
    assert normalize_text("a\r\nb  \n\n\n\nc-\nd ") == "a\nb\n\ncd"


def test_normalize_text_empty():
    assert normalize_text("") == ""
    assert normalize_text(None) == ""


def test_split_to_paragraphs_offsets():
    assert split_to_paragraphs("ab\n\ncde") == [
        Paragraph(index=0, text="ab", start_offset=0, end_offset=2),
        Paragraph(index=1, text="cde", start_offset=4, end_offset=7),
    ]


def test_short_text_is_one_chunk():
    chunks = create_smart_chunks("short text", max_chunk_size=100)

    assert len(chunks) == 1
    assert chunks[0].text == "short text"
    assert chunks[0].first_paragraph == 0


def test_chunks_are_paragraph_aligned():
    paragraphs = [chr(ord("a") + i) * 30 for i in range(5)]
    text = "\n\n".join(paragraphs)

    chunks = create_smart_chunks(text, max_chunk_size=70)

    assert [c.first_paragraph for c in chunks] == [0, 2, 4]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[1].start_char == 64
    for chunk in chunks:
        assert chunk.text == text[chunk.start_char:chunk.end_char]
        assert len(chunk.text) <= 70


def test_oversized_paragraph_is_its_own_chunk():
    text = "a" * 10 + "\n\n" + "b" * 200 + "\n\n" + "c" * 10

    chunks = create_smart_chunks(text, max_chunk_size=50)

    assert [c.text for c in chunks] == ["a" * 10, "b" * 200, "c" * 10]
    assert [c.first_paragraph for c in chunks] == [0, 1, 2]
