# rag.py
import io
import logging
import math
from typing import List, Sequence

import pdfplumber

from errors import ValidationFailure
from llm import LLMClient, NO_REFERENCE
from schemas import DocumentRecord
from store import Store

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000
MIN_TEXT_CHARS = 10
MATCH_THRESHOLD = 0.5
MATCH_COUNT = 3


def extract_pdf_text(data: bytes) -> str:
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise ValidationFailure(f"Could not read PDF: {e}")
    return "\n".join(pages).strip()


def chunk_text(text: str, size: int = CHUNK_SIZE) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


def ingest_pdf(store: Store, client: LLMClient, quiz_id: str, data: bytes) -> int:
    store.assert_can_edit(quiz_id)

    text = extract_pdf_text(data)
    if len(text) < MIN_TEXT_CHARS:
        raise ValidationFailure("PDF content empty or too short")

    chunks = chunk_text(text)
    logger.info("Split PDF for quiz %s into %d chunks", quiz_id, len(chunks))

    embedded = [(chunk, client.embed(chunk)) for chunk in chunks]
    return store.add_documents(quiz_id, embedded)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def match_documents(documents: Sequence[DocumentRecord], query: Sequence[float],
                    threshold: float = MATCH_THRESHOLD, count: int = MATCH_COUNT) -> List[DocumentRecord]:
    scored = [(cosine_similarity(query, d.embedding), d) for d in documents]
    scored = [pair for pair in scored if pair[0] >= threshold]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [d for _, d in scored[:count]]


def reference_context(store: Store, client: LLMClient, quiz_id: str, question: str) -> str:
    """Reference text for an explanation; falls back to a fixed notice when the lookup fails."""
    try:
        query = client.embed(question)
        matches = match_documents(store.list_documents(quiz_id), query)
    except Exception as e:
        logger.warning("Reference lookup for quiz %s failed, explaining without context: %s", quiz_id, e)
        return NO_REFERENCE
    if not matches:
        return NO_REFERENCE
    return "\n\n".join(d.content for d in matches)
