"""Token-bounded text chunking with overlapping windows.

Splits extracted document text into fragments sized for embedding models
(default 1500 tokens with a 200-token overlap).

The text is tokenized *with character offsets*, then a window of
``target_tokens`` tokens slides over the token sequence with a stride of
``target_tokens - overlap_tokens``.  Each chunk is the slice of the original
text between the first and last token of its window, so:

- chunks are verbatim substrings of the source, in source order;
- consecutive chunks share exactly ``overlap_tokens`` tokens;
- the chunk count is ``ceil((tokens - overlap) / stride)``.

Token offsets come from a HuggingFace ``tokenizers`` model when one can be
loaded; otherwise a word/punctuation regex stands in as an approximation.
"""

from __future__ import annotations

import re

import structlog
import tokenizers

from knowledge_rag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# Words and single punctuation marks; roughly one token each for English text.
_APPROX_TOKEN = re.compile(r"\w+|[^\w\s]")


class TextChunker:
    """Splits text into overlapping token windows.

    Parameters
    ----------
    tokenizer_name:
        HuggingFace tokenizer to load for offsets (default
        ``"bert-base-uncased"``).  ``None`` or ``""`` skips loading and uses
        the regex approximation.
    model_context_size:
        Upper bound for ``target_tokens``; a window larger than the
        embedding model's context is a configuration error.
    """

    def __init__(
        self,
        tokenizer_name: str | None = "bert-base-uncased",
        model_context_size: int = 4096,
    ) -> None:
        self._model_context_size = model_context_size
        self._tokenizer = self._load_tokenizer(tokenizer_name) if tokenizer_name else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        target_tokens: int = 1500,
        overlap_tokens: int = 200,
    ) -> list[str]:
        """Split *text* into overlapping chunks of at most *target_tokens* tokens.

        Returns
        -------
        list[str]
            Chunks in source order.  Text shorter than *target_tokens*
            yields a single chunk; empty or whitespace-only text yields
            an empty list.

        Raises
        ------
        ConfigurationError
            If ``overlap_tokens >= target_tokens`` or the window is otherwise
            invalid.  Overlap is rejected rather than clamped.
        """
        self._validate(target_tokens, overlap_tokens)

        spans = self._token_spans(text)
        if not spans:
            return []

        stride = target_tokens - overlap_tokens
        total = len(spans)
        chunks: list[str] = []
        start = 0
        while True:
            end = min(start + target_tokens, total)
            chunks.append(text[spans[start][0] : spans[end - 1][1]])
            if end >= total:
                break
            start += stride

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            total_tokens=total,
            target_tokens=target_tokens,
            overlap_tokens=overlap_tokens,
        )
        return chunks

    def count_tokens(self, text: str) -> int:
        """Return the number of tokens in *text* under the active tokenizer."""
        return len(self._token_spans(text))

    # ------------------------------------------------------------------
    # Tokenization
    # ------------------------------------------------------------------

    def _token_spans(self, text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` character offsets for every token in *text*."""
        if not text or not text.strip():
            return []
        if self._tokenizer is not None:
            encoding = self._tokenizer.encode(text, add_special_tokens=False)
            return [(s, e) for s, e in encoding.offsets if e > s]
        return [m.span() for m in _APPROX_TOKEN.finditer(text)]

    @staticmethod
    def _load_tokenizer(name: str) -> tokenizers.Tokenizer | None:
        """Fetch *name* from the HuggingFace hub; ``None`` falls back to the regex."""
        try:
            tokenizer = tokenizers.Tokenizer.from_pretrained(name)
            tokenizer.no_truncation()
            return tokenizer
        except Exception as exc:  # noqa: BLE001 - hub download may fail offline
            logger.info(
                "tokenizer_unavailable",
                tokenizer=name,
                error=str(exc),
                msg="Falling back to approximate word/punctuation tokens.",
            )
            return None

    def _validate(self, target_tokens: int, overlap_tokens: int) -> None:
        if target_tokens <= 0:
            raise ConfigurationError(f"target_tokens must be positive, got {target_tokens}")
        if overlap_tokens < 0:
            raise ConfigurationError(f"overlap_tokens must be >= 0, got {overlap_tokens}")
        if overlap_tokens >= target_tokens:
            raise ConfigurationError(
                f"overlap_tokens ({overlap_tokens}) must be smaller than "
                f"target_tokens ({target_tokens})"
            )
        if target_tokens > self._model_context_size:
            raise ConfigurationError(
                f"target_tokens ({target_tokens}) exceeds the model context size "
                f"({self._model_context_size})"
            )
