"""The token corpus every response is cut from.

Built once per process by ``load_corpus()`` and then shared read-only by
every request handler and stream session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from sonnet_mock.corpus.tokenization import WHITESPACE, tokenize
from sonnet_mock.errors import CorpusError

logger = logging.getLogger(__name__)

DEFAULT_CORPUS_PATH = Path(__file__).parent / "data" / "sonnets.txt"


@dataclass(frozen=True)
class TokenCorpus:
    """Ordered, immutable token strings plus their precomputed concatenation."""

    tokens: tuple[str, ...]
    source: str = "<memory>"
    tokenizer: str = WHITESPACE
    text: str = field(init=False)

    def __post_init__(self) -> None:
        if not self.tokens:
            raise CorpusError(f"Corpus from {self.source} contains no tokens")
        # frozen dataclass: bypass __setattr__ for the derived field
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "text", "".join(self.tokens))

    @property
    def total_count(self) -> int:
        return len(self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def token_at(self, index: int) -> str:
        """Token at ``index``, wrapping past the end of the corpus."""
        return self.tokens[index % len(self.tokens)]

    def prefix(self, count: int) -> str:
        """Concatenation of the first ``count`` tokens.

        ``count >= total_count`` returns the precomputed full text.
        """
        if count >= len(self.tokens):
            return self.text
        return "".join(self.tokens[:count])

    def cycle(self, count: int) -> str:
        """Concatenation of ``count`` tokens, repeating the corpus as needed."""
        full, rest = divmod(count, len(self.tokens))
        return self.text * full + "".join(self.tokens[:rest])


def load_corpus(
    path: Path | None = None, tokenizer: str = WHITESPACE
) -> TokenCorpus:
    """Read a text file and tokenize it into a TokenCorpus.

    Args:
        path: Text file to read. Defaults to the bundled sonnets.
        tokenizer: ``"whitespace"`` or a Hugging Face tokenizer id/path.

    Raises:
        CorpusError: If the file is missing, unreadable, or yields no tokens.
    """
    path = path or DEFAULT_CORPUS_PATH
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CorpusError(f"Cannot read corpus file {path}: {e}") from e

    tokens, used = tokenize(text, tokenizer)
    corpus = TokenCorpus(tuple(tokens), source=str(path), tokenizer=used)
    logger.info(
        "Loaded corpus %s: %d tokens (%s tokenizer)",
        path, corpus.total_count, used,
    )
    return corpus
