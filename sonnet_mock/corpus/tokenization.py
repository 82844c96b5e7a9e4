"""Splitting corpus text into token strings.

Two strategies are available: a whitespace splitter that needs no extra
dependencies, and any Hugging Face ``tokenizers`` model, whose ids are
decoded one at a time so each token keeps its own surface text.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

WHITESPACE = "whitespace"

# Each token carries the whitespace that precedes it
_WORD_RE = re.compile(r"\s*\S+")


def whitespace_tokenize(text: str) -> list[str]:
    """Split ``text`` into words, each keeping its leading whitespace.

    ``"".join(whitespace_tokenize(text)) == text.rstrip()``.
    """
    return _WORD_RE.findall(text)


def hf_tokenize(text: str, name: str) -> list[str]:
    """Tokenize with a Hugging Face tokenizer and decode each id alone.

    Args:
        text: Corpus text.
        name: A local tokenizer.json path or a hub identifier.

    Raises:
        ImportError: If the ``tokenizers`` package is not installed.
        Exception: Whatever ``tokenizers`` raises while loading the model.
    """
    from tokenizers import Tokenizer

    if Path(name).is_file():
        tokenizer = Tokenizer.from_file(name)
    else:
        tokenizer = Tokenizer.from_pretrained(name)

    ids = tokenizer.encode(text, add_special_tokens=False).ids
    return [tokenizer.decode([token_id], skip_special_tokens=True) for token_id in ids]


def tokenize(text: str, name: str = WHITESPACE) -> tuple[list[str], str]:
    """Tokenize ``text`` with the named strategy.

    A Hugging Face tokenizer that cannot be loaded (package not installed,
    offline, unknown id, corrupt file) falls back to the whitespace splitter.

    Returns:
        Tuple of (tokens, name of the tokenizer actually used).
    """
    if name == WHITESPACE:
        return whitespace_tokenize(text), WHITESPACE

    try:
        tokens = hf_tokenize(text, name)
    except ImportError:
        logger.error(
            "Tokenizer %r needs Hugging Face tokenizers (pip install sonnet-mock[hf]), "
            "falling back to whitespace tokenizer",
            name,
        )
        return whitespace_tokenize(text), WHITESPACE
    except Exception:
        logger.error(
            "Failed to load tokenizer %r, falling back to whitespace tokenizer",
            name,
            exc_info=True,
        )
        return whitespace_tokenize(text), WHITESPACE

    logger.info("Loaded tokenizer %s", name)
    return tokens, name
