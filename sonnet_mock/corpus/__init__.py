"""Token corpus loading and tokenization."""

from sonnet_mock.corpus.corpus import DEFAULT_CORPUS_PATH, TokenCorpus, load_corpus
from sonnet_mock.corpus.tokenization import WHITESPACE, tokenize, whitespace_tokenize

__all__ = [
    "DEFAULT_CORPUS_PATH",
    "TokenCorpus",
    "WHITESPACE",
    "load_corpus",
    "tokenize",
    "whitespace_tokenize",
]
