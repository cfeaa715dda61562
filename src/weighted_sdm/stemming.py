"""Stemmers applied to n-grams before external value lookups."""

from __future__ import annotations

import threading
from typing import Protocol

from nltk.stem import PorterStemmer as _NltkPorterStemmer


class Stemmer(Protocol):
    def stem(self, token: str) -> str: ...


class PorterStemmer:
    """Porter stemmer backed by nltk."""

    def __init__(self):
        self._stemmer = _NltkPorterStemmer()

    def stem(self, token: str) -> str:
        return self._stemmer.stem(token)

    def __call__(self, token: str) -> str:
        return self.stem(token)


class NoStemmer:
    """Leaves tokens unchanged; for value files keyed by surface forms."""

    def stem(self, token: str) -> str:
        return token


_STEMMER: PorterStemmer | None = None
_STEMMER_LOCK = threading.Lock()


def default_stemmer() -> PorterStemmer:
    global _STEMMER
    if _STEMMER is None:
        with _STEMMER_LOCK:
            if _STEMMER is None:
                _STEMMER = PorterStemmer()
    return _STEMMER
