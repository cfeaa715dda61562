"""
External n-gram value tables.

A value file holds one n-gram per line, grams separated by single spaces and
the integer score after a tab:

    new york\t50
    climate change\t12

Keys are stored exactly as written; query terms are stemmed at lookup time,
so files are expected to contain stems. Tables are loaded once per path and
shared read-only by every feature that references the path.
"""

from __future__ import annotations

import logging
import os
import threading
import warnings
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from types import MappingProxyType

from weighted_sdm.errors import ConfigurationError, LoadWarning
from weighted_sdm.stemming import Stemmer, default_stemmer

logger = logging.getLogger(__name__)

NGram = tuple[str, ...]


def parse_value_lines(lines: Iterable[str | bytes], source: str = "<lines>") -> dict[NGram, int]:
    """Parse ``gram gram ...<TAB>value`` lines, skipping malformed ones with a LoadWarning."""
    values: dict[NGram, int] = {}
    for lineno, line in enumerate(lines, start=1):
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                warnings.warn(f"{source}:{lineno}: invalid UTF-8 ({e.reason}), line skipped", LoadWarning, stacklevel=2)
                continue
        line = line.rstrip("\r\n")
        if not line.strip():
            continue

        fields = line.split("\t")
        if len(fields) < 2:
            warnings.warn(f"{source}:{lineno}: missing tab separator, line skipped", LoadWarning, stacklevel=2)
            continue

        try:
            value = int(fields[1].strip())
        except ValueError:
            warnings.warn(
                f"{source}:{lineno}: value {fields[1]!r} is not an integer, line skipped",
                LoadWarning,
                stacklevel=2,
            )
            continue
        if value < 0:
            warnings.warn(f"{source}:{lineno}: negative value {value}, line skipped", LoadWarning, stacklevel=2)
            continue

        values[tuple(fields[0].split(" "))] = value
    return values


def read_value_file(path: str | Path) -> dict[NGram, int]:
    """Read a value file. I/O errors propagate; bad lines only warn."""
    logger.info("Start reading values from %s", path)
    with open(path, "rb") as f:
        values = parse_value_lines(f, source=str(path))
    logger.info("Finished reading %d values from %s", len(values), path)
    return values


class ExternalValueTable:
    """Immutable stemmed n-gram -> integer table."""

    def __init__(
        self,
        values: Mapping[NGram, int],
        path: str = "",
        stemmer: Stemmer | None = None,
    ):
        self._values: Mapping[NGram, int] = MappingProxyType(dict(values))
        self.path = path
        self.stemmer = stemmer or default_stemmer()

    def stem_ngram(self, grams: Iterable[str]) -> NGram:
        return tuple(self.stemmer.stem(g) for g in grams)

    def contains_ngram(self, *grams: str) -> bool:
        return self.stem_ngram(grams) in self._values

    def lookup(self, *grams: str) -> int | None:
        return self._values.get(self.stem_ngram(grams))

    @property
    def values(self) -> Mapping[NGram, int]:
        return self._values

    def __getitem__(self, key: NGram) -> int:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExternalValueTable(path={self.path!r}, entries={len(self)})"


class ValueTableRegistry:
    """
    Load-once cache of value tables keyed by absolute path.

    ``load`` is safe under concurrent first access: the file for a given path
    is read at most once and every caller gets the same table object.
    Tables are never evicted or reloaded.
    """

    _shared: ValueTableRegistry | None = None
    _shared_lock = threading.Lock()

    def __init__(self, reader: Callable[[str], Mapping[NGram, int]] = read_value_file):
        self._reader = reader
        self._tables: dict[str, ExternalValueTable] = {}
        self._lock = threading.Lock()

    @classmethod
    def shared(cls) -> ValueTableRegistry:
        """The process-wide registry used when none is injected."""
        if cls._shared is None:
            with cls._shared_lock:
                if cls._shared is None:
                    cls._shared = cls()
        return cls._shared

    @staticmethod
    def _key(path: str | Path) -> str:
        return os.path.abspath(os.fspath(path))

    def load(self, path: str | Path, stemmer: Stemmer | None = None) -> ExternalValueTable:
        key = self._key(path)
        table = self._tables.get(key)
        if table is not None:
            return table

        with self._lock:
            table = self._tables.get(key)
            if table is None:
                try:
                    values = self._reader(key)
                except OSError as e:
                    raise ConfigurationError(f"cannot read external values from {path}: {e}") from e
                table = ExternalValueTable(values, path=key, stemmer=stemmer)
                self._tables[key] = table
        return table

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and self._key(path) in self._tables

    def __len__(self) -> int:
        return len(self._tables)
