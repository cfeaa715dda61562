"""
Collection statistics for query nodes.

The rewriter asks a statistics provider for the collection frequency and
document count of term, window and n-gram nodes. Providers may be
group-aware (several collections behind one object) and may expose index
parts (for example ``postings`` and ``title``).

`CorpusStatistics` is an in-memory provider over tokenized documents. It
supports the node shapes the rewriter builds:

    #counts:term()  #extents:term()       single terms
    #counts:new~york()                    exact adjacent n-grams
    #od:1( #extents:a() #extents:b() )    ordered windows
    #uw:8( #extents:a() #extents:b() )    unordered windows
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np
from scipy.sparse import csr_matrix, lil_matrix

from weighted_sdm.config import Parameters
from weighted_sdm.errors import StatisticsAbsent
from weighted_sdm.query import Node

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

TERM_OPERATORS = frozenset({"counts", "extents", "text"})
ORDERED_OPERATORS = frozenset({"od", "ordered"})
UNORDERED_OPERATORS = frozenset({"uw", "unordered"})
NGRAM_SEPARATOR = "~"
DEFAULT_PART = "postings"


@dataclass(frozen=True)
class NodeStatistics:
    frequency: int = 0
    document_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.frequency == 0 and self.document_count == 0


EMPTY_STATISTICS = NodeStatistics()


# -----------------------------------------------------------------------------
# Provider protocols
# -----------------------------------------------------------------------------

class StatisticsProvider(Protocol):
    def node_statistics(self, node: Node) -> NodeStatistics: ...

    def available_parts(self) -> Sequence[str]: ...


@runtime_checkable
class GroupStatisticsProvider(Protocol):
    def node_statistics(self, node: Node) -> NodeStatistics: ...

    def group_node_statistics(self, node: Node, group: str) -> NodeStatistics: ...


# -----------------------------------------------------------------------------
# Per-rewrite cache
# -----------------------------------------------------------------------------

Fetcher = Callable[[Node, str], NodeStatistics]


class StatisticsCache:
    """
    Memoizes provider calls for one rewrite.

    Keys are the canonical node string plus the group, so two features that
    need the same node from the same source share one provider call (term
    frequency and document frequency come from the same statistics object).
    """

    def __init__(self, provider: StatisticsProvider):
        self.provider = provider
        self._group_aware = isinstance(provider, GroupStatisticsProvider)
        self._entries: dict[str, NodeStatistics] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(node: Node, group: str = "") -> str:
        return f"{node.to_string()}-{group}"

    def fetch(self, node: Node, group: str = "") -> NodeStatistics:
        if group and self._group_aware:
            return self.provider.group_node_statistics(node, group)  # type: ignore[attr-defined]
        return self.provider.node_statistics(node)

    def get(self, node: Node, group: str = "", fetch: Fetcher | None = None) -> NodeStatistics:
        key = self.key(node, group)
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        self.misses += 1
        try:
            stats = (fetch or self.fetch)(node, group)
        except StatisticsAbsent as e:
            logger.debug("No statistics for %s: %s", key, e)
            stats = EMPTY_STATISTICS
        except Exception as e:
            # provider failures never abort a rewrite; the feature is absent
            logger.warning("Statistics lookup failed for %s: %r", key, e)
            stats = EMPTY_STATISTICS
        self._entries[key] = stats
        return stats

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# -----------------------------------------------------------------------------
# Partition resolution
# -----------------------------------------------------------------------------

def assign_part(node: Node, query_parameters: Mapping | None, available_parts: Sequence[str]) -> Node:
    """
    Copy of ``node`` whose term leaves carry the query's index part.

    The part comes from the query parameter ``part`` and is applied only when
    the provider offers it and the leaf has no part of its own.
    """
    node = node.clone()
    part = Parameters.wrap(query_parameters).get_str("part")
    if not part or part not in available_parts:
        return node
    for leaf in node.walk():
        if leaf.operator in TERM_OPERATORS and "part" not in leaf.parameters:
            leaf.parameters.set("part", part)
    return node


# -----------------------------------------------------------------------------
# In-memory corpus statistics
# -----------------------------------------------------------------------------

class _PartIndex:
    """Term-document matrix plus positional postings for one index part."""

    def __init__(self, documents: Sequence[Sequence[str]]):
        self.N = len(documents)

        self._vocab: dict[str, int] = {}
        for doc in documents:
            for term in doc:
                if term not in self._vocab:
                    self._vocab[term] = len(self._vocab)
        self.vocab_size = len(self._vocab)

        tf_matrix_lil = lil_matrix((self.vocab_size, self.N), dtype=np.float64)
        positions: dict[int, dict[int, list[int]]] = {i: {} for i in range(self.vocab_size)}

        for doc_idx, doc in enumerate(documents):
            for term, count in Counter(doc).items():
                tf_matrix_lil[self._vocab[term], doc_idx] = count
            for pos, term in enumerate(doc):
                positions[self._vocab[term]].setdefault(doc_idx, []).append(pos)

        self.tf_matrix = csr_matrix(tf_matrix_lil)
        self._positions: dict[int, dict[int, NDArray[np.int64]]] = {
            tid: {doc_idx: np.array(p, dtype=np.int64) for doc_idx, p in docs.items()}
            for tid, docs in positions.items()
        }

    def get_term_id(self, term: str) -> int | None:
        return self._vocab.get(term)

    def term_statistics(self, term: str) -> NodeStatistics:
        tid = self._vocab.get(term)
        if tid is None:
            return EMPTY_STATISTICS
        row = self.tf_matrix[tid]
        return NodeStatistics(frequency=int(row.sum()), document_count=int(row.nnz))

    def _positions_for(self, terms: Sequence[str]) -> list[dict[int, NDArray[np.int64]]] | None:
        tids = [self._vocab.get(t) for t in terms]
        if any(tid is None for tid in tids):
            return None
        return [self._positions[tid] for tid in tids]

    def _candidate_docs(self, postings: list[dict[int, NDArray[np.int64]]]) -> NDArray[np.int64]:
        docs = np.array(sorted(postings[0]), dtype=np.int64)
        for p in postings[1:]:
            docs = np.intersect1d(docs, np.fromiter(p.keys(), dtype=np.int64))
        return docs

    def window_statistics(self, terms: Sequence[str], width: int, ordered: bool) -> NodeStatistics:
        postings = self._positions_for(terms)
        if postings is None:
            return EMPTY_STATISTICS

        frequency = 0
        document_count = 0
        for doc_idx in self._candidate_docs(postings):
            doc_positions = [p[int(doc_idx)] for p in postings]
            if ordered:
                matches = _count_ordered(doc_positions, width)
            else:
                matches = _count_unordered(doc_positions, width)
            if matches:
                frequency += matches
                document_count += 1
        return NodeStatistics(frequency=frequency, document_count=document_count)


def _count_ordered(positions: list[NDArray[np.int64]], width: int) -> int:
    """Matches where each term follows the previous within ``width`` positions."""
    matches = 0
    last_end = -1
    for start in positions[0]:
        if start <= last_end:
            continue
        current = int(start)
        for term_positions in positions[1:]:
            idx = int(np.searchsorted(term_positions, current, side="right"))
            if idx == len(term_positions) or term_positions[idx] - current > width:
                break
            current = int(term_positions[idx])
        else:
            matches += 1
            last_end = current
    return matches


def _count_unordered(positions: list[NDArray[np.int64]], width: int) -> int:
    """Non-overlapping windows of ``width`` positions holding every term at a distinct position."""
    starts = np.unique(np.concatenate(positions))
    matches = 0
    last_end = -1
    for start in starts:
        if start <= last_end:
            continue
        end = int(start)
        used: set[int] = set()
        for term_positions in positions:
            idx = int(np.searchsorted(term_positions, start, side="left"))
            while idx < len(term_positions) and int(term_positions[idx]) in used:
                idx += 1
            if idx == len(term_positions) or term_positions[idx] >= start + width:
                break
            used.add(int(term_positions[idx]))
            end = max(end, int(term_positions[idx]))
        else:
            matches += 1
            last_end = end
    return matches


class CorpusStatistics:
    """
    Statistics provider over in-memory tokenized documents.

    Args:
        parts: Mapping of part name to documents (lists of tokens). Every part
            should hold the same documents in the same order.
        default_part: Part used for nodes without a ``part`` parameter.
    """

    def __init__(self, parts: Mapping[str, Sequence[Sequence[str]]], default_part: str | None = None):
        if not parts:
            raise ValueError("Corpus needs at least one index part.")
        self._parts = {name: _PartIndex(docs) for name, docs in parts.items()}
        self.default_part = default_part or (DEFAULT_PART if DEFAULT_PART in parts else next(iter(parts)))
        if self.default_part not in self._parts:
            raise ValueError(f"Unknown default part: {self.default_part}")

    @classmethod
    def from_documents(cls, documents: Sequence[Sequence[str]]) -> CorpusStatistics:
        return cls({DEFAULT_PART: documents})

    def available_parts(self) -> list[str]:
        return list(self._parts)

    def _part_for(self, node: Node) -> _PartIndex:
        part = node.parameters.get("part")
        if part is None:
            for leaf in node.walk():
                part = leaf.parameters.get("part")
                if part is not None:
                    break
        part = part or self.default_part
        index = self._parts.get(part)
        if index is None:
            raise StatisticsAbsent(f"unknown index part {part!r}")
        return index

    def node_statistics(self, node: Node) -> NodeStatistics:
        index = self._part_for(node)

        if node.operator in TERM_OPERATORS:
            term = str(node.default_parameter)
            if NGRAM_SEPARATOR in term and index.get_term_id(term) is None:
                grams = term.split(NGRAM_SEPARATOR)
                return index.window_statistics(grams, width=1, ordered=True)
            return index.term_statistics(term)

        if node.operator in ORDERED_OPERATORS or node.operator in UNORDERED_OPERATORS:
            if not all(child.operator in TERM_OPERATORS for child in node.children):
                raise StatisticsAbsent(f"windows over non-term nodes are not supported: {node}")
            terms = [str(child.default_parameter) for child in node.children]
            width = int(node.default_parameter or 1)
            return index.window_statistics(terms, width, ordered=node.operator in ORDERED_OPERATORS)

        raise StatisticsAbsent(f"unsupported operator {node.operator!r}")


class GroupedStatistics:
    """
    Several collections behind one provider.

    Unknown or empty group names fall back to the default collection.
    """

    def __init__(self, default: StatisticsProvider, groups: Mapping[str, StatisticsProvider] | None = None):
        self.default = default
        self.groups = dict(groups or {})

    def available_parts(self) -> Sequence[str]:
        return self.default.available_parts()

    def node_statistics(self, node: Node) -> NodeStatistics:
        return self.default.node_statistics(node)

    def group_node_statistics(self, node: Node, group: str) -> NodeStatistics:
        provider = self.groups.get(group)
        if provider is None:
            logger.debug("Unknown statistics group %r, using default collection", group)
            provider = self.default
        return provider.node_statistics(node)
