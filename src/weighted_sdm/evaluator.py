"""
Feature evaluation and weight aggregation for candidate n-grams.

One routine serves unigrams, bigrams and trigrams. The arity only decides
which statistics node is built for a candidate:

    arity 1     #counts:term()
    arity 2, 3  #od:1( #extents:t1() #extents:t2() ... )
    n-gram tf   #counts:t1~t2~t3()

Weight of a candidate:
    w = sum_f lambda_f * value_f        over features with a value

A feature has no value when its lambda is 0 (nothing is computed), when the
statistic it needs is zero (log 0 is undefined), or when an external table
has no entry for the candidate.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from weighted_sdm.config import Config, Parameters
from weighted_sdm.features import Feature, FeatureType
from weighted_sdm.query import Node, NodeParameters
from weighted_sdm.statistics import NGRAM_SEPARATOR, StatisticsCache, assign_part

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """Adjacent query terms scored as one unit."""

    terms: tuple[str, ...]

    def __post_init__(self):
        if not 1 <= len(self.terms) <= 3:
            raise ValueError(f"candidates hold 1 to 3 terms, got {len(self.terms)}")

    @property
    def arity(self) -> int:
        return len(self.terms)

    def window_node(self) -> Node:
        """Node the host scores: the term itself or an ordered window."""
        if self.arity == 1:
            return Node.counts(self.terms[0])
        return Node(
            "ordered",
            NodeParameters(Config.ordered_width),
            [Node.extents(t) for t in self.terms],
        )

    def ngram_node(self) -> Node:
        """The terms joined into one atomic token."""
        return Node.counts(NGRAM_SEPARATOR.join(self.terms))

    def __str__(self) -> str:
        return ", ".join(self.terms)


def resolve_lambda(
    feature: Feature,
    node_parameters: NodeParameters | Mapping[str, Any] | None = None,
    query_parameters: Mapping[str, Any] | None = None,
) -> float:
    """Node override, then query parameter, then the feature default."""
    query_lambda = Parameters.wrap(query_parameters).get_float(feature.name, feature.lambda_)
    if node_parameters is None:
        return query_lambda
    value = node_parameters.get(feature.name, None)
    if value is None:
        return query_lambda
    return float(value)


def _with_part(node: Node, part: str) -> Node:
    if not part:
        return node
    node = node.clone()
    if node.is_leaf():
        node.parameters.set("part", part)
    else:
        for child in node.children:
            child.parameters.set("part", part)
    return node


class FeatureEvaluator:
    """
    Computes raw feature values for candidates.

    Statistics go through a `StatisticsCache`, so the evaluator should live
    no longer than one rewrite.
    """

    def __init__(
        self,
        cache: StatisticsCache,
        query_parameters: Mapping[str, Any] | None = None,
        available_parts: Sequence[str] = (),
    ):
        self.cache = cache
        self.query_parameters = Parameters.wrap(query_parameters)
        self.available_parts = list(available_parts)
        self._evaluators: dict[FeatureType, Callable[[Feature, Candidate], float | None]] = {
            FeatureType.CONST: self._const,
            FeatureType.LOGTF: self._log_term_frequency,
            FeatureType.LOGDF: self._log_document_frequency,
            FeatureType.LOGNGRAMTF: self._log_ngram_term_frequency,
            FeatureType.EXTERNAL: self._external,
        }

    def evaluate(self, feature: Feature, candidate: Candidate, lambda_: float) -> float | None:
        # disabled features are never computed
        if lambda_ == 0.0:
            return None
        return self._evaluators[feature.type](feature, candidate)

    def statistics_node(self, feature: Feature, candidate: Candidate) -> Node:
        if feature.type is FeatureType.LOGNGRAMTF and candidate.arity > 1:
            node = candidate.ngram_node()
        else:
            node = candidate.window_node()
        node = assign_part(node, self.query_parameters, self.available_parts)
        return _with_part(node, feature.part)

    # ----- one function per feature type -----

    def _const(self, feature: Feature, candidate: Candidate) -> float | None:
        return 1.0

    def _log_term_frequency(self, feature: Feature, candidate: Candidate) -> float | None:
        stats = self.cache.get(self.statistics_node(feature, candidate), feature.group)
        return math.log(stats.frequency) if stats.frequency > 0 else None

    def _log_document_frequency(self, feature: Feature, candidate: Candidate) -> float | None:
        stats = self.cache.get(self.statistics_node(feature, candidate), feature.group)
        return math.log(stats.document_count) if stats.document_count > 0 else None

    # unigrams resolve to the plain term node in statistics_node
    _log_ngram_term_frequency = _log_term_frequency

    def _external(self, feature: Feature, candidate: Candidate) -> float | None:
        value = feature.values.lookup(*candidate.terms) if feature.values is not None else None
        if not value:
            return None
        return math.log(value)


def aggregate(
    evaluator: FeatureEvaluator,
    features: Sequence[Feature],
    candidate: Candidate,
    node_parameters: NodeParameters | Mapping[str, Any] | None = None,
    verbose: bool = False,
) -> float:
    """Weighted sum of the feature values of one candidate."""
    weight = 0.0
    for feature in features:
        lambda_ = resolve_lambda(feature, node_parameters, evaluator.query_parameters)
        value = evaluator.evaluate(feature, candidate, lambda_)
        if value is None:
            continue
        weight += lambda_ * value
        if verbose:
            logger.info(
                "%s -- feature:%s:%g * %g = %g", candidate, feature.name, lambda_, value, lambda_ * value
            )
    return weight
