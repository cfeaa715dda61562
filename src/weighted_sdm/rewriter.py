"""
Weighted Sequential Dependency Model rewriting.

Structurally the same as the Sequential Dependency Model, but every node
weight is a linear combination of node features (Bendersky et al., 2012).

    #wsdm( #text:a() #text:b() #text:c() )

becomes

    #combine:0=w(a):1=w(b):2=w(c):3=w(a,b):4=w(a,b):...:norm=false(
        #text:a() #text:b() #text:c()
        #od:1( #extents:a() #extents:b() )   #uw:8( #extents:a() #extents:b() )
        #od:1( #extents:b() #extents:c() )   #uw:8( #extents:b() #extents:c() )
        #od:1( #extents:a() #extents:b() #extents:c() )
        #uw:12( #extents:a() #extents:b() #extents:c() )
    )

Bigram windows are only added when bigram features exist, trigram windows
only when trigram features exist.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from weighted_sdm.config import Config, Parameters
from weighted_sdm.errors import MalformedQueryError
from weighted_sdm.evaluator import Candidate, FeatureEvaluator, aggregate
from weighted_sdm.external import ValueTableRegistry
from weighted_sdm.features import FeatureSet
from weighted_sdm.query import Node, NodeParameters
from weighted_sdm.statistics import StatisticsCache, StatisticsProvider
from weighted_sdm.stemming import Stemmer

logger = logging.getLogger(__name__)


class WeightedSDMRewriter:
    def __init__(
        self,
        provider: StatisticsProvider,
        parameters: Mapping[str, Any] | None = None,
        *,
        registry: ValueTableRegistry | None = None,
        stemmer: Stemmer | None = None,
        features: FeatureSet | None = None,
    ):
        self.provider = provider
        self.parameters = Parameters.wrap(parameters)
        self.verbose = any(self.parameters.get_bool(key, False) for key in Config.verbose_keys)
        self.norm = self.parameters.get_bool(Config.norm_key, Config.norm)
        if features is None:
            features = FeatureSet.from_parameters(self.parameters, registry=registry, stemmer=stemmer)
        self.features = features

    # ----- traversal -----

    def transform(self, tree: Node, query_parameters: Mapping[str, Any] | None = None) -> Node:
        """Rewrite every wsdm node of a query tree, children first."""
        children = [self.transform(child, query_parameters) for child in tree.children]
        if children != tree.children:
            tree = Node(tree.operator, tree.parameters.clone(), children, tree.position)
        return self.rewrite(tree, query_parameters)

    def rewrite(self, original: Node, query_parameters: Mapping[str, Any] | None = None) -> Node:
        if original.operator not in Config.operators:
            return original

        terms = self._validate(original)
        node_parameters = original.parameters
        evaluator = FeatureEvaluator(
            StatisticsCache(self.provider),
            query_parameters,
            _available_parts(self.provider),
        )

        new_children: list[Node] = []
        new_weights = NodeParameters()
        new_weights.set(Config.norm_key, self.norm)

        def append(node: Node, weight: float) -> None:
            new_weights.set(str(len(new_children)), weight)
            new_children.append(node)

        for child, term in zip(original.children, terms):
            weight = self._weight(evaluator, Candidate((term,)), node_parameters)
            append(child.clone(), weight)

        for arity, unordered_width in ((2, Config.bigram_unordered_width), (3, Config.trigram_unordered_width)):
            if not self.features.for_arity(arity):
                continue
            for i in range(len(terms) - arity + 1):
                candidate = Candidate(tuple(terms[i : i + arity]))
                weight = self._weight(evaluator, candidate, node_parameters)
                append(self._window("od", Config.ordered_width, candidate), weight)
                append(self._window("uw", unordered_width, candidate), weight)

        rewritten = Node("combine", new_weights, new_children, original.position)
        if self.verbose:
            logger.info(
                "Rewrote %s (%d statistics lookups, %d cached)\n%s",
                original,
                evaluator.cache.misses,
                evaluator.cache.hits,
                rewritten.to_pretty_string(),
            )
        return rewritten

    # ----- helpers -----

    def _validate(self, original: Node) -> list[str]:
        for child in original.children:
            if child.operator != "text":
                raise MalformedQueryError(
                    f"{original.operator} operator requires text-only children",
                    operator=original.operator,
                    child=child,
                )
        return [str(child.default_parameter) for child in original.children]

    def _weight(self, evaluator: FeatureEvaluator, candidate: Candidate, node_parameters: NodeParameters) -> float:
        return aggregate(
            evaluator,
            self.features.for_arity(candidate.arity),
            candidate,
            node_parameters,
            verbose=self.verbose,
        )

    @staticmethod
    def _window(operator: str, width: int, candidate: Candidate) -> Node:
        return Node(operator, NodeParameters(width), [Node.extents(t) for t in candidate.terms])


def _available_parts(provider: StatisticsProvider) -> Sequence[str]:
    available_parts = getattr(provider, "available_parts", None)
    return available_parts() if available_parts is not None else ()
