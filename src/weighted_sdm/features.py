"""
Feature definitions for the weighted sequential dependency model.

Feature record (JSON):
    {
      "name": "1-lntf",               required, also the lambda override key
      "type": "logtf",                const | logtf | logdf | logngramtf | external
      "lambda": 1.0,                  default weight
      "group": "",                    statistics group, empty = default provider
      "part": "",                     index part, empty = default
      "unigram": true,                applies to unigrams
      "bigram": false,                defaults to not unigram
      "trigram": false,               defaults to not unigram and not bigram
      "path": "values.tsv"            external features only
    }

The arity defaults cascade so that a record naming no arity applies to
unigrams only, and a record with only ``"unigram": false`` applies to
bigrams. Records may enable several arities and then join every matching list.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from weighted_sdm.config import Config, Parameters
from weighted_sdm.errors import ConfigurationError
from weighted_sdm.external import ExternalValueTable, ValueTableRegistry
from weighted_sdm.stemming import Stemmer

logger = logging.getLogger(__name__)


class FeatureType(Enum):
    CONST = "const"
    LOGTF = "logtf"
    LOGDF = "logdf"
    LOGNGRAMTF = "logngramtf"
    EXTERNAL = "external"

    @classmethod
    def parse(cls, name: str) -> FeatureType:
        key = str(name).strip().lower()
        key = _TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            accepted = ", ".join(t.value for t in cls)
            raise ConfigurationError(f"unknown feature type {name!r} (expected one of: {accepted})") from None


_TYPE_ALIASES = {
    "log_term_frequency": "logtf",
    "log_document_frequency": "logdf",
    "log_ngram_term_frequency": "logngramtf",
}


@dataclass(frozen=True)
class Feature:
    name: str
    type: FeatureType
    lambda_: float
    group: str = ""
    part: str = ""
    unigram: bool = True
    bigram: bool = False
    trigram: bool = False
    path: str = ""
    values: ExternalValueTable | None = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.type is FeatureType.EXTERNAL and self.values is None:
            raise ConfigurationError("external features need a loaded value table", feature=self.name)

    @classmethod
    def from_parameters(
        cls,
        record: Mapping[str, Any],
        registry: ValueTableRegistry | None = None,
        stemmer: Stemmer | None = None,
    ) -> Feature:
        p = Parameters.wrap(record)
        name = p.get("name")
        if not name:
            raise ConfigurationError(f"feature record without a name: {dict(record)!r}")
        name = str(name)

        try:
            feature_type = FeatureType.parse(p.get("type", Config.default_type))
        except ConfigurationError as e:
            raise ConfigurationError(str(e), feature=name) from None

        unigram = p.get_bool("unigram", True)
        bigram = p.get_bool("bigram", not unigram)
        trigram = p.get_bool("trigram", not unigram and not bigram)

        path = ""
        values = None
        if feature_type is FeatureType.EXTERNAL:
            path = p.get_str("path")
            if not path:
                raise ConfigurationError("external features require a 'path'", feature=name)
            if registry is None:
                registry = ValueTableRegistry.shared()
            try:
                values = registry.load(path, stemmer=stemmer)
            except ConfigurationError as e:
                raise ConfigurationError(str(e), feature=name) from e

        return cls(
            name=name,
            type=feature_type,
            lambda_=p.get_float("lambda", Config.default_lambda),
            group=p.get_str("group"),
            part=p.get_str("part"),
            unigram=unigram,
            bigram=bigram,
            trigram=trigram,
            path=path,
            values=values,
        )

    @classmethod
    def default(cls, name: str, feature_type: FeatureType, lambda_: float, unigram: bool) -> Feature:
        """Built-in feature on the default statistics source."""
        return cls(
            name=name,
            type=feature_type,
            lambda_=lambda_,
            unigram=unigram,
            bigram=not unigram,
            trigram=not unigram,
        )

    def applies_to(self, arity: int) -> bool:
        return {1: self.unigram, 2: self.bigram, 3: self.trigram}.get(arity, False)


@dataclass
class FeatureSet:
    unigram: list[Feature] = field(default_factory=list)
    bigram: list[Feature] = field(default_factory=list)
    trigram: list[Feature] = field(default_factory=list)

    def for_arity(self, arity: int) -> list[Feature]:
        if arity == 1:
            return self.unigram
        if arity == 2:
            return self.bigram
        if arity == 3:
            return self.trigram
        raise ValueError(f"n-gram arity must be 1, 2 or 3, got {arity}")

    def add(self, feature: Feature) -> None:
        for arity in (1, 2, 3):
            if feature.applies_to(arity):
                self.for_arity(arity).append(feature)

    def __iter__(self):
        seen: set[str] = set()
        for feature in (*self.unigram, *self.bigram, *self.trigram):
            if feature.name not in seen:
                seen.add(feature.name)
                yield feature

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        registry: ValueTableRegistry | None = None,
        stemmer: Stemmer | None = None,
    ) -> FeatureSet:
        features = cls()
        for record in records:
            feature = Feature.from_parameters(record, registry=registry, stemmer=stemmer)
            features.add(feature)
            if not (feature.unigram or feature.bigram or feature.trigram):
                logger.warning("Feature %s applies to no n-gram size and is unused", feature.name)
        return features

    @classmethod
    def default(cls) -> FeatureSet:
        # target collection only
        return cls(
            unigram=[
                Feature.default("1-const", FeatureType.CONST, 0.8, True),
                Feature.default("1-lntf", FeatureType.LOGTF, 0.0, True),
                Feature.default("1-lndf", FeatureType.LOGDF, 0.0, True),
            ],
            bigram=[
                Feature.default("2-const", FeatureType.CONST, 0.1, False),
                Feature.default("2-lntf", FeatureType.LOGTF, 0.0, False),
                Feature.default("2-lndf", FeatureType.LOGDF, 0.0, False),
            ],
        )

    @classmethod
    def from_parameters(
        cls,
        parameters: Mapping[str, Any] | None,
        registry: ValueTableRegistry | None = None,
        stemmer: Stemmer | None = None,
    ) -> FeatureSet:
        p = Parameters.wrap(parameters)
        key = p.first_key(Config.features_keys)
        if key is None:
            return cls.default()
        if not p.is_list_of_mappings(key):
            raise ConfigurationError(f"{key!r} must be a list of feature records")
        return cls.from_records(p[key], registry=registry, stemmer=stemmer)
