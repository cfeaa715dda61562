"""
Global and query-level parameters.

Parameters are plain JSON objects. Global parameters configure the feature
set and output flags once per rewriter; query parameters travel with each
query and may override feature lambdas by feature name.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from weighted_sdm.errors import ConfigurationError

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

class Config:
    operators: tuple[str, ...] = ("wsdm", "rwsdm")   # operators rewritten by the traversal
    features_keys: tuple[str, ...] = ("wsdmFeatures", "rwsdmFeatures")
    verbose_keys: tuple[str, ...] = ("verboseWSDM", "verboseRWSDM")
    norm_key: str = "norm"
    norm: bool = False               # combine-level normalization
    ordered_width: int = 1           # od window for bigrams and trigrams
    bigram_unordered_width: int = 8
    trigram_unordered_width: int = 12
    default_lambda: float = 1.0      # lambda of a configured feature without one
    default_type: str = "logtf"


# -----------------------------------------------------------------------------
# Parameters
# -----------------------------------------------------------------------------

class Parameters(dict):
    """A JSON object with typed lookups."""

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    def get_float(self, key: str, default: float) -> float:
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"parameter {key!r} must be a number, got {value!r}") from e

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key, default)
        return default if value is None else str(value)

    def is_list_of_mappings(self, key: str) -> bool:
        value = self.get(key)
        return isinstance(value, list) and all(isinstance(v, Mapping) for v in value)

    def first_key(self, keys: tuple[str, ...]) -> str | None:
        """The first of ``keys`` present in these parameters."""
        for key in keys:
            if key in self:
                return key
        return None

    @classmethod
    def wrap(cls, value: Mapping[str, Any] | None) -> Parameters:
        if isinstance(value, Parameters):
            return value
        return cls(value or {})


def load_parameters(path: str | Path) -> Parameters:
    """Read a JSON parameter file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read parameter file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid JSON in parameter file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"parameter file {path} must hold a JSON object")
    logger.debug("Loaded %d parameters from %s", len(data), path)
    return Parameters(data)
