"""
Rewrite a query with the Weighted Sequential Dependency Model.

Reads documents from a JSON-lines corpus (one object per line, one string
field per index part, ``content`` is taken as the ``postings`` part) and
prints the rewritten #combine expression.

Usage:
    uv run python scripts/rewrite_query.py --corpus docs.jsonl "climate change policy"
    uv run python scripts/rewrite_query.py --corpus docs.jsonl --parameters wsdm.json --verbose "new york"
"""

import argparse
import json
import logging
import re
import sys
from pathlib import Path

from weighted_sdm.config import Parameters, load_parameters
from weighted_sdm.errors import WeightedSDMError
from weighted_sdm.query import text_query
from weighted_sdm.rewriter import WeightedSDMRewriter
from weighted_sdm.statistics import DEFAULT_PART, CorpusStatistics

_TOKEN_PATTERN = re.compile(r"[a-zA-Z0-9]+")


def tokenize(text: str) -> list[str]:
    return _TOKEN_PATTERN.findall(text.lower())


def load_corpus(path: Path) -> CorpusStatistics:
    parts: dict[str, list[list[str]]] = {}
    with open(path) as f:
        records = [json.loads(line) for line in f if line.strip()]

    for doc_idx, record in enumerate(records):
        for field, value in record.items():
            if field == "id" or not isinstance(value, str):
                continue
            part = DEFAULT_PART if field == "content" else field
            # every part holds every document, in corpus order
            docs = parts.setdefault(part, [[] for _ in records])
            docs[doc_idx] = tokenize(value)
    return CorpusStatistics(parts)


def main():
    parser = argparse.ArgumentParser(description="Rewrite a query into a weighted dependency model expression")
    parser.add_argument("query", type=str, help="Query text")
    parser.add_argument(
        "--corpus",
        type=Path,
        required=True,
        help="JSON-lines corpus used for term and window statistics",
    )
    parser.add_argument(
        "--parameters",
        type=Path,
        default=None,
        help="JSON parameter file (wsdmFeatures, norm, verboseWSDM)",
    )
    parser.add_argument(
        "--part",
        type=str,
        default="",
        help="Index part for query terms (default: the corpus default part)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log feature contributions")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parameters = load_parameters(args.parameters) if args.parameters else Parameters()
    if args.verbose:
        parameters["verboseWSDM"] = True

    terms = tokenize(args.query)
    if not terms:
        print("ERROR: query has no terms")
        sys.exit(1)

    query_parameters = Parameters({"part": args.part}) if args.part else Parameters()
    try:
        rewriter = WeightedSDMRewriter(load_corpus(args.corpus), parameters)
        rewritten = rewriter.rewrite(text_query("wsdm", terms), query_parameters)
    except WeightedSDMError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(rewritten.to_pretty_string(), end="")


if __name__ == "__main__":
    main()
