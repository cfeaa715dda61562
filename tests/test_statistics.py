import pytest

from weighted_sdm.errors import StatisticsAbsent
from weighted_sdm.query import Node, NodeParameters
from weighted_sdm.statistics import (
    CorpusStatistics,
    GroupedStatistics,
    NodeStatistics,
    StatisticsCache,
    assign_part,
)


@pytest.fixture
def corpus():
    documents = [
        "new york is a big city".split(),
        "york new city".split(),
        "new york new york".split(),
    ]
    titles = [
        "new york".split(),
        "city".split(),
        "york".split(),
    ]
    return CorpusStatistics({"postings": documents, "title": titles})


def window(operator, width, *terms, part=None):
    children = [Node.extents(t) for t in terms]
    if part:
        for child in children:
            child.parameters.set("part", part)
    return Node(operator, NodeParameters(width), children)


@pytest.mark.parametrize(
    "node, expected",
    [
        (Node.counts("new"), NodeStatistics(4, 3)),
        (Node.extents("city"), NodeStatistics(2, 2)),
        (Node.counts("boston"), NodeStatistics(0, 0)),
        (window("od", 1, "new", "york"), NodeStatistics(3, 2)),
        (window("ordered", 1, "york", "new"), NodeStatistics(2, 2)),
        (window("uw", 8, "new", "york"), NodeStatistics(4, 3)),
        (window("od", 1, "new", "york", "new"), NodeStatistics(1, 1)),
        (window("uw", 8, "new", "new"), NodeStatistics(1, 1)),
        (window("uw", 8, "city", "city"), NodeStatistics(0, 0)),
        (Node.counts("new~york"), NodeStatistics(3, 2)),
        (Node.counts("big~city"), NodeStatistics(1, 1)),
        (Node.counts("city~new"), NodeStatistics(0, 0)),
    ],
)
def test_corpus_statistics(corpus, node, expected):
    assert corpus.node_statistics(node) == expected


def test_part_selects_index(corpus):
    title_node = Node("counts", NodeParameters("york", part="title"))
    assert corpus.node_statistics(title_node) == NodeStatistics(2, 2)
    assert corpus.node_statistics(window("od", 1, "new", "york", part="title")) == NodeStatistics(1, 1)


def test_unknown_part_is_absent(corpus):
    with pytest.raises(StatisticsAbsent):
        corpus.node_statistics(Node("counts", NodeParameters("york", part="anchor")))


def test_unsupported_operator_is_absent(corpus):
    with pytest.raises(StatisticsAbsent):
        corpus.node_statistics(Node("combine", children=[Node.text("new")]))


def test_assign_part_uses_available_query_part():
    node = window("od", 1, "new", "york")

    assigned = assign_part(node, {"part": "title"}, ["postings", "title"])
    untouched = assign_part(node, {"part": "anchor"}, ["postings", "title"])

    assert assigned.to_string() == "#od:1( #extents:new:part=title() #extents:york:part=title() )"
    assert untouched == node
    assert node.children[0].parameters.get("part") is None


class CountingProvider:
    def __init__(self, stats=None):
        self.stats = stats or {}
        self.calls = []

    def available_parts(self):
        return ["postings"]

    def node_statistics(self, node):
        self.calls.append(node.to_string())
        if node.to_string() not in self.stats:
            raise StatisticsAbsent(node.to_string())
        return self.stats[node.to_string()]


def test_cache_collapses_repeated_lookups():
    provider = CountingProvider({"#counts:new()": NodeStatistics(10, 4)})
    cache = StatisticsCache(provider)

    first = cache.get(Node.counts("new"))
    second = cache.get(Node.counts("new"))

    assert first == second == NodeStatistics(10, 4)
    assert provider.calls == ["#counts:new()"]
    assert (cache.hits, cache.misses) == (1, 1)


def test_cache_keys_include_group():
    provider = CountingProvider({"#counts:new()": NodeStatistics(10, 4)})
    cache = StatisticsCache(provider)

    cache.get(Node.counts("new"), "")
    cache.get(Node.counts("new"), "wiki")

    assert len(provider.calls) == 2
    assert "#counts:new()-wiki" in cache


def test_cache_stores_absent_statistics_as_empty():
    provider = CountingProvider()
    cache = StatisticsCache(provider)

    assert cache.get(Node.counts("zzz")).is_empty
    assert cache.get(Node.counts("zzz")).is_empty
    assert len(provider.calls) == 1


def test_grouped_statistics_routes_groups():
    default = CountingProvider({"#counts:new()": NodeStatistics(10, 4)})
    wiki = CountingProvider({"#counts:new()": NodeStatistics(500, 90)})
    grouped = GroupedStatistics(default, {"wiki": wiki})
    cache = StatisticsCache(grouped)

    assert cache.get(Node.counts("new"), "wiki") == NodeStatistics(500, 90)
    assert cache.get(Node.counts("new"), "news") == NodeStatistics(10, 4)
    assert cache.get(Node.counts("new")) == NodeStatistics(10, 4)
    assert len(wiki.calls) == 1
    assert len(default.calls) == 2


def test_group_requests_fall_back_without_group_support():
    provider = CountingProvider({"#counts:new()": NodeStatistics(10, 4)})
    cache = StatisticsCache(provider)
    assert cache.get(Node.counts("new"), "wiki") == NodeStatistics(10, 4)


class FailingProvider:
    def __init__(self):
        self.calls = 0

    def available_parts(self):
        return ["postings"]

    def node_statistics(self, node):
        self.calls += 1
        raise OSError("index shard unavailable")


def test_cache_absorbs_provider_failures(caplog):
    provider = FailingProvider()
    cache = StatisticsCache(provider)

    assert cache.get(Node.counts("new")).is_empty
    assert cache.get(Node.counts("new")).is_empty
    assert provider.calls == 1
    assert "index shard unavailable" in caplog.text
