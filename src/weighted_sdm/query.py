"""
Minimal host query tree.

Nodes carry an operator name, a parameter map and child nodes. The rewriter
only reads `text` children of a `wsdm` node and builds `extents`, `counts`,
`od`/`ordered`, `uw`/`unordered` and `combine` nodes.

The printed form is canonical and used as a statistics cache key:

    #od:1( #extents:part=postings:new() #extents:part=postings:york() )
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

DEFAULT_KEY = "default"


class NodeParameters:
    """Named node parameters; the unnamed value lives under ``default``."""

    def __init__(self, default: Any = None, **named: Any):
        self._values: dict[str, Any] = {}
        if default is not None:
            self._values[DEFAULT_KEY] = default
        self._values.update(named)

    def get(self, key: str, fallback: Any = None) -> Any:
        return self._values.get(key, fallback)

    def set(self, key: str, value: Any) -> NodeParameters:
        self._values[key] = value
        return self

    def contains(self, key: str) -> bool:
        return key in self._values

    __contains__ = contains

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return list(self._values)

    @property
    def default(self) -> Any:
        return self._values.get(DEFAULT_KEY)

    def clone(self) -> NodeParameters:
        copy = NodeParameters()
        copy._values = dict(self._values)
        return copy

    def to_string(self) -> str:
        parts = []
        if DEFAULT_KEY in self._values:
            parts.append(_format_value(self._values[DEFAULT_KEY]))
        for key in sorted(k for k in self._values if k != DEFAULT_KEY):
            parts.append(f"{key}={_format_value(self._values[key])}")
        return "".join(f":{p}" for p in parts)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, NodeParameters) and self._values == other._values

    def __repr__(self) -> str:
        return f"NodeParameters({self._values!r})"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return str(value)


class Node:
    def __init__(
        self,
        operator: str,
        parameters: NodeParameters | Any = None,
        children: Sequence[Node] | None = None,
        position: int = 0,
    ):
        self.operator = operator
        if isinstance(parameters, NodeParameters):
            self.parameters = parameters
        else:
            self.parameters = NodeParameters(parameters)
        self.children: list[Node] = list(children or [])
        self.position = position

    # ----- constructors used by the rewriter -----

    @classmethod
    def text(cls, term: str) -> Node:
        return cls("text", term)

    @classmethod
    def extents(cls, term: str) -> Node:
        return cls("extents", term)

    @classmethod
    def counts(cls, term: str) -> Node:
        return cls("counts", term)

    # ----- accessors -----

    @property
    def default_parameter(self) -> Any:
        return self.parameters.default

    def is_leaf(self) -> bool:
        return not self.children

    def add_child(self, child: Node) -> None:
        self.children.append(child)

    def clone(self) -> Node:
        return Node(
            self.operator,
            self.parameters.clone(),
            [child.clone() for child in self.children],
            self.position,
        )

    def walk(self) -> Iterator[Node]:
        """Pre-order iteration over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    # ----- printing -----

    def to_string(self) -> str:
        inner = " ".join(child.to_string() for child in self.children)
        if inner:
            inner = f" {inner} "
        return f"#{self.operator}{self.parameters.to_string()}({inner})"

    def to_pretty_string(self, indent: str = "") -> str:
        head = f"{indent}#{self.operator}{self.parameters.to_string()}"
        if not self.children:
            return f"{head}()\n"
        lines = [f"{head}(\n"]
        lines.extend(child.to_pretty_string(indent + "  ") for child in self.children)
        lines.append(f"{indent})\n")
        return "".join(lines)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"Node({self.to_string()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return (
            self.operator == other.operator
            and self.parameters == other.parameters
            and self.children == other.children
        )

    __hash__ = None  # type: ignore[assignment]


def text_query(operator: str, terms: Sequence[str]) -> Node:
    """Build ``#operator( #text:t1() #text:t2() ... )`` from a flat term list."""
    return Node(operator, children=[Node.text(term) for term in terms])
