"""
cypherql Result Shaper - Post-processes rows into response data.

Cypher already returns node maps under their response keys. Connections
come back as {<edges key>: [...], totalCount: n}; the shaper adds cursors
and pageInfo, which are derived from the page window rather than stored,
and drops totalCount when it was not requested.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from cypherql.translator.sorting import offset_to_cursor

TOTAL_COUNT_KEY = "totalCount"


@dataclass
class MapShape:
    """Post-processing for node maps: only keys that need work are listed."""
    children: dict[str, "Shape"] = field(default_factory=dict)


@dataclass
class EdgeShape:
    """
    Post-processing for the edges of one connection.

    Attributes:
        typename: Value answered for __typename
        selections: (response key, field) pairs, field one of
            cursor, node, score, __typename
        node_shape: Shape of the node map, when it needs work
    """
    typename: str
    selections: list[tuple[str, str]] = field(default_factory=list)
    node_shape: Optional["Shape"] = None


@dataclass
class ConnectionShape:
    """
    Post-processing for a connection value.

    Attributes:
        typename: Value answered for __typename
        offset: Offset of the first edge of the page
        limit: Page size, None when unbounded
        selections: (response key, field, detail) triples, field one of
            edges (detail: EdgeShape), totalCount, pageInfo (detail:
            list of (response key, field)), __typename
    """
    typename: str
    offset: int = 0
    limit: Optional[int] = None
    selections: list[tuple[str, str, Any]] = field(default_factory=list)


Shape = Union[MapShape, ConnectionShape]


def shape_value(value: Any, shape: Optional[Shape]) -> Any:
    """
    Apply a shape to one value; lists are shaped item by item.

    Args:
        value: A value returned by the statement
        shape: The shape recorded at compile time, None for no work

    Returns:
        The response value
    """
    if shape is None or value is None:
        return value
    if isinstance(value, list):
        return [shape_value(v, shape) for v in value]
    if isinstance(shape, ConnectionShape):
        return _shape_connection(value, shape)
    result = dict(value)
    for key, child in shape.children.items():
        if key in result:
            result[key] = shape_value(result[key], child)
    return result


def page_info(shape: ConnectionShape, total: int) -> dict[str, Any]:
    """Compute relay-style page info for the window of a connection."""
    remaining = max(0, total - shape.offset)
    size = remaining if shape.limit is None else min(shape.limit, remaining)
    return {
        "hasNextPage": shape.limit is not None and shape.offset + shape.limit < total,
        "hasPreviousPage": shape.offset > 0,
        "startCursor": offset_to_cursor(shape.offset) if size else None,
        "endCursor": offset_to_cursor(shape.offset + size - 1) if size else None,
        "__typename": "PageInfo",
    }


def _shape_connection(value: dict, shape: ConnectionShape) -> dict:
    total = value.get(TOTAL_COUNT_KEY) or 0
    result = {}
    for key, name, detail in shape.selections:
        if name == "edges":
            edges = value.get(key) or []
            result[key] = [_shape_edge(edge, shape.offset + i, detail) for i, edge in enumerate(edges)]
        elif name == "totalCount":
            result[key] = total
        elif name == "pageInfo":
            info = page_info(shape, total)
            result[key] = {k: info[f] for k, f in detail}
        elif name == "__typename":
            result[key] = shape.typename
    return result


def _shape_edge(edge: dict, offset: int, shape: EdgeShape) -> dict:
    result = {}
    for key, name in shape.selections:
        if name == "cursor":
            result[key] = offset_to_cursor(offset)
        elif name == "node":
            result[key] = shape_value(edge.get(key), shape.node_shape)
        elif name == "score":
            result[key] = edge.get(key)
        elif name == "__typename":
            result[key] = shape.typename
    return result
