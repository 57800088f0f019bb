"""
Cypher text helpers shared by the compiler components.

Identifiers are escaped only when needed, predicates are combined with
explicit parentheses, and clause blocks are lists of lines so that
subqueries can be indented when nested.
"""

import re
from typing import Iterable, Optional, Sequence

_SAFE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

INDENT = "    "


def escape(name: str) -> str:
    """Quote a label, type or property name with backticks when required."""
    if _SAFE_IDENTIFIER.match(name):
        return name
    return "`" + name.replace("`", "``") + "`"


def labels_expr(labels: Iterable[str]) -> str:
    """Return ':A:B' for a label sequence."""
    return "".join(f":{escape(l)}" for l in labels)


def prop(variable: str, name: str) -> str:
    """Return 'variable.name' with the property escaped."""
    return f"{variable}.{escape(name)}"


def and_(*predicates: Optional[str]) -> Optional[str]:
    """
    Conjoin predicates, skipping None.

    Returns None when nothing is left, the predicate itself when one is
    left, and a parenthesised conjunction otherwise.
    """
    parts = [p for p in predicates if p]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return "(" + " AND ".join(parts) + ")"


def or_(*predicates: Optional[str]) -> Optional[str]:
    """Disjoin predicates, skipping None."""
    parts = [p for p in predicates if p]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return "(" + " OR ".join(parts) + ")"


def not_(predicate: str) -> str:
    return f"NOT ({predicate})"


def indent(lines: Sequence[str]) -> list[str]:
    return [INDENT + line for line in lines]


def call_block(lines: Sequence[str], imports: Sequence[str] = ()) -> list[str]:
    """
    Wrap lines in a CALL subquery importing the given variables.

    Args:
        lines: Body of the subquery, ending in a RETURN
        imports: Outer variables the body reads

    Returns:
        The lines of the CALL { ... } block
    """
    body = []
    if imports:
        body.append("WITH " + ", ".join(imports))
    body.extend(lines)
    return ["CALL {"] + indent(body) + ["}"]


def map_literal(items: Sequence[tuple[str, str]]) -> str:
    """Render '{ key: expr, ... }'."""
    if not items:
        return "{ }"
    return "{ " + ", ".join(f"{escape(k)}: {v}" for k, v in items) + " }"


def map_projection(variable: str, items: Sequence[tuple[str, str]]) -> str:
    """
    Render a map projection such as 'this { .title, actors: var2 }'.

    Items whose expression reads the property of the same name on the
    variable use the '.name' shorthand.
    """
    rendered = []
    for key, expression in items:
        if expression == prop(variable, key):
            rendered.append(f".{escape(key)}")
        else:
            rendered.append(f"{escape(key)}: {expression}")
    if not rendered:
        return f"{variable} {{ }}"
    return f"{variable} {{ " + ", ".join(rendered) + " }"


def quote(value: str) -> str:
    """Render a Cypher string literal."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
