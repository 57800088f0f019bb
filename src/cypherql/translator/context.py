"""
cypherql Query Context - Request-scoped naming and immutable traversal context.

An Environment is created once per compiled root field. It hands out
parameter names (param0, param1, ...) and variable names (this0, var1,
...) from counters shared by the whole statement, so sub-trees never
collide. A QueryContext is immutable; recursion derives child contexts
with push() instead of mutating the parent.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from cypherql.schema.model import AuthorizationOperation, Entity, Schema

RESERVED_PARAMS = frozenset({"jwt", "isAuthenticated"})


class Environment:
    """
    Name generator and parameter store for one statement.

    Example:
        env = Environment()
        env.param("Matrix")     # "$param0"
        env.variable("this")    # "this0"
        env.params              # {"param0": "Matrix"}
    """

    def __init__(self):
        self._param_count = 0
        self._variable_count = 0
        self.params: dict[str, Any] = {}

    def param(self, value: Any) -> str:
        """Bind a value and return its '$paramN' reference."""
        name = f"param{self._param_count}"
        self._param_count += 1
        self.params[name] = value
        return f"${name}"

    def variable(self, prefix: str = "var") -> str:
        """Return a fresh variable name such as 'this3' or 'var4'."""
        name = f"{prefix}{self._variable_count}"
        self._variable_count += 1
        return name

    def bind_reserved(self, name: str, value: Any) -> str:
        """
        Bind one of the reserved request parameters.

        Raises:
            ValueError: If name is not reserved
        """
        if name not in RESERVED_PARAMS:
            raise ValueError(f"'{name}' is not a reserved parameter")
        self.params[name] = value
        return f"${name}"


@dataclass(frozen=True)
class QueryContext:
    """
    Immutable state threaded through the compiler's recursion.

    Attributes:
        schema: The Metadata Model
        env: Shared Environment of the statement being built
        variables: Effective operation variables
        claims: Decoded JWT claims, None when unauthenticated
        entity: Entity the current node variable belongs to
        target: Cypher variable of the current node
        score: Cypher variable holding the search score, inside searches
        operation: Operation kind used to select authorization rules
    """
    schema: Schema
    env: Environment
    variables: Mapping[str, Any] = field(default_factory=dict)
    claims: Optional[Mapping[str, Any]] = None
    entity: Optional[Entity] = None
    target: Optional[str] = None
    score: Optional[str] = None
    operation: AuthorizationOperation = AuthorizationOperation.READ

    @property
    def is_authenticated(self) -> bool:
        return self.claims is not None

    def push(self, entity: Entity, target: str, **changes) -> "QueryContext":
        """Derive the context for a related node. The score does not carry over."""
        changes.setdefault("score", None)
        return replace(self, entity=entity, target=target, **changes)
