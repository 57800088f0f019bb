"""
cypherql Compiled Statement - Output of the query compiler.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from cypherql.schema.model import RootFieldKind
from cypherql.translator.shaping import Shape, shape_value

RETURN_COLUMN = "this"


class AccessMode(Enum):
    """Transaction access mode a statement needs."""
    READ = "READ"
    WRITE = "WRITE"


@dataclass
class CompiledStatement:
    """
    One parameterized Cypher statement answering one root field.

    Attributes:
        cypher: Statement text
        params: Flat parameter map; every value the request supplied lives here
        response_key: Key of the root field in the response (alias or name)
        kind: Root operation kind
        access_mode: READ or WRITE
        multiple_rows: True when each row is one list item of the response
        shape: Post-processing applied to the returned value
    """
    cypher: str
    params: dict[str, Any] = field(default_factory=dict)
    response_key: str = ""
    kind: RootFieldKind = RootFieldKind.READ
    access_mode: AccessMode = AccessMode.READ
    multiple_rows: bool = False
    shape: Optional[Shape] = None

    def shape_rows(self, rows: list[dict]) -> Any:
        """
        Turn the rows returned by the executor into the response value.

        Args:
            rows: Records as dicts keyed by column name

        Returns:
            A list for read and full-text operations, a single value otherwise
        """
        values = [row.get(RETURN_COLUMN) for row in rows]
        if self.multiple_rows:
            return shape_value(values, self.shape)
        return shape_value(values[0] if values else None, self.shape)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "cypher": self.cypher,
            "params": self.params,
            "response_key": self.response_key,
            "kind": self.kind.value,
            "access_mode": self.access_mode.value,
        }
