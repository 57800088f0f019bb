"""
cypherql AST - Syntax tree nodes for type definitions and operations.

These dataclasses are the parser's output. The schema builder reads the
type-definition nodes; the query compiler reads the operation nodes.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


class EnumValue(str):
    """
    An unquoted enum literal such as ASC or OUT.

    Compares equal to the plain string, so directive arguments and sort
    directions can be read without unwrapping.
    """

    def __repr__(self):
        return f"EnumValue({str.__repr__(self)})"


@dataclass(frozen=True)
class Variable:
    """Reference to an operation variable: $name."""
    name: str


@dataclass(frozen=True)
class TypeRef:
    """
    A flattened GraphQL type reference.

    [Movie!]! is TypeRef("Movie", is_list=True, required=True, items_required=True).
    """
    name: str
    is_list: bool = False
    required: bool = False
    items_required: bool = False

    def __str__(self):
        inner = f"{self.name}!" if self.is_list and self.items_required else self.name
        text = f"[{inner}]" if self.is_list else inner
        return f"{text}!" if self.required else text


@dataclass
class Directive:
    """A directive application: @name(arg: value, ...)."""
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class InputValueDefinition:
    """An argument declared on a field definition."""
    name: str
    type: TypeRef
    default: Any = None
    directives: list[Directive] = field(default_factory=list)
    description: Optional[str] = None


@dataclass
class FieldDefinition:
    """A field declared on an object type."""
    name: str
    type: TypeRef
    arguments: list[InputValueDefinition] = field(default_factory=list)
    directives: list[Directive] = field(default_factory=list)
    description: Optional[str] = None

    def directive(self, name: str) -> Optional[Directive]:
        """Return the first directive with the given name, if any."""
        for d in self.directives:
            if d.name == name:
                return d
        return None


@dataclass
class TypeDefinition:
    """An object type definition: type Name @directives { fields }."""
    name: str
    fields: list[FieldDefinition] = field(default_factory=list)
    directives: list[Directive] = field(default_factory=list)
    description: Optional[str] = None

    def directive(self, name: str) -> Optional[Directive]:
        """Return the first directive with the given name, if any."""
        for d in self.directives:
            if d.name == name:
                return d
        return None

    def directives_named(self, name: str) -> list[Directive]:
        """Return every directive with the given name, in source order."""
        return [d for d in self.directives if d.name == name]


@dataclass
class EnumDefinition:
    """An enum type definition."""
    name: str
    values: list[str] = field(default_factory=list)
    directives: list[Directive] = field(default_factory=list)
    description: Optional[str] = None


@dataclass
class VariableDefinition:
    """A declared operation variable: $name: Type = default."""
    name: str
    type: TypeRef
    default: Any = None
    has_default: bool = False


@dataclass
class FieldSelection:
    """
    A field in a selection set.

    Arguments hold raw literal values; Variable references are resolved
    by the compiler against the request variables.
    """
    name: str
    alias: Optional[str] = None
    arguments: dict[str, Any] = field(default_factory=dict)
    directives: list[Directive] = field(default_factory=list)
    selections: list["FieldSelection"] = field(default_factory=list)

    @property
    def response_key(self) -> str:
        """Key under which this field appears in the response."""
        return self.alias or self.name


@dataclass
class OperationDefinition:
    """A query or mutation operation."""
    operation: str = "query"
    name: Optional[str] = None
    variable_definitions: dict[str, VariableDefinition] = field(default_factory=dict)
    directives: list[Directive] = field(default_factory=list)
    selections: list[FieldSelection] = field(default_factory=list)

    @property
    def is_mutation(self) -> bool:
        return self.operation == "mutation"


@dataclass
class Document:
    """
    A parsed source text.

    Type definitions and operations may be mixed in one document; the
    schema builder and the compiler each read the part they need.
    """
    types: list[TypeDefinition] = field(default_factory=list)
    enums: list[EnumDefinition] = field(default_factory=list)
    operations: list[OperationDefinition] = field(default_factory=list)

    def operation(self, name: Optional[str] = None) -> OperationDefinition:
        """
        Select the operation to execute.

        Args:
            name: Operation name, required when the document has several

        Returns:
            The matching OperationDefinition

        Raises:
            KeyError: If no operation matches
            ValueError: If the choice is ambiguous
        """
        if name is None:
            if len(self.operations) == 1:
                return self.operations[0]
            if not self.operations:
                raise KeyError("Document contains no operations")
            raise ValueError("Must provide operation name if query contains multiple operations")
        for op in self.operations:
            if op.name == name:
                return op
        raise KeyError(f"Unknown operation named '{name}'")
