"""
cypherql Parser - Lark-based parser for the supported GraphQL subset.

Parses type definitions and operation documents into the AST nodes
defined in cypherql.parser.ast.
"""

import json
import textwrap
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from lark import Lark, Transformer
from lark.exceptions import UnexpectedInput, VisitError

from cypherql.exceptions import QueryParseError, SchemaParseError
from cypherql.parser.grammar import get_grammar
from cypherql.parser.ast import (
    Directive,
    Document,
    EnumDefinition,
    EnumValue,
    FieldDefinition,
    FieldSelection,
    InputValueDefinition,
    OperationDefinition,
    TypeDefinition,
    TypeRef,
    Variable,
    VariableDefinition,
)


@dataclass(frozen=True)
class _DefaultValue:
    """Marks an explicit default so that `= null` differs from no default."""
    value: Any


class GraphQLTransformer(Transformer):
    """
    Lark Transformer that converts the parse tree to cypherql AST nodes.
    """

    # --- Values ---

    def variable(self, items):
        return Variable(name=str(items[0])[1:])

    def number_value(self, items):
        s = str(items[0])
        if any(c in s for c in ".eE"):
            return float(s)
        return int(s)

    def string_value(self, items):
        return json.loads(str(items[0]))

    def block_string_value(self, items):
        raw = str(items[0])[3:-3].replace('\\"""', '"""')
        return textwrap.dedent(raw).strip("\n")

    def true_value(self, _):
        return True

    def false_value(self, _):
        return False

    def null_value(self, _):
        return None

    def enum_value(self, items):
        return EnumValue(str(items[0]))

    def list_value(self, items):
        return list(items)

    def object_field(self, items):
        return (str(items[0]), items[1])

    def object_value(self, items):
        return dict(items)

    def default_value(self, items):
        return _DefaultValue(items[0])

    # --- Arguments and directives ---

    def argument(self, items):
        return (str(items[0]), items[1])

    def arguments(self, items):
        return dict(items)

    def directive(self, items):
        return Directive(name=str(items[0]), arguments=items[1] or {})

    def directives(self, items):
        return list(items)

    # --- Type references ---

    def named_type(self, items):
        return TypeRef(name=str(items[0]))

    def list_type(self, items):
        inner = items[0]
        if inner.is_list:
            raise ValueError(f"Nested list type [{inner}] is not supported")
        return TypeRef(name=inner.name, is_list=True, items_required=inner.required)

    def non_null_type(self, items):
        return replace(items[0], required=True)

    # --- Type system ---

    def input_value(self, items):
        description, name, type_ref, default, directives = items
        return InputValueDefinition(
            name=str(name),
            type=type_ref,
            default=default.value if default is not None else None,
            directives=directives or [],
            description=description,
        )

    def field_arguments(self, items):
        return list(items)

    def field_definition(self, items):
        description, name, arguments, type_ref, directives = items
        return FieldDefinition(
            name=str(name),
            type=type_ref,
            arguments=arguments or [],
            directives=directives or [],
            description=description,
        )

    def type_definition(self, items):
        description, name, directives = items[:3]
        return TypeDefinition(
            name=str(name),
            fields=list(items[3:]),
            directives=directives or [],
            description=description,
        )

    def enum_value_definition(self, items):
        return str(items[1])

    def enum_definition(self, items):
        description, name, directives = items[:3]
        return EnumDefinition(
            name=str(name),
            values=list(items[3:]),
            directives=directives or [],
            description=description,
        )

    # --- Operations ---

    def query_type(self, _):
        return "query"

    def mutation_type(self, _):
        return "mutation"

    def variable_definition(self, items):
        token, type_ref, default = items
        return VariableDefinition(
            name=str(token)[1:],
            type=type_ref,
            default=default.value if default is not None else None,
            has_default=default is not None,
        )

    def variable_definitions(self, items):
        return {d.name: d for d in items}

    def selection_set(self, items):
        return list(items)

    def aliased_field(self, items):
        alias, name, arguments, directives, selections = items
        return FieldSelection(
            name=str(name),
            alias=str(alias),
            arguments=arguments or {},
            directives=directives or [],
            selections=selections or [],
        )

    def field(self, items):
        name, arguments, directives, selections = items
        return FieldSelection(
            name=str(name),
            arguments=arguments or {},
            directives=directives or [],
            selections=selections or [],
        )

    def operation_definition(self, items):
        operation, name, variable_definitions, directives, selections = items
        return OperationDefinition(
            operation=operation,
            name=str(name) if name is not None else None,
            variable_definitions=variable_definitions or {},
            directives=directives or [],
            selections=selections,
        )

    def anonymous_operation(self, items):
        return OperationDefinition(operation="query", selections=items[0])

    # --- Top-level document ---

    def start(self, items):
        document = Document()
        for item in items:
            if isinstance(item, TypeDefinition):
                document.types.append(item)
            elif isinstance(item, EnumDefinition):
                document.enums.append(item)
            elif isinstance(item, OperationDefinition):
                document.operations.append(item)
        return document


class GraphQLParser:
    """
    GraphQL subset parser using Lark.

    Parses type definitions and operation documents into a Document.

    Example:
        parser = GraphQLParser()
        document = parser.parse_document("{ movies { title } }")
    """

    def __init__(self):
        self._parser = Lark(
            get_grammar(),
            parser='lalr',
            transformer=GraphQLTransformer(),
            maybe_placeholders=True,
        )

    def _parse(self, source: str, error_class: type) -> Document:
        try:
            return self._parser.parse(source)
        except UnexpectedInput as e:
            raise error_class(
                f"Syntax error at line {e.line}, column {e.column}: {e.get_context(source).strip()}"
            ) from e
        except VisitError as e:
            raise error_class(str(e.orig_exc)) from e
        except ValueError as e:
            raise error_class(str(e)) from e

    def parse_document(self, source: str) -> Document:
        """
        Parse an operation document.

        Args:
            source: Query or mutation text

        Returns:
            Document with at least one operation

        Raises:
            QueryParseError: If the text is not valid or holds no operation
        """
        document = self._parse(source, QueryParseError)
        if not document.operations:
            raise QueryParseError("Document contains no operations")
        return document

    def parse_schema(self, source: str) -> Document:
        """
        Parse type definitions.

        Args:
            source: Type definitions text

        Returns:
            Document holding the type and enum definitions

        Raises:
            SchemaParseError: If the text is not valid or holds operations
        """
        document = self._parse(source, SchemaParseError)
        if document.operations:
            raise SchemaParseError("Type definitions must not contain operations")
        return document


def resolve_value(value: Any, variables: Mapping[str, Any]) -> Any:
    """
    Replace Variable references in a literal value with request values.

    Args:
        value: A literal as produced by the parser (may be nested)
        variables: Effective variable values for the operation

    Returns:
        The value with every Variable substituted. Unbound variables
        resolve to None, as an omitted optional variable does.
    """
    if isinstance(value, Variable):
        return variables.get(value.name)
    if isinstance(value, list):
        return [resolve_value(v, variables) for v in value]
    if isinstance(value, dict):
        return {k: resolve_value(v, variables) for k, v in value.items()}
    return value


def parse_document(source: str) -> Document:
    """
    Convenience function to parse an operation document.

    For repeated parsing, use GraphQLParser directly for better performance.
    """
    return GraphQLParser().parse_document(source)


def parse_schema(source: str) -> Document:
    """Convenience function to parse type definitions."""
    return GraphQLParser().parse_schema(source)
