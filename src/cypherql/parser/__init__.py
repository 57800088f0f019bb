"""cypherql Parser module - Grammar, AST nodes, and Lark parser."""

from cypherql.parser.ast import (
    Directive,
    Document,
    EnumDefinition,
    EnumValue,
    FieldDefinition,
    FieldSelection,
    OperationDefinition,
    TypeDefinition,
    TypeRef,
    Variable,
    VariableDefinition,
)
from cypherql.parser.parser import GraphQLParser, parse_document, parse_schema, resolve_value

__all__ = [
    "GraphQLParser",
    "parse_document",
    "parse_schema",
    "resolve_value",
    "Directive",
    "Document",
    "EnumDefinition",
    "EnumValue",
    "FieldDefinition",
    "FieldSelection",
    "OperationDefinition",
    "TypeDefinition",
    "TypeRef",
    "Variable",
    "VariableDefinition",
]
