"""
cypherql Grammar - Lark EBNF grammar for the supported GraphQL subset.

One grammar covers both inputs the compiler consumes:
- Type definitions (object and enum types, with directives)
- Operation documents (query/mutation, variables, arguments, aliases)

Fragments, interfaces, unions and input types are not part of the subset.
"""

GRAPHQL_GRAMMAR = r'''
start: definition+

?definition: type_definition
           | enum_definition
           | operation_definition

// Type system
type_definition: [description] "type" NAME [directives] "{" field_definition* "}"

field_definition: [description] NAME [field_arguments] ":" type_ref [directives]

field_arguments: "(" input_value+ ")"

input_value: [description] NAME ":" type_ref [default_value] [directives]

enum_definition: [description] "enum" NAME [directives] "{" enum_value_definition* "}"

enum_value_definition: [description] NAME [directives]

description: STRING -> string_value
           | BLOCK_STRING -> block_string_value

?type_ref: named_type
         | list_type
         | non_null_type

named_type: NAME
list_type: "[" type_ref "]"
non_null_type: named_type "!"
             | list_type "!"

// Operations
operation_definition: operation_type [NAME] [variable_definitions] [directives] selection_set
                    | selection_set -> anonymous_operation

operation_type: "query" -> query_type
              | "mutation" -> mutation_type

variable_definitions: "(" variable_definition+ ")"
variable_definition: VARIABLE ":" type_ref [default_value]
default_value: "=" value

selection_set: "{" selection+ "}"

selection: NAME ":" NAME [arguments] [directives] [selection_set] -> aliased_field
         | NAME [arguments] [directives] [selection_set] -> field

arguments: "(" argument+ ")"
argument: NAME ":" value

directives: directive+
directive: "@" NAME [arguments]

// Values
?value: VARIABLE -> variable
      | NUMBER -> number_value
      | STRING -> string_value
      | BLOCK_STRING -> block_string_value
      | "true" -> true_value
      | "false" -> false_value
      | "null" -> null_value
      | NAME -> enum_value
      | "[" value* "]" -> list_value
      | "{" object_field* "}" -> object_value

object_field: NAME ":" value

// Terminals
NAME: /[_A-Za-z][_0-9A-Za-z]*/
VARIABLE: "$" NAME
NUMBER: /-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?/
BLOCK_STRING.2: /"""(?:[^"\\]|\\.|"(?!""))*"""/
STRING: /"(?:[^"\\\n]|\\.)*"/

// Whitespace, commas and comments are insignificant
%import common.WS
%ignore WS
%ignore ","
COMMENT: /#[^\n]*/
%ignore COMMENT
'''


def get_grammar() -> str:
    """Return the GraphQL subset grammar string for use with Lark."""
    return GRAPHQL_GRAMMAR
