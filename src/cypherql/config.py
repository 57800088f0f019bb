"""
cypherql Configuration
======================

Connection and compiler settings. Constructor arguments always win;
from_env() fills the rest from environment variables.
"""
import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Neo4jConfig:
    """Neo4j connection configuration."""
    uri: str
    user: str = "neo4j"
    password: str = ""
    database: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> 'Neo4jConfig':
        """Create config from NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD and NEO4J_DATABASE."""
        uri = overrides.pop('uri', None) or os.getenv('NEO4J_URI')
        if not uri:
            raise ValueError("NEO4J_URI environment variable is required")

        values = {
            'uri': uri,
            'user': os.getenv('NEO4J_USER', 'neo4j'),
            'password': os.getenv('NEO4J_PASSWORD', ''),
            'database': os.getenv('NEO4J_DATABASE') or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class CypherQLConfig:
    """
    Compiler and execution settings.

    Attributes:
        database: Database name statements run against, None for the default
        vector_default_k: Neighbours fetched from a vector index when the
            request gives no page size
        vector_providers: Provider name -> settings passed to
            genai.vector.encode for phrase-based vector searches
    """
    database: Optional[str] = None
    vector_default_k: int = 4
    vector_providers: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls, **overrides) -> 'CypherQLConfig':
        """
        Create config from CYPHERQL_DATABASE, CYPHERQL_VECTOR_DEFAULT_K and
        CYPHERQL_VECTOR_PROVIDERS (a JSON object).
        """
        values = {
            'database': os.getenv('CYPHERQL_DATABASE') or None,
            'vector_default_k': int(os.getenv('CYPHERQL_VECTOR_DEFAULT_K', '4')),
            'vector_providers': json.loads(os.getenv('CYPHERQL_VECTOR_PROVIDERS', '{}')),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        if values['vector_default_k'] <= 0:
            raise ValueError("CYPHERQL_VECTOR_DEFAULT_K must be a positive integer")
        return cls(**values)
