"""Embedding column type: pgvector on PostgreSQL, JSON elsewhere."""

import json

import numpy as np
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy import TypeDecorator

DEFAULT_DIMENSIONS = 1536


class EmbeddingVector(TypeDecorator):
    """Fixed-dimension float vector.

    PostgreSQL stores it in a pgvector ``vector(n)`` column so similarity can
    be ranked in SQL. Other dialects keep a JSON array and similarity is
    computed in Python.
    """

    impl = sa.JSON
    cache_ok = True

    class comparator_factory(TypeDecorator.Comparator):
        """Expose pgvector's cosine distance operator on the decorated column."""

        def cosine_distance(self, other):
            return self.op("<=>", return_type=sa.Float)(other)

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS) -> None:
        super().__init__()
        self.dimensions = dimensions

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector(self.dimensions))
        return dialect.type_descriptor(sa.JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        values = [float(x) for x in value]
        if len(values) != self.dimensions:
            raise ValueError(
                f"expected {self.dimensions} dimensions, got {len(values)}"
            )
        return values

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, str):
            value = json.loads(value)
        return [float(x) for x in np.asarray(value, dtype=np.float64)]
