"""
Bootstrap tooling for an Elephant content repository.

- schemas: register and activate the local schema catalog
- seed: create baseline documents through the write API
"""

from .schemas import SchemaLoadReport, load_schemas
from .seed import DocumentSeeder, SeedReport
from .twirp import RemoteProcedureError, TwirpClient

__all__ = [
    "DocumentSeeder",
    "RemoteProcedureError",
    "SchemaLoadReport",
    "SeedReport",
    "TwirpClient",
    "load_schemas",
]
