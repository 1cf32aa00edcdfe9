"""Validation layer.

Turns the raw text of one config file into an ordered list of schema-valid
items, or rejects the whole file. Nothing here touches watcher state.
"""

from pyconfwatch.validation.parse import parse_documents
from pyconfwatch.validation.pipeline import ValidationPipeline
from pyconfwatch.validation.schema import SchemaValidator

__all__ = ["SchemaValidator", "ValidationPipeline", "parse_documents"]
