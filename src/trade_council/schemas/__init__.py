"""
Packaged JSON schemas for provider answers.

``trading_analysis`` describes the object every provider must return for one
asset. Schemas ship as package data and are read through importlib.resources
so they resolve from wheels and zip imports alike.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import Draft7Validator

TRADING_ANALYSIS = "trading_analysis"

_NAME = re.compile(r"^[a-z][a-z0-9_]*$")


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict[str, Any]:
    """Return the parsed schema called *name*.

    Raises:
        ValueError: If *name* is not a plain schema identifier or the file
            does not hold a JSON object.
        FileNotFoundError: If no such schema is packaged.
    """
    if not _NAME.match(name):
        raise ValueError(f"Invalid schema name: {name!r}")
    resource = resources.files(__name__).joinpath(f"{name}.json")
    if not resource.is_file():
        raise FileNotFoundError(f"Schema not found: {name}")
    schema = json.loads(resource.read_text(encoding="utf-8"))
    if not isinstance(schema, dict):
        raise ValueError(f"Schema {name!r} is not a JSON object")
    return schema


@lru_cache(maxsize=None)
def get_validator(name: str) -> Draft7Validator:
    """Checked Draft 7 validator for the schema called *name*."""
    schema = load_schema(name)
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)


__all__ = ["TRADING_ANALYSIS", "get_validator", "load_schema"]
