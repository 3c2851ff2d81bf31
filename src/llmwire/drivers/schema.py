"""
Tool schema normalization.

Providers accept different subsets of JSON Schema. These helpers turn a
tool's declared input schema into the form a given provider accepts.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List

_ALWAYS_DROPPED = ("$schema", "$id", "$comment")
_GEMINI_DROPPED = ("additionalProperties", "default", "examples", "$defs", "definitions")
_COMBINATORS = ("anyOf", "oneOf", "allOf")


def normalize_schema_for_provider(schema: Dict[str, Any], provider: str) -> Dict[str, Any]:
    """Return a provider-compatible deep copy of ``schema``."""
    gemini = provider in ("gemini", "google")
    return _normalize(copy.deepcopy(schema), gemini)


def _normalize(node: Any, gemini: bool) -> Any:
    if isinstance(node, list):
        return [_normalize(item, gemini) for item in node]
    if not isinstance(node, dict):
        return node

    for key in _ALWAYS_DROPPED:
        node.pop(key, None)

    if gemini:
        for key in _GEMINI_DROPPED:
            node.pop(key, None)
        node = _collapse_nullable(node)

    props = node.get("properties")
    if isinstance(props, dict):
        node["properties"] = {name: _normalize(sub, gemini) for name, sub in props.items()}
    if "items" in node:
        node["items"] = _normalize(node["items"], gemini)
    for key in _COMBINATORS:
        if isinstance(node.get(key), list):
            node[key] = [_normalize(sub, gemini) for sub in node[key]]
    return node


def _collapse_nullable(node: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite ``[X, null]`` unions as ``X`` with ``nullable: true``."""
    node_type = node.get("type")
    if isinstance(node_type, list):
        non_null = [t for t in node_type if t != "null"]
        if len(non_null) < len(node_type):
            node["nullable"] = True
        node["type"] = non_null[0] if len(non_null) == 1 else (non_null or ["string"])[0]

    for key in ("anyOf", "oneOf"):
        variants = node.get(key)
        if not isinstance(variants, list):
            continue
        non_null: List[Any] = [
            v for v in variants if not (isinstance(v, dict) and v.get("type") == "null")
        ]
        if len(non_null) == 1 and len(non_null) < len(variants):
            merged = {k: v for k, v in node.items() if k != key}
            merged.update(non_null[0])
            merged["nullable"] = True
            return merged
    return node


def enforce_strict_object_schema(schema: Any) -> Any:
    """
    Force every object node into strict mode.

    Object nodes (``type: object`` or anything with ``properties``) get
    ``additionalProperties: false`` and ``required`` set to exactly their
    property keys. Nested ``properties``, ``items``, ``anyOf``, ``oneOf``
    and ``allOf`` are handled recursively.
    """
    if isinstance(schema, list):
        return [enforce_strict_object_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    props = schema.get("properties")
    is_object = schema.get("type") == "object" or isinstance(props, dict)
    if isinstance(props, dict):
        schema["properties"] = {
            name: enforce_strict_object_schema(sub) for name, sub in props.items()
        }
    if is_object:
        if not isinstance(props, dict):
            schema["properties"] = {}
        schema["additionalProperties"] = False
        schema["required"] = list(schema["properties"].keys())

    if "items" in schema:
        schema["items"] = enforce_strict_object_schema(schema["items"])
    for key in _COMBINATORS:
        if isinstance(schema.get(key), list):
            schema[key] = [enforce_strict_object_schema(sub) for sub in schema[key]]
    return schema
