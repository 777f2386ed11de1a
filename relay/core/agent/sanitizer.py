"""
Context Sanitization Module

Turns arbitrary request context into a JSON-safe tree before it is
embedded in an agent's system prompt:
- Cycles are cut (revisited objects become "[Circular]")
- ORM/runtime bookkeeping keys ("_..." / "$...") are dropped
- Callables and non-string keys are dropped
- Dates, decimals, UUIDs and enums become their JSON equivalents
"""

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from relay.core.agent.types import SanitizationError

logger = logging.getLogger(__name__)


# ==================================
# Configuration
# ==================================

CIRCULAR_SENTINEL = "[Circular]"

# Key prefixes used by ORMs and runtimes for bookkeeping fields
INTERNAL_KEY_PREFIXES = ("_", "$")

# Shown to the model when the context cannot be rendered at all
CONTEXT_PLACEHOLDER = "Context unavailable due to serialization error"

_PRIMITIVES = (str, int, float, bool, type(None))


def sanitize(value: Any) -> Any:
    """
    Convert a value into a JSON-safe tree.

    Every container or object is visited at most once. A second visit
    (a cycle, or the same object reachable twice) yields the
    "[Circular]" sentinel instead of recursing.

    Args:
        value: Any Python value

    Returns:
        Sanitized copy. The input is not modified.
    """
    return _sanitize(value, set())


def _sanitize(value: Any, seen: set[int]) -> Any:
    if isinstance(value, _PRIMITIVES):
        return value

    # Scalar types with an obvious JSON form
    if isinstance(value, Enum):
        return _sanitize(value.value, seen)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)

    if id(value) in seen:
        return CIRCULAR_SENTINEL
    seen.add(id(value))

    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize(item, seen) for item in value]

    if isinstance(value, Mapping):
        return _sanitize_items(value.items(), seen)

    # Plain objects (dataclasses, ORM rows, ...) are treated as mappings
    # of their attributes. SQLAlchemy's _sa_instance_state goes with the
    # internal-prefix rule.
    if hasattr(value, "__dict__") and not callable(value):
        return _sanitize_items(vars(value).items(), seen)

    # Anything else is left for the JSON encoder to reject
    return value


def _sanitize_items(items: Any, seen: set[int]) -> dict:
    cleaned = {}
    for key, item in items:
        if not isinstance(key, str):
            continue
        if key.startswith(INTERNAL_KEY_PREFIXES):
            continue
        if callable(item):
            continue
        cleaned[key] = _sanitize(item, seen)
    return cleaned


def render_context(context: Any) -> str:
    """
    Render context as indented JSON for a system prompt.

    Args:
        context: Request context (any value)

    Returns:
        JSON string

    Raises:
        SanitizationError: If the sanitized tree still cannot be encoded
    """
    try:
        return json.dumps(sanitize(context), indent=2)
    except (TypeError, ValueError, RecursionError) as e:
        raise SanitizationError(f"Context could not be serialized: {e}") from e


def render_context_safe(context: Any) -> str:
    """Render context, falling back to a fixed placeholder on failure."""
    try:
        return render_context(context)
    except SanitizationError as e:
        logger.warning(f"Context rendering failed, using placeholder: {e}")
        return CONTEXT_PLACEHOLDER
