"""Tests for context sanitization."""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from relay.core.agent.sanitizer import (
    CIRCULAR_SENTINEL,
    CONTEXT_PLACEHOLDER,
    render_context,
    render_context_safe,
    sanitize,
)
from relay.core.agent.types import HandlerType, SanitizationError


class TestSanitize:
    """Test the JSON-safe tree conversion."""

    def test_primitives_pass_through(self):
        assert sanitize("text") == "text"
        assert sanitize(3) == 3
        assert sanitize(1.5) == 1.5
        assert sanitize(True) is True
        assert sanitize(None) is None

    def test_self_reference_becomes_sentinel(self):
        """A dict that contains itself is cut at the second visit."""
        ctx = {"userId": "u1"}
        ctx["self"] = ctx

        result = sanitize(ctx)

        assert result == {"userId": "u1", "self": CIRCULAR_SENTINEL}

    def test_shared_reference_marked_on_second_visit(self):
        shared = {"a": 1}

        result = sanitize({"first": shared, "second": shared})

        assert result["first"] == {"a": 1}
        assert result["second"] == CIRCULAR_SENTINEL

    def test_internal_keys_dropped(self):
        result = sanitize({"_sa_instance_state": object(), "$id": 1, "name": "x"})

        assert result == {"name": "x"}

    def test_callables_and_non_string_keys_dropped(self):
        result = sanitize({"fn": lambda: 1, 1: "one", "ok": "yes"})

        assert result == {"ok": "yes"}

    def test_scalar_conversions(self):
        stamp = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        uid = UUID("12345678-1234-5678-1234-567812345678")

        result = sanitize({
            "when": stamp,
            "amount": Decimal("19.99"),
            "id": uid,
            "agent": HandlerType.ORDER,
        })

        assert result == {
            "when": "2024-01-15T10:30:00+00:00",
            "amount": 19.99,
            "id": "12345678-1234-5678-1234-567812345678",
            "agent": "order",
        }

    def test_objects_treated_as_mappings(self):
        @dataclass
        class Row:
            role: str
            content: str

        result = sanitize([Row("user", "hi"), ("a", "b")])

        assert result == [{"role": "user", "content": "hi"}, ["a", "b"]]

    def test_input_not_modified(self):
        ctx = {"_private": 1, "items": [1, 2]}

        sanitize(ctx)

        assert ctx == {"_private": 1, "items": [1, 2]}


class TestRenderContext:
    """Test rendering for system prompts."""

    def test_renders_indented_json(self):
        text = render_context({"userId": "u1", "userTier": "premium"})

        assert json.loads(text) == {"userId": "u1", "userTier": "premium"}
        assert "\n  " in text

    def test_unencodable_value_raises(self):
        with pytest.raises(SanitizationError):
            render_context({"blob": b"\x00\x01"})

    def test_safe_render_uses_placeholder(self):
        assert render_context_safe({"blob": b"\x00"}) == CONTEXT_PLACEHOLDER

    def test_safe_render_with_cycle(self):
        ctx = {"conversationId": "c1"}
        ctx["loop"] = [ctx]

        text = render_context_safe(ctx)

        assert json.loads(text) == {"conversationId": "c1", "loop": [CIRCULAR_SENTINEL]}
