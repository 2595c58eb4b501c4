"""Resolve a StopSuite completion event to a Shopify order id.

The two systems share no durable key, so resolution is an ordered chain of
strategies; the first that yields a numeric order id wins:

1. ExplicitField  - event.external_reference
2. NestedField    - event.stop.external_reference
3. PatternMatch   - "shopify_<digits>" inside any driver-action notes
4. NotFound
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from dispatch_sync.models import CompletionEvent

REFERENCE_PREFIX = "shopify_"
_NOTES_PATTERN = re.compile(r"shopify_(\d+)")


class Strategy(str, Enum):
    EXPLICIT_FIELD = "explicit_field"
    NESTED_FIELD = "nested_field"
    PATTERN_MATCH = "pattern_match"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    strategy: Strategy
    order_id: str | None = None

    @property
    def found(self) -> bool:
        return self.order_id is not None


NOT_FOUND = Resolution(Strategy.NOT_FOUND)

Resolver = Callable[[CompletionEvent], Resolution | None]


def normalize_reference(value: str | None) -> str | None:
    """Strip the shopify_ prefix; anything non-numeric is not a reference."""
    if not value:
        return None
    value = value.strip()
    if value.startswith(REFERENCE_PREFIX):
        value = value[len(REFERENCE_PREFIX):]
    return value if value.isdigit() else None


def explicit_field(event: CompletionEvent) -> Resolution | None:
    order_id = normalize_reference(event.external_reference)
    return Resolution(Strategy.EXPLICIT_FIELD, order_id) if order_id else None


def nested_field(event: CompletionEvent) -> Resolution | None:
    if event.stop is None:
        return None
    order_id = normalize_reference(event.stop.external_reference)
    return Resolution(Strategy.NESTED_FIELD, order_id) if order_id else None


def pattern_match(event: CompletionEvent) -> Resolution | None:
    if event.stop is None:
        return None
    for action in event.stop.driver_actions:
        match = _NOTES_PATTERN.search(action.notes or "")
        if match:
            return Resolution(Strategy.PATTERN_MATCH, match.group(1))
    return None


DEFAULT_RESOLVERS: tuple[Resolver, ...] = (explicit_field, nested_field, pattern_match)


def resolve_order_reference(
    event: CompletionEvent,
    resolvers: tuple[Resolver, ...] = DEFAULT_RESOLVERS,
) -> Resolution:
    for resolver in resolvers:
        resolution = resolver(event)
        if resolution is not None:
            return resolution
    return NOT_FOUND
