"""A small interpreter for token-driven state machines.

A state is a named, ordered list of :class:`Rule` objects. Feeding a token to
a state tries each rule in order; the first rule that matches runs its
handler, whose return value decides what happens next:

* ``None``: the token was handled, stay in the current state;
* a state name: move to that state for the next token;
* :class:`Reprocess`: hand the same token to another state right away and
  continue from wherever that state leaves off.

A token no rule matches leaves the state unchanged.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..order_builder import OrderBuilder

__all__ = [
    "RuleKind",
    "Rule",
    "Reprocess",
    "ParseContext",
    "ParserHooks",
    "StateRegistry",
    "StateMachineParser",
    "UnknownStateError",
    "regex",
    "literal",
    "fallthrough",
]

MAX_REPROCESS_DEPTH = 8


@dataclass(frozen=True)
class Reprocess:
    state: str


Transition = Union[None, str, Reprocess]


@dataclass
class ParseContext:
    """Mutable state shared by the handlers of one parse."""

    order: OrderBuilder
    scratch: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Any, ParseContext], Transition]


class RuleKind(str, Enum):
    REGEX = "regex"
    LITERAL = "literal"
    FALLTHROUGH = "fallthrough"


@dataclass(frozen=True)
class Rule:
    kind: RuleKind
    handler: Handler
    pattern: Optional[re.Pattern] = None
    value: Optional[str] = None

    def match(self, token: str) -> Any:
        """Return what the handler receives, or ``None`` when the rule does not apply."""

        if self.kind is RuleKind.REGEX:
            return self.pattern.search(token)
        if self.kind is RuleKind.LITERAL:
            return token if token == self.value else None
        return token

    def describe(self) -> str:
        if self.kind is RuleKind.REGEX:
            return self.pattern.pattern
        if self.kind is RuleKind.LITERAL:
            return self.value
        return "*"


def regex(pattern: str, handler: Handler) -> Rule:
    return Rule(RuleKind.REGEX, handler, pattern=re.compile(pattern, re.IGNORECASE))


def literal(value: str, handler: Handler) -> Rule:
    return Rule(RuleKind.LITERAL, handler, value=value)


def fallthrough(handler: Handler) -> Rule:
    return Rule(RuleKind.FALLTHROUGH, handler)


class UnknownStateError(LookupError):
    pass


class StateRegistry:
    """Named states whose rule lists are built on first use."""

    def __init__(self) -> None:
        self._factories: Dict[str, Callable[[], Sequence[Rule]]] = {}
        self._table: Optional[Dict[str, Tuple[Rule, ...]]] = None

    def state(self, name: str) -> Callable[[Callable[[], Sequence[Rule]]], Callable[[], Sequence[Rule]]]:
        def register(factory: Callable[[], Sequence[Rule]]) -> Callable[[], Sequence[Rule]]:
            if name in self._factories:
                raise ValueError(f"Parser state {name!r} is already registered")
            self._factories[name] = factory
            self._table = None
            return factory

        return register

    def _build_table(self) -> Dict[str, Tuple[Rule, ...]]:
        if self._table is None:
            self._table = {name: tuple(factory()) for name, factory in self._factories.items()}
        return self._table

    def rules(self, name: str) -> Tuple[Rule, ...]:
        try:
            return self._build_table()[name]
        except KeyError:
            raise UnknownStateError(f"Unknown parser state: {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    @property
    def names(self) -> List[str]:
        return sorted(self._factories)


@dataclass
class ParserHooks:
    """Diagnostic callbacks; return values are ignored."""

    on_token: Optional[Callable[[str, str], None]] = None
    on_state_change: Optional[Callable[[str, str], None]] = None
    on_match_attempted: Optional[Callable[[str, str, bool], None]] = None


class StateMachineParser:
    def __init__(self, registry: StateRegistry, initial_state: str, hooks: Optional[ParserHooks] = None) -> None:
        registry.rules(initial_state)
        self.registry = registry
        self.initial_state = initial_state
        self.hooks = hooks or ParserHooks()

    def step(self, state: str, token: str, context: ParseContext, _depth: int = 0) -> str:
        """Feed ``token`` to ``state`` and return the state for the next token."""

        on_match_attempted = self.hooks.on_match_attempted
        for rule in self.registry.rules(state):
            matched = rule.match(token)
            if on_match_attempted:
                on_match_attempted(token, rule.describe(), matched is not None)
            if matched is None:
                continue

            result = rule.handler(matched, context)
            if result is None:
                return state
            if isinstance(result, Reprocess):
                if _depth >= MAX_REPROCESS_DEPTH:
                    raise UnknownStateError(f"Token {token!r} was reprocessed too many times (last state {result.state!r})")
                return self.step(result.state, token, context, _depth + 1)
            self.registry.rules(result)
            return result
        return state

    def run(self, tokens: Iterable[str], context: ParseContext) -> str:
        """Feed every token in order and return the final state name."""

        current = self.initial_state
        for token in tokens:
            if self.hooks.on_token:
                self.hooks.on_token(token, current)
            following = self.step(current, token, context)
            if following != current:
                if self.hooks.on_state_change:
                    self.hooks.on_state_change(current, following)
                current = following
        return current
