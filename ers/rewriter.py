"""
Core rewriter module for symbolic expression transformation.

ERS - Expression Rewriting System

This module provides pattern matching, binding and tree rewriting over the
expression model in ers.expression:

    match(subject, pattern)           -> Bindings or NoMatch
    bind(template, bindings)          -> Expression
    replace_once(subject, pat, tmpl)  -> Expression or None
    replace_all(subject, pat, tmpl)   -> (Expression, changed)
    replace_until_fixpoint(...)       -> Expression, or RewriteLimitError

Sequence wildcards (`__`, `___`, `x__`, `x___`) are resolved by
leftmost-first backtracking: the leftmost one takes the shortest run
that lets the rest of the pattern match. Matching is exponential in the
worst case for adjacent sequence wildcards; patterns are expected to be
small.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, Union

from .expression import (
    Atom, Expression, List,
    is_blank, is_nullable, is_pattern, is_sequence,
)

logger = logging.getLogger(__name__)

# Maximum replace_all passes before replace_until_fixpoint gives up
DEFAULT_MAX_ITERATIONS = 1000

# Head atom of the list returned when a sequence-bound atom is the whole template
SEQUENCE_HEAD = "Sequence"


# ============================================================
# Binding values
# ============================================================

@dataclass(frozen=True)
class SequenceBinding:
    """
    A run of consecutive subject elements bound to a sequence variable.

    Produced for `x__` and `x___` patterns. May be empty (only for `x___`).
    """

    items: Tuple[Expression, ...] = ()

    def __init__(self, items=()):
        object.__setattr__(self, "items", tuple(items))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Expression]:
        return iter(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def __str__(self) -> str:
        return "[" + " ".join(str(item) for item in self.items) + "]"


BindingValue = Union[Expression, SequenceBinding]
BindingsType = Union[Dict[str, BindingValue], str]  # name -> value, or "failed"


# ============================================================
# Bindings Class - Dict-like interface for match results
# ============================================================

class Bindings:
    """
    Dict-like wrapper for pattern matching bindings.

        if bindings := match(subject, pattern):
            print(bindings["a"], bindings.get("b"))

    Bindings objects are always truthy, even when nothing was bound
    (a pattern without variables). Failed matches return NoMatch, which
    is falsy.

    Examples:
        bindings = match(E("(1 2 3)"), E("(x__ y_)"))
        bindings["x"]              # => SequenceBinding((1, 2))
        bindings["y"]              # => Atom("3")
        bindings.is_sequence("x")  # => True
    """

    __slots__ = ('_dict',)

    def __init__(self, mapping: Optional[Mapping[str, BindingValue]] = None):
        self._dict = dict(mapping or {})

    def __bool__(self) -> bool:
        return True

    def __getitem__(self, key: str) -> BindingValue:
        return self._dict[key]

    def get(self, key: str, default=None):
        """Get a bound value with optional default."""
        return self._dict.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._dict

    def keys(self):
        return self._dict.keys()

    def values(self):
        return self._dict.values()

    def items(self):
        return self._dict.items()

    def __iter__(self):
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}: {value}" for name, value in self._dict.items())
        return f"Bindings({{{inner}}})"

    def __eq__(self, other):
        if isinstance(other, Bindings):
            return self._dict == other._dict
        return False

    def is_sequence(self, key: str) -> bool:
        """Check if a name is bound to a sequence rather than a single value."""
        return isinstance(self._dict.get(key), SequenceBinding)

    def to_dict(self) -> Dict[str, BindingValue]:
        """Convert to a plain dictionary."""
        return self._dict.copy()


class _NoMatch:
    """
    Singleton representing a failed pattern match.

    NoMatch is falsy, allowing natural use in conditionals:

        if bindings := match(subject, pattern):
            # matched
        else:
            # NoMatch
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoMatch"

    def __getitem__(self, key: str):
        raise KeyError(f"NoMatch has no binding for '{key}'")

    def get(self, key: str, default=None):
        return default

    def __contains__(self, key: str) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self):
        return iter([])


# Singleton instance
NoMatch = _NoMatch()


def wrap_bindings(result: BindingsType) -> Union[Bindings, _NoMatch]:
    """
    Convert internal bindings representation to Bindings or NoMatch.

    Args:
        result: Either a dict of name -> value or "failed"
    """
    if result == "failed":
        return NoMatch
    return Bindings(result)


class RewriteLimitError(RuntimeError):
    """
    Raised when fixpoint rewriting is still changing the tree after the
    maximum number of passes.

    No partial result is attached; callers retry with a larger bound or
    a different rule.
    """

    def __init__(self, max_iterations: int):
        super().__init__(
            f"rewrite did not converge within {max_iterations} iterations"
        )
        self.max_iterations = max_iterations


# ============================================================
# Pattern Matching
# ============================================================

def extend_bindings(
    name: str, value: BindingValue, bindings: BindingsType, strict: bool = False
) -> BindingsType:
    """
    Return a copy of bindings with name bound to value.

    A name that is already bound is overwritten, unless strict is set,
    in which case the old and new values must be equal.

    Returns:
        Extended bindings, or "failed" on a strict conflict
    """
    if bindings == "failed":
        return "failed"

    if strict and name in bindings and bindings[name] != value:
        return "failed"

    extended = dict(bindings)
    extended[name] = value
    return extended


def match_expression(
    exp: Expression, pat: Expression, bindings: BindingsType, strict: bool = False
) -> BindingsType:
    """
    Match a single subject node against a single pattern node.

    Case table:
        any wildcard (_ __ ___)    - matches anything, binds nothing
        any variable (x_ x__ x___) - matches anything, binds x to the node
        Atom vs Atom               - equal values
        List vs List               - sequence match over the children
        anything else              - fails

    Returns:
        Updated bindings on success, "failed" on failure
    """
    if bindings == "failed":
        return "failed"

    if is_blank(pat):
        return bindings

    if is_pattern(pat):
        return extend_bindings(pat.name, exp, bindings, strict)

    if isinstance(pat, Atom):
        if isinstance(exp, Atom) and exp.value == pat.value:
            return bindings
        return "failed"

    if isinstance(pat, List) and isinstance(exp, List):
        return match_sequence(exp.children, pat.children, bindings, strict)

    return "failed"


def match_sequence(
    exps: Tuple[Expression, ...],
    pats: Tuple[Expression, ...],
    bindings: BindingsType,
    strict: bool = False,
) -> BindingsType:
    """
    Match a run of subject children against a run of pattern children.

    Handles sequence wildcards anywhere in the pattern by backtracking over
    their run length, shortest first.
    """
    if bindings == "failed":
        return "failed"
    return _match_from(exps, 0, pats, 0, bindings, strict)


def _mandatory_length(pats: Tuple[Expression, ...], start: int) -> int:
    """Minimum number of subject elements needed by pats[start:]."""
    return sum(1 for p in pats[start:] if not is_nullable(p))


def _match_from(
    exps: Tuple[Expression, ...], ei: int,
    pats: Tuple[Expression, ...], pi: int,
    bindings: BindingsType, strict: bool,
) -> BindingsType:
    # Single-element heads are consumed iteratively; only sequence heads recurse
    while pi < len(pats):
        head = pats[pi]

        if is_sequence(head):
            remaining = len(exps) - ei
            shortest = 0 if is_nullable(head) else 1
            longest = remaining - _mandatory_length(pats, pi + 1)

            for length in range(shortest, longest + 1):
                candidate = bindings
                if is_pattern(head):
                    run = SequenceBinding(exps[ei:ei + length])
                    candidate = extend_bindings(head.name, run, bindings, strict)
                    if candidate == "failed":
                        continue
                result = _match_from(exps, ei + length, pats, pi + 1, candidate, strict)
                if result != "failed":
                    return result
            return "failed"

        if ei == len(exps):
            return "failed"

        bindings = match_expression(exps[ei], head, bindings, strict)
        if bindings == "failed":
            return "failed"
        ei += 1
        pi += 1

    return bindings if ei == len(exps) else "failed"


def match(
    subject: Expression, pattern: Expression, strict: bool = False
) -> Union[Bindings, _NoMatch]:
    """
    Match a pattern against a subject expression.

    Args:
        subject: The expression to match against
        pattern: The pattern, possibly containing wildcards and variables
        strict: If True, a variable occurring more than once must bind
            equal values. By default a later occurrence silently replaces
            the earlier binding.

    Returns:
        Bindings (truthy) on success, NoMatch (falsy) on failure

    Example:
        bindings = match(E("(x (y z))"), E("(_ a_)"))
        bindings["a"]  # => List((Atom("y"), Atom("z")))
    """
    return wrap_bindings(match_expression(subject, pattern, {}, strict))


# ============================================================
# Binding
# ============================================================

def _as_mapping(bindings) -> Mapping[str, BindingValue]:
    if isinstance(bindings, _NoMatch):
        raise TypeError("cannot bind a template against a failed match")
    if isinstance(bindings, Bindings):
        return bindings.to_dict()
    return bindings


def bind(template: Expression, bindings: Any) -> Expression:
    """
    Substitute bindings into a template.

    Template rules:
        atom bound to a value     - replaced by the value
        atom bound to a sequence  - its elements are spliced into the
                                    enclosing list
        unbound atom              - kept as-is
        list                      - children bound independently
        wildcard / variable       - kept as-is

    A sequence-bound atom that is the whole template cannot be spliced
    anywhere, so it becomes (Sequence item...).

    Args:
        template: The template to instantiate
        bindings: Bindings from match(), or a plain dict of name -> value

    Returns:
        A new expression; neither argument is modified

    Example:
        bindings = match(E("(f 1 2)"), E("(f xs__)"))
        bind(E("(g xs)"), bindings)  # => (g 1 2)
    """
    return _bind(template, _as_mapping(bindings))


def _bind(template: Expression, bindings: Mapping[str, BindingValue]) -> Expression:
    if isinstance(template, Atom):
        value = bindings.get(template.value)
        if value is None:
            return template
        if isinstance(value, SequenceBinding):
            return List((Atom(SEQUENCE_HEAD),) + value.items)
        return value

    if isinstance(template, List):
        return List(bind_compound(template.children, bindings))

    return template


def bind_compound(
    children: Tuple[Expression, ...], bindings: Mapping[str, BindingValue]
) -> Tuple[Expression, ...]:
    """
    Bind the children of a template list, splicing sequence bindings.

    When a child is an atom bound to a SequenceBinding, the bound elements
    replace it in place rather than being inserted as one element.
    """
    result = []
    for child in children:
        if isinstance(child, Atom):
            value = bindings.get(child.value)
            if isinstance(value, SequenceBinding):
                result.extend(value.items)
                continue
        result.append(_bind(child, bindings))
    return tuple(result)


# ============================================================
# Rewriting
# ============================================================

def replace_once(
    subject: Expression, pattern: Expression, template: Expression,
    strict: bool = False,
) -> Optional[Expression]:
    """
    Rewrite the subject if the pattern matches at its root.

    Example:
        replace_once(E("(x z)"), E("(x a_)"), E("(y a)"))  # => (y z)

    Returns:
        The bound template, or None if the root does not match
    """
    bindings = match(subject, pattern, strict)
    if not bindings:
        return None
    return bind(template, bindings)


def replace_all(
    subject: Expression, pattern: Expression, template: Expression,
    strict: bool = False,
) -> Tuple[Expression, bool]:
    """
    Rewrite every outermost subtree the pattern matches, in one pass.

    A node that matches is replaced and its replacement is not visited
    again. A list that does not match is rebuilt from its processed
    children; unchanged subtrees are returned as-is.

    Example:
        replace_all(E("((x r) (x s))"), E("(x a_)"), E("(y a)"))
        # => ((y r) (y s)), True

    Returns:
        (result, changed) where changed reports whether any replacement
        happened anywhere in the tree
    """
    bindings = match(subject, pattern, strict)
    if bindings:
        return bind(template, bindings), True

    if not isinstance(subject, List):
        return subject, False

    children = []
    changed = False
    for child in subject.children:
        new_child, replaced = replace_all(child, pattern, template, strict)
        children.append(new_child)
        changed = changed or replaced

    if not changed:
        return subject, False
    return List(children), True


def replace_until_fixpoint(
    subject: Expression, pattern: Expression, template: Expression,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    strict: bool = False,
) -> Expression:
    """
    Apply replace_all repeatedly until a pass changes nothing.

    Example:
        replace_until_fixpoint(E("(x (x (x z)))"), E("(x a_)"), E("(y a)"))
        # => (y (y (y z)))

    Args:
        max_iterations: Maximum number of passes (default: 1000)

    Raises:
        RewriteLimitError: If every one of max_iterations passes changed
            the tree
        ValueError: If max_iterations is less than 1
    """
    result, _ = _fixpoint(subject, pattern, template, max_iterations, strict)
    return result


def _fixpoint(
    subject: Expression, pattern: Expression, template: Expression,
    max_iterations: int, strict: bool,
    on_step: Optional[Callable[[int, Expression, Expression], None]] = None,
) -> Tuple[Expression, int]:
    """Run fixpoint rewriting, reporting each changing pass to on_step."""
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")

    current = subject
    for iteration in range(1, max_iterations + 1):
        new_exp, changed = replace_all(current, pattern, template, strict)
        if not changed:
            logger.debug("fixpoint reached after %d pass(es)", iteration)
            return current, iteration - 1
        logger.debug("pass %d rewrote the tree", iteration)
        if on_step is not None:
            on_step(iteration, current, new_exp)
        current = new_exp

    logger.debug("no fixpoint within %d passes", max_iterations)
    raise RewriteLimitError(max_iterations)


# ============================================================
# Rewriter Factory
# ============================================================

def rewriter(
    pattern: Expression,
    template: Expression,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    strict: bool = False,
) -> Callable[[Expression], Expression]:
    """
    Create a rewriter function for a single pattern => template rule.

    The returned function rewrites its argument to a fixpoint.

    Example:
        simplify = rewriter(E("(x a_)"), E("(y a)"))
        simplify(E("(x (x z))"))  # => (y (y z))
    """
    def simplify(exp: Expression) -> Expression:
        """Rewrite an expression until the rule no longer applies."""
        return replace_until_fixpoint(exp, pattern, template, max_iterations, strict)

    return simplify
