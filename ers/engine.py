"""
Reader, Rule and tracing facilities for ERS

ERS - Expression Rewriting System

This module turns S-expression text into expression trees and provides a
single-rule object that can be loaded from a one-line DSL.

S-expression syntax:
    (f x (g y))    - lists, whitespace separated, arbitrarily nested
    x              - atoms: any run of characters without whitespace,
                     parentheses or underscores
    _  __  ___     - unnamed wildcards (one / one or more / zero or more)
    x_ x__ x___    - named variables with the same suffixes

Rule syntax:
    pattern => template
    @rule-name: pattern => template
    @rule-name "Description": pattern => template
    The arrow is the first `=>` outside parentheses; inside a list `=>` is
    an ordinary atom.

    Examples:
    @rename: (x a_) => (y a)
    @flatten "Splice inner list": (list (list xs___) ys___) => (list xs ys)

Tracing:
    Use Rule.simplify(expr, trace=True) to see every rewriting pass.
"""

import re
from enum import Enum
from typing import Dict, List as ListType, Optional, Tuple, Union

from .expression import (
    Atom, Blank, BlankNullSeq, BlankSeq, Expression, List,
    Pattern, PatternNullSeq, PatternSeq, format_sexpr,
)
from .rewriter import (
    DEFAULT_MAX_ITERATIONS, Bindings, _NoMatch,
    _fixpoint, match, replace_all, replace_once,
)


# ============================================================
# Parse errors
# ============================================================

class ErrorCode(Enum):
    """Kinds of syntax error reported by the reader."""

    UNBALANCED_PARENS = "unbalanced parentheses"
    EMPTY_INPUT = "empty input"
    INVALID_PATTERN = "invalid pattern"
    TRAILING_INPUT = "unexpected input after expression"
    INTERNAL = "internal parser error"


class ParseError(ValueError):
    """
    Raised when S-expression text cannot be read.

    Attributes:
        code: The ErrorCode describing the failure
        position: Character offset where the failure was detected
    """

    def __init__(self, code: ErrorCode, position: int = 0):
        super().__init__(f"{code.value} at position {position}")
        self.code = code
        self.position = position


# ============================================================
# Reader
# ============================================================

_TERMINATORS = "()"
_BLANKS = {1: Blank, 2: BlankSeq, 3: BlankNullSeq}
_PATTERNS = {1: Pattern, 2: PatternSeq, 3: PatternNullSeq}


class _Reader:
    """Recursive-descent reader over a string."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> Optional[str]:
        return None if self.at_end() else self.text[self.pos]

    def at_terminator(self) -> bool:
        c = self.peek()
        return c is None or c.isspace() or c in _TERMINATORS

    def skip_whitespace(self):
        while not self.at_end() and self.text[self.pos].isspace():
            self.pos += 1

    def read_expression(self) -> Expression:
        # expression ::= '(' expression* ')' | atom | blank | pattern
        c = self.peek()
        if c is None:
            raise ParseError(ErrorCode.EMPTY_INPUT, self.pos)
        if c == '(':
            return self.read_list()
        if c == ')':
            raise ParseError(ErrorCode.UNBALANCED_PARENS, self.pos)
        return self.read_atomic()

    def read_list(self) -> List:
        self.pos += 1  # '('
        children = []
        while True:
            self.skip_whitespace()
            c = self.peek()
            if c is None:
                raise ParseError(ErrorCode.UNBALANCED_PARENS, self.pos)
            if c == ')':
                self.pos += 1
                return List(children)
            children.append(self.read_expression())

    def read_atomic(self) -> Expression:
        start = self.pos
        while not self.at_terminator() and self.text[self.pos] != '_':
            self.pos += 1
        name = self.text[start:self.pos]

        if self.peek() == '_':
            return self.read_marker(name)

        if not name:
            raise ParseError(ErrorCode.INTERNAL, self.pos)
        return Atom(name)

    def read_marker(self, name: str) -> Expression:
        # A run of one to three underscores that must end the token
        start = self.pos
        while self.peek() == '_':
            self.pos += 1
        count = self.pos - start

        if count > 3 or not self.at_terminator():
            raise ParseError(ErrorCode.INVALID_PATTERN, start)

        if name:
            return _PATTERNS[count](name)
        return _BLANKS[count]()


def parse_sexpr(s: str) -> Expression:
    """
    Parse an S-expression string into an expression tree.

    Exactly one expression is expected; surrounding whitespace is ignored.

    Examples:
        "(x (y z))" -> List((Atom("x"), List((Atom("y"), Atom("z")))))
        "(f a_ ___)" -> List((Atom("f"), Pattern("a"), BlankNullSeq()))

    Raises:
        ParseError: with code UNBALANCED_PARENS, EMPTY_INPUT,
            INVALID_PATTERN or TRAILING_INPUT
    """
    reader = _Reader(s)
    reader.skip_whitespace()
    expr = reader.read_expression()
    reader.skip_whitespace()
    if not reader.at_end():
        if reader.peek() == ')':
            raise ParseError(ErrorCode.UNBALANCED_PARENS, reader.pos)
        raise ParseError(ErrorCode.TRAILING_INPUT, reader.pos)
    return expr


def parse_all(s: str) -> ListType[Expression]:
    """
    Parse every top-level expression in a string.

    Examples:
        "a (b c)" -> [Atom("a"), List((Atom("b"), Atom("c")))]
        "   "     -> []
    """
    reader = _Reader(s)
    exprs = []
    reader.skip_whitespace()
    while not reader.at_end():
        exprs.append(reader.read_expression())
        reader.skip_whitespace()
    return exprs


# ============================================================
# Expression Builder
# ============================================================

class _ExprBuilder:
    """
    Expression builder for ERS.

    Examples:
        from ers import E

        # Parse s-expression string
        expr = E("(x (y z))")

        # Build programmatically
        expr = E.list("x", E.list("y", "z"))

        # Patterns
        pat = E.list("f", E.var("a"), E.var("rest", "null_seq"))  # (f a_ rest___)
    """

    _KINDS = {"single": 1, "seq": 2, "null_seq": 3}

    def __call__(self, s: str) -> Expression:
        """
        Parse an s-expression string.

        Examples:
            E("(x a_)") -> List((Atom("x"), Pattern("a")))
        """
        return parse_sexpr(s)

    def atom(self, value: str) -> Atom:
        """Create an atom."""
        return Atom(value)

    def atoms(self, *values: str) -> Tuple[Atom, ...]:
        """
        Create multiple atoms for unpacking.

        Example:
            x, y = E.atoms("x", "y")
        """
        return tuple(Atom(v) for v in values)

    def list(self, *items: Union[str, Expression]) -> List:
        """
        Build a list. Plain strings become atoms and must be valid tokens.

        Example:
            E.list("+", "x", E.list("*", "2", "y")) -> (+ x (* 2 y))
        """
        return List(Atom(i) if isinstance(i, str) else i for i in items)

    def blank(self, kind: str = "single") -> Expression:
        """Create an unnamed wildcard: kind is single, seq or null_seq."""
        return _BLANKS[self._count(kind)]()

    def var(self, name: str, kind: str = "single") -> Expression:
        """
        Create a named variable: kind is single, seq or null_seq.

        Example:
            E.var("xs", "seq") -> xs__
        """
        return _PATTERNS[self._count(kind)](name)

    def _count(self, kind: str) -> int:
        if kind not in self._KINDS:
            raise ValueError(f"Unknown wildcard kind: {kind}. "
                             f"Valid options: {', '.join(self._KINDS)}")
        return self._KINDS[kind]

    def __repr__(self) -> str:
        return "E (expression builder)"


# Singleton instance
E = _ExprBuilder()


# ============================================================
# Tracing
# ============================================================

class RewriteStep:
    """One rewriting pass that changed the tree."""

    def __init__(self, iteration: int, before: Expression, after: Expression):
        self.iteration = iteration
        self.before = before
        self.after = after

    def __repr__(self) -> str:
        return f"pass {self.iteration}: {format_sexpr(self.before)} → {format_sexpr(self.after)}"

    def to_dict(self) -> Dict:
        """Convert step to dictionary for serialization."""
        return {
            "iteration": self.iteration,
            "before": format_sexpr(self.before),
            "after": format_sexpr(self.after),
        }


class RewriteTrace:
    """
    A trace of the rewriting passes applied by Rule.simplify.

    Provides multiple formatting options:
        - Default repr: verbose multi-line format
        - format("compact"): single line from initial to final
        - format("chain"): every intermediate tree
        - to_dict(): JSON-serializable dictionary
    """

    def __init__(self, rule_name: Optional[str] = None):
        self.rule_name = rule_name
        self.steps: ListType[RewriteStep] = []
        self.initial: Optional[Expression] = None
        self.final: Optional[Expression] = None

    def add_step(self, step: RewriteStep):
        self.steps.append(step)

    def _label(self) -> str:
        return self.rule_name or "rule"

    def format(self, style: str = "verbose") -> str:
        """
        Format the trace.

        Args:
            style: One of "verbose", "compact", "chain"
        """
        if style == "compact":
            return (f"{format_sexpr(self.initial)} --[{self._label()} x{len(self.steps)}]--> "
                    f"{format_sexpr(self.final)}")

        elif style == "chain":
            parts = [format_sexpr(self.initial)]
            for step in self.steps:
                parts.append(f"  --({self._label()})-->")
                parts.append(format_sexpr(step.after))
            return "\n".join(parts)

        else:  # verbose (default)
            return repr(self)

    def __repr__(self) -> str:
        lines = [f"Initial: {format_sexpr(self.initial)}"]
        for step in self.steps:
            lines.append(f"  {step}")
        lines.append(f"Final: {format_sexpr(self.final)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __bool__(self) -> bool:
        """True if any rewriting was done."""
        return len(self.steps) > 0

    def to_dict(self) -> Dict:
        """Convert trace to dictionary for JSON serialization."""
        return {
            "rule": self.rule_name,
            "initial": format_sexpr(self.initial),
            "final": format_sexpr(self.final),
            "steps": [step.to_dict() for step in self.steps],
            "step_count": len(self.steps),
        }


# ============================================================
# Rules
# ============================================================

STRATEGIES = ("once", "all", "fixpoint")


def parse_rule_line(line: str) -> Optional[Tuple[Optional[str], Optional[str], Expression, Expression]]:
    """
    Parse a single rule line.

    Formats:
        pattern => template
        @name: pattern => template
        @name "description": pattern => template

    Returns: (name, description, pattern, template) or None for blank
    lines, comments and lines without a top-level `=>` (see find_arrow)

    Raises:
        ParseError: if the pattern or template is malformed
    """
    line = line.strip()

    if not line or line.startswith('#'):
        return None

    name, description, line = _split_header(line)

    arrow = find_arrow(line)
    if arrow < 0:
        return None

    pattern_str, template_str = line[:arrow], line[arrow + 2:]
    return name, description, parse_sexpr(pattern_str), parse_sexpr(template_str)


def _split_header(line: str) -> Tuple[Optional[str], Optional[str], str]:
    """Strip an `@name:` or `@name "description":` prefix from a rule line."""
    if line.startswith('@'):
        match_obj = re.match(r'@([\w-]+)\s+"([^"]*)":\s*(.+)', line)
        if match_obj:
            return match_obj.groups()
        match_obj = re.match(r'@([\w-]+):\s*(.+)', line)
        if match_obj:
            name, rest = match_obj.groups()
            return name, None, rest
    return None, None, line


def find_arrow(text: str) -> int:
    """
    Return the offset of the rule arrow in text, or -1 if there is none.

    The arrow is the first `=>` outside parentheses. Inside a list `=>` is
    an ordinary atom, so `(=> a_) => a` splits at the second arrow.
    """
    depth = 0
    for i, c in enumerate(text):
        if c == '(':
            depth += 1
        elif c == ')':
            depth -= 1
        elif depth <= 0 and text.startswith('=>', i):
            return i
    return -1


def is_rule_line(line: str) -> bool:
    """Whether line holds a rule rather than expressions to rewrite."""
    line = line.strip()
    if not line or line.startswith('#'):
        return False
    return find_arrow(_split_header(line)[2]) >= 0


class Rule:
    """
    A single pattern => template rewriting rule.

    Example:
        rule = Rule.from_dsl('@rename "x becomes y": (x a_) => (y a)')
        rule(E("(x (x z))"))              # => (y (y z))
        rule.apply_once(E("(x z)"))       # => (y z)
        rule.simplify(expr, trace=True)   # => (result, RewriteTrace)
    """

    def __init__(
        self,
        pattern: Union[str, Expression],
        template: Union[str, Expression],
        name: Optional[str] = None,
        description: Optional[str] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        strict: bool = False,
    ):
        self.pattern = parse_sexpr(pattern) if isinstance(pattern, str) else pattern
        self.template = parse_sexpr(template) if isinstance(template, str) else template
        self.name = name
        self.description = description
        self.max_iterations = max_iterations
        self.strict = strict

    @classmethod
    def from_dsl(cls, text: str, **kwargs) -> 'Rule':
        """
        Create a rule from its text form.

        Comment and blank lines are skipped; the first rule line is used.

        Raises:
            ValueError: if no rule is found (ParseError for malformed ones)
        """
        for line in text.split('\n'):
            parsed = parse_rule_line(line)
            if parsed:
                name, description, pattern, template = parsed
                return cls(pattern, template, name=name, description=description, **kwargs)
        raise ValueError(f"No rule found in: {text!r}")

    def __repr__(self) -> str:
        head = ""
        if self.name:
            head = f"@{self.name}"
            if self.description:
                head += f" \"{self.description}\""
            head += ": "
        return f"{head}{format_sexpr(self.pattern)} => {format_sexpr(self.template)}"

    def match(self, expr: Expression) -> Union[Bindings, _NoMatch]:
        """Match this rule's pattern against an expression."""
        return match(expr, self.pattern, self.strict)

    def apply_once(self, expr: Expression) -> Optional[Expression]:
        """Rewrite at the root only. Returns None if the rule does not apply."""
        return replace_once(expr, self.pattern, self.template, self.strict)

    def apply_all(self, expr: Expression) -> Tuple[Expression, bool]:
        """Rewrite every outermost match in one pass."""
        return replace_all(expr, self.pattern, self.template, self.strict)

    def simplify(self, expr: Expression, trace: bool = False, strategy: str = "fixpoint"):
        """
        Rewrite an expression with this rule.

        Args:
            expr: Expression to rewrite
            trace: If True, return (result, trace) tuple
            strategy: Rewriting strategy (default: "fixpoint")
                - "once": rewrite the root only, if it matches
                - "all": a single replace_all pass
                - "fixpoint": replace_all passes until nothing changes

        Returns:
            Rewritten expression, or (expression, trace) if trace=True

        Raises:
            RewriteLimitError: if the fixpoint strategy does not converge
        """
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {strategy}. "
                             f"Valid options: {', '.join(STRATEGIES)}")

        trace_obj = RewriteTrace(self.name)
        trace_obj.initial = expr

        if strategy == "fixpoint":
            def record(iteration, before, after):
                trace_obj.add_step(RewriteStep(iteration, before, after))

            result, _ = _fixpoint(expr, self.pattern, self.template,
                                  self.max_iterations, self.strict,
                                  on_step=record if trace else None)
        else:
            if strategy == "once":
                rewritten = self.apply_once(expr)
                changed = rewritten is not None
                result = rewritten if changed else expr
            else:
                result, changed = self.apply_all(expr)
            if changed:
                trace_obj.add_step(RewriteStep(1, expr, result))

        if trace:
            trace_obj.final = result
            return result, trace_obj
        return result

    def __call__(self, expr: Expression, **kwargs):
        """Rewrite an expression. Shorthand for simplify()."""
        return self.simplify(expr, **kwargs)
