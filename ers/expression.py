"""
Expression tree model for ERS.

ERS - Expression Rewriting System

An expression is one of eight immutable value types. Two of them are the
basic building blocks of every tree:

    Atom("x")                      x
    List((Atom("x"), Atom("y")))   (x y)

The other six only make sense inside patterns, where they stand for
one or more subject elements:

    Blank()            _      any single expression
    BlankSeq()         __     one or more consecutive expressions
    BlankNullSeq()     ___    zero or more consecutive expressions
    Pattern("x")       x_     like Blank, binds the match to x
    PatternSeq("x")    x__    like BlankSeq, binds the run to x
    PatternNullSeq("x") x___  like BlankNullSeq, binds the run to x

All types are frozen dataclasses: they compare structurally, hash, and
are never mutated. Rewriting always builds new trees, sharing unchanged
children with the input.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple, Union

# Token boundaries and the marker suffix
_RESERVED = "()_"


def check_token(text: str, what: str = "atom"):
    """
    Reject strings that would not read back as the same single token.

    Raises:
        ValueError: if text is empty or contains whitespace, '(', ')' or '_'
    """
    if not isinstance(text, str) or not text:
        raise ValueError(f"{what} must be a non-empty string, got {text!r}")
    for c in text:
        if c.isspace() or c in _RESERVED:
            raise ValueError(f"{what} {text!r} may not contain {c!r}")


@dataclass(frozen=True)
class List:
    """An ordered sequence of child expressions."""

    children: Tuple["Expression", ...] = ()

    def __init__(self, children=()):
        object.__setattr__(self, "children", tuple(children))

    def __len__(self) -> int:
        return len(self.children)

    def __iter__(self) -> Iterator["Expression"]:
        return iter(self.children)

    def __getitem__(self, index):
        return self.children[index]

    def __str__(self) -> str:
        return format_sexpr(self)


@dataclass(frozen=True)
class Atom:
    """A string value, compared by equality only.

    The value must be a single readable token: non-empty, with no
    whitespace, parentheses or underscores.
    """

    value: str

    def __post_init__(self):
        check_token(self.value, "atom")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Blank:
    """Unnamed wildcard matching exactly one expression (`_`)."""

    def __str__(self) -> str:
        return "_"


@dataclass(frozen=True)
class BlankSeq:
    """Unnamed wildcard matching one or more expressions (`__`)."""

    def __str__(self) -> str:
        return "__"


@dataclass(frozen=True)
class BlankNullSeq:
    """Unnamed wildcard matching zero or more expressions (`___`)."""

    def __str__(self) -> str:
        return "___"


@dataclass(frozen=True)
class Pattern:
    """Named variable matching exactly one expression (`name_`)."""

    name: str

    def __post_init__(self):
        check_token(self.name, "variable name")

    def __str__(self) -> str:
        return f"{self.name}_"


@dataclass(frozen=True)
class PatternSeq:
    """Named variable matching one or more expressions (`name__`)."""

    name: str

    def __post_init__(self):
        check_token(self.name, "variable name")

    def __str__(self) -> str:
        return f"{self.name}__"


@dataclass(frozen=True)
class PatternNullSeq:
    """Named variable matching zero or more expressions (`name___`)."""

    name: str

    def __post_init__(self):
        check_token(self.name, "variable name")

    def __str__(self) -> str:
        return f"{self.name}___"


Expression = Union[
    List, Atom,
    Blank, BlankSeq, BlankNullSeq,
    Pattern, PatternSeq, PatternNullSeq,
]

BLANK_TYPES = (Blank, BlankSeq, BlankNullSeq)
PATTERN_TYPES = (Pattern, PatternSeq, PatternNullSeq)
SEQUENCE_TYPES = (BlankSeq, BlankNullSeq, PatternSeq, PatternNullSeq)
NULLABLE_TYPES = (BlankNullSeq, PatternNullSeq)
MARKER_TYPES = BLANK_TYPES + PATTERN_TYPES


# ============================================================
# Predicates
# ============================================================

def is_list(exp: Expression) -> bool:
    """Check if an expression is a list."""
    return isinstance(exp, List)


def is_atom(exp: Expression) -> bool:
    """Check if an expression is an atom."""
    return isinstance(exp, Atom)


def is_blank(exp: Expression) -> bool:
    """Check if an expression is an unnamed wildcard (`_`, `__`, `___`)."""
    return isinstance(exp, BLANK_TYPES)


def is_pattern(exp: Expression) -> bool:
    """Check if an expression is a named variable (`x_`, `x__`, `x___`)."""
    return isinstance(exp, PATTERN_TYPES)


def is_sequence(exp: Expression) -> bool:
    """Check if an expression can match a run of list elements."""
    return isinstance(exp, SEQUENCE_TYPES)


def is_nullable(exp: Expression) -> bool:
    """Check if an expression can match an empty run (`___`, `x___`)."""
    return isinstance(exp, NULLABLE_TYPES)


def is_marker(exp: Expression) -> bool:
    """Check if an expression is any wildcard or named variable."""
    return isinstance(exp, MARKER_TYPES)


def has_markers(exp: Expression) -> bool:
    """
    Check if a wildcard or variable appears anywhere in an expression.

    Examples:
        has_markers(E("(f x)"))      -> False
        has_markers(E("(f (g x_))")) -> True
    """
    if isinstance(exp, List):
        return any(has_markers(child) for child in exp.children)
    return is_marker(exp)


# ============================================================
# Rendering
# ============================================================

def format_sexpr(exp: Expression) -> str:
    """
    Render an expression in canonical S-expression form.

    Lists render as their space-joined children in parentheses, atoms
    verbatim and markers with their underscore suffix.

    Examples:
        List((Atom("+"), Atom("x"), Pattern("y"))) -> "(+ x y_)"
        List(())                                   -> "()"
    """
    if isinstance(exp, List):
        return "(" + " ".join(format_sexpr(child) for child in exp.children) + ")"
    return str(exp)
