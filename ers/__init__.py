"""
ERS - Expression Rewriting System

Pattern matching and term rewriting over S-expression trees.

Quick Start:
    from ers import E, replace_all, Rule

    expr = E("((x r) (x s))")
    result, changed = replace_all(expr, E("(x a_)"), E("(y a)"))
    # => ((y r) (y s)), True

    rule = Rule.from_dsl("@rename: (x a_) => (y a)")
    rule(E("(x (x (x z)))"))  # => (y (y (y z)))

Pattern Syntax:
    _              - match any one expression
    __             - match one or more consecutive list elements
    ___            - match zero or more consecutive list elements
    x_ x__ x___    - the same, binding the match to x

Template Syntax:
    x              - an atom named like a bound variable is replaced by
                     its binding; sequence bindings are spliced into the
                     enclosing list
"""

__version__ = "0.1.0"

from .expression import (
    Expression,
    List,
    Atom,
    Blank,
    BlankSeq,
    BlankNullSeq,
    Pattern,
    PatternSeq,
    PatternNullSeq,
    is_list,
    is_atom,
    is_blank,
    is_pattern,
    is_sequence,
    is_marker,
    has_markers,
    format_sexpr,
)

from .rewriter import (
    match,
    bind,
    replace_once,
    replace_all,
    replace_until_fixpoint,
    rewriter,
    Bindings,
    NoMatch,
    SequenceBinding,
    RewriteLimitError,
    DEFAULT_MAX_ITERATIONS,
    SEQUENCE_HEAD,
)

from .engine import (
    E,
    Rule,
    RewriteStep,
    RewriteTrace,
    ParseError,
    ErrorCode,
    parse_sexpr,
    parse_all,
    parse_rule_line,
)

__all__ = [
    "__version__",
    # Tree model
    "Expression",
    "List",
    "Atom",
    "Blank",
    "BlankSeq",
    "BlankNullSeq",
    "Pattern",
    "PatternSeq",
    "PatternNullSeq",
    "is_list",
    "is_atom",
    "is_blank",
    "is_pattern",
    "is_sequence",
    "is_marker",
    "has_markers",
    # Core
    "match",
    "bind",
    "replace_once",
    "replace_all",
    "replace_until_fixpoint",
    "rewriter",
    "Bindings",
    "NoMatch",
    "SequenceBinding",
    "RewriteLimitError",
    "DEFAULT_MAX_ITERATIONS",
    "SEQUENCE_HEAD",
    # Reader, builder and rules
    "E",
    "Rule",
    "RewriteStep",
    "RewriteTrace",
    "ParseError",
    "ErrorCode",
    "parse_sexpr",
    "parse_all",
    "format_sexpr",
    "parse_rule_line",
]
