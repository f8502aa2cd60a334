#!/usr/bin/env python3
"""
ERS Feature Demonstration

This script demonstrates the major features of the ERS library.
"""

from ers import (
    E, Rule, match, bind, replace_once, replace_all,
    replace_until_fixpoint, RewriteLimitError, ParseError,
)


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def demo_matching():
    """Demonstrate pattern matching and bindings."""
    section("Matching")

    examples = [
        ("(x (y z))", "(_ a_)"),
        ("(1 2 3)", "(x__ y_)"),
        ("(f)", "(f xs___)"),
        ("(f 1 2)", "(g ___)"),
    ]

    for subject, pattern in examples:
        bindings = match(E(subject), E(pattern))
        print(f"  {subject:12} ~ {pattern:12} => {bindings}")


def demo_binding():
    """Demonstrate binding and splicing."""
    section("Binding")

    bindings = match(E("(list 1 2 3)"), E("(list xs___)"))
    for template in ["(vec xs)", "(pair (first xs) last)", "xs"]:
        print(f"  {template:24} => {bind(E(template), bindings)}")


def demo_rewriting():
    """Demonstrate the three rewriting operations."""
    section("Rewriting")

    pattern, template = E("(x a_)"), E("(y a)")

    print(f"  replace_once (x z)          => {replace_once(E('(x z)'), pattern, template)}")
    result, changed = replace_all(E("((x r) (x s))"), pattern, template)
    print(f"  replace_all ((x r) (x s))   => {result} (changed={changed})")
    result = replace_until_fixpoint(E("(x (x (x z)))"), pattern, template)
    print(f"  until fixpoint (x (x (x z))) => {result}")


def demo_rules():
    """Demonstrate Rule objects and tracing."""
    section("Rules and Tracing")

    flatten = Rule.from_dsl(
        '@flatten "Splice nested lists": (list a___ (list b___) c___) => (list a b c)'
    )
    print(f"  {flatten}")
    result, trace = flatten(E("(list 1 (list 2 (list 3)) 4)"), trace=True)
    print(trace.format("chain"))


def demo_errors():
    """Demonstrate error reporting."""
    section("Errors")

    for text in ["(a ", "", "x____"]:
        try:
            E(text)
        except ParseError as e:
            print(f"  {text!r:10} => {e.code.name}: {e}")

    try:
        replace_until_fixpoint(E("x"), E("x_"), E("(x x)"), max_iterations=20)
    except RewriteLimitError as e:
        print(f"  x_ => (x x) => {e}")


if __name__ == "__main__":
    demo_matching()
    demo_binding()
    demo_rewriting()
    demo_rules()
    demo_errors()
