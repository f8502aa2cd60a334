"""Tests for Rule objects and the rule DSL."""

import pytest
from ers import (
    E, Atom, List, Pattern, Rule, RewriteLimitError, ParseError, ErrorCode,
    parse_rule_line,
)
from ers.engine import find_arrow, is_rule_line


class TestParseRuleLine:
    """Tests for parse_rule_line."""

    def test_plain(self):
        """pattern => template."""
        name, description, pattern, template = parse_rule_line("(x a_) => (y a)")
        assert name is None
        assert description is None
        assert pattern == E("(x a_)")
        assert template == E("(y a)")

    def test_named(self):
        """@name: pattern => template."""
        name, description, pattern, template = parse_rule_line("@rename: (x a_) => (y a)")
        assert name == "rename"
        assert description is None
        assert pattern == E("(x a_)")

    def test_named_with_description(self):
        """@name "description": pattern => template."""
        name, description, _, template = parse_rule_line(
            '@rename "x becomes y": (x a_) => (y a)'
        )
        assert name == "rename"
        assert description == "x becomes y"
        assert template == E("(y a)")

    @pytest.mark.parametrize("line", ["", "   ", "# comment", "(x a_)"])
    def test_not_a_rule(self, line):
        """Blank lines, comments and lines without => give None."""
        assert parse_rule_line(line) is None

    def test_bad_pattern(self):
        """Malformed patterns raise ParseError."""
        with pytest.raises(ParseError) as exc_info:
            parse_rule_line("(x a____) => (y a)")
        assert exc_info.value.code is ErrorCode.INVALID_PATTERN

    def test_arrow_atom_inside_list(self):
        """=> inside parentheses is an atom, not the rule arrow."""
        _, _, pattern, template = parse_rule_line("(=> a_) => a")
        assert pattern == List((Atom("=>"), Pattern("a")))
        assert template == Atom("a")

    def test_arrow_atom_in_template(self):
        """The template may contain => atoms too."""
        _, _, pattern, template = parse_rule_line('@imp "implies": (if p_ q_) => (=> p q)')
        assert pattern == E("(if p_ q_)")
        assert template == E("(=> p q)")

    def test_only_nested_arrow(self):
        """A line whose only => is nested holds no rule."""
        assert parse_rule_line("(f => g)") is None

    @pytest.mark.parametrize("line,expected", [
        ("(x a_) => (y a)", 7),
        ("(=> a_) => a", 8),
        ("((=>)) (=>)", -1),
        ("x", -1),
    ])
    def test_find_arrow(self, line, expected):
        """find_arrow() locates the top-level arrow."""
        assert find_arrow(line) == expected

    def test_is_rule_line(self):
        """Rule lines are recognised by their top-level arrow."""
        assert is_rule_line("@r: (=> a_) => a")
        assert not is_rule_line("(=> q)")
        assert not is_rule_line("# a => b")

    def test_missing_template(self):
        """An empty template is an empty-input error."""
        with pytest.raises(ParseError) as exc_info:
            parse_rule_line("(x a_) =>")
        assert exc_info.value.code is ErrorCode.EMPTY_INPUT


class TestRule:
    """Tests for the Rule class."""

    def test_from_strings(self):
        """Pattern and template strings are parsed."""
        rule = Rule("(x a_)", "(y a)")
        assert rule.pattern == E("(x a_)")
        assert rule.template == E("(y a)")

    def test_from_dsl(self):
        """from_dsl reads the first rule line."""
        rule = Rule.from_dsl('''
            # rename x to y
            @rename "x becomes y": (x a_) => (y a)
        ''')
        assert rule.name == "rename"
        assert rule.description == "x becomes y"

    def test_from_dsl_no_rule(self):
        """from_dsl without a rule raises ValueError."""
        with pytest.raises(ValueError):
            Rule.from_dsl("# nothing here")

    def test_from_dsl_kwargs(self):
        """Extra keyword arguments configure the rule."""
        rule = Rule.from_dsl("(f x_ x_) => x", strict=True, max_iterations=3)
        assert rule.strict
        assert rule.max_iterations == 3

    def test_repr(self):
        """repr shows the DSL form."""
        assert repr(Rule("(x a_)", "(y a)")) == "(x a_) => (y a)"
        assert repr(Rule("(x a_)", "(y a)", name="r")) == "@r: (x a_) => (y a)"
        assert repr(Rule("(x a_)", "(y a)", name="r", description="d")) == '@r "d": (x a_) => (y a)'

    def test_match(self):
        """Rule.match returns bindings."""
        rule = Rule("(x a_)", "(y a)")
        assert rule.match(E("(x z)"))["a"] == Atom("z")
        assert not rule.match(E("(w z)"))

    def test_apply_once(self):
        """apply_once rewrites the root only."""
        rule = Rule("(x a_)", "(y a)")
        assert rule.apply_once(E("(x z)")) == E("(y z)")
        assert rule.apply_once(E("(f (x z))")) is None

    def test_apply_all(self):
        """apply_all runs a single pass."""
        rule = Rule("(x a_)", "(y a)")
        assert rule.apply_all(E("((x r) (x s))")) == (E("((y r) (y s))"), True)

    def test_call_is_fixpoint(self):
        """Calling a rule rewrites to a fixpoint."""
        rule = Rule("(x a_)", "(y a)")
        assert rule(E("(x (x (x z)))")) == E("(y (y (y z)))")

    def test_strategies(self):
        """Each strategy rewrites as far as it should."""
        rule = Rule("(x a_)", "(y a)")
        subject = E("(x (x z))")
        assert rule.simplify(subject, strategy="once") == E("(y (x z))")
        assert rule.simplify(subject, strategy="all") == E("(y (x z))")
        assert rule.simplify(subject, strategy="fixpoint") == E("(y (y z))")

    def test_once_without_match(self):
        """The once strategy returns the subject when the root does not match."""
        rule = Rule("(x a_)", "(y a)")
        subject = E("(f (x z))")
        assert rule.simplify(subject, strategy="once") is subject

    def test_unknown_strategy(self):
        """Unknown strategies are rejected."""
        with pytest.raises(ValueError):
            Rule("a", "b").simplify(Atom("a"), strategy="bottomup")

    def test_non_convergence(self):
        """A diverging rule raises RewriteLimitError."""
        rule = Rule("x_", "(x x)", max_iterations=10)
        with pytest.raises(RewriteLimitError):
            rule(Atom("x"))

    def test_strict_rule(self):
        """strict rules require repeated variables to agree."""
        rule = Rule("(f x_ x_)", "x", strict=True)
        assert rule(E("(f 1 2)")) == E("(f 1 2)")
        assert rule(E("(f 1 1)")) == Atom("1")
