"""Tests for the expression builder E and the tree model."""

import pytest
from ers import (
    E, Atom, List, Blank, BlankSeq, BlankNullSeq,
    Pattern, PatternSeq, PatternNullSeq,
    is_list, is_atom, is_blank, is_pattern, is_sequence, is_marker, has_markers,
)
from ers.expression import is_nullable


class TestExprBuilder:
    """Tests for E expression builder."""

    def test_parse(self):
        """E() parses s-expressions."""
        assert E("x") == Atom("x")
        assert E("(x a_)") == List((Atom("x"), Pattern("a")))

    def test_list(self):
        """E.list() turns strings into atoms."""
        assert E.list("+", "x", "1") == E("(+ x 1)")

    def test_list_nested(self):
        """E.list() accepts expressions as items."""
        assert E.list("+", "x", E.list("*", "2", "y")) == E("(+ x (* 2 y))")

    def test_list_empty(self):
        """E.list() with no items is the empty list."""
        assert E.list() == E("()")

    def test_atom_and_atoms(self):
        """E.atom() and E.atoms() create atoms."""
        assert E.atom("x") == Atom("x")
        x, y = E.atoms("x", "y")
        assert (x, y) == (Atom("x"), Atom("y"))

    @pytest.mark.parametrize("kind,expected", [
        ("single", Blank()),
        ("seq", BlankSeq()),
        ("null_seq", BlankNullSeq()),
    ])
    def test_blank(self, kind, expected):
        """E.blank() creates unnamed wildcards."""
        assert E.blank(kind) == expected

    @pytest.mark.parametrize("kind,expected", [
        ("single", Pattern("v")),
        ("seq", PatternSeq("v")),
        ("null_seq", PatternNullSeq("v")),
    ])
    def test_var(self, kind, expected):
        """E.var() creates named variables."""
        assert E.var("v", kind) == expected

    def test_unknown_kind(self):
        """An unknown kind is rejected."""
        with pytest.raises(ValueError):
            E.var("v", "many")

    def test_repr(self):
        """E has a descriptive repr."""
        assert repr(E) == "E (expression builder)"

    def test_list_rejects_marker_text(self):
        """A string that reads as a marker is not silently made an atom."""
        with pytest.raises(ValueError):
            E.list("f", "x_")

    def test_var_rejects_bad_name(self):
        """E.var() checks the variable name."""
        with pytest.raises(ValueError):
            E.var("a b", "seq")


class TestTokenValidation:
    """Atom values and variable names must be single readable tokens."""

    @pytest.mark.parametrize("value", [
        "", "x_", "_", "a b", "a\tb", "a\n", "(", "a)", "(a)",
    ])
    def test_bad_atom(self, value):
        """Atoms that would not read back unchanged are rejected."""
        with pytest.raises(ValueError):
            Atom(value)

    @pytest.mark.parametrize("kind", [Pattern, PatternSeq, PatternNullSeq])
    @pytest.mark.parametrize("name", ["", "x_", "a b", "f(x)"])
    def test_bad_name(self, kind, name):
        """Variable names follow the same rule as atoms."""
        with pytest.raises(ValueError):
            kind(name)

    def test_non_string(self):
        """Only strings are tokens."""
        with pytest.raises(ValueError):
            Atom(3)

    @pytest.mark.parametrize("value", ["=>", "+", "-1.5", "x'", "a.b", "#t", "Sequence"])
    def test_good_atom(self, value):
        """Punctuation other than parentheses and underscores is allowed."""
        assert Atom(value).value == value


class TestTreeModel:
    """Tests for expression values."""

    def test_immutable(self):
        """Expressions cannot be modified."""
        expr = E("(a b)")
        with pytest.raises(AttributeError):
            expr.children = ()
        with pytest.raises(AttributeError):
            Atom("x").value = "y"

    def test_children_are_tuples(self):
        """List children are stored as a tuple whatever was passed."""
        expr = List([Atom("a")])
        assert expr.children == (Atom("a"),)

    def test_structural_equality_and_hash(self):
        """Equal trees compare and hash equal."""
        assert E("(a (b c))") == E("(a (b c))")
        assert hash(E("(a (b c))")) == hash(E("(a (b c))"))
        assert E("(a b)") != E("(a c)")
        assert Pattern("x") != PatternSeq("x")
        assert Blank() == Blank()

    def test_sequence_protocol(self):
        """Lists support len, iteration and indexing."""
        expr = E("(a b c)")
        assert len(expr) == 3
        assert list(expr) == [Atom("a"), Atom("b"), Atom("c")]
        assert expr[1] == Atom("b")


class TestPredicates:
    """Tests for helper predicates."""

    def test_list_and_atom(self):
        """is_list and is_atom distinguish the basic kinds."""
        assert is_list(E("()"))
        assert not is_list(Atom("x"))
        assert is_atom(Atom("x"))
        assert not is_atom(Pattern("x"))

    @pytest.mark.parametrize("expr,blank,pattern,sequence,nullable", [
        (Blank(), True, False, False, False),
        (BlankSeq(), True, False, True, False),
        (BlankNullSeq(), True, False, True, True),
        (Pattern("x"), False, True, False, False),
        (PatternSeq("x"), False, True, True, False),
        (PatternNullSeq("x"), False, True, True, True),
        (Atom("x"), False, False, False, False),
    ])
    def test_marker_predicates(self, expr, blank, pattern, sequence, nullable):
        """Marker predicates classify every variant."""
        assert is_blank(expr) == blank
        assert is_pattern(expr) == pattern
        assert is_sequence(expr) == sequence
        assert is_nullable(expr) == nullable
        assert is_marker(expr) == (blank or pattern)

    def test_has_markers(self):
        """has_markers searches the whole tree."""
        assert not has_markers(E("(f (g x))"))
        assert has_markers(E("(f (g x_))"))
        assert has_markers(E("___"))
        assert not has_markers(E("()"))
