#!/usr/bin/env python3
"""
ERS Command-Line Interface

Provides interactive REPL, script execution, and pipe/filter modes.

Usage:
    ers -r "(x a_) => (y a)"                    # REPL with a rule
    ers -r "(x a_) => (y a)" -e "(x (x z))"     # One-shot
    echo "(x z)" | ers -r "(x a_) => (y a)"     # Filter mode
    ers script.ers                              # Run script

Script Format (.ers files):
    #!/usr/bin/env ers
    :strategy fixpoint
    @rename: (x a_) => (y a)

    (x (x z))
    ((x r) (x s))

REPL Commands:
    :help              Show help
    :rule RULE         Set the rule (a line with a top-level => works too)
    :show              Show the current rule and settings
    :strategy NAME     Set strategy (once, all, fixpoint)
    :limit N           Set the fixpoint iteration limit
    :strict on|off     Require repeated variables to bind equal values
    :trace on|off      Toggle tracing
    :quit              Exit
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from . import __version__
from .engine import STRATEGIES, Rule, format_sexpr, is_rule_line, parse_all
from .rewriter import DEFAULT_MAX_ITERATIONS, RewriteLimitError

# Try to import readline for better REPL experience
try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False

logger = logging.getLogger(__name__)


class CommandError(ValueError):
    """Raised for unknown REPL commands and bad command arguments."""


def count_parens(text: str) -> int:
    """Count unbalanced parentheses. Returns >0 if more open than close."""
    depth = 0
    for c in text:
        if c == '(':
            depth += 1
        elif c == ')':
            depth -= 1
    return depth


def parse_switch(arg: str, current: bool) -> bool:
    """Interpret on/off arguments; an empty argument toggles."""
    value = arg.lower()
    if value in ("on", "true", "1"):
        return True
    if value in ("off", "false", "0"):
        return False
    return not current


class ErsREPL:
    """Interactive REPL for ers."""

    def __init__(self):
        self.rule: Optional[Rule] = None
        self.strategy = "fixpoint"
        self.max_iterations = DEFAULT_MAX_ITERATIONS
        self.strict = False
        self.trace = False
        self.running = True
        self.multi_line_buffer = ""

        if HAS_READLINE:
            self.history_file = Path.home() / ".ers_history"
            try:
                readline.read_history_file(self.history_file)
            except OSError:
                pass
            readline.set_history_length(1000)

    def save_history(self):
        """Save readline history."""
        if HAS_READLINE:
            try:
                readline.write_history_file(self.history_file)
            except OSError as e:
                logger.debug("could not save history: %s", e)

    def set_rule(self, text: str) -> str:
        """
        Replace the current rule with one parsed from text.

        Raises:
            ValueError: if text holds no rule (ParseError if it is malformed)
        """
        self.rule = Rule.from_dsl(text)
        return f"Rule set: {self.rule}"

    def handle_command(self, line: str) -> Optional[str]:
        """
        Handle a REPL command (starts with :).

        Returns a message to print, or None.

        Raises:
            CommandError: for unknown commands and bad arguments
        """
        parts = line[1:].split(None, 1)
        if not parts:
            raise CommandError("Unknown command. Type :help for help.")

        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "help":
            return self.help_text()

        elif cmd in ("quit", "exit", "q"):
            self.running = False
            return None

        elif cmd == "rule":
            if not arg:
                raise CommandError("Usage: :rule PATTERN => TEMPLATE")
            return self.set_rule(arg)

        elif cmd == "show":
            rule = repr(self.rule) if self.rule else "(no rule)"
            return (f"Rule: {rule}\n"
                    f"Strategy: {self.strategy}\n"
                    f"Limit: {self.max_iterations}\n"
                    f"Strict: {'on' if self.strict else 'off'}\n"
                    f"Trace: {'on' if self.trace else 'off'}")

        elif cmd == "strategy":
            if arg.lower() in STRATEGIES:
                self.strategy = arg.lower()
                return f"Strategy set to: {self.strategy}"
            raise CommandError(f"Unknown strategy. Options: {', '.join(STRATEGIES)}")

        elif cmd == "limit":
            try:
                limit = int(arg)
            except ValueError:
                raise CommandError("Usage: :limit N") from None
            if limit < 1:
                raise CommandError("limit must be at least 1")
            self.max_iterations = limit
            return f"Limit set to: {limit}"

        elif cmd == "strict":
            self.strict = parse_switch(arg, self.strict)
            return f"Strict matching {'enabled' if self.strict else 'disabled'}"

        elif cmd == "trace":
            self.trace = parse_switch(arg, self.trace)
            return f"Tracing {'enabled' if self.trace else 'disabled'}"

        else:
            raise CommandError(f"Unknown command: {cmd}. Type :help for help.")

    def help_text(self) -> str:
        """Return help text."""
        return """ERS REPL Commands:
  :help              Show this help
  :rule RULE         Set the rule
  :show              Show the current rule and settings
  :strategy NAME     Set strategy (once, all, fixpoint)
  :limit N           Set the fixpoint iteration limit
  :strict on|off     Require repeated variables to bind equal values
  :trace on|off      Toggle tracing
  :quit              Exit

Syntax:
  pattern => template                 Set the rule
  @name: pattern => template          Named rule
  @name "desc": pattern => template   Named rule with description
  (expression)                        Rewrite an expression

Patterns:
  _  __  ___        any one / one or more / zero or more elements
  x_ x__ x___       the same, bound to x for use in the template
"""

    def rewrite(self, text: str) -> str:
        """
        Rewrite every expression in text with the current rule.

        Raises:
            CommandError: if no rule has been set
            ParseError: if text is malformed
            RewriteLimitError: if fixpoint rewriting does not converge
        """
        if self.rule is None:
            raise CommandError("no rule set. Use :rule PATTERN => TEMPLATE")

        self.rule.max_iterations = self.max_iterations
        self.rule.strict = self.strict

        outputs = []
        for expr in parse_all(text):
            if self.trace:
                result, trace = self.rule(expr, trace=True, strategy=self.strategy)
                outputs.append(trace.format("chain"))
            else:
                result = self.rule(expr, strategy=self.strategy)
                outputs.append(format_sexpr(result))
        return "\n".join(outputs)

    def execute(self, line: str) -> Tuple[Optional[str], bool]:
        """
        Execute a single line of input.

        Returns (text, is_result): the text to print, or None, and whether
        it is rewritten output rather than a command message.

        Raises:
            ValueError: CommandError for bad commands, ParseError for
                malformed input
            RewriteLimitError: if fixpoint rewriting does not converge
        """
        line = line.strip()

        # Empty line or comment
        if not line or line.startswith("#"):
            return None, False

        if line.startswith(":"):
            return self.handle_command(line), False

        if is_rule_line(line):
            return self.set_rule(line), False
        return self.rewrite(line), True

    def process_line(self, line: str) -> Optional[str]:
        """
        Process a single line of input, reporting errors as text.

        Returns the result to print, or None.
        """
        try:
            text, _ = self.execute(line)
        except (ValueError, RewriteLimitError) as e:
            return f"Error: {e}"
        return text

    def run(self):
        """Run the REPL loop."""
        print("ERS - Expression Rewriting System")
        print("Type :help for help, :quit to exit")
        print()

        while self.running:
            try:
                prompt = "...... " if self.multi_line_buffer else "ers> "
                line = input(prompt)

                if self.multi_line_buffer:
                    self.multi_line_buffer += "\n" + line
                else:
                    self.multi_line_buffer = line

                paren_count = count_parens(self.multi_line_buffer)
                if paren_count > 0:
                    # More open parens than close - continue reading
                    continue

                complete_input = self.multi_line_buffer
                self.multi_line_buffer = ""

                result = self.process_line(complete_input)
                if result:
                    print(result)

            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                if self.multi_line_buffer:
                    print("\nInput cancelled")
                    self.multi_line_buffer = ""
                else:
                    print()
                continue

        self.save_history()


class ScriptRunner:
    """Runs ers scripts, one-shot expressions and stdin filters."""

    def __init__(self):
        self.repl = ErsREPL()

    def run_script(self, path: Path) -> int:
        """
        Run a script file.

        Returns:
            Exit code (0 for success)
        """
        try:
            lines = path.read_text().splitlines()
        except OSError as e:
            print(f"Error reading {path}: {e}", file=sys.stderr)
            return 1

        for lineno, line in enumerate(lines, 1):
            try:
                text, is_result = self.repl.execute(line)
            except (ValueError, RewriteLimitError) as e:
                print(f"{path}:{lineno}: Error: {e}", file=sys.stderr)
                return 1
            if text and is_result:
                print(text)

        return 0

    def run_expression(self, expr_str: str) -> int:
        """
        Rewrite a single expression.

        Returns:
            Exit code (0 for success)
        """
        try:
            text, _ = self.repl.execute(expr_str)
        except (ValueError, RewriteLimitError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        if text:
            print(text)
        return 0

    def run_stdin(self) -> int:
        """
        Read expressions from stdin and rewrite them.

        Returns:
            Exit code (0 for success)
        """
        for line in sys.stdin:
            code = self.run_expression(line)
            if code:
                return code
        return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="ers",
        description="ERS - Expression Rewriting System",
        epilog="Examples:\n"
               "  ers -r '(x a_) => (y a)'                   Start REPL\n"
               "  ers -r '(x a_) => (y a)' -e '(x (x z))'    Rewrite expression\n"
               "  echo '(x z)' | ers -r '(x a_) => (y a)'    Filter mode\n"
               "  ers script.ers                             Run script\n",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "script",
        nargs="?",
        help="Script file to run (.ers)"
    )

    parser.add_argument(
        "-r", "--rule",
        help="Rewriting rule, e.g. '(x a_) => (y a)'"
    )

    parser.add_argument(
        "-e", "--expr",
        help="Rewrite a single expression"
    )

    parser.add_argument(
        "-s", "--strategy",
        default="fixpoint",
        choices=STRATEGIES,
        help="Rewriting strategy (default: fixpoint)"
    )

    parser.add_argument(
        "-n", "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help=f"Fixpoint iteration limit (default: {DEFAULT_MAX_ITERATIONS})"
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Require repeated pattern variables to bind equal values"
    )

    parser.add_argument(
        "-t", "--trace",
        action="store_true",
        help="Show every rewriting pass"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.max_iterations < 1:
        parser.error("--max-iterations must be at least 1")

    runner = ScriptRunner()
    repl = runner.repl
    repl.strategy = args.strategy
    repl.max_iterations = args.max_iterations
    repl.strict = args.strict
    repl.trace = args.trace

    if args.rule:
        try:
            repl.set_rule(args.rule)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    if args.script:
        return runner.run_script(Path(args.script))
    elif args.expr:
        return runner.run_expression(args.expr)
    elif not sys.stdin.isatty():
        return runner.run_stdin()
    else:
        repl.run()
        return 0


if __name__ == "__main__":
    sys.exit(main())
