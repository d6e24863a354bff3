"""
Command line front end for the line calculator.

Interactive mode keeps one sheet for the session: every input line is
appended to it, so variables and functions persist and later lines react
to earlier ones. ``--file`` evaluates a whole sheet and prints the results.
"""

import argparse
import logging
import os
import re
import sys
from typing import List, Optional

from .config import configure_logging
from .parser import TRIGGER, find_assignment
from .render import RenderNode
from .sheet import Sheet
from .units import default_registry
from .values import CURRENCY_CODES

logger = logging.getLogger(__name__)

HISTORY_FILE = os.path.join(os.path.expanduser("~"), ".linecalc_history")

COMMANDS = ["help", "vars", "print", "clear", "exit", "quit"]

PRINT_VARIABLE = re.compile(r"^\s*(?:\?|print\s+)([^\W\d][\w ]*?)\s*$", re.IGNORECASE)

HELP_TEXT = """
Usage examples:
  2 + 3 =>                 - Basic arithmetic (=> shows the result)
  x = 10                   - Assign a variable silently
  total = x * 2 =>         - Assign and show the result
  ?x                       - Print the value of variable x
  print x                  - Alternative way to print variable x
  2km + 300m =>            - Units with dimensional analysis
  5 km to miles            - Convert units
  $10 to EUR               - Convert currencies
  20% off $120 =>          - Percentage phrases (of, on, off)
  20/80 as % =>            - Express a ratio as a percentage
  today + 2 weeks =>       - Date arithmetic
  1, 2, 3 where > 1 =>     - Lists and filtering
  sum(1..10) =>            - Ranges and aggregates
  f(x, n=2) = x^n          - Define a function
  solve x in 2x + 3 = 11 => - Solve an equation

Commands:
  vars                     - Show all variables
  clear                    - Forget all lines and variables
  help                     - Show this help message
  exit/quit                - Exit the calculator
"""


def format_line(text: str, render: Optional[RenderNode], width: int = 40) -> str:
    """One line of sheet output: the input, then its result if it shows one."""
    shown = render.display() if render is not None else ""
    if not shown:
        return text
    return f"{text:<{width}} {shown}"


def run_file(path: str) -> int:
    """Evaluate a sheet file and print every line with its result."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            source = f.read()
    except OSError as e:
        logger.error(f"Could not read {path}: {e}")
        print(f"Error: could not read {path}")
        return 1

    sheet = Sheet()
    sheet.load(source)
    width = max((len(line.text) for line in sheet.lines), default=0) + 2
    for line in sheet.lines:
        print(format_line(line.text, line.render, width))
    return 0


def _interactive_line(query: str) -> str:
    """Lines typed at the prompt show their result unless they assign."""
    stripped = query.strip()
    if stripped.endswith(TRIGGER) or stripped.startswith(("#", "//", "@")):
        return stripped
    if find_assignment(stripped) is not None and not stripped.lower().startswith("solve "):
        return stripped
    return f"{stripped} {TRIGGER}"


def _setup_readline(sheet: Sheet) -> bool:
    """History and tab completion; returns False where readline is missing."""
    try:
        import readline
    except ImportError:
        return False

    try:
        readline.read_history_file(HISTORY_FILE)
        # Set the max history file size
        readline.set_history_length(1000)
    except FileNotFoundError:
        pass

    # Save history on exit
    import atexit

    atexit.register(readline.write_history_file, HISTORY_FILE)

    units = sorted(default_registry().symbols())
    currencies = sorted(CURRENCY_CODES)

    def completer(text, state):
        variables = sheet.store.names()
        if " to " in text or " in " in text:
            keyword = " to " if " to " in text else " in "
            head, partial = text.rsplit(keyword, 1)
            targets = currencies + units
            matches = [f"{head}{keyword}{target}" for target in targets if target.startswith(partial.strip())]
        elif text.startswith("?"):
            matches = [f"?{name}" for name in variables if name.startswith(text[1:])]
        elif text.lower().startswith("print "):
            partial = text[len("print "):]
            matches = [f"print {name}" for name in variables if name.startswith(partial)]
        else:
            matches = [command for command in COMMANDS if command.startswith(text)]
            if text:
                matches.extend(name for name in variables if name.startswith(text))
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer_delims("")
    readline.parse_and_bind("tab: complete")
    readline.set_completer(completer)
    return True


def run_cli_mode(sheet: Optional[Sheet] = None) -> None:
    """Run the calculator in interactive CLI mode."""
    sheet = sheet or Sheet()
    has_readline = _setup_readline(sheet)

    print("Line calculator - Press Ctrl+C to exit")
    print("Enter calculations like: '2 + 2', '5 km to miles' or '20% of $50'")
    if has_readline:
        print("Use TAB for command and variable completion")

    try:
        while True:
            try:
                query = input("calc> ")
            except EOFError:
                print()
                break

            if not query.strip():
                continue
            command = query.strip().lower()

            if command in ("exit", "quit"):
                print("Goodbye!")
                break

            if command == "help":
                print(HELP_TEXT)
                continue

            if command == "clear":
                sheet.load([])
                print("Cleared all lines and variables.")
                continue

            if command == "vars":
                snapshot = sheet.store.snapshot()
                if not snapshot:
                    print("No variables defined.")
                else:
                    print("Current variables:")
                    for name, variable in snapshot.items():
                        print(f"  {name} = {variable.value.to_string(sheet.options)}")
                continue

            # Check for print variable command (e.g., "?x" or "print x")
            print_match = PRINT_VARIABLE.match(query)
            if print_match:
                name = print_match.group(1)
                value = sheet.store.value(name)
                if value is None:
                    print(f"Variable '{name}' is not defined")
                else:
                    print(f"{name} = {value.to_string(sheet.options)}")
                continue

            sheet.append_line(_interactive_line(query))
            line = sheet.lines[-1]
            render = line.render
            if render is None:
                continue
            if render.type == "assignment":
                print(f"{render.name} = {render.result}")
            elif render.display():
                print(render.display())
            elif render.type == "text" and render.kind == "function":
                print(f"Defined {render.text}")
    except KeyboardInterrupt:
        print("\nGoodbye!")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Line calculator")
    parser.add_argument("--file", "-f", type=str, help="Evaluate a sheet file and print its results")
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point: evaluate a file, or start the interactive prompt."""
    args = build_argument_parser().parse_args(argv)
    configure_logging(getattr(logging, args.log_level))

    if args.file:
        return run_file(args.file)
    run_cli_mode()
    return 0


def start_cli_mode():
    """Entry point for running the CLI mode."""
    configure_logging(logging.WARNING)
    run_cli_mode()


if __name__ == "__main__":
    sys.exit(main())
