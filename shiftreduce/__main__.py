"""Run a compiled grammar from the command line.

    python -m shiftreduce math.json "1 + 2 * 3"
    echo "1 + 2" | python -m shiftreduce math.json --lex
    python -m shiftreduce math.json --table
"""

import argparse
import logging
import sys

from .exceptions import ShiftReduceError, UnexpectedInput
from .frontend import Parser


def main(args: list[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="shiftreduce",
        description="Parse text with a compiled LALR grammar and print the tree",
    )
    parser.add_argument("grammar", help="Path to a compiled grammar (JSON)")
    parser.add_argument(
        "text",
        nargs="*",
        help="The text to parse. Several arguments are joined with spaces. "
        "The default is to read standard input.",
    )
    parser.add_argument(
        "--start",
        type=str,
        default=None,
        help="The start symbol to parse. Only needed if the grammar has more than one.",
    )
    parser.add_argument(
        "--lex",
        action="store_true",
        help="Only lex the text, and print one token per line.",
    )
    parser.add_argument(
        "--table",
        action="store_true",
        help="Print the parse table and exit.",
    )
    parser.add_argument(
        "--propagate-positions",
        action="store_true",
        help="Record positions on the tree, and print them.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log more. Once for progress, twice to trace every parser action.",
    )

    parsed = parser.parse_intermixed_args(args[1:])

    level = logging.WARNING
    if parsed.verbose == 1:
        level = logging.INFO
    elif parsed.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(name)s: %(message)s")

    try:
        grammar = Parser.from_file(
            parsed.grammar, propagate_positions=parsed.propagate_positions
        )
    except (OSError, ValueError, ShiftReduceError) as e:
        print(f"{parsed.grammar}: {e}", file=sys.stderr)
        return 1

    if parsed.table:
        print(grammar.parse_table.format())
        return 0

    if parsed.text:
        text = " ".join(parsed.text)
    else:
        text = sys.stdin.read()

    try:
        if parsed.lex:
            for token in grammar.lex(text):
                print(f"{token.type}\t{token.value!r}\t{token.line}:{token.column}")
            return 0

        tree = grammar.parse(text, start=parsed.start)

    except UnexpectedInput as e:
        print(str(e).rstrip(), file=sys.stderr)
        print(e.get_context(text).rstrip("\n"), file=sys.stderr)
        return 1
    except ShiftReduceError as e:
        print(str(e), file=sys.stderr)
        return 1

    if parsed.propagate_positions:
        print("\n".join(tree.format_lines()))
    else:
        print(tree.pretty(), end="")
    return 0


def run():
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    run()
