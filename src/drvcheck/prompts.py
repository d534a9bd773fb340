"""Interactive prompt utilities"""

from collections.abc import Sequence
from typing import Optional

from rich.console import Console
from rich.markup import escape


def ask_choice(
    message: str,
    options: Sequence[str],
    default: int = 0,
    console: Optional[Console] = None,
) -> int:
    """
    Ask the operator to pick one of several single character options.

    The prompt lists the options and shows the default in brackets:

        Are you sure? (y,n)[n]

    Empty input selects the default, and so does end of input when
    stdin is closed or piped. Only the first character of the answer
    is considered and case does not matter. Anything that is not a
    listed option asks again.

    :param message: Question to ask
    :param options: Single character options
    :param default: Index of the default option
    :param console: Console to prompt on
    :return: Index of the selected option
    """
    console = console or Console()
    lowered = [o.lower() for o in options]
    prompt = f"{message} ({','.join(options)})[{options[default]}] "

    while True:
        try:
            answer = console.input(escape(prompt)).strip()
        except EOFError:
            # stdin closed or exhausted, nobody left to answer
            console.print()
            return default

        if not answer:
            return default

        first = answer[0].lower()
        if first in lowered:
            return lowered.index(first)


def confirm(
    message: str, default: bool = False, console: Optional[Console] = None
) -> bool:
    """
    Yes/no question, built on ask_choice().

    :return: True for yes, False for no
    """
    return ask_choice(message, ["y", "n"], 0 if default else 1, console) == 0
