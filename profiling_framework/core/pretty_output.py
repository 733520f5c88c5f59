"""
Pretty output formatting for the CLI.

Colored, consistently indented terminal output for profiling summaries.
JSON output bypasses this module entirely.
"""

import os
from typing import Iterable, List, Optional, Sequence, Tuple

from colorama import Fore, Style


class PrettyOutput:
    """
    Terminal formatter shared by every dq-profile command.

    All methods are static; colors come from colorama so they degrade to
    plain text where the terminal does not support ANSI codes.
    """

    # Color scheme
    PRIMARY = Fore.CYAN
    SUCCESS = Fore.GREEN
    WARNING = Fore.YELLOW
    ERROR = Fore.RED
    INFO = Fore.BLUE
    HEADER = Fore.WHITE + Style.BRIGHT
    DIM = Style.DIM
    RESET = Style.RESET_ALL

    # Symbols
    CHECK = "✓"
    CROSS = "✗"
    ARROW = "→"
    DOT = "•"
    WARN = "⚠"
    INFO_SYMBOL = "ℹ"

    @staticmethod
    def get_terminal_width() -> int:
        """Terminal width, 80 when it cannot be determined (pipes, CI)."""
        try:
            return os.get_terminal_size().columns
        except OSError:
            return 80

    @staticmethod
    def _width(width: Optional[int]) -> int:
        return width if width is not None else min(PrettyOutput.get_terminal_width(), 80)

    @staticmethod
    def header(text: str, width: Optional[int] = None) -> None:
        """Print a major header inside a double-line box."""
        width = PrettyOutput._width(width)
        padding = max(0, (width - len(text)) // 2)
        line = "═" * width

        print(f"\n{PrettyOutput.PRIMARY}╔{line}╗")
        print(f"║{' ' * padding}{text}{' ' * max(0, width - len(text) - padding)}║")
        print(f"╚{line}╝{PrettyOutput.RESET}\n")

    @staticmethod
    def section(text: str, width: Optional[int] = None) -> None:
        width = PrettyOutput._width(width)
        line = "─" * width
        print(f"\n{PrettyOutput.HEADER}{line}")
        print(f"{PrettyOutput.ARROW} {text}")
        print(f"{line}{PrettyOutput.RESET}\n")

    @staticmethod
    def subsection(text: str) -> None:
        print(f"\n{PrettyOutput.HEADER}{text}:{PrettyOutput.RESET}")

    @staticmethod
    def success(message: str, indent: int = 0) -> None:
        print(f"{' ' * indent}{PrettyOutput.SUCCESS}{PrettyOutput.CHECK}{PrettyOutput.RESET} {message}")

    @staticmethod
    def error(message: str, indent: int = 0) -> None:
        print(f"{' ' * indent}{PrettyOutput.ERROR}{PrettyOutput.CROSS}{PrettyOutput.RESET} {message}")

    @staticmethod
    def warning(message: str, indent: int = 0) -> None:
        print(f"{' ' * indent}{PrettyOutput.WARNING}{PrettyOutput.WARN}{PrettyOutput.RESET} {message}")

    @staticmethod
    def info(message: str, indent: int = 0) -> None:
        print(f"{' ' * indent}{PrettyOutput.INFO}{PrettyOutput.INFO_SYMBOL}{PrettyOutput.RESET} {message}")

    @staticmethod
    def item(message: str, indent: int = 0) -> None:
        print(f"{' ' * indent}{PrettyOutput.DIM}{PrettyOutput.DOT}{PrettyOutput.RESET} {message}")

    @staticmethod
    def key_value(key: str, value, indent: int = 0, value_color: Optional[str] = None) -> None:
        """
        Print a key-value pair.

        Args:
            key: Key text
            value: Value (converted with str)
            indent: Number of leading spaces
            value_color: Optional colorama color for the value
        """
        spaces = " " * indent
        if value_color:
            print(f"{spaces}{PrettyOutput.DIM}{key}:{PrettyOutput.RESET} {value_color}{value}{PrettyOutput.RESET}")
        else:
            print(f"{spaces}{PrettyOutput.DIM}{key}:{PrettyOutput.RESET} {value}")

    @staticmethod
    def percent_color(percentage: float, good_above: float = 95.0, warn_above: float = 80.0) -> str:
        """Green/yellow/red for quality percentages such as completeness."""
        if percentage >= good_above:
            return PrettyOutput.SUCCESS
        if percentage >= warn_above:
            return PrettyOutput.WARNING
        return PrettyOutput.ERROR

    @staticmethod
    def table(headers: Sequence[str], rows: Iterable[Sequence], indent: int = 2) -> None:
        """Print rows as left-aligned columns sized to their content."""
        materialized: List[List[str]] = [[str(cell) for cell in row] for row in rows]
        widths = [len(h) for h in headers]
        for row in materialized:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))

        spaces = " " * indent
        header_line = "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
        print(f"{spaces}{PrettyOutput.HEADER}{header_line}{PrettyOutput.RESET}")
        print(f"{spaces}{PrettyOutput.DIM}{'  '.join('-' * w for w in widths)}{PrettyOutput.RESET}")
        for row in materialized:
            print(spaces + "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)))

    @staticmethod
    def summary_box(title: str, items: List[Tuple[str, object, str]], width: int = 60) -> None:
        """
        Print a summary box.

        Args:
            title: Box title
            items: (key, value, color) tuples
            width: Box width
        """
        inner = width - 2
        print(f"\n{PrettyOutput.PRIMARY}┌{'─' * inner}┐{PrettyOutput.RESET}")
        print(f"{PrettyOutput.PRIMARY}│{PrettyOutput.RESET}{PrettyOutput.HEADER}{title.center(inner)}"
              f"{PrettyOutput.RESET}{PrettyOutput.PRIMARY}│{PrettyOutput.RESET}")
        print(f"{PrettyOutput.PRIMARY}├{'─' * inner}┤{PrettyOutput.RESET}")

        for key, value, color in items:
            value_str = str(value)
            padding = max(1, inner - len(key) - len(value_str) - 5)
            print(f"{PrettyOutput.PRIMARY}│{PrettyOutput.RESET}  {PrettyOutput.DIM}{key}:{PrettyOutput.RESET}"
                  f"{' ' * padding}{color}{value_str}{PrettyOutput.RESET}  {PrettyOutput.PRIMARY}│{PrettyOutput.RESET}")

        print(f"{PrettyOutput.PRIMARY}└{'─' * inner}┘{PrettyOutput.RESET}\n")

    @staticmethod
    def divider(char: str = "─", width: Optional[int] = None) -> None:
        print(f"{PrettyOutput.DIM}{char * PrettyOutput._width(width)}{PrettyOutput.RESET}")

    @staticmethod
    def blank_line() -> None:
        print()
