from datetime import datetime, timedelta
from typing import List, Literal, Optional


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all left ('l').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [_cell(h) for h in headers]
    rows = [[_cell(c) for c in row] for row in rows]

    if aligns is None:
        aligns = ["l"] * len(headers)
    elif len(aligns) != len(headers):
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(align_map[a] for a in aligns) + " |",
    ]
    lines += ["| " + " | ".join(row) + " |" for row in rows]
    return "\n".join(lines)


def _cell(value) -> str:
    # pipes and newlines would break the table
    return str(value).replace("|", "\\|").replace("\n", " ")


def format_money(amount: float) -> str:
    """Rupee amount, without decimals when it is a whole number."""
    if amount is None:
        return "₹0"
    if float(amount).is_integer():
        return f"₹{int(amount)}"
    return f"₹{amount:.2f}"


def format_remaining(delta: timedelta) -> str:
    """mm:ss countdown, clamped at zero."""
    seconds = max(0, int(delta.total_seconds()))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def seconds_until_midnight(now: datetime) -> float:
    """Seconds from `now` to the next local midnight, never zero."""
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max((tomorrow - now).total_seconds(), 1.0)
