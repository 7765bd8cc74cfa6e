"""
Rich renderables for the terminal browser.
"""

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .navigation import ListNavigator


def format_date(article) -> str:
    if article.date is None:
        return "-"
    return article.date.strftime("%Y-%m-%d %H:%M")


def render_list(navigator: ListNavigator, height: int, status: str = "") -> Panel:
    """The article list, scrolled so the selection stays visible."""
    articles = navigator.view.snapshot()
    rows = max(1, height - 4)
    selected = navigator.selected

    first = 0
    if selected is not None and selected >= rows:
        first = selected - rows + 1

    table = Table.grid(padding=(0, 1), expand=True)
    table.add_column(width=2)
    table.add_column(style="dim", width=16, no_wrap=True)
    table.add_column(ratio=1, no_wrap=True, overflow="ellipsis")

    for index, article in enumerate(articles[first:first + rows], start=first):
        is_selected = index == selected
        table.add_row(
            ">" if is_selected else "",
            format_date(article),
            Text(article.title or "(untitled)", style="bold yellow" if is_selected else ""),
        )

    title = f"Feed ({len(articles)})"
    return Panel(table, title=title, subtitle=status or None, border_style="blue")


def render_article(navigator: ListNavigator, height: int) -> Panel:
    """The open article at the current scroll offset."""
    pane_height = max(1, height - 2)
    offset = navigator.visible_offset(pane_height)
    text = Text()
    for index, line in enumerate(navigator.visible_lines(pane_height)):
        if index:
            text.append("\n")
        text.append(line, style="bold" if offset + index == 0 else "")
    return Panel(text, title="Article", border_style="blue")
