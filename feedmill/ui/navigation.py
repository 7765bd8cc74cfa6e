"""
List navigation state for the terminal browser.

The navigator reads the collection through an ``ArticleView`` only. It
remembers a selected index into the current snapshot, the article being
read (captured when it was opened, so a refresh underneath does not swap
it out) and a vertical scroll offset for the article pane.
"""

from typing import List, Optional

from ..collection.article_collection import ArticleView
from ..content.models import Article


class ListNavigator:
    """Selection and scroll state over a read-only article view."""

    def __init__(self, view: ArticleView):
        self.view = view
        self.selected: Optional[int] = None
        self.article: Optional[Article] = None
        self.scroll = 0

    @property
    def viewing_article(self) -> bool:
        return self.article is not None

    def selected_article(self) -> Optional[Article]:
        """Article under the cursor in the current snapshot, if any."""
        articles = self.view.snapshot()
        if self.selected is None or not articles:
            return None
        return articles[min(self.selected, len(articles) - 1)]

    def select_next(self) -> None:
        count = len(self.view)
        if count == 0:
            return
        if self.selected is None or self.selected >= count - 1:
            self.selected = 0
        else:
            self.selected += 1

    def select_previous(self) -> None:
        count = len(self.view)
        if count == 0:
            return
        if self.selected is None:
            self.selected = 0
        elif self.selected == 0 or self.selected > count - 1:
            self.selected = count - 1
        else:
            self.selected -= 1

    def open_selected(self) -> Optional[Article]:
        """Switch to the article pane for the selected entry."""
        if self.viewing_article:
            return self.article
        article = self.selected_article()
        if article is not None:
            self.article = article
            self.scroll = 0
        return article

    def close_article(self) -> None:
        self.article = None
        self.scroll = 0

    def scroll_down(self) -> None:
        self.scroll += 1

    def scroll_up(self) -> None:
        self.scroll = max(0, self.scroll - 1)

    def down(self) -> None:
        """Down key: scroll when reading, otherwise move the selection."""
        if self.viewing_article:
            self.scroll_down()
        else:
            self.select_next()

    def up(self) -> None:
        if self.viewing_article:
            self.scroll_up()
        else:
            self.select_previous()

    def article_lines(self) -> List[str]:
        """Text of the open article, title first."""
        if self.article is None:
            return []
        lines = [self.article.title]
        if self.article.sub_title:
            lines.extend(self.article.sub_title.splitlines())
        lines.extend(self.article.content.splitlines())
        return lines

    def visible_offset(self, height: int) -> int:
        """First line drawn for a pane of ``height`` lines.

        Clamped so the last page stays full; ``scroll`` itself keeps growing.
        """
        return min(self.scroll, max(0, len(self.article_lines()) - height))

    def visible_lines(self, height: int) -> List[str]:
        """The window of article text shown at the current scroll offset."""
        offset = self.visible_offset(height)
        return self.article_lines()[offset:offset + height]
