"""
FeedMill UI Module
=================

Navigation state and rendering for the interactive terminal browser.
"""

from .navigation import ListNavigator
from .render import render_article, render_list

__all__ = ["ListNavigator", "render_article", "render_list"]
