"""chapterbell - polls manga sources for new chapters and announces them."""

__version__ = "0.1.0"
