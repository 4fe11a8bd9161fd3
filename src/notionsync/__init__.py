"""notionsync - two-way sync between a local Markdown folder and a Notion page tree."""

__version__ = "0.1.0"
