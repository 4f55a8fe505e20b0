"""Prompt style for idxops confirmations.

Questionary renders through prompt_toolkit; the style lives here so every
confirmation before DDL work looks the same.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "qmark": "bold ansiyellow",
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)
