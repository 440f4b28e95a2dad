"""
Free-text command adapter.

Scans a line of text for the words ``get`` and ``set`` and runs them
against a client:

    get <key>           -> the stored string, or "" when absent
    set <key> <value>   -> "True" / "False"

Results of several commands in one line are concatenated.
"""

from __future__ import annotations

from .client import Redsock
from .exceptions import InvalidArgument


class TextAdapter:
    """Turns free text into ``get_string`` / ``set`` calls."""

    COMMANDS = {"get": 1, "set": 2}

    def __init__(self, client: Redsock):
        self._client = client

    def parse_text(self, text: str) -> str:
        if text is None:
            raise InvalidArgument("text")
        words = text.split(" ")
        result = []
        i = 0
        while i < len(words):
            word = words[i]
            if word in self.COMMANDS:
                operands = words[i + 1 : i + 1 + self.COMMANDS[word]]
                if len(operands) != self.COMMANDS[word]:
                    raise InvalidArgument(f"{word} needs {self.COMMANDS[word]} argument(s)")
                result.append(self._evaluate(word, operands))
                i += len(operands)
            i += 1
        return "".join(result)

    def _evaluate(self, word: str, operands) -> str:
        if word == "get":
            value = self._client.get_string(operands[0])
            return value if value is not None else ""
        key, value = operands
        return str(self._client.set(key, value))

    def execute(self, raw_text: str) -> str:
        """Single entry point for front ends."""
        return self.parse_text(raw_text.strip() if raw_text else raw_text)
