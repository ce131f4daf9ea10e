"""
Response assembly for one prompt/response cycle.

The chat executable has no message framing. A response is considered
complete when either:
- a chunk arrives in which a line starting with an escape sequence is
  followed by a fresh ``>`` prompt line, or
- the owning read loop sees no output for the idle window.

Pattern matching is done on each chunk as it arrives, never on the joined
buffer: the ``^`` anchor relies on the escape sequence opening a chunk. A
pattern split across two chunks is therefore not recognised and the
response completes through the idle window instead.
"""

import re
from enum import Enum
from typing import List, Optional

COMPLETION_PATTERN = re.compile(r"^\x1b.*\n>\s?", re.MULTILINE)
TRAILING_MARKER = re.compile(r">\s*\Z")


class AssemblyState(Enum):
    ACCUMULATING = "accumulating"
    COMPLETION_SIGNALED = "completion_signaled"
    DONE = "done"


class CompletionTrigger(Enum):
    PATTERN = "pattern"
    IDLE = "idle"


def clean_response(text: str) -> str:
    """Drop one trailing prompt marker (and whitespace after it)."""
    return TRAILING_MARKER.sub("", text, count=1)


class ResponseAssembler:
    """Accumulates output chunks until a completion signal arrives."""

    def __init__(self):
        self.state = AssemblyState.ACCUMULATING
        self.trigger: Optional[CompletionTrigger] = None
        self._parts: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def signaled(self) -> bool:
        return self.state is not AssemblyState.ACCUMULATING

    def feed(self, chunk: str) -> bool:
        """
        Add a newly arrived chunk.

        The chunk that carries the completion pattern belongs to the bot's
        next prompt, so it is not added to the response.

        Returns:
            True if the chunk signaled completion
        """
        self._require(AssemblyState.ACCUMULATING)
        if COMPLETION_PATTERN.search(chunk):
            self._signal(CompletionTrigger.PATTERN)
            return True
        self._parts.append(chunk)
        return False

    def idle_elapsed(self) -> None:
        """The idle window passed without new output."""
        self._require(AssemblyState.ACCUMULATING)
        self._signal(CompletionTrigger.IDLE)

    def finish(self) -> str:
        """Close the cycle and return the cleaned response text."""
        self._require(AssemblyState.COMPLETION_SIGNALED)
        self.state = AssemblyState.DONE
        return clean_response(self.text)

    def _signal(self, trigger: CompletionTrigger) -> None:
        self.trigger = trigger
        self.state = AssemblyState.COMPLETION_SIGNALED

    def _require(self, state: AssemblyState) -> None:
        if self.state is not state:
            raise RuntimeError(f"Response is {self.state.value}, expected {state.value}")
