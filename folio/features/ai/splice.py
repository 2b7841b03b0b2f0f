"""
Splicing streamed edits back into chapter content.

A SpanSnapshot records the selected characters and their offsets when the
edit starts. By the time the stream finishes, the chapter may have been
edited elsewhere; the replacement lands on the original span if it is still
intact, otherwise on its single remaining occurrence. Anything else is a
conflict and the chapter is left alone.
"""

from dataclasses import dataclass

from folio.core.errors import ConflictError, ValidationError


@dataclass(frozen=True)
class SpanSnapshot:
    start: int
    end: int
    selected_text: str

    @classmethod
    def take(cls, content: str, start: int, end: int) -> "SpanSnapshot":
        if start < 0 or end > len(content) or start >= end:
            raise ValidationError(f"Invalid span [{start}, {end}) for content of length {len(content)}")
        return cls(start=start, end=end, selected_text=content[start:end])

    def locate(self, current: str) -> int:
        """Start offset of the span in `current`. Raises ConflictError if it cannot be found unambiguously."""
        if current[self.start:self.end] == self.selected_text:
            return self.start
        first = current.find(self.selected_text)
        if first == -1:
            raise ConflictError("The selected text was changed while the edit was in progress")
        if current.find(self.selected_text, first + 1) != -1:
            raise ConflictError("The selected text moved and can no longer be located unambiguously")
        return first

    def apply(self, current: str, replacement: str) -> str:
        at = self.locate(current)
        return current[:at] + replacement + current[at + len(self.selected_text):]
