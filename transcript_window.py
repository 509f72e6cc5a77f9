from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from config import TRANSCRIPT_WINDOW_SIZE


@dataclass(frozen=True)
class WindowEntry:
    index: int
    line: object
    active: bool = False


@dataclass(frozen=True)
class WindowView:
    """Visible slice of the script; `hidden` views are not drawn at all."""
    entries: Tuple[WindowEntry, ...] = field(default_factory=tuple)
    hidden: bool = True

    @property
    def active_entry(self) -> Optional[WindowEntry]:
        for entry in self.entries:
            if entry.active:
                return entry
        return None


EMPTY_VIEW = WindowView()


def render(lines: List[object], active_index: int) -> WindowView:
    """
    Slide a 3-line window over `lines` so that it starts one line before
    `active_index`. An index of -1 or one outside the script highlights nothing.
    """
    if not lines:
        return EMPTY_VIEW

    start = max(0, active_index - 1)
    end = min(len(lines), start + TRANSCRIPT_WINDOW_SIZE)
    entries = tuple(
        WindowEntry(index=i, line=lines[i], active=(i == active_index))
        for i in range(start, end)
    )
    return WindowView(entries=entries, hidden=False)
