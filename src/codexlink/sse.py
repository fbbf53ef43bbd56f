"""Event-stream records and a minimal line-to-record adapter.

Only what the translator needs: ``event``/``id``/``data`` fields, multi-line
data joined with newlines, comment lines skipped, and a trailing record
flushed when the stream closes without a final blank line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class EventRecord:
    """One decoded event-stream unit."""

    event: str | None = None
    id: str | None = None
    data: str | None = None

    @property
    def is_marker(self) -> bool:
        """True for records that carry no payload (missing data or ``[DONE]``)."""
        return not self.data or self.data == DONE_SENTINEL


def _split_field(line: str) -> tuple[str, str]:
    name, sep, value = line.partition(":")
    if not sep:
        return name, ""
    if value.startswith(" "):
        value = value[1:]
    return name, value


async def iter_event_records(lines: AsyncIterable[str]) -> AsyncIterator[EventRecord]:
    """Group text lines into EventRecords; a blank line ends each record."""
    event: str | None = None
    record_id: str | None = None
    data_lines: list[str] = []
    pending = False

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if line == "":
            if pending:
                yield EventRecord(
                    event=event,
                    id=record_id,
                    data="\n".join(data_lines) if data_lines else None,
                )
            event, record_id, data_lines, pending = None, None, [], False
            continue
        if line.startswith(":"):
            continue

        name, value = _split_field(line)
        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event = value
        elif name == "id":
            record_id = value
        else:
            continue
        pending = True

    if pending:
        yield EventRecord(
            event=event,
            id=record_id,
            data="\n".join(data_lines) if data_lines else None,
        )
