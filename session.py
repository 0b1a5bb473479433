"""Holder for the most recent parse result of the dashboard."""

import asyncio
import io
from typing import Optional, Union

from data_processing import CsvParseError, ParsedDataset, dprint, parse_uploaded_file


class _MemoryFile(io.BytesIO):
    def __init__(self, name: str, data: bytes):
        super().__init__(data)
        self.name = name


def _as_file(file_name: str, data: Union[bytes, str]) -> _MemoryFile:
    payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    return _MemoryFile(file_name, payload)


async def parse_file_async(file_name: str, data: Union[bytes, str]) -> ParsedDataset:
    """Parse an uploaded file off the calling thread.

    Reading and tokenizing run as one unit in a worker thread; the coroutine
    either returns the dataset or raises :class:`CsvParseError`.
    """

    return await asyncio.to_thread(parse_uploaded_file, _as_file(file_name, data))


class ParseSession:
    """Single slot holding the current dataset or the current error.

    Every parse takes a ticket from :meth:`begin`. Only the newest ticket may
    publish, so a slow parse that finishes after a newer upload is dropped
    instead of overwriting it.
    """

    def __init__(self) -> None:
        self._ticket = 0
        self._dataset: Optional[ParsedDataset] = None
        self._error: Optional[CsvParseError] = None

    @property
    def dataset(self) -> Optional[ParsedDataset]:
        return self._dataset

    @property
    def error(self) -> Optional[CsvParseError]:
        return self._error

    @property
    def ticket(self) -> int:
        return self._ticket

    def begin(self) -> int:
        self._ticket += 1
        self._dataset = None
        self._error = None
        return self._ticket

    def clear(self) -> None:
        """Forget the current result and invalidate any parse still running."""

        self.begin()

    def publish(self, ticket: int, dataset: ParsedDataset) -> bool:
        if ticket != self._ticket:
            dprint(f"[session] dropping stale result for ticket {ticket}")
            return False
        self._dataset = dataset
        self._error = None
        return True

    def fail(self, ticket: int, error: CsvParseError) -> bool:
        if ticket != self._ticket:
            dprint(f"[session] dropping stale error for ticket {ticket}")
            return False
        self._dataset = None
        self._error = error
        return True

    def load(self, file_name: str, data: Union[bytes, str]) -> Optional[ParsedDataset]:
        ticket = self.begin()
        try:
            dataset = parse_uploaded_file(_as_file(file_name, data))
        except CsvParseError as exc:
            self.fail(ticket, exc)
            return None
        self.publish(ticket, dataset)
        return dataset

    async def load_async(
        self, file_name: str, data: Union[bytes, str]
    ) -> Optional[ParsedDataset]:
        ticket = self.begin()
        try:
            dataset = await parse_file_async(file_name, data)
        except CsvParseError as exc:
            self.fail(ticket, exc)
            return None
        if not self.publish(ticket, dataset):
            return None
        return dataset
