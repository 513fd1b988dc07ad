"""
Paged range scans over a stream.

Range commands take inclusive bounds, so after each page the next bound is
the successor (forward) or predecessor (reverse) of the last ID seen.
"""

from typing import Iterator

from streamgroup.core.stream_id import StreamId
from streamgroup.store.base import RANGE_MAX, LogStore, StreamEntry
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)

# Lowest valid full entry ID in a stream
FIRST_ID = "0-1"


def iter_range(store: LogStore, stream: str, count: int = 5) -> Iterator[StreamEntry]:
    """
    Yield every entry of a stream in ascending ID order.

    Args:
        store: Log store
        stream: Stream name
        count: Page size

    Yields:
        Stream entries
    """
    start = FIRST_ID
    while True:
        page = store.range(stream, start, RANGE_MAX, count)
        if not page:
            return
        yield from page

        last = StreamId.parse(page[-1].id)
        try:
            start = str(last.successor())
        except OverflowError:
            return


def iter_revrange(store: LogStore, stream: str, count: int = 5) -> Iterator[StreamEntry]:
    """
    Yield every entry of a stream in descending ID order.

    Args:
        store: Log store
        stream: Stream name
        count: Page size

    Yields:
        Stream entries
    """
    end = RANGE_MAX
    while True:
        page = store.revrange(stream, end, FIRST_ID, count)
        if not page:
            return
        yield from page

        last = StreamId.parse(page[-1].id)
        try:
            end = str(last.predecessor())
        except OverflowError:
            return


def sum_field(store: LogStore, stream: str, field: str = "n", count: int = 5) -> int:
    """
    Sum an integer field over the whole stream.

    Args:
        store: Log store
        stream: Stream name
        field: Field to total
        count: Page size

    Returns:
        Running total once the stream is exhausted
    """
    total = 0
    pages = 0
    for index, entry in enumerate(iter_range(store, stream, count), start=1):
        total += entry.get_int(field)
        if index % count == 0:
            pages += 1
            logger.debug("Range page summed", stream=stream, pages=pages, total=total)

    logger.info("Stream exhausted", stream=stream, field=field, total=total)
    return total
