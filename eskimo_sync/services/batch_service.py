"""
Batch Service

Cursor construction, watermark computation, page-by-page pulls from the
EPOS API and rate-limited Web_ID write-back.
"""

import re
import time
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, date, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from eskimo_sync.services.error_handler import EskimoSyncError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP = datetime(2000, 1, 1)
DATE_PATTERN = re.compile(r'^[0-9]{4}-(0[1-9]|1[0-2])-(0[1-9]|[1-2][0-9]|3[0-1])$')

WATERMARK_UNITS = {
    'seconds': 1,
    'minutes': 60,
    'hours': 3600,
    'days': 86400,
    'weeks': 604800,
    'months': 2592000,
}
WATERMARK_ROUTES = tuple(WATERMARK_UNITS) + ('timestamp',)


@dataclass(frozen=True)
class BatchProfile:
    """Per-endpoint RecordCount default and upper bound."""
    name: str
    default_count: int
    max_count: int


PRODUCTS = BatchProfile('products', 20, 50)
PRODUCT_WEB_IDS = BatchProfile('product_web_ids', 50, 100)
CATEGORY_PRODUCTS = BatchProfile('category_products', 20, 50)
SKUS = BatchProfile('skus', 250, 2500)
SKUS_BULK = BatchProfile('skus_bulk', 1000, 2500)


@dataclass(frozen=True)
class BatchRequest:
    """Pagination cursor: StartPosition, RecordCount and optional TimestampFrom."""
    start: int = 1
    count: int = 20
    since: Optional[datetime] = None

    def __post_init__(self):
        if self.start < 1:
            raise ValidationError(f"StartPosition must be >= 1, got {self.start}")
        if self.count < 1:
            raise ValidationError(f"RecordCount must be >= 1, got {self.count}")

    @classmethod
    def build(cls, start: Any = 1, records: Any = None,
              since: Union[str, date, datetime, None] = None,
              profile: BatchProfile = PRODUCTS) -> 'BatchRequest':
        """Apply defaults and clamp once, the way every endpoint expects."""
        start = _absint(start)
        records = _absint(records)

        return cls(
            start=start if start > 0 else 1,
            count=records if 0 < records <= profile.max_count else profile.default_count,
            since=_parse_since(since),
        )

    def advance(self) -> 'BatchRequest':
        """Next page: StartPosition moves forward by the requested RecordCount."""
        return replace(self, start=self.start + self.count)

    def to_payload(self) -> Dict[str, Any]:
        since = self.since or DEFAULT_TIMESTAMP
        return {
            'StartPosition': self.start,
            'RecordCount': self.count,
            'TimestampFrom': since.strftime('%Y-%m-%dT%H:%M:%S'),
        }


def _absint(value) -> int:
    try:
        return abs(int(value))
    except (TypeError, ValueError):
        return 0


def _parse_since(since) -> datetime:
    if since is None or since == '':
        return DEFAULT_TIMESTAMP
    if isinstance(since, datetime):
        return since
    if isinstance(since, date):
        return datetime(since.year, since.month, since.day)
    since = str(since).strip()
    if DATE_PATTERN.match(since):
        return datetime.strptime(since, '%Y-%m-%d')
    logger.warning(f"Invalid TimestampFrom [{since}], using default")
    return DEFAULT_TIMESTAMP


def resolve_watermark(route: str, amount: Any, now: Optional[datetime] = None) -> datetime:
    """
    Compute the modified-since watermark for a pull.

    ``route`` is a relative unit (seconds..months) with ``amount`` units back
    from ``now``, or ``timestamp`` with ``amount`` a unix timestamp. ``all``
    returns the default epoch.
    """
    if route == 'all':
        return DEFAULT_TIMESTAMP

    amount = _absint(amount)
    if amount == 0:
        raise ValidationError(f"Invalid watermark amount [{amount}]")

    if route == 'timestamp':
        return datetime.utcfromtimestamp(amount)

    if route not in WATERMARK_UNITS:
        raise ValidationError(f"Invalid watermark route [{route}]")

    now = now or datetime.utcnow()
    return now - timedelta(seconds=WATERMARK_UNITS[route] * amount)


class PaginationController:
    """
    Drives a page request function until the remote returns an empty page.

    Pages are requested strictly in order. A failing page aborts the pull and
    the error propagates to the caller.
    """

    def __init__(self, max_pages: Optional[int] = None):
        self.max_pages = max_pages

    def pull_all(self, request_fn: Callable[[BatchRequest], Optional[List[Any]]],
                 batch: BatchRequest) -> Iterator[List[Any]]:
        cursor = batch
        pages = 0
        while True:
            page = request_fn(cursor)
            if not page:
                logger.info(f"Pull complete after {pages} page(s) at StartPosition {cursor.start}")
                return

            pages += 1
            logger.debug(f"Page {pages}: {len(page)} record(s) from StartPosition {cursor.start}")
            yield page

            if self.max_pages and pages >= self.max_pages:
                logger.warning(f"Pull stopped at page limit {self.max_pages}")
                return
            cursor = cursor.advance()

    def collect(self, request_fn: Callable[[BatchRequest], Optional[List[Any]]],
                batch: BatchRequest) -> List[Any]:
        """Pull every page and return the concatenated records."""
        records: List[Any] = []
        for page in self.pull_all(request_fn, batch):
            records.extend(page)
        return records


@dataclass
class WriteBackResult:
    """Outcome of flushing identifier mappings to the remote."""
    sent: List[Dict[str, str]] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)
    batches: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sent': self.sent,
            'failed': self.failed,
            'batches': self.batches,
            'errors': self.errors,
        }


class WriteBackQueue:
    """
    Flushes mappings in fixed-size batches with a pause between batches.

    A failing batch is retried on its own up to ``retries`` times, then its
    mappings are reported as failed and the remaining batches continue.
    """

    def __init__(self, post_fn: Callable[[List[Dict[str, str]]], int], batch_size: int = 25,
                 delay: float = 6, retries: int = 1, sleep: Callable[[float], None] = time.sleep):
        if batch_size < 1:
            raise ValidationError("Write-back batch size must be >= 1")
        self.post_fn = post_fn
        self.batch_size = batch_size
        self.delay = delay
        self.retries = max(0, retries)
        self.sleep = sleep

    def flush(self, mappings: List[Any]) -> WriteBackResult:
        payloads = [m.to_payload() if hasattr(m, 'to_payload') else dict(m) for m in mappings]
        result = WriteBackResult()

        for offset in range(0, len(payloads), self.batch_size):
            chunk = payloads[offset:offset + self.batch_size]
            if result.batches and self.delay:
                self.sleep(self.delay)
            result.batches += 1

            if self._send(chunk, result):
                result.sent.extend(chunk)
            else:
                result.failed.extend(chunk)

        logger.info(f"Write-back: {len(result.sent)} sent, {len(result.failed)} failed "
                    f"in {result.batches} batch(es)")
        return result

    def _send(self, chunk: List[Dict[str, str]], result: WriteBackResult) -> bool:
        for attempt in range(self.retries + 1):
            if attempt and self.delay:
                self.sleep(self.delay)
            try:
                status = self.post_fn(chunk)
            except EskimoSyncError as e:
                result.errors.append(e.to_result())
                logger.error(f"Write-back batch {result.batches} attempt {attempt + 1} failed: {e.message}")
                continue

            if status == 200:
                return True

            result.errors.append(f"HTTP {status}")
            logger.error(f"Write-back batch {result.batches} attempt {attempt + 1} returned {status}")
        return False
