import datetime
import typing
import uuid

from krydd_backend.utils.base_types import IsoTimestamp

# Fixed width so that string order equals chronological order (used as a GSI sort key).
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

Clock = typing.Callable[[], IsoTimestamp]
IdFactory = typing.Callable[[], str]


def format_timestamp(dt: datetime.datetime) -> IsoTimestamp:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return IsoTimestamp(dt.astimezone(datetime.timezone.utc).strftime(_TIMESTAMP_FORMAT))


def parse_timestamp(value: str) -> datetime.datetime:
    """
    Parses an ISO8601 timestamp, accepting a trailing 'Z'. Naive values are taken as UTC.

    :raises ValueError: if the value is not ISO8601.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def utc_now_iso() -> IsoTimestamp:
    return format_timestamp(datetime.datetime.now(datetime.timezone.utc))


def new_id() -> str:
    return str(uuid.uuid4())


def next_timestamp(previous: typing.Optional[str], clock: Clock = utc_now_iso) -> IsoTimestamp:
    """
    Returns the clock's current time, pushed one microsecond past `previous` when the
    clock has not advanced beyond it (coarse clocks, fast successive updates).
    """
    now = clock()
    if previous is None:
        return now
    previous_dt = parse_timestamp(previous)
    if parse_timestamp(now) <= previous_dt:
        return format_timestamp(previous_dt + datetime.timedelta(microseconds=1))
    return now
