import json
import math
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MILLISECOND = timedelta(milliseconds=1)


def to_millis(moment: datetime) -> int:
    """Convert a datetime into epoch milliseconds.

    Naive datetimes are treated as local time, the same way `datetime.timestamp` does.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return (moment - EPOCH) // MILLISECOND


def from_millis(millis: int) -> datetime:
    return EPOCH + millis * MILLISECOND


class Record(NamedTuple):
    """A value stored in the lock storage together with its expiration.

    The wire format is a JSON object: `{"expiresAt": <epoch millis>, "value": <str>}`.
    """
    value: str
    expires_at: int

    def encode(self) -> str:
        return json.dumps({'expiresAt': self.expires_at, 'value': self.value})

    @classmethod
    def decode(cls, raw: Optional[str]) -> Optional['Record']:
        """Parse a stored payload, `None` if it is absent or malformed.
        """
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        value = data.get('value')
        expires_at = data.get('expiresAt')
        if not isinstance(value, str):
            return None
        # bool is an int subclass but never a valid timestamp
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            return None
        if not math.isfinite(expires_at):
            return None
        return cls(value=value, expires_at=int(expires_at))

    def expired(self, now: datetime) -> bool:
        return to_millis(now) >= self.expires_at
