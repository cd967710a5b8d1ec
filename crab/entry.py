"""
Credential record types.
"""

import datetime
import re
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Optional, Union

from crab.errors import InvalidEntry

UTC = datetime.timezone.utc

# Stored timestamps must leave room for updated_at to advance.
MAX_TIMESTAMP = datetime.datetime(9999, 12, 31, tzinfo=UTC)

_RFC3339_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})$"
)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(tz=UTC)


def next_timestamp(previous: Optional[datetime.datetime] = None) -> datetime.datetime:
    """
    Return the current UTC time, nudged past *previous* when the clock has
    not moved on (coarse clocks, or a clock that stepped backwards).
    """
    now = utc_now()
    if previous is not None and now <= previous:
        now = previous + datetime.timedelta(microseconds=1)
    return now


def format_timestamp(value: datetime.datetime) -> str:
    """Serialize as RFC 3339 in UTC."""
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: Union[str, int, float]) -> datetime.datetime:
    """
    Parse an RFC 3339 string, or integer Unix seconds as written by
    older releases.

    Raises:
        ValueError: if the value is neither, or lies outside the range
            the store can still advance from.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        parsed = datetime.datetime.fromtimestamp(value, tz=UTC)
    elif isinstance(value, str):
        parsed = _parse_rfc3339(value)
    else:
        raise ValueError(f"invalid timestamp: {value!r}")
    if parsed >= MAX_TIMESTAMP:
        raise ValueError(f"timestamp out of range: {value!r}")
    return parsed


def _parse_rfc3339(value: str) -> datetime.datetime:
    # datetime.fromisoformat() before 3.11 only takes 0, 3 or 6 fractional
    # digits, an uppercase 'T' and no 'Z'.
    match = _RFC3339_RE.match(value.strip())
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp with UTC offset: {value!r}")
    date, time, fraction, offset = match.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    if offset in ("Z", "z"):
        offset = "+00:00"
    parsed = datetime.datetime.fromisoformat(f"{date}T{time}.{micros}{offset}")
    return parsed.astimezone(UTC)


def validate_fields(service: Any, account: Any, secret: Any) -> None:
    """Check the field invariants shared by new, edited and loaded entries."""
    if not isinstance(service, str) or not service:
        raise InvalidEntry("Service name cannot be empty.", field="service")
    if not isinstance(account, str):
        raise InvalidEntry("Account must be a string.", field="account")
    if not isinstance(secret, str) or not secret:
        raise InvalidEntry("Secret cannot be empty.", field="secret")


@dataclass(frozen=True)
class CredentialEntry:
    """Represents one stored credential."""
    service: str
    account: str
    secret: str
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @classmethod
    def new(cls, service: str, account: str, secret: str) -> 'CredentialEntry':
        """Create an entry stamped with the current time."""
        validate_fields(service, account, secret)
        now = utc_now()
        return cls(service, account, secret, now, now)

    def with_changes(self, account: Optional[str] = None, secret: Optional[str] = None) -> 'CredentialEntry':
        """
        Return a copy with the given fields replaced and updated_at advanced.
        Service and created_at never change.
        """
        new_account = self.account if account is None else account
        new_secret = self.secret if secret is None else secret
        validate_fields(self.service, new_account, new_secret)
        return replace(
            self,
            account=new_account,
            secret=new_secret,
            updated_at=next_timestamp(self.updated_at),
        )

    def summary(self) -> 'EntrySummary':
        return EntrySummary(self.service, self.account, self.created_at, self.updated_at)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data['created_at'] = format_timestamp(self.created_at)
        data['updated_at'] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialEntry':
        """
        Create from a deserialized dictionary.

        Raises:
            InvalidEntry: a field is missing, has the wrong type or breaks
                an invariant.
            ValueError: a timestamp cannot be parsed.
        """
        if not isinstance(data, dict):
            raise InvalidEntry("Entry must be an object.")
        missing = [f for f in ('service', 'account', 'secret', 'created_at', 'updated_at') if f not in data]
        if missing:
            raise InvalidEntry(f"Entry is missing fields: {', '.join(missing)}", field=missing[0])
        validate_fields(data['service'], data['account'], data['secret'])
        created_at = parse_timestamp(data['created_at'])
        updated_at = parse_timestamp(data['updated_at'])
        if updated_at < created_at:
            raise InvalidEntry(
                f"Entry '{data['service']}' was updated before it was created.",
                field='updated_at',
            )
        return cls(data['service'], data['account'], data['secret'], created_at, updated_at)


@dataclass(frozen=True)
class EntrySummary:
    """Listing projection of an entry. Deliberately has no secret field."""
    service: str
    account: str
    created_at: datetime.datetime
    updated_at: datetime.datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'service': self.service,
            'account': self.account,
            'created_at': format_timestamp(self.created_at),
            'updated_at': format_timestamp(self.updated_at),
        }
