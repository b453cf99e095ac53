"""UTC timestamp helpers shared by repositories and services."""

from __future__ import annotations

from datetime import UTC, datetime

DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_iso(now: datetime | None = None) -> str:
  """Format the current (or given) instant as a second-precision UTC string."""
  moment = now or datetime.now(UTC)
  return moment.astimezone(UTC).strftime(DATE_FORMAT)


def parse_iso(value: str) -> datetime:
  """Parse a timestamp produced by now_iso back into an aware datetime."""
  return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=UTC)


def start_of_day_iso(now: datetime | None = None) -> str:
  """Return midnight UTC of the current day, formatted like now_iso."""
  moment = (now or datetime.now(UTC)).astimezone(UTC)
  return moment.replace(hour=0, minute=0, second=0, microsecond=0).strftime(DATE_FORMAT)
