"""Cross-cutting helpers."""

from utils.timezone import now_utc, seconds_since
