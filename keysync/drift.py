"""Drift reporting, detecting managed keys changed outside reconciliation.

Every remote write assigns a new opaque version token. When a read returns a
token that differs from the one recorded at the last refresh, somebody
changed or recreated the key out-of-band (for example deleted it and wrote
it again under the same name with different material).

Drift is reported, never acted on: it does not block reconciliation and
does not modify either side. Redacted fields are never compared since the
remote does not return them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from keysync.logging import get_logger
from keysync.models import Family, RemoteKeyRecord

logger = get_logger(__name__)


@dataclass
class DriftNotice:
    """An out-of-band change detected for one managed key."""
    family: Family
    name: str
    previous_token: str
    current_token: str | None
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def summary(self) -> str:
        return (
            f"{self.family.value}/{self.name}: version changed out-of-band "
            f"({self.previous_token} -> {self.current_token})"
        )


class DriftReporter:
    """Compares remote version tokens against the last recorded ones."""

    def __init__(self):
        self.notices: list[DriftNotice] = []

    def check(self, record: RemoteKeyRecord, last_token: str | None) -> DriftNotice | None:
        """Report drift for a freshly read record.

        Args:
            record: Record as returned by the remote store
            last_token: Token recorded for the same key at the previous read,
                or None if the key was never read before

        Returns:
            A notice if the token changed, otherwise None
        """
        if not last_token or record.version_token == last_token:
            return None

        notice = DriftNotice(
            family=record.family,
            name=record.name,
            previous_token=last_token,
            current_token=record.version_token,
        )
        self.notices.append(notice)
        logger.warning(
            "Out-of-band change detected for managed key",
            family=record.family.value,
            name=record.name,
            previous_version=last_token,
            current_version=record.version_token,
        )
        return notice

    def clear(self) -> None:
        self.notices.clear()
