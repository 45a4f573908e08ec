"""Snapshot differ.

Compares two declarations of one family by identity only. Field changes on a
kept name do not show up here: the reconciler re-writes every declared key,
so ``added`` simply lists what the new snapshot declares.
"""

from dataclasses import dataclass, field

from keysync.models import Family, Snapshot


@dataclass
class SnapshotDiff:
    """Identity-level difference between an old and a new snapshot."""
    family: Family
    added: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)
    kept: set[str] = field(default_factory=set)

    @property
    def created(self) -> set[str]:
        """Names that are new rather than re-written."""
        return self.added - self.kept

    @property
    def has_changes(self) -> bool:
        return bool(self.created or self.removed)

    def summary(self) -> str:
        return (
            f"{self.family.value}: {len(self.added)} to write "
            f"({len(self.created)} new), {len(self.removed)} to delete"
        )


def diff(family: Family, old: Snapshot, new: Snapshot) -> SnapshotDiff:
    """Compute the identity diff of one family."""
    family = Family.parse(family)
    old_names = set(old.by_name(family))
    new_names = set(new.by_name(family))
    return SnapshotDiff(
        family=family,
        added=new_names,
        removed=old_names - new_names,
        kept=old_names & new_names,
    )
