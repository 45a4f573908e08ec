"""Tests for snapshots, blocks and the snapshot differ."""

import pytest

from conftest import aws_block, aws_fields, pkcs_fields, snapshot
from keysync.differ import diff
from keysync.errors import BlockValidationError, UnknownFamilyError
from keysync.models import Family, ManagedKeyBlock, Snapshot


class TestFamily:
    """Test family parsing."""

    @pytest.mark.parametrize("value, expected", [
        ("aws", Family.AWS),
        ("awskms", Family.AWS),
        ("pkcs", Family.PKCS),
        ("pkcs11", Family.PKCS),
        ("azure", Family.AZURE),
        ("gcpckms", Family.GCP),
        (Family.GCP, Family.GCP),
    ])
    def test_parse(self, value, expected):
        assert Family.parse(value) is expected

    def test_parse_unknown(self):
        with pytest.raises(UnknownFamilyError):
            Family.parse("transit")


class TestManagedKeyBlock:
    """Test block construction."""

    def test_name_copied_into_fields(self):
        block = ManagedKeyBlock(Family.AWS, "k", {"kms_key": "alias/k"})

        assert block.fields["name"] == "k"

    def test_from_fields(self):
        block = ManagedKeyBlock.from_fields("aws", aws_fields("k"))

        assert block.family is Family.AWS
        assert block.name == "k"

    def test_missing_name(self):
        with pytest.raises(BlockValidationError):
            ManagedKeyBlock.from_fields(Family.AWS, {"kms_key": "alias/k"})


class TestSnapshot:
    """Test snapshot partitioning."""

    def test_duplicate_name_in_family_rejected(self):
        with pytest.raises(BlockValidationError) as exc_info:
            snapshot(aws_block("k"), aws_block("k"))

        assert exc_info.value.name == "k"

    def test_same_name_in_different_families(self):
        snap = snapshot(
            aws_block("k"),
            ManagedKeyBlock.from_fields(Family.PKCS, pkcs_fields("k")),
        )

        assert len(snap) == 2
        assert snap.families() == {Family.AWS, Family.PKCS}

    def test_blocks_sorted_by_name(self):
        snap = snapshot(aws_block("b"), aws_block("a"))

        assert [b.name for b in snap.blocks(Family.AWS)] == ["a", "b"]

    def test_requests(self):
        snap = snapshot(aws_block("k"))

        assert snap.requests(Family.AWS)
        assert not snap.requests(Family.GCP)

    def test_document_round_trip(self):
        document = {"aws": [aws_fields("k")], "pkcs": [pkcs_fields("p")]}

        snap = Snapshot.from_document(document)

        assert snap.get(Family.PKCS, "p").fields["library"] == "softhsm"
        assert snap.to_document() == document

    def test_from_document_empty(self):
        assert len(Snapshot.from_document(None)) == 0
        assert len(Snapshot.from_document({"aws": []})) == 0


class TestDiff:
    """Test the identity-only snapshot diff."""

    def test_added_removed_kept(self):
        old = snapshot(aws_block("a"), aws_block("b"))
        new = snapshot(aws_block("b", key_bits="4096"), aws_block("c"))

        result = diff(Family.AWS, old, new)

        assert result.added == {"b", "c"}
        assert result.removed == {"a"}
        assert result.kept == {"b"}
        assert result.created == {"c"}
        assert result.has_changes

    def test_field_change_alone_is_not_structural(self):
        old = snapshot(aws_block("a"))
        new = snapshot(aws_block("a", key_bits="4096"))

        result = diff(Family.AWS, old, new)

        assert result.added == {"a"}
        assert result.removed == set()
        assert not result.has_changes

    def test_diff_scoped_to_family(self):
        old = snapshot(ManagedKeyBlock.from_fields(Family.PKCS, pkcs_fields("p")))

        result = diff(Family.AWS, old, Snapshot())

        assert result.removed == set()

    def test_diff_does_not_mutate_inputs(self):
        old = snapshot(aws_block("a"))
        new = snapshot(aws_block("b"))

        diff(Family.AWS, old, new)

        assert [b.name for b in old] == ["a"]
        assert [b.name for b in new] == ["b"]

    def test_summary(self):
        result = diff(Family.AWS, snapshot(aws_block("a")), snapshot(aws_block("b")))

        assert result.summary() == "awskms: 1 to write (1 new), 1 to delete"
