"""Tests for logical id derivation."""

import hashlib

import pytest

from infrasynth.core.logical_ids import (
    FALLBACK_HUMAN_ID,
    HASH_LENGTH,
    human_part,
    make_unique_id,
    path_hash,
    remove_dupes,
)


class TestMakeUniqueId:
    """Tests for make_unique_id."""

    def test_single_component(self):
        """Test the readable part followed by the path hash."""
        assert make_unique_id(["Queue"]) == "Queue722AD2D0"

    def test_nested_path(self):
        """Test components are concatenated and the full path is hashed."""
        assert make_unique_id(["Pipeline", "Build", "Queue"]) == "PipelineBuildQueue32F57E02"

    def test_deterministic(self):
        """Test the same path always yields the same id."""
        components = ["Service", "Worker", "Queue"]
        assert make_unique_id(components) == make_unique_id(list(components))

    def test_hidden_component_still_hashed(self):
        """Test "Resource" is left out of the readable part but not the hash."""
        logical_id = make_unique_id(["Topic", "Resource"])
        assert logical_id == "TopicBFC7AF6E"
        assert logical_id != make_unique_id(["Topic"])

    def test_default_hidden_from_readable_part(self):
        """Test "Default" does not appear in the readable part."""
        assert make_unique_id(["Bucket", "Default"]).startswith("Bucket")
        assert "Default" not in make_unique_id(["Bucket", "Default"])

    def test_same_readable_part_different_paths(self):
        """Test paths that read the same still get distinct ids."""
        first = make_unique_id(["A", "BC"])
        second = make_unique_id(["AB", "C"])
        assert first[:-HASH_LENGTH] == second[:-HASH_LENGTH] == "ABC"
        assert first != second

    def test_non_alphanumeric_removed(self):
        """Test punctuation is stripped from the readable part."""
        logical_id = make_unique_id(["my-queue", "dead_letter"])
        assert logical_id.startswith("myqueuedeadletter")
        assert logical_id.isalnum()

    def test_truncated_to_max_length(self):
        """Test long paths are truncated but keep the hash suffix."""
        components = ["VeryLongConstructName"] * 3 + ["Other"]
        logical_id = make_unique_id(components, max_length=20)
        assert len(logical_id) == 20
        assert logical_id.endswith(path_hash(components))

    def test_fallback_readable_part(self):
        """Test a path without usable characters falls back to a fixed word."""
        assert make_unique_id(["--"]) == FALLBACK_HUMAN_ID + path_hash(["--"])

    def test_empty_components(self):
        """Test an empty path is rejected."""
        with pytest.raises(ValueError) as exc_info:
            make_unique_id([])
        assert "empty" in str(exc_info.value)

    def test_max_length_too_small(self):
        """Test a max length that leaves no room next to the hash is rejected."""
        with pytest.raises(ValueError):
            make_unique_id(["Queue"], max_length=HASH_LENGTH)


class TestHelpers:
    """Tests for the readable part helpers."""

    def test_remove_dupes(self):
        """Test only consecutive duplicates are removed."""
        assert remove_dupes(["Queue", "Queue", "Topic", "Queue"]) == ["Queue", "Topic", "Queue"]

    def test_human_part_only_hidden(self):
        """Test a path of hidden ids keeps the last component."""
        assert human_part(["Resource"]) == "Resource"

    def test_path_hash_length(self):
        """Test the hash is uppercase hex of fixed length."""
        digest = path_hash(["a", "b"])
        assert len(digest) == HASH_LENGTH
        assert digest == digest.upper()

    def test_path_hash_not_for_security(self, monkeypatch):
        """Test the digest works where md5 is only allowed for non-security use."""
        md5 = hashlib.md5

        def restricted_md5(data=b"", **kwargs):
            if kwargs.get("usedforsecurity", True):
                raise ValueError("md5 is not allowed for security purposes")
            return md5(data, **kwargs)

        monkeypatch.setattr(hashlib, "md5", restricted_md5)
        assert make_unique_id(["Queue"]) == "Queue722AD2D0"
