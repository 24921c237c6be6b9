"""Tests for content fingerprinting."""

from datetime import datetime, timezone

from inboxsync.db.schemas import InboxItem
from inboxsync.fingerprint import fingerprint, fingerprint_content, normalize_content


def make_item(content: str, project_id: str = "alpha", item_id: str = "i1") -> InboxItem:
    return InboxItem(
        id=item_id,
        project_id=project_id,
        raw_content=content,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class TestNormalizeContent:
    """Tests for content normalization."""

    def test_collapses_whitespace(self):
        assert normalize_content("  buy\t milk \n\n now ") == "buy milk now"

    def test_empty(self):
        assert normalize_content("") == ""
        assert normalize_content("   \n ") == ""

    def test_unicode_composition(self):
        """Composed and decomposed accents normalize to the same text."""
        assert normalize_content("café") == normalize_content("café")


class TestFingerprint:
    """Tests for fingerprint stability."""

    def test_is_hex_sha256(self):
        fp = fingerprint(make_item("hello"))
        assert len(fp) == 64
        int(fp, 16)

    def test_deterministic(self):
        assert fingerprint(make_item("hello world")) == fingerprint(make_item("hello world"))

    def test_whitespace_only_edits_keep_fingerprint(self):
        """Re-encoding whitespace and line endings does not change the key."""
        base = fingerprint(make_item("Call Sam\nabout the launch"))
        assert fingerprint(make_item("Call Sam\r\nabout the launch")) == base
        assert fingerprint(make_item("  Call   Sam\n\n about the launch\t")) == base

    def test_semantic_change_changes_fingerprint(self):
        assert fingerprint(make_item("Call Sam")) != fingerprint(make_item("Call Sue"))

    def test_item_id_and_timestamp_do_not_matter(self):
        """Only content and project feed the fingerprint."""
        a = make_item("same", item_id="a")
        b = InboxItem(
            id="b",
            project_id="alpha",
            raw_content="same",
            created_at=datetime(2030, 6, 1, tzinfo=timezone.utc),
        )
        assert fingerprint(a) == fingerprint(b)

    def test_project_scoped(self):
        """Identical content in two projects has two fingerprints."""
        assert fingerprint(make_item("same", project_id="alpha")) != fingerprint(
            make_item("same", project_id="beta")
        )

    def test_matches_fingerprint_content(self):
        assert fingerprint(make_item("x y")) == fingerprint_content("alpha", "x   y")
