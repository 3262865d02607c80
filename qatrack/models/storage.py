"""
Key/value table backing the SQL storage backend.

One row per storage key (``qa_test_cases``, ``qa_test_suites``, ``qa_users``);
``value`` holds the literal JSON serialization of the ordered collection.
"""

from datetime import datetime, timezone

from qatrack.models import db


class StorageBlob(db.Model):
    """A single persisted JSON blob addressed by key."""

    __tablename__ = "storage_blobs"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "key": self.key,
            "size": len(self.value or ""),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<StorageBlob {self.key}>"
