"""
Key-value persistence row used by SQLKeyValueStore.

Cache entries, actions, feedback, execution history and provider
configurations are all stored here as JSON documents keyed by a
namespaced string (e.g. ``ai_actions:act-1a2b``).
"""

from datetime import datetime, timezone

from compliance_engine.models import db


class KeyValueEntry(db.Model):
    """One JSON document addressed by a namespaced key."""

    __tablename__ = "kv_entries"

    key = db.Column(db.String(255), primary_key=True,
                    comment="Namespaced key, '<collection>:<id>'")
    value_json = db.Column(db.Text, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "key": self.key,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
