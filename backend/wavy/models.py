from datetime import datetime, timezone
import json

from wavy import db


def _utcnow():
    return datetime.now(timezone.utc)


class Room(db.Model):
    """Durable canvas room record. Deleted once its last member leaves."""
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(8), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    users = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded ordered list of socket ids
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    @property
    def members(self):
        try:
            return json.loads(self.users) if self.users else []
        except ValueError:
            return []

    @members.setter
    def members(self, value):
        self.users = json.dumps(list(value))

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'users': self.members,
            'isActive': self.is_active,
        }
