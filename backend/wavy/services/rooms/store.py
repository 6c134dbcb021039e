from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from wavy import db
from wavy.models import Room
from .errors import ConflictError, StoreError


class RoomStore:
    """Durable canvas room records on top of Flask-SQLAlchemy.

    Member add/remove are idempotent set operations over the ordered
    `users` list. Database failures are rolled back and raised as
    StoreError; callers decide what to tell the client.
    """

    def create_if_absent(self, room_id: str) -> Room:
        room = Room(room_id=room_id, is_active=True)
        room.members = []
        try:
            db.session.add(room)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f'Room {room_id} already exists')
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError('Failed to create room') from exc
        return room

    def find_by_id(self, room_id: str) -> Optional[Room]:
        try:
            return Room.query.filter_by(room_id=room_id).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError('Failed to fetch room') from exc

    def exists(self, room_id: str) -> bool:
        return self.find_by_id(room_id) is not None

    def add_member(self, room_id: str, connection_id: str) -> Optional[Room]:
        return self._change_members(room_id, connection_id, add=True)

    def remove_member(self, room_id: str, connection_id: str) -> Optional[Room]:
        return self._change_members(room_id, connection_id, add=False)

    def delete_by_id(self, room_id: str) -> None:
        try:
            Room.query.filter_by(room_id=room_id).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError('Failed to delete room') from exc

    def find_stale(self, cutoff: datetime) -> List[Room]:
        """Rooms created before `cutoff` that nobody is in."""
        rooms = Room.query.filter(Room.created_at < cutoff).all()
        return [room for room in rooms if not room.members]

    def _change_members(self, room_id: str, connection_id: str, add: bool) -> Optional[Room]:
        try:
            room = Room.query.filter_by(room_id=room_id).with_for_update().first()
            if not room:
                return None
            members = room.members
            if add and connection_id not in members:
                members.append(connection_id)
            elif not add and connection_id in members:
                members.remove(connection_id)
            room.members = members
            db.session.add(room)
            db.session.commit()
            return room
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError('Failed to update room members') from exc
