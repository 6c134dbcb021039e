from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from wavy import socketio
from wavy import events
from wavy.services.rooms import RelayError, StoreError
from wavy.services.rooms.voice import CANVAS, TYPING, signal_envelope

NAMESPACE = '/'


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _relay():
    return current_app.extensions['wavy']


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def _typing_channel(room_id: str) -> str:
    return f"typing:{room_id}"


def _voice_channel(scope: str, room_id: str) -> str:
    return _typing_channel(room_id) if scope == TYPING else room_id


def handle_connect(auth=None):
    emit(events.CONNECTED, {'socketId': _get_sid()})


def handle_disconnect(reason=None):
    # Both cleanups always run; either may find nothing to do
    sid = _get_sid()
    left, typing_left = _relay().disconnect(sid)
    if left:
        _announce_canvas_leave(sid, left)
    if typing_left:
        _announce_typing_leave(sid, typing_left)
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason}")


# ---- Canvas rooms ----

def handle_join_room(data=None):
    sid = _get_sid()
    try:
        joined = _relay().join_canvas(sid, _payload(data).get('roomId'))
    except StoreError:
        current_app.logger.exception(f"[store-error] join failed sid={sid}")
        emit(events.ROOM_ERROR, {'message': 'Failed to join room'})
        return
    except RelayError as exc:
        emit(events.ROOM_ERROR, {'message': exc.message})
        return

    for left in joined.departed:
        _announce_canvas_leave(sid, left)
    room_id = joined.room_id
    join_room(room_id)
    emit(events.EXISTING_USERS, {'roomId': room_id, 'users': joined.existing_users})
    emit(events.USER_JOINED, {'roomId': room_id, 'socketId': sid}, to=room_id, include_self=False)
    socketio.emit(events.USER_COUNT_UPDATE, {'roomId': room_id, 'count': joined.count},
                  to=room_id, namespace=NAMESPACE)
    current_app.logger.info(f"[canvas-join] room={room_id} sid={sid} count={joined.count}")


def handle_leave_room(data=None):
    sid = _get_sid()
    left = _relay().leave_canvas(sid)
    if left:
        _announce_canvas_leave(sid, left)


def _announce_canvas_leave(sid: str, left) -> None:
    room_id = left.room_id
    leave_room(room_id)
    if left.pending:
        current_app.logger.warning(f"[store-error] room={room_id} sid={sid} release queued for retry")
    if left.voice_left:
        socketio.emit(events.VOICE_USER_LEFT, {'roomId': room_id, 'socketId': sid},
                      to=room_id, namespace=NAMESPACE)
    if left.deleted:
        current_app.logger.info(f"[canvas-close] room={room_id} last member sid={sid}")
        return
    socketio.emit(events.USER_LEFT, {'roomId': room_id, 'socketId': sid}, to=room_id, namespace=NAMESPACE)
    socketio.emit(events.USER_COUNT_UPDATE, {'roomId': room_id, 'count': left.remaining},
                  to=room_id, namespace=NAMESPACE)
    current_app.logger.info(f"[canvas-leave] room={room_id} sid={sid} count={left.remaining}")


def _forward_room_event(event: str):
    def handler(data=None):
        sid = _get_sid()
        room_id = _relay().registry.room_of(sid)
        if not room_id:
            return
        forwarded = dict(_payload(data))
        if event == events.CLEAR_CANVAS:
            forwarded['roomId'] = room_id
        forwarded['socketId'] = sid
        emit(event, forwarded, to=room_id, include_self=False)
    return handler


# ---- Typing rooms ----

def _broadcast_typing_state(room) -> None:
    channel = _typing_channel(room.room_id)
    leaderboard = [p.to_dict() for p in room.leaderboard()]
    socketio.emit(events.TYPING_USERS_UPDATE, {'roomId': room.room_id, 'count': len(leaderboard)},
                  to=channel, namespace=NAMESPACE)
    socketio.emit(events.LEADERBOARD_UPDATE, {'roomId': room.room_id, 'leaderboard': leaderboard},
                  to=channel, namespace=NAMESPACE)


def handle_join_typing_room(data=None):
    sid = _get_sid()
    data = _payload(data)
    try:
        joined = _relay().join_typing(sid, data.get('roomId'), data.get('username'))
    except RelayError as exc:
        emit(events.TYPING_ROOM_ERROR, {'message': exc.message})
        return

    if joined.previous:
        _announce_typing_leave(sid, joined.previous)
    room = joined.room
    join_room(_typing_channel(room.room_id))
    emit(events.TYPING_ROOM_READY, {
        'roomId': room.room_id,
        'text': room.text,
        'timeLimitSeconds': room.settings.time_limit_sec,
        'roundNumber': room.round_number,
        'totalRounds': room.total_rounds,
    })
    _broadcast_typing_state(room)
    current_app.logger.info(
        f"[typing-join] room={room.room_id} sid={sid} username={joined.participant.username}"
    )


def handle_typing_update(data=None):
    sid = _get_sid()
    data = _payload(data)
    room, outcome = _relay().update_typing(sid, data.get('value'), data.get('isPaste'), data.get('delta'))
    if not outcome:
        return
    participant = outcome.participant
    channel = _typing_channel(room.room_id)
    if outcome.finished:
        socketio.emit(events.USER_FINISHED, {
            'roomId': room.room_id,
            'socketId': sid,
            'username': participant.username,
            'completionTime': participant.completion_time,
        }, to=channel, namespace=NAMESPACE)
        current_app.logger.info(
            f"[typing-finish] room={room.room_id} sid={sid} score={participant.score} flags={participant.flags}"
        )
    if outcome.timed_out:
        notice = {'roomId': room.room_id, 'socketId': sid, 'username': participant.username}
        emit(events.TYPING_TIMEUP, notice)
        emit(events.USER_TIMEUP, notice, to=channel, include_self=False)
        current_app.logger.info(f"[typing-timeup] room={room.room_id} sid={sid} score={participant.score}")
    _broadcast_typing_state(room)


def handle_next_typing_round(data=None):
    sid = _get_sid()
    try:
        room = _relay().advance_typing_round(sid)
    except RelayError as exc:
        emit(events.TYPING_ROOM_ERROR, {'message': exc.message})
        return
    socketio.emit(events.TYPING_ROUND_STARTED, {
        'roomId': room.room_id,
        'text': room.text,
        'timeLimitSeconds': room.settings.time_limit_sec,
        'roundNumber': room.round_number,
        'totalRounds': room.total_rounds,
    }, to=_typing_channel(room.room_id), namespace=NAMESPACE)
    _broadcast_typing_state(room)
    current_app.logger.info(f"[typing-round] room={room.room_id} round={room.round_number}/{room.total_rounds}")


def handle_leave_typing_room(data=None):
    sid = _get_sid()
    left = _relay().leave_typing(sid)
    if left:
        _announce_typing_leave(sid, left)


def _announce_typing_leave(sid: str, left) -> None:
    channel = _typing_channel(left.room_id)
    if left.voice_left:
        # Room cleanup: tell everyone, the leaver included
        socketio.emit(events.VOICE_USER_LEFT, {'roomId': left.room_id, 'socketId': sid},
                      to=channel, namespace=NAMESPACE)
    leave_room(channel)
    if left.deleted:
        current_app.logger.info(f"[typing-close] room={left.room_id} last member sid={sid}")
        return
    room = _relay().typing.get(left.room_id)
    if room:
        _broadcast_typing_state(room)


# ---- Voice (both modes) ----

def _join_voice(scope: str):
    def handler(data=None):
        sid = _get_sid()
        try:
            joined = _relay().enable_voice(scope, sid)
        except RelayError as exc:
            emit(events.VOICE_ERROR, {'message': exc.message})
            return
        emit(events.VOICE_PARTICIPANTS, {
            'roomId': joined.room_id,
            'participants': [p.to_dict() for p in joined.peers],
        })
        if joined.first_time:
            emit(events.VOICE_USER_JOINED, {'roomId': joined.room_id, 'socketId': sid, 'username': joined.username},
                 to=_voice_channel(scope, joined.room_id), include_self=False)
            current_app.logger.info(f"[voice-join] scope={scope} room={joined.room_id} sid={sid}")
    return handler


def _leave_voice(scope: str):
    def handler(data=None):
        sid = _get_sid()
        room_id = _relay().disable_voice(scope, sid)
        if not room_id:
            return
        emit(events.VOICE_USER_LEFT, {'roomId': room_id, 'socketId': sid},
             to=_voice_channel(scope, room_id), include_self=False)
        current_app.logger.info(f"[voice-leave] scope={scope} room={room_id} sid={sid}")
    return handler


def _forward_signal(scope: str, event: str):
    def handler(data=None):
        sid = _get_sid()
        data = _payload(data)
        target = _relay().signal_target(scope, sid, data.get('targetId'))
        if not target:
            return
        emit(event, signal_envelope(sid, data), to=target)
    return handler


def register_socketio_handlers(namespace: str = NAMESPACE) -> None:
    """Register every Socket.IO event handler on `namespace`."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)

    socketio.on_event(events.JOIN_ROOM, handle_join_room, namespace=namespace)
    socketio.on_event(events.LEAVE_ROOM, handle_leave_room, namespace=namespace)
    for event in events.RELAYED_DRAW_EVENTS:
        socketio.on_event(event, _forward_room_event(event), namespace=namespace)

    socketio.on_event(events.JOIN_CANVAS_VOICE, _join_voice(CANVAS), namespace=namespace)
    socketio.on_event(events.LEAVE_CANVAS_VOICE, _leave_voice(CANVAS), namespace=namespace)
    for event in events.CANVAS_SIGNALS:
        socketio.on_event(event, _forward_signal(CANVAS, event), namespace=namespace)

    socketio.on_event(events.JOIN_TYPING_ROOM, handle_join_typing_room, namespace=namespace)
    socketio.on_event(events.TYPING_UPDATE, handle_typing_update, namespace=namespace)
    socketio.on_event(events.NEXT_TYPING_ROUND, handle_next_typing_round, namespace=namespace)
    socketio.on_event(events.LEAVE_TYPING_ROOM, handle_leave_typing_room, namespace=namespace)

    socketio.on_event(events.JOIN_VOICE, _join_voice(TYPING), namespace=namespace)
    socketio.on_event(events.LEAVE_VOICE, _leave_voice(TYPING), namespace=namespace)
    for event in events.TYPING_SIGNALS:
        socketio.on_event(event, _forward_signal(TYPING, event), namespace=namespace)
