# Socket.IO event names shared with the browser client

CONNECTED = 'connected'

# Canvas rooms
JOIN_ROOM = 'join-room'
LEAVE_ROOM = 'leave-room'
EXISTING_USERS = 'existing-users'
USER_JOINED = 'user-joined'
USER_LEFT = 'user-left'
USER_COUNT_UPDATE = 'user-count-update'
ROOM_ERROR = 'room-error'

# Opaque drawing payloads relayed to the rest of the room
DRAW = 'draw'
SHAPE_DRAW = 'shape-draw'
ARROW_DRAW = 'arrow-draw'
CLEAR_CANVAS = 'clear-canvas'
RELAYED_DRAW_EVENTS = (DRAW, SHAPE_DRAW, ARROW_DRAW, CLEAR_CANVAS)

# Canvas voice
JOIN_CANVAS_VOICE = 'join-canvas-voice'
LEAVE_CANVAS_VOICE = 'leave-canvas-voice'
OFFER = 'offer'
ANSWER = 'answer'
ICE_CANDIDATE = 'ice-candidate'
CANVAS_SIGNALS = (OFFER, ANSWER, ICE_CANDIDATE)

# Typing rooms
JOIN_TYPING_ROOM = 'join-typing-room'
TYPING_UPDATE = 'typing-update'
LEAVE_TYPING_ROOM = 'leave-typing-room'
NEXT_TYPING_ROUND = 'next-typing-round'
TYPING_ROOM_READY = 'typing-room-ready'
TYPING_ROUND_STARTED = 'typing-round-started'
TYPING_USERS_UPDATE = 'typing-users-update'
LEADERBOARD_UPDATE = 'leaderboard-update'
USER_FINISHED = 'user-finished'
TYPING_TIMEUP = 'typing-timeup'
USER_TIMEUP = 'user-timeup'
TYPING_ROOM_ERROR = 'typing-room-error'

# Typing voice
JOIN_VOICE = 'join-voice'
LEAVE_VOICE = 'leave-voice'
TYPING_VOICE_OFFER = 'typing-voice-offer'
TYPING_VOICE_ANSWER = 'typing-voice-answer'
TYPING_VOICE_ICE = 'typing-voice-ice'
TYPING_SIGNALS = (TYPING_VOICE_OFFER, TYPING_VOICE_ANSWER, TYPING_VOICE_ICE)

# Voice presence (both modes)
VOICE_PARTICIPANTS = 'voice-participants'
VOICE_USER_JOINED = 'voice-user-joined'
VOICE_USER_LEFT = 'voice-user-left'
VOICE_ERROR = 'voice-error'
