"""Inbound intent payloads.

Each Socket.IO event name maps to exactly one model. Anything that does not
validate is rejected with ``InvalidPayload`` before a handler touches state.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from ttt_arena.errors import InvalidPayload


class Intent(BaseModel):
    # Older clients also send their own "player"; the server ignores it.
    model_config = ConfigDict(extra='ignore')

    roomId: str = Field(min_length=1)


class JoinGame(Intent):
    displayName: Optional[str] = Field(default=None, max_length=256)


class CellAction(Intent):
    index: StrictInt


class RoomAction(Intent):
    pass


class ChatMessage(Intent):
    # raw bound; the coordinator strips and truncates to MAX_CHAT_LENGTH
    message: str = Field(max_length=2000)


INTENTS = {
    'joinGame': JoinGame,
    'makeMove': CellAction,
    'removeSymbol': CellAction,
    'undo': RoomAction,
    'resetGame': RoomAction,
    'rematch': RoomAction,
    'getRoomInfo': RoomAction,
    'chatMessage': ChatMessage,
}


def parse_intent(event: str, data):
    model = INTENTS.get(event)
    if model is None:
        raise InvalidPayload(f"Unknown event: {event}")
    # joinGame historically took the bare room id
    if event == 'joinGame' and isinstance(data, str):
        data = {'roomId': data}
    if not isinstance(data, dict):
        raise InvalidPayload()
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = ', '.join(str(err['loc'][0]) for err in exc.errors() if err.get('loc'))
        raise InvalidPayload(f"Malformed {event} payload: {fields or 'invalid'}") from exc
