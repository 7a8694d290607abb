"""Rejection kinds reported back to the offending connection.

Every error here is recoverable: handlers catch ``GameError``, emit an
``error`` event to the requesting sid only, and leave room state untouched.
"""


class GameError(Exception):
    code = 'GameError'
    message = 'Action rejected'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class InvalidRoomId(GameError):
    code = 'InvalidRoomId'
    message = 'Room id must be letters, digits, "-" or "_"'


class RoomNotFound(GameError):
    code = 'RoomNotFound'
    message = 'Room not found'


class NotAMember(GameError):
    code = 'NotAMember'
    message = 'Join the room first'


class SpectatorForbidden(GameError):
    code = 'SpectatorForbidden'
    message = 'Spectators cannot do that'


class GameNotActive(GameError):
    code = 'GameNotActive'
    message = 'Game is not in progress'


class GameInProgress(GameError):
    code = 'GameInProgress'
    message = 'Rematch is only available once the game is over'


class NotYourTurn(GameError):
    code = 'NotYourTurn'
    message = 'Not your turn'


class SymbolCapReached(GameError):
    code = 'SymbolCapReached'
    message = 'Remove one of your symbols first'


class InvalidCellIndex(GameError):
    code = 'InvalidCellIndex'
    message = 'Cell index must be between 0 and 8'


class CellOccupied(GameError):
    code = 'CellOccupied'
    message = 'Cell is already taken'


class CannotRemoveForeignSymbol(GameError):
    code = 'CannotRemoveForeignSymbol'
    message = 'You can only remove your own symbols'


class RateLimited(GameError):
    code = 'RateLimited'
    message = 'Too many actions, slow down'


class NothingToUndo(GameError):
    code = 'NothingToUndo'
    message = 'Nothing to undo'


class InvalidPayload(GameError):
    code = 'InvalidPayload'
    message = 'Malformed request'
