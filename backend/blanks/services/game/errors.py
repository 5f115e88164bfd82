class GameError(Exception):
    """Base class for failures surfaced to the caller.

    Raising one inside a transaction rolls it back, so a failed operation
    leaves the room exactly as it was.
    """
    code = 'game_error'
    status_code = 400
    message = 'The game rejected this action'

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class RoomNotFound(GameError):
    code = 'room_not_found'
    status_code = 404
    message = 'Room not found'


class PlayerNotFound(GameError):
    code = 'player_not_found'
    status_code = 404
    message = 'You are not a player in this room'


class GameAlreadyStarted(GameError):
    code = 'game_already_started'
    status_code = 409
    message = 'This game has already started'


class InsufficientPlayers(GameError):
    code = 'insufficient_players'
    message = 'Not enough players to start'


class EmptyDeckSelection(GameError):
    code = 'empty_deck_selection'
    message = 'Select at least one card set with prompt and answer cards'


class InvalidConfig(GameError):
    code = 'invalid_config'
    message = 'Invalid room configuration'


class InvalidPayload(GameError):
    code = 'invalid_payload'
    message = 'Invalid request body'


class InvalidSubmission(GameError):
    code = 'invalid_submission'
    message = 'Invalid card submission'


class InvalidSelection(GameError):
    code = 'invalid_selection'
    message = 'Invalid winner selection'


class NotAllowed(GameError):
    code = 'not_allowed'
    status_code = 403
    message = 'You are not allowed to do that'


class StaleTransition(GameError):
    """The precondition no longer holds against the freshly read state."""
    code = 'stale_transition'
    status_code = 409
    message = 'The game has moved on'


class TransactionConflict(GameError):
    code = 'transaction_conflict'
    status_code = 503
    message = 'Too many concurrent updates, try again'


class RoomCodeUnavailable(GameError):
    code = 'room_code_unavailable'
    status_code = 503
    message = 'Could not allocate a room code, try again'
