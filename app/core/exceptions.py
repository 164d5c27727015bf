# app/core/exceptions.py
"""Custom exceptions for the chat and notification layer."""


class ChatException(Exception):
    """Base exception for the chat/notification layer."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.__class__.__name__


class Unauthenticated(ChatException):
    """Missing, malformed or expired bearer token. Fatal to a websocket."""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, 401)


class NotAuthorized(ChatException):
    """Authenticated caller is not allowed to act on the room or resource."""
    def __init__(self, message: str = "Not authorized for this room"):
        super().__init__(message, 403)


class RoomNotFound(ChatException):
    def __init__(self, room_id=None):
        message = "Chat room not found"
        if room_id:
            message += f" with id: {room_id}"
        super().__init__(message, 404)


class NotificationNotFound(ChatException):
    def __init__(self, notification_id=None):
        message = "Notification not found"
        if notification_id:
            message += f" with id: {notification_id}"
        super().__init__(message, 404)


class InvalidMessageFormat(ChatException):
    """Inbound frame or request body could not be understood."""
    def __init__(self, message: str = "Invalid message format"):
        super().__init__(message, 422)


class PersistenceFailure(ChatException):
    """Storage layer error.

    The message is what the client sees; the underlying error is logged
    where it is caught and never forwarded.
    """
    def __init__(self, message: str = "Failed to process request"):
        super().__init__(message, 500)


class ParticipantNotFound(ChatException):
    """A profile id named as a room participant does not exist."""
    def __init__(self, role: str, profile_id=None):
        message = f"{role.capitalize()} not found"
        if profile_id:
            message += f" with id: {profile_id}"
        super().__init__(message, 404)
