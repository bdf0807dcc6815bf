class InboxError(Exception):
    """Base error. `str(error)` is safe to show to the operator."""


class TargetingError(InboxError):
    """No dialable phone number could be resolved; nothing was sent or stored."""


class DispatchError(InboxError):
    """The provider rejected or failed the send; the message is marked ERROR."""


class InvalidEventError(InboxError):
    """Event refers to a missing chat/message/definition or breaks a precondition."""


class ReadOnlyChatError(InvalidEventError):
    """The chat is held by another agent."""


class PersistenceError(InboxError):
    """The persistence sink failed; the previous snapshot is kept."""
