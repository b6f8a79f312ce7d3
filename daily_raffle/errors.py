"""
Raffle Errors
Typed failures raised by the raffle engine and its store
"""


class RaffleError(Exception):
    """Base class for every raffle failure

    ``user_message`` is the short text shown to the member or admin who
    triggered the operation.
    """

    user_message = "Something went wrong with the raffle. Please try again later."
    retryable = False

    def __init__(self, message=None):
        super().__init__(message or self.user_message)


class ValidationError(RaffleError):
    """Malformed prize spec, non-positive amount, unknown limit kind"""

    user_message = "🚫 Invalid input."

    def __init__(self, message=None):
        super().__init__(message)
        if message:
            self.user_message = f"🚫 {message}"


class StateError(RaffleError):
    """Operation not allowed for the raffle's current active flag"""

    user_message = "⛔ That can't be done right now."

    def __init__(self, message=None):
        super().__init__(message)
        if message:
            self.user_message = f"⛔ {message}"


class InactiveRaffleError(RaffleError):
    user_message = "No raffle is active!"


class NoTicketsError(RaffleError):
    user_message = "You don't have any raffle tickets!"


class UserLimitReachedError(RaffleError):
    def __init__(self, limit):
        self.limit = limit
        self.user_message = f"You have reached the maximum of {limit} wins in this raffle!"
        super().__init__(self.user_message)


class NoPrizesConfiguredError(RaffleError):
    user_message = "No prizes configured or invalid prize data!"


class AllPrizesExhaustedError(RaffleError):
    user_message = "All available prizes have reached their maximum win limit! No prize for you this time."


class PersistenceError(RaffleError):
    """The document store could not be read or written"""

    user_message = "⚠️ The raffle could not be saved. Please try again in a moment."


class ConflictError(PersistenceError):
    """Another interaction saved the same raffle first (version mismatch)"""

    user_message = "⚠️ The raffle is busy right now. Please try again."
    retryable = True
