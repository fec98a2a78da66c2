class CanteenError(Exception):
    """Base class for errors surfaced to the user as a flash message."""

    message = "Something went wrong. Please try again."

    def __init__(self, message=None):
        if message:
            self.message = message
        super().__init__(self.message)


# -------------------------
# BOOKING
# -------------------------

class BookingError(CanteenError):
    message = "Unable to book tokens."


class BookingClosed(BookingError):
    message = "Booking is closed."


class SoldOut(BookingError):
    message = "No tokens left for today."


class UserLimitReached(BookingError):
    message = "You have reached the maximum number of tokens for today."


class NothingToAllocate(BookingError):
    message = "No tokens could be allocated for this request."


class BookingNotFound(CanteenError):
    message = "Booking not found."


class BookingAlreadyConfirmed(CanteenError):
    message = "Confirmed bookings cannot be cancelled."


# -------------------------
# ADMIN / STORAGE
# -------------------------

class InvalidAmount(CanteenError):
    message = "Please enter a positive number of tokens."


class PersistenceFailure(CanteenError):
    message = "Failed to save your request. Please try again."


class ProfileLookupFailure(CanteenError):
    message = "Could not load the user profile."
