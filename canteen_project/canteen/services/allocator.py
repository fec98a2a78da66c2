"""Daily token pool: status, booking, cancellation and admin controls.

Every mutation of the pool runs in a single transaction that first locks
the authoritative ``TokenSettings`` row, so concurrent requests for the
same day are serialized by the database. Token numbers are unique per
``booking_date`` (enforced by a constraint) and are never reused after a
cancellation: the next number is always ``max + 1``.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F, Max
from django.utils import timezone

from ..exceptions import (
    BookingAlreadyConfirmed,
    BookingClosed,
    BookingNotFound,
    InvalidAmount,
    NothingToAllocate,
    PersistenceFailure,
    SoldOut,
    UserLimitReached,
)
from ..models import ActivityLog, Booking, Notification, TokenSettings
from .profiles import display_name

logger = logging.getLogger(__name__)

MAX_TOKENS_PER_USER = 3


@dataclass(frozen=True)
class SettingsSnapshot:
    id: int
    is_active: bool
    total_tokens: int
    created_at: datetime

    @classmethod
    def from_model(cls, row):
        return cls(id=row.pk, is_active=row.is_active, total_tokens=row.total_tokens, created_at=row.created_at)


@dataclass(frozen=True)
class PoolStatus:
    booking_date: date
    is_active: bool
    total_tokens: int
    booked: int
    tokens_left: int

    def as_dict(self):
        return {
            'booking_date': self.booking_date.isoformat(),
            'is_active': self.is_active,
            'total_tokens': self.total_tokens,
            'booked': self.booked,
            'tokens_left': self.tokens_left,
        }


def max_tokens_per_user():
    return getattr(settings, 'CANTEEN_MAX_TOKENS_PER_USER', MAX_TOKENS_PER_USER)


def today():
    return timezone.localdate()


@contextmanager
def _persisting(operation):
    """Run a unit of work atomically; storage errors become PersistenceFailure."""
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.exception("Database error during %s", operation)
        raise PersistenceFailure() from exc


def _authoritative(queryset=None):
    queryset = TokenSettings.objects.all() if queryset is None else queryset
    return queryset.order_by('-created_at', '-id').first()


def _lock_authoritative():
    """Lock the latest settings row, following any row a reset inserted meanwhile.

    A request that waited on the old row's lock still gets that row back,
    so the latest row is looked up again after the lock is granted.
    """
    while True:
        row = _authoritative(TokenSettings.objects.select_for_update())
        if row is None:
            return None
        latest = _authoritative()
        if latest is None or latest.pk == row.pk:
            return row
        logger.info("Token settings row %s superseded by %s, locking again", row.pk, latest.pk)


def _log(user, action, message, object_type):
    ActivityLog.objects.create(user=user, action=action, message=message, object_type=object_type)


# -------------------------
# READS
# -------------------------

def get_authoritative_settings() -> Optional[SettingsSnapshot]:
    try:
        row = _authoritative()
    except DatabaseError as exc:
        logger.exception("Database error loading token settings")
        raise PersistenceFailure() from exc
    return SettingsSnapshot.from_model(row) if row else None


def get_pool_status(booking_date=None) -> PoolStatus:
    booking_date = booking_date or today()
    current = get_authoritative_settings()
    try:
        booked = Booking.objects.filter(booking_date=booking_date).count()
    except DatabaseError as exc:
        logger.exception("Database error counting bookings for %s", booking_date)
        raise PersistenceFailure() from exc

    total = current.total_tokens if current else 0
    return PoolStatus(
        booking_date=booking_date,
        is_active=bool(current and current.is_active),
        total_tokens=total,
        booked=booked,
        tokens_left=max(total - booked, 0),
    )


def bookings_for_date(booking_date=None):
    return Booking.objects.filter(booking_date=booking_date or today()).order_by('token_number')


def user_bookings(user, booking_date=None):
    return bookings_for_date(booking_date).filter(user=user)


def group_bookings_by_user(bookings):
    """Group bookings per user, in order of each user's first token."""
    groups = {}
    for booking in sorted(bookings, key=lambda b: b.token_number):
        group = groups.setdefault(booking.user_id, {
            'user_id': booking.user_id,
            'user_name': booking.user_name,
            'bookings': [],
        })
        group['bookings'].append(booking)
    for group in groups.values():
        group['all_confirmed'] = all(b.is_confirmed for b in group['bookings'])
    return list(groups.values())


# -------------------------
# STUDENT OPERATIONS
# -------------------------

def book_tokens(user, quantity, booking_date=None):
    """Allocate up to ``quantity`` consecutive tokens for ``user``.

    Grants fewer than requested when the per-user cap or the remaining
    pool is smaller than ``quantity``. Returns the created bookings.
    """
    booking_date = booking_date or today()
    user_name = display_name(user)
    cap = max_tokens_per_user()

    with _persisting("booking"):
        current = _lock_authoritative()
        if current is None or not current.is_active:
            raise BookingClosed()

        day = Booking.objects.filter(booking_date=booking_date)
        tokens_left = current.total_tokens - day.count()
        if tokens_left <= 0:
            raise SoldOut()

        held = day.filter(user=user).count()
        if held >= cap:
            raise UserLimitReached()

        allowed = min(quantity, cap - held, tokens_left)
        if allowed <= 0:
            raise NothingToAllocate()

        last = day.aggregate(last=Max('token_number'))['last'] or 0
        bookings = [
            Booking.objects.create(
                user=user,
                user_name=user_name,
                token_number=last + offset,
                booking_date=booking_date,
            )
            for offset in range(1, allowed + 1)
        ]
        numbers = ", ".join(f"#{b.token_number}" for b in bookings)
        _log(user, 'token_booked', f"Booked token(s) {numbers} for {booking_date}", 'Booking')

    logger.info("User %s booked %d of %d requested token(s) for %s", user.pk, allowed, quantity, booking_date)
    return bookings


def cancel_booking(user, booking_id):
    with _persisting("cancellation"):
        booking = Booking.objects.select_for_update().filter(id=booking_id, user=user).first()
        if booking is None:
            raise BookingNotFound()
        if booking.is_confirmed:
            raise BookingAlreadyConfirmed()
        number = booking.token_number
        booking.delete()
        _log(user, 'token_cancelled', f"Token #{number} cancelled", 'Booking')

    logger.info("User %s cancelled token #%d", user.pk, number)
    return number


# -------------------------
# ADMIN OPERATIONS
# -------------------------

def confirm_bookings(user_id, booking_date=None, actor=None):
    booking_date = booking_date or today()
    with _persisting("confirmation"):
        pending = Booking.objects.filter(user_id=user_id, booking_date=booking_date, is_confirmed=False)
        numbers = sorted(pending.values_list('token_number', flat=True))
        count = pending.update(is_confirmed=True)
        if count:
            listed = ", ".join(f"#{n}" for n in numbers)
            Notification.objects.create(
                user_id=user_id,
                title="Booking Confirmed",
                message=f"Your token(s) {listed} for {booking_date} have been confirmed.",
                notification_type='booking_confirmed',
            )
            _log(actor, 'tokens_confirmed', f"Confirmed token(s) {listed} for user {user_id}", 'Booking')
    return count


def confirm_booking(booking_id, actor=None):
    with _persisting("confirmation"):
        booking = Booking.objects.select_for_update().filter(id=booking_id).first()
        if booking is None:
            raise BookingNotFound()
        if not booking.is_confirmed:
            booking.is_confirmed = True
            booking.save(update_fields=['is_confirmed'])
            Notification.objects.create(
                user_id=booking.user_id,
                title="Booking Confirmed",
                message=f"Your token #{booking.token_number} for {booking.booking_date} has been confirmed.",
                notification_type='booking_confirmed',
            )
            _log(actor, 'tokens_confirmed', f"Confirmed token #{booking.token_number}", 'Booking')
    return booking


def set_booking_active(is_active, actor=None):
    with _persisting("booking toggle"):
        current = _lock_authoritative()
        if current is None:
            current = TokenSettings.objects.create(is_active=is_active, total_tokens=0)
        elif current.is_active != is_active:
            current.is_active = is_active
            current.save(update_fields=['is_active'])
        state = "opened" if is_active else "closed"
        _log(actor, 'booking_toggled', f"Booking {state}", 'TokenSettings')

    logger.info("Token booking %s", "opened" if is_active else "closed")
    return SettingsSnapshot.from_model(current)


def _positive(amount):
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise InvalidAmount() from None
    if amount <= 0:
        raise InvalidAmount()
    return amount


def reset_pool(total_tokens, actor=None, booking_date=None):
    """Erase the day's bookings and start a fresh, open pool."""
    total_tokens = _positive(total_tokens)
    booking_date = booking_date or today()

    with _persisting("pool reset"):
        _lock_authoritative()
        deleted, _ = Booking.objects.filter(booking_date=booking_date).delete()
        current = TokenSettings.objects.create(is_active=True, total_tokens=total_tokens)
        _log(actor, 'pool_reset', f"Pool reset to {total_tokens} tokens; {deleted} booking(s) removed", 'TokenSettings')

    logger.warning("Token pool for %s reset to %d (%d bookings removed)", booking_date, total_tokens, deleted)
    return SettingsSnapshot.from_model(current)


def add_tokens(amount, actor=None):
    amount = _positive(amount)

    with _persisting("adding tokens"):
        current = _lock_authoritative()
        if current is None:
            raise BookingClosed("No token pool has been set up yet. Reset the pool first.")
        TokenSettings.objects.filter(pk=current.pk).update(total_tokens=F('total_tokens') + amount)
        current.refresh_from_db()
        _log(actor, 'tokens_added', f"Added {amount} tokens (total {current.total_tokens})", 'TokenSettings')

    logger.info("Added %d tokens, pool total is now %d", amount, current.total_tokens)
    return SettingsSnapshot.from_model(current)
