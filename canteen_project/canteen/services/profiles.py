import logging

from django.conf import settings
from django.db import DatabaseError

from ..exceptions import ProfileLookupFailure
from ..models import Profile

logger = logging.getLogger(__name__)


def admin_emails():
    return {email.strip().lower() for email in getattr(settings, 'CANTEEN_ADMIN_EMAILS', []) if email.strip()}


def is_allow_listed(email):
    return bool(email) and email.strip().lower() in admin_emails()


def fetch_profile(user):
    try:
        return Profile.objects.filter(user=user).first()
    except DatabaseError as exc:
        raise ProfileLookupFailure() from exc


def ensure_profile(user, name=None):
    """Create the user's profile if missing and keep name/role current.

    Allow-listed e-mails are promoted to admin; an existing admin role is
    never downgraded here.
    """
    role = Profile.ROLE_ADMIN if is_allow_listed(user.email) else Profile.ROLE_STUDENT
    profile, created = Profile.objects.get_or_create(
        user=user,
        defaults={'name': (name or '').strip(), 'role': role},
    )
    if created:
        logger.info("Created %s profile for user %s", profile.role, user.pk)
        return profile

    updates = []
    if name and name.strip() and profile.name != name.strip():
        profile.name = name.strip()
        updates.append('name')
    if role == Profile.ROLE_ADMIN and profile.role != Profile.ROLE_ADMIN:
        profile.role = Profile.ROLE_ADMIN
        updates.append('role')
    if updates:
        profile.save(update_fields=updates)
    return profile


def resolve_role(user):
    if not user.is_authenticated:
        return None
    if user.is_superuser:
        return Profile.ROLE_ADMIN

    try:
        profile = fetch_profile(user)
    except ProfileLookupFailure as exc:
        # Sign-in must not be blocked by a missing profile table/row
        logger.warning("%s (user %s): %s", exc.message, user.pk, exc.__cause__)
        profile = None

    if profile is not None and profile.role == Profile.ROLE_ADMIN:
        return Profile.ROLE_ADMIN
    return Profile.ROLE_ADMIN if is_allow_listed(user.email) else Profile.ROLE_STUDENT


def is_admin(user):
    return resolve_role(user) == Profile.ROLE_ADMIN


def display_name(user):
    """Name captured on bookings: profile name, full name, e-mail, username."""
    try:
        profile = fetch_profile(user)
    except ProfileLookupFailure:
        profile = None
    if profile is not None and profile.name:
        return profile.name
    return user.get_full_name() or user.email or user.get_username()
