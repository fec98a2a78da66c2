import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.db import DatabaseError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.http import require_GET, require_POST

from .decorators import admin_required
from .exceptions import CanteenError, PersistenceFailure
from .forms import (
    AddTokensForm,
    BookTokensForm,
    EmailLoginForm,
    FeedbackForm,
    MenuItemForm,
    ResetTokensForm,
    UserRegisterForm,
)
from .models import ActivityLog, MenuItem, Notification
from .services import allocator, menu
from .services.profiles import ensure_profile, is_admin

logger = logging.getLogger(__name__)


def _form_errors(request, form):
    for errors in form.errors.values():
        for error in errors:
            messages.error(request, error)


def _landing(user):
    return "admin_dashboard" if is_admin(user) else "dashboard"


# -------------------------
# HOME / MENU
# -------------------------

def home(request):
    try:
        status = allocator.get_pool_status()
        sections = menu.group_by_category(menu.available_menu())
    except (PersistenceFailure, DatabaseError) as exc:
        logger.error("Error loading home page: %s", exc)
        messages.error(request, "Unable to load the menu right now.")
        status, sections = None, []
    return render(request, "canteen/home.html", {"sections": sections, "status": status})


# -------------------------
# USER AUTH
# -------------------------

def _sync_profile(user, name=None):
    try:
        ensure_profile(user, name=name)
    except DatabaseError:
        # Role falls back to the admin allow-list when the profile is missing
        logger.warning("Could not upsert profile for user %s", user.pk, exc_info=True)


def user_login(request):
    if request.user.is_authenticated:
        return redirect(_landing(request.user))

    form = EmailLoginForm(request.POST or None)
    if request.method == "POST":
        user = None
        if form.is_valid():
            user_obj = User.objects.filter(email__iexact=form.cleaned_data["email"]).first()
            if user_obj is not None:
                user = authenticate(request, username=user_obj.get_username(), password=form.cleaned_data["password"])

        if user is not None:
            login(request, user)
            _sync_profile(user)
            try:
                ActivityLog.objects.create(user=user, action="login", message="Signed in", object_type="User")
            except DatabaseError:
                logger.warning("Could not record login for user %s", user.pk, exc_info=True)
            messages.success(request, "Login successful!")
            next_url = request.GET.get("next")
            if next_url and url_has_allowed_host_and_scheme(next_url, allowed_hosts={request.get_host()}):
                return redirect(next_url)
            return redirect(_landing(user))
        messages.error(request, "Invalid email or password.")
    return render(request, "canteen/login.html", {"form": form})


def register(request):
    if request.method == "POST":
        form = UserRegisterForm(request.POST)
        if form.is_valid():
            user = form.save()
            _sync_profile(user, name=form.cleaned_data["name"])
            login(request, user, backend="django.contrib.auth.backends.ModelBackend")
            messages.success(request, f"Account created successfully! Welcome, {form.cleaned_data['name']}!")
            return redirect(_landing(user))
        _form_errors(request, form)
    else:
        form = UserRegisterForm()

    return render(request, "canteen/register.html", {"form": form})


@require_POST
def user_logout(request):
    logout(request)
    messages.success(request, "You have been logged out successfully.")
    return redirect("home")


# -------------------------
# STUDENT DASHBOARD
# -------------------------

@login_required
def dashboard(request):
    if is_admin(request.user):
        return redirect("admin_dashboard")

    try:
        status = allocator.get_pool_status()
        my_bookings = list(allocator.user_bookings(request.user, status.booking_date))
        notifications = list(Notification.objects.filter(user=request.user, is_read=False)[:5])
    except (PersistenceFailure, DatabaseError) as exc:
        logger.error("Error loading dashboard for user %s: %s", request.user.pk, exc)
        messages.error(request, "Unable to load dashboard data")
        status, my_bookings, notifications = None, [], []

    cap = allocator.max_tokens_per_user()
    can_book = bool(status and status.is_active and status.tokens_left > 0 and len(my_bookings) < cap)
    return render(request, "canteen/dashboard.html", {
        "status": status,
        "my_bookings": my_bookings,
        "notifications": notifications,
        "can_book": can_book,
        "max_tokens": cap,
        "book_form": BookTokensForm(),
        "feedback_form": FeedbackForm(),
        "poll_interval": settings.CANTEEN_POLL_INTERVAL_SECONDS,
    })


@login_required
@require_POST
def book_tokens(request):
    form = BookTokensForm(request.POST)
    if not form.is_valid():
        _form_errors(request, form)
        return redirect("dashboard")

    requested = form.cleaned_data["quantity"]
    try:
        bookings = allocator.book_tokens(request.user, requested)
    except CanteenError as exc:
        messages.error(request, exc.message)
        return redirect("dashboard")

    numbers = ", ".join(f"#{b.token_number:03d}" for b in bookings)
    messages.success(request, f"Your token is booked! Token Number(s): {numbers}")
    if len(bookings) < requested:
        messages.info(request, f"Only {len(bookings)} of {requested} requested token(s) could be allocated.")
    return redirect("dashboard")


@login_required
@require_POST
def cancel_booking(request, booking_id):
    try:
        number = allocator.cancel_booking(request.user, booking_id)
    except CanteenError as exc:
        messages.error(request, exc.message)
    else:
        messages.info(request, f"Token #{number:03d} cancelled.")
    return redirect("dashboard")


@login_required
@require_POST
def submit_feedback(request):
    form = FeedbackForm(request.POST)
    if form.is_valid():
        feedback = form.save(commit=False)
        feedback.user = request.user
        feedback.date = allocator.today()
        feedback.save()
        messages.success(request, "Thanks for your feedback!")
    else:
        _form_errors(request, form)
    return redirect("dashboard")


@require_GET
def pool_status(request):
    try:
        status = allocator.get_pool_status()
    except PersistenceFailure as exc:
        return JsonResponse({"error": exc.message}, status=503)
    return JsonResponse(status.as_dict())


# -------------------------
# ADMIN DASHBOARD
# -------------------------

@admin_required
def admin_dashboard(request):
    try:
        current = allocator.get_authoritative_settings()
        status = allocator.get_pool_status()
        groups = allocator.group_bookings_by_user(allocator.bookings_for_date(status.booking_date))
    except PersistenceFailure as exc:
        messages.error(request, exc.message)
        current, status, groups = None, None, []

    reset_initial = {"total_tokens": current.total_tokens} if current and current.total_tokens else {"total_tokens": 100}
    return render(request, "canteen/admin_dashboard.html", {
        "token_settings": current,
        "status": status,
        "groups": groups,
        "menu_items": menu.sorted_menu(),
        "reset_form": ResetTokensForm(initial=reset_initial),
        "add_form": AddTokensForm(),
    })


@admin_required
@require_POST
def toggle_booking(request):
    is_active = request.POST.get("is_active", "").lower() in ("1", "true", "on")
    try:
        allocator.set_booking_active(is_active, actor=request.user)
    except CanteenError as exc:
        messages.error(request, exc.message)
    else:
        messages.success(request, "Booking is now LIVE!" if is_active else "Booking is now CLOSED.")
    return redirect("admin_dashboard")


@admin_required
@require_POST
def reset_tokens(request):
    form = ResetTokensForm(request.POST)
    if not form.is_valid():
        _form_errors(request, form)
        return redirect("admin_dashboard")
    try:
        allocator.reset_pool(form.cleaned_data["total_tokens"], actor=request.user)
    except CanteenError as exc:
        messages.error(request, exc.message)
    else:
        messages.success(request, "Token bookings have been reset!")
    return redirect("admin_dashboard")


@admin_required
@require_POST
def add_tokens(request):
    form = AddTokensForm(request.POST)
    if not form.is_valid():
        _form_errors(request, form)
        return redirect("admin_dashboard")
    amount = form.cleaned_data["amount"]
    try:
        allocator.add_tokens(amount, actor=request.user)
    except CanteenError as exc:
        messages.error(request, exc.message)
    else:
        messages.success(request, f"Added {amount} tokens successfully!")
    return redirect("admin_dashboard")


@admin_required
@require_POST
def confirm_user_bookings(request, user_id):
    try:
        count = allocator.confirm_bookings(user_id, actor=request.user)
    except CanteenError as exc:
        messages.error(request, exc.message)
    else:
        if count:
            messages.success(request, "All tokens for user confirmed!")
        else:
            messages.info(request, "Nothing left to confirm for this user.")
    return redirect("admin_dashboard")


@admin_required
@require_POST
def confirm_booking(request, booking_id):
    try:
        booking = allocator.confirm_booking(booking_id, actor=request.user)
    except CanteenError as exc:
        messages.error(request, exc.message)
    else:
        messages.success(request, f"Token #{booking.token_number:03d} confirmed.")
    return redirect("admin_dashboard")


# -------------------------
# MENU MANAGEMENT
# -------------------------

@admin_required
def menu_add(request):
    form = MenuItemForm(request.POST or None)
    if request.method == "POST":
        if form.is_valid():
            item = form.save()
            messages.success(request, f"Menu item {item.name} added successfully!")
            return redirect("admin_dashboard")
        _form_errors(request, form)
    return render(request, "canteen/menu_form.html", {"form": form, "item": None})


@admin_required
def menu_edit(request, item_id):
    item = get_object_or_404(MenuItem, id=item_id)
    form = MenuItemForm(request.POST or None, instance=item)
    if request.method == "POST":
        if form.is_valid():
            form.save()
            messages.success(request, "Menu item updated successfully!")
            return redirect("admin_dashboard")
        _form_errors(request, form)
    return render(request, "canteen/menu_form.html", {"form": form, "item": item})


@admin_required
@require_POST
def menu_delete(request, item_id):
    item = get_object_or_404(MenuItem, id=item_id)
    item.delete()
    messages.success(request, "Menu item deleted.")
    return redirect("admin_dashboard")


@admin_required
@require_POST
def menu_toggle(request, item_id):
    value = request.POST.get("is_available")
    is_available = None if value is None else value.lower() in ("1", "true", "on")
    item = menu.toggle_availability(item_id, is_available)
    messages.success(request, f"{item.name} is now {'available' if item.is_available else 'unavailable'}.")
    return redirect("admin_dashboard")
