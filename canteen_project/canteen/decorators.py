from functools import wraps

from django.contrib import messages
from django.contrib.auth.views import redirect_to_login
from django.shortcuts import redirect

from .services.profiles import is_admin


def admin_required(view_func):
    """Decorator to ensure the user resolves to the admin role"""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return redirect_to_login(request.get_full_path())
        if not is_admin(request.user):
            messages.error(request, "You do not have access to the admin dashboard.")
            return redirect('dashboard')
        return view_func(request, *args, **kwargs)
    return wrapper
