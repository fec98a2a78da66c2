from .services.profiles import is_admin


def role(request):
    user = getattr(request, "user", None)
    return {"is_canteen_admin": bool(user and user.is_authenticated and is_admin(user))}
