from django.db.models import Case, IntegerField, Value, When
from django.shortcuts import get_object_or_404

from ..models import MenuItem


def _category_rank():
    return Case(
        *[When(category=category, then=Value(rank)) for rank, category in enumerate(MenuItem.CATEGORY_ORDER)],
        default=Value(len(MenuItem.CATEGORY_ORDER)),
        output_field=IntegerField(),
    )


def sorted_menu():
    """All items, Breakfast first, then Lunch, then Snacks."""
    return MenuItem.objects.annotate(category_rank=_category_rank()).order_by('category_rank', 'name')


def available_menu():
    return sorted_menu().filter(is_available=True)


def group_by_category(items):
    grouped = {category: [] for category in MenuItem.CATEGORY_ORDER}
    for item in items:
        grouped.setdefault(item.category, []).append(item)
    return [(category, entries) for category, entries in grouped.items() if entries]


def toggle_availability(item_id, is_available=None):
    item = get_object_or_404(MenuItem, id=item_id)
    item.is_available = (not item.is_available) if is_available is None else is_available
    item.save(update_fields=['is_available'])
    return item
