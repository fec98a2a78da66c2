from decimal import Decimal as D

from django.core.management.base import BaseCommand

from canteen.models import MenuItem, TokenSettings

SAMPLE_MENU = [
    ("Idli Sambar", D("30.00"), MenuItem.BREAKFAST),
    ("Masala Dosa", D("45.00"), MenuItem.BREAKFAST),
    ("Veg Meals", D("70.00"), MenuItem.LUNCH),
    ("Chicken Biriyani", D("120.00"), MenuItem.LUNCH),
    ("Samosa", D("15.00"), MenuItem.SNACKS),
    ("Tea", D("10.00"), MenuItem.SNACKS),
]


class Command(BaseCommand):
    help = "Seed the canteen with a sample menu and a closed token pool. Safe to run more than once."

    def add_arguments(self, parser):
        parser.add_argument("--tokens", type=int, default=100, help="Pool size for the initial settings row.")

    def handle(self, *args, **opts):
        created = 0
        for name, price, category in SAMPLE_MENU:
            _, was_created = MenuItem.objects.get_or_create(
                name=name, defaults={"price": price, "category": category}
            )
            created += int(was_created)

        if not TokenSettings.objects.exists():
            TokenSettings.objects.create(is_active=False, total_tokens=opts["tokens"])
            self.stdout.write(f"Created token settings with {opts['tokens']} tokens (booking closed).")

        self.stdout.write(self.style.SUCCESS(f"Seeded {created} new menu item(s)."))
