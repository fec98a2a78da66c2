from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from canteen.forms import MenuItemForm
from canteen.models import MenuItem, TokenSettings
from canteen.services import menu


class MenuCatalogTests(TestCase):

    def setUp(self):
        MenuItem.objects.create(name="Tea", price=Decimal("10"), category=MenuItem.SNACKS)
        MenuItem.objects.create(name="Veg Meals", price=Decimal("70"), category=MenuItem.LUNCH)
        MenuItem.objects.create(name="Dosa", price=Decimal("45"), category=MenuItem.BREAKFAST)
        MenuItem.objects.create(name="Biriyani", price=Decimal("120"), category=MenuItem.LUNCH, is_available=False)

    def test_sorted_by_category_then_name(self):
        names = [item.name for item in menu.sorted_menu()]
        self.assertEqual(names, ["Dosa", "Biriyani", "Veg Meals", "Tea"])

    def test_available_menu_filters(self):
        names = [item.name for item in menu.available_menu()]
        self.assertEqual(names, ["Dosa", "Veg Meals", "Tea"])

    def test_group_by_category_skips_empty(self):
        MenuItem.objects.filter(category=MenuItem.BREAKFAST).delete()
        sections = menu.group_by_category(menu.available_menu())
        self.assertEqual([category for category, _ in sections], ["Lunch", "Snacks"])
        self.assertEqual([i.name for i in sections[0][1]], ["Veg Meals"])

    def test_toggle_availability(self):
        item = MenuItem.objects.get(name="Tea")
        self.assertFalse(menu.toggle_availability(item.id).is_available)
        self.assertFalse(menu.toggle_availability(item.id, False).is_available)
        self.assertTrue(menu.toggle_availability(item.id).is_available)


class MenuItemFormTests(TestCase):

    def test_valid(self):
        form = MenuItemForm(data={"name": "Poori", "price": "35.50", "category": "Breakfast", "is_available": "on"})
        self.assertTrue(form.is_valid(), form.errors)
        item = form.save()
        self.assertEqual(item.price, Decimal("35.50"))
        self.assertTrue(item.is_available)

    def test_rejects_short_name_and_non_positive_price(self):
        form = MenuItemForm(data={"name": "ab", "price": "0", "category": "Lunch"})
        self.assertFalse(form.is_valid())
        self.assertIn("name", form.errors)
        self.assertIn("price", form.errors)

    def test_rejects_unknown_category(self):
        form = MenuItemForm(data={"name": "Pizza", "price": "99", "category": "Dinner"})
        self.assertFalse(form.is_valid())
        self.assertIn("category", form.errors)


class SeedMenuCommandTests(TestCase):

    def test_idempotent(self):
        call_command("seed_menu", "--tokens", "50", stdout=StringIO())
        call_command("seed_menu", stdout=StringIO())
        self.assertEqual(MenuItem.objects.count(), 6)
        self.assertEqual(TokenSettings.objects.count(), 1)
        settings_row = TokenSettings.objects.get()
        self.assertEqual(settings_row.total_tokens, 50)
        self.assertFalse(settings_row.is_active)
