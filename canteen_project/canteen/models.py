from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Profile(models.Model):
    ROLE_STUDENT = 'student'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_STUDENT, 'Student'),
        (ROLE_ADMIN, 'Admin'),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, related_name='profile', on_delete=models.CASCADE)
    name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_STUDENT)

    def __str__(self):
        return f"{self.name or self.user.email} ({self.role})"


class MenuItem(models.Model):
    BREAKFAST = 'Breakfast'
    LUNCH = 'Lunch'
    SNACKS = 'Snacks'
    CATEGORY_CHOICES = [
        (BREAKFAST, 'Breakfast'),
        (LUNCH, 'Lunch'),
        (SNACKS, 'Snacks'),
    ]
    # Display order for both the student menu and the admin table
    CATEGORY_ORDER = [BREAKFAST, LUNCH, SNACKS]

    name = models.CharField(max_length=120)
    price = models.DecimalField(max_digits=8, decimal_places=2, validators=[MinValueValidator(0)])
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default=LUNCH)
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.category})"


class TokenSettings(models.Model):
    """One snapshot of the daily token pool settings.

    Rows form a history; the authoritative one is the latest by
    ``created_at`` with the primary key as tie-breaker.
    """

    is_active = models.BooleanField(default=False)
    total_tokens = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name_plural = "Token settings"

    def __str__(self):
        state = "open" if self.is_active else "closed"
        return f"{self.total_tokens} tokens ({state}) @ {self.created_at:%Y-%m-%d %H:%M}"


class Booking(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='bookings', on_delete=models.CASCADE)
    user_name = models.CharField(max_length=150)
    token_number = models.PositiveIntegerField()
    booking_date = models.DateField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    is_confirmed = models.BooleanField(default=False)

    class Meta:
        ordering = ['booking_date', 'token_number']
        constraints = [
            models.UniqueConstraint(fields=['booking_date', 'token_number'], name='unique_token_per_date'),
        ]

    def __str__(self):
        return f"Token #{self.token_number:03d} - {self.user_name} ({self.booking_date})"


class ActivityLog(models.Model):
    ACTION_CHOICES = [
        ('token_booked', 'Token Booked'),
        ('token_cancelled', 'Token Cancelled'),
        ('tokens_confirmed', 'Tokens Confirmed'),
        ('pool_reset', 'Pool Reset'),
        ('tokens_added', 'Tokens Added'),
        ('booking_toggled', 'Booking Toggled'),
        ('login', 'User Login'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    message = models.TextField()
    object_type = models.CharField(max_length=50)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        who = self.user.username if self.user else 'system'
        return f"{who} - {self.action} - {self.timestamp.strftime('%Y-%m-%d %H:%M')}"


class Notification(models.Model):
    TYPE_CHOICES = [
        ('booking_confirmed', 'Booking Confirmed'),
        ('system', 'System Notification'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    title = models.CharField(max_length=200)
    message = models.TextField()
    notification_type = models.CharField(max_length=50, choices=TYPE_CHOICES, default='system')
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user.username} - {self.title}"


class Feedback(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField(blank=True)
    date = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = "Feedback"

    def __str__(self):
        return f"{self.user.username} - {self.rating}/5 ({self.date})"
