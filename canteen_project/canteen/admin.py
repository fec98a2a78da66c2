from django.contrib import admin

from .models import ActivityLog, Booking, Feedback, MenuItem, Notification, Profile, TokenSettings

# Customize Admin Headers
admin.site.site_header = "Canteen Token Booking Admin"
admin.site.site_title = "Canteen Admin Portal"
admin.site.index_title = "Welcome to Canteen Admin Panel"


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'name', 'role')
    list_filter = ('role',)
    search_fields = ('user__email', 'name')


@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'price', 'is_available')
    list_filter = ('category', 'is_available')
    list_editable = ('is_available',)
    search_fields = ('name',)


@admin.register(TokenSettings)
class TokenSettingsAdmin(admin.ModelAdmin):
    list_display = ('id', 'total_tokens', 'is_active', 'created_at')
    readonly_fields = ('created_at',)


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ('token_label', 'user_name', 'booking_date', 'is_confirmed', 'created_at')
    list_filter = ('booking_date', 'is_confirmed')
    search_fields = ('user_name', 'user__email', 'token_number')
    readonly_fields = ('created_at',)

    def token_label(self, obj):
        return f"#{obj.token_number:03d}"
    token_label.short_description = 'Token'


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'user', 'action', 'message')
    list_filter = ('action', 'timestamp')
    readonly_fields = ('timestamp',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('user', 'title', 'notification_type', 'is_read', 'created_at')
    list_filter = ('notification_type', 'is_read')


@admin.register(Feedback)
class FeedbackAdmin(admin.ModelAdmin):
    list_display = ('user', 'rating', 'date', 'created_at')
    list_filter = ('rating', 'date')
    search_fields = ('comment', 'user__email')
