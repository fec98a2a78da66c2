from django.contrib.auth import views as auth_views
from django.urls import path

from . import views

urlpatterns = [
    # ========================
    # AUTHENTICATION & PUBLIC
    # ========================
    path('', views.home, name='home'),
    path('login/', views.user_login, name='login'),
    path('register/', views.register, name='register'),
    path('logout/', views.user_logout, name='logout'),
    path('password-reset/', auth_views.PasswordResetView.as_view(), name='password_reset'),
    path('password-reset/done/', auth_views.PasswordResetDoneView.as_view(), name='password_reset_done'),
    path('reset/<uidb64>/<token>/', auth_views.PasswordResetConfirmView.as_view(), name='password_reset_confirm'),
    path('reset/done/', auth_views.PasswordResetCompleteView.as_view(), name='password_reset_complete'),

    # ========================
    # STUDENT TOKEN BOOKING
    # ========================
    path('dashboard/', views.dashboard, name='dashboard'),
    path('book/', views.book_tokens, name='book_tokens'),
    path('bookings/<int:booking_id>/cancel/', views.cancel_booking, name='cancel_booking'),
    path('feedback/', views.submit_feedback, name='submit_feedback'),
    path('api/pool-status/', views.pool_status, name='pool_status'),

    # ========================
    # MANAGEMENT SYSTEM
    # ========================
    path('manage/', views.admin_dashboard, name='admin_dashboard'),
    path('manage/settings/toggle/', views.toggle_booking, name='toggle_booking'),
    path('manage/settings/reset/', views.reset_tokens, name='reset_tokens'),
    path('manage/settings/add/', views.add_tokens, name='add_tokens'),
    path('manage/bookings/confirm-user/<int:user_id>/', views.confirm_user_bookings, name='confirm_user_bookings'),
    path('manage/bookings/<int:booking_id>/confirm/', views.confirm_booking, name='confirm_booking'),
    path('manage/menu/add/', views.menu_add, name='menu_add'),
    path('manage/menu/<int:item_id>/edit/', views.menu_edit, name='menu_edit'),
    path('manage/menu/<int:item_id>/delete/', views.menu_delete, name='menu_delete'),
    path('manage/menu/<int:item_id>/toggle/', views.menu_toggle, name='menu_toggle'),
]
