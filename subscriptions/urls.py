# subscriptions/urls.py
from django.urls import path
from subscriptions import views

urlpatterns = [
    path('', views.subscription_detail_view, name='subscription_detail'),
    path('usage/', views.usage_stats_view, name='subscription_usage'),
    path('upgrade/', views.upgrade_view, name='subscription_upgrade'),
    path('cancel/', views.cancel_view, name='subscription_cancel'),
    path('webhook/', views.stripe_webhook_view, name='stripe_webhook'),
]
