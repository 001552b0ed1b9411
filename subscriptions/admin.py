# subscriptions/admin.py
"""
Admin configuration for subscriptions app.
"""

from django.contrib import admin
from django.utils.html import format_html

from subscriptions.models import SubscriptionRecord, UsageCounter
from subscriptions.services import SubscriptionService


class UsageCounterInline(admin.TabularInline):
    model = UsageCounter
    extra = 0
    fields = ('feature', 'count', 'updated_at')
    readonly_fields = ('feature', 'count', 'updated_at')
    can_delete = False


# ==============================================================================
# SUBSCRIPTION ADMIN
# ==============================================================================

@admin.register(SubscriptionRecord)
class SubscriptionRecordAdmin(admin.ModelAdmin):
    list_display = ('user', 'tier', 'status', 'start_date', 'end_date',
                    'days_remaining_display', 'external_subscription_ref')
    list_filter = ('tier', 'status')
    search_fields = ('user__username', 'user__email',
                     'external_customer_ref', 'external_subscription_ref')
    date_hierarchy = 'start_date'
    readonly_fields = ('id', 'created_at', 'updated_at')
    raw_id_fields = ('user',)
    inlines = [UsageCounterInline]

    fieldsets = (
        ('Subscription', {
            'fields': ('id', 'user', 'tier', 'status')
        }),
        ('Billing Period', {
            'fields': ('start_date', 'end_date')
        }),
        ('Stripe', {
            'fields': ('external_customer_ref', 'external_subscription_ref')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def days_remaining_display(self, obj):
        days = obj.days_remaining()
        if days is None:
            return '-'
        if days <= 0:
            return format_html('<span style="color: red;">Ending</span>')
        elif days <= 7:
            return format_html('<span style="color: orange;">{} days</span>', days)
        return f"{days} days"
    days_remaining_display.short_description = 'Remaining'

    actions = ['expire_subscriptions', 'reset_usage']

    @admin.action(description='Expire selected subscriptions')
    def expire_subscriptions(self, request, queryset):
        count = 0
        for user_id in queryset.values_list('user_id', flat=True):
            SubscriptionService.expire_subscription(user_id)
            count += 1
        self.message_user(request, f"Expired {count} subscriptions.")

    @admin.action(description='Reset usage counters')
    def reset_usage(self, request, queryset):
        count = 0
        for user_id in queryset.values_list('user_id', flat=True):
            SubscriptionService.reset_monthly_usage(user_id)
            count += 1
        self.message_user(request, f"Reset usage for {count} subscriptions.")
