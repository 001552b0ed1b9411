"""
Management command to run the subscription sweeps now.
Run: python manage.py run_subscription_sweeps [--expiry] [--usage-reset]

Without flags both sweeps run. Useful from cron when Celery beat is not deployed.
"""
from django.core.management.base import BaseCommand

from subscriptions.services import SubscriptionService


class Command(BaseCommand):
    help = 'Expire overdue subscriptions and/or reset Free-tier usage counters'

    def add_arguments(self, parser):
        parser.add_argument(
            '--expiry',
            action='store_true',
            help='Expire subscriptions past their end date',
        )
        parser.add_argument(
            '--usage-reset',
            action='store_true',
            help='Clear usage counters of Free-tier subscriptions',
        )

    def handle(self, *args, **options):
        run_all = not options['expiry'] and not options['usage_reset']

        if run_all or options['expiry']:
            result = SubscriptionService.expire_overdue_subscriptions()
            self._report(result)

        if run_all or options['usage_reset']:
            result = SubscriptionService.reset_free_tier_usage()
            self._report(result)

    def _report(self, result):
        data = result['data']
        self.stdout.write(self.style.SUCCESS(result['reason']))
        if data['failed']:
            self.stdout.write(self.style.WARNING(
                f"  {len(data['failed'])} failed: {data['failed']}"
            ))
