"""
Subscription records (one per user) and per-feature monthly usage counters.
"""

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SubscriptionRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('tier', models.CharField(
                    choices=[('free', 'Free'), ('premium', 'Premium'), ('enterprise', 'Enterprise')],
                    db_index=True,
                    default='free',
                    max_length=20,
                )),
                ('status', models.CharField(
                    choices=[('active', 'Active'), ('cancelled', 'Cancelled'), ('expired', 'Expired')],
                    db_index=True,
                    default='active',
                    max_length=20,
                )),
                ('start_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('end_date', models.DateTimeField(
                    blank=True,
                    db_index=True,
                    help_text='End of the paid period; empty for Free and Expired',
                    null=True,
                )),
                ('external_customer_ref', models.CharField(blank=True, default='', max_length=255)),
                ('external_subscription_ref', models.CharField(blank=True, default='', max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='subscription',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'verbose_name': 'Subscription',
                'verbose_name_plural': 'Subscriptions',
                'indexes': [
                    models.Index(fields=['status', 'end_date'], name='subscription_status_end_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UsageCounter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('feature', models.CharField(max_length=100)),
                ('count', models.PositiveIntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('subscription', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='usage_counters',
                    to='subscriptions.subscriptionrecord',
                )),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(
                        fields=('subscription', 'feature'),
                        name='unique_usage_counter_per_feature',
                    ),
                ],
            },
        ),
    ]
