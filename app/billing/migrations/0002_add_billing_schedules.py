"""
Add celery-beat schedules for the daily billing tasks.

- generate_fixed_recurring_bills: daily at 06:00
- process_late_charges: daily at 07:00
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Generate Fixed Recurring Bills",
        "task": "billing.tasks.generate_fixed_recurring_bills",
        "hour": "6",
        "description": "Bills every active fixed recurring service on its create day.",
    },
    {
        "name": "Process Late Charges",
        "task": "billing.tasks.process_late_charges",
        "hour": "7",
        "description": "Deducts HSI points for charges past due beyond the grace days.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = CrontabSchedule.objects.get_or_create(
            minute="0",
            hour=entry["hour"],
            day_of_week="*",
            day_of_month="*",
            month_of_year="*",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "crontab": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=[entry["name"] for entry in SCHEDULES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
