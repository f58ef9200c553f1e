import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AppSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "key",
                    models.CharField(
                        max_length=128,
                        unique=True,
                        validators=[
                            django.core.validators.RegexValidator(
                                message="Setting key may contain only lowercase letters, digits, '_' and '.'.",
                                regex="^[a-z0-9_\\.]+$",
                            )
                        ],
                    ),
                ),
                ("value", models.JSONField()),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("category", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("is_public", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["key"],
            },
        ),
    ]
