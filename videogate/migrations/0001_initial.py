import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Asset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("uploading", "Uploading"),
                            ("processing", "Processing"),
                            ("ready", "Ready"),
                            ("failed", "Failed"),
                        ],
                        default="uploading",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="AccessGrant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(max_length=128)),
                ("asset_id", models.PositiveBigIntegerField()),
                ("granted_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("transaction_id", models.CharField(blank=True, db_index=True, max_length=128, null=True)),
            ],
            options={
                "ordering": ["-granted_at"],
                "indexes": [models.Index(fields=["asset_id"], name="access_grant_asset_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user_id", "asset_id"), name="unique_access_grant_per_user_asset"
                    )
                ],
            },
        ),
    ]
