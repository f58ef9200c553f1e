# config/app_settings/models.py
from django.core.validators import RegexValidator
from django.db import models


setting_key_validator = RegexValidator(
    regex=r"^[a-z0-9_\.]+$",
    message="Setting key may contain only lowercase letters, digits, '_' and '.'.",
)


class AppSetting(models.Model):
    """
    Key/value хранилище настроек маркетплейса (auction.*, fees.* ...).

    value: JSON: числа/строки/bool. Читается ОДИН раз на запуск
    (load_auction_settings) и дальше передаётся явно.
    """

    key = models.CharField(max_length=128, unique=True, validators=[setting_key_validator])
    value = models.JSONField()
    description = models.CharField(max_length=255, blank=True, default="")
    category = models.CharField(max_length=64, blank=True, default="", db_index=True)
    is_public = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self) -> str:
        return self.key
