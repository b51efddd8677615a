from django.apps import AppConfig


class FormConfigsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "formconfigs"
    verbose_name = "Form Configuration"
