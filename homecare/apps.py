from django.apps import AppConfig


class HomecareConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'homecare'
    verbose_name = 'Home care requests'
