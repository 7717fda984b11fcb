from django.apps import AppConfig


class ClinicConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'clinic'
    verbose_name = 'Consultorio'

    services = None

    def ready(self):
        from clinic.services.container import Services
        self.services = Services.build()
