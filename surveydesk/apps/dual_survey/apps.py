from django.apps import AppConfig


class DualSurveyConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'surveydesk.apps.dual_survey'
    label = 'dual_survey'

    def ready(self) -> None:  # pragma: no cover - import side effects
        from . import signals  # noqa: F401
        return super().ready()
