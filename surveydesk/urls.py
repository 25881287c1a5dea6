from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/survey/', include('surveydesk.apps.dual_survey.urls')),
]
