from rest_framework.routers import DefaultRouter

from .views import DualAssignmentViewSet, SurveyAssignmentViewSet

router = DefaultRouter()
router.register('dual-assignments', DualAssignmentViewSet, basename='dual-assignments')
router.register('survey-assignments', SurveyAssignmentViewSet, basename='survey-assignments')

urlpatterns = [
    *router.urls,
]
