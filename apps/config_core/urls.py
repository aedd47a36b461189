"""
apps.config_core.urls
"""
from django.urls import path

from .views import GitlabRbParseView

urlpatterns = [
    path("gitlab-rb/parse/", GitlabRbParseView.as_view(), name="gitlab-rb-parse"),
]
