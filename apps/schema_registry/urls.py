"""
apps.schema_registry.urls
"""
from django.urls import path

from .views import (
    ActiveSchemaView,
    SettingsSchemaActivateView,
    SettingsSchemaDetailView,
    SettingsSchemaListCreateView,
)

urlpatterns = [
    path("schemas/", SettingsSchemaListCreateView.as_view(), name="schema-list-create"),
    path("schemas/<str:pk>/", SettingsSchemaDetailView.as_view(), name="schema-detail"),
    path(
        "schemas/<str:pk>/activate/",
        SettingsSchemaActivateView.as_view(),
        name="schema-activate",
    ),
    path("schema/active/", ActiveSchemaView.as_view(), name="schema-active"),
]
