"""
apps.instances.urls
~~~~~~~~~~~~~~~~~~~
URL routing for the Instances application.
Mounted at /api/v1/ by the root URLconf.
"""
from django.urls import path

from .views import (
    InstanceEffectiveSettingsView,
    InstanceGitlabRbView,
    InstanceListCreateView,
    InstanceRevisionDiffView,
    InstanceRevisionListView,
    InstanceSettingsView,
)

urlpatterns = [
    path(
        "instances/",
        InstanceListCreateView.as_view(),
        name="instance-list-create",
    ),
    path(
        "instances/<str:instance_id>/settings/",
        InstanceSettingsView.as_view(),
        name="instance-settings",
    ),
    path(
        "instances/<str:instance_id>/gitlab-rb/",
        InstanceGitlabRbView.as_view(),
        name="instance-gitlab-rb",
    ),
    path(
        "instances/<str:instance_id>/effective-settings/",
        InstanceEffectiveSettingsView.as_view(),
        name="instance-effective-settings",
    ),
    path(
        "instances/<str:instance_id>/revisions/",
        InstanceRevisionListView.as_view(),
        name="instance-revisions",
    ),
    path(
        "instances/<str:instance_id>/revisions/<int:from_number>/diff/<int:to_number>/",
        InstanceRevisionDiffView.as_view(),
        name="instance-revision-diff",
    ),
]
