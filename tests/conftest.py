"""
Shared fixtures for the omnibus_config_engine test suite.
"""
from __future__ import annotations

import pytest
from rest_framework.test import APIClient

from apps.instances.models import OmnibusInstance
from apps.schema_registry.defaults import omnibus_settings_schema
from apps.schema_registry.models import SettingsSchema


#: The gitlab.rb the engine was built around: external URLs, TLS material for
#: the pages and registry vhosts, and a few Rails settings.
SAMPLE_GITLAB_RB = """\
pages_external_url 'http://127.0.0.1:5051'
pages_nginx['redirect_http_to_https'] = false
pages_nginx['ssl_certificate'] = "/etc/gitlab/ssl/gitlab-registry.pem"
pages_nginx['ssl_certificate_key'] = "/etc/gitlab/ssl/gitlab-registry.key"

registry_external_url 'http://127.0.0.1:5050'
registry['enable']                    = true
registry_nginx['ssl_certificate']     = "/etc/gitlab/ssl/gitlab-registry.pem"
registry_nginx['ssl_certificate_key'] = "/etc/gitlab/ssl/gitlab-registry.key"

gitlab_rails['initial_shared_runners_registration_token'] = "ACCTEST1234567890123_RUNNER_REG_TOKEN"
gitlab_rails['application_settings_cache_seconds'] = 0
gitlab_rails['env'] = {
  'GITLAB_LICENSE_MODE' => 'test',
  'CUSTOMER_PORTAL_URL' => 'https://customers.staging.gitlab.com'
}
"""


@pytest.fixture
def sample_gitlab_rb() -> str:
    return SAMPLE_GITLAB_RB


@pytest.fixture
def default_schema() -> dict:
    """The built-in schema as a plain dict (no DB)."""
    return omnibus_settings_schema()


@pytest.fixture
def active_schema(db) -> SettingsSchema:
    """Store the built-in schema as the active SettingsSchema."""
    return SettingsSchema.objects.create(
        schema_version="1.0.0",
        schema_definition=omnibus_settings_schema(),
        is_active=True,
    )


@pytest.fixture
def instance(db) -> OmnibusInstance:
    """An OmnibusInstance with no settings."""
    return OmnibusInstance.objects.create(name="gitlab-staging", settings_overrides={})


@pytest.fixture
def api_client() -> APIClient:
    """Return an unauthenticated DRF APIClient."""
    return APIClient()
