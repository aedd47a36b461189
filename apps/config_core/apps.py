"""
apps.config_core.apps
"""
from django.apps import AppConfig


class ConfigCoreConfig(AppConfig):
    name = "apps.config_core"
    label = "config_core"
    verbose_name = "gitlab.rb Engine"
