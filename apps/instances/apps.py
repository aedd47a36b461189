"""
apps.instances.apps
"""
from django.apps import AppConfig


class InstancesConfig(AppConfig):
    name = "apps.instances"
    label = "instances"
    verbose_name = "Omnibus Instances"
