"""
apps.config_core.models
~~~~~~~~~~~~~~~~~~~~~~~~
SettingsRevision – append-only history of the settings applied to an
:class:`~apps.instances.models.OmnibusInstance`.
"""
from django.db import models

from apps.instances.models import OmnibusInstance


class SettingsRevision(models.Model):
    """
    One accepted change to an instance's settings.

    ``number`` starts at 1 for every instance and is allocated while the
    instance row is locked, so it is gap-free and unique per instance.
    """

    class Source(models.TextChoices):
        API = "api", "API"
        GITLAB_RB = "gitlab_rb", "gitlab.rb import"

    instance = models.ForeignKey(
        OmnibusInstance,
        on_delete=models.CASCADE,
        related_name="revisions",
    )
    number = models.PositiveIntegerField()
    settings = models.JSONField(
        help_text="Settings tree exactly as applied, {namespace: {field: value}}.",
    )
    source = models.CharField(
        max_length=20,
        choices=Source.choices,
        default=Source.API,
    )
    source_text = models.TextField(
        blank=True,
        default="",
        help_text="Uploaded gitlab.rb text; blank for JSON updates.",
    )
    acting_role = models.CharField(max_length=100)
    environment = models.CharField(max_length=50)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["instance", "number"]
        constraints = [
            models.UniqueConstraint(
                fields=["instance", "number"],
                name="unique_revision_number_per_instance",
            ),
        ]
        verbose_name = "Settings Revision"
        verbose_name_plural = "Settings Revisions"

    def __str__(self) -> str:
        return f"{self.instance.slug}@r{self.number} [{self.source}]"
