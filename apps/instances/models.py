"""
apps.instances.models
~~~~~~~~~~~~~~~~~~~~~
OmnibusInstance – one GitLab Omnibus installation whose gitlab.rb is managed here.
"""
from django.db import models
from django.utils.text import slugify


class OmnibusInstance(models.Model):
    """
    A GitLab Omnibus installation and the settings stored for it.

    Fields
    ------
    id
        Auto-incrementing integer primary key.
    name
        Human-readable unique name (e.g. ``"gitlab-staging"``).
    slug
        URL-safe version of ``name``, auto-generated on first save.
    settings_overrides
        ``{namespace: {field: value}}`` tree layered over the active
        ``SettingsSchema`` defaults.  Empty means pure defaults.
    created_at / updated_at
        Automatic timestamps.
    """

    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(
        max_length=255,
        unique=True,
        blank=True,
        help_text="URL-safe identifier auto-generated from the instance name.",
    )
    settings_overrides = models.JSONField(
        default=dict,
        blank=True,
        help_text="Instance settings applied on top of the active SettingsSchema defaults.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        verbose_name = "Omnibus Instance"
        verbose_name_plural = "Omnibus Instances"

    def save(self, *args, **kwargs) -> None:
        """Auto-populate ``slug`` on first save."""
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"#{self.id} {self.name}" if self.id else self.name
