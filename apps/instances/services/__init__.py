"""
apps.instances.services package.
"""
from .instance_service import (  # noqa: F401
    apply_settings_overrides,
    create_instance,
    diff_revisions,
    get_effective_settings,
    get_instance,
    import_gitlab_rb,
    list_instances,
    list_revisions,
    render_instance_gitlab_rb,
)
