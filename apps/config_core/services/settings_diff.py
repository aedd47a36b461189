"""
apps.config_core.services.settings_diff
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Field-level diff between two settings trees.

Field values are compared atomically, the same way
:class:`~apps.config_core.services.config_resolver.ConfigResolver` merges
them: a changed key inside ``gitlab_rails['env']`` reports the whole
``gitlab_rails.env`` field as changed.
"""
from __future__ import annotations


def _flatten(settings: dict | None) -> dict[str, object]:
    flat: dict[str, object] = {}
    for namespace, fields in (settings or {}).items():
        if not isinstance(fields, dict):
            continue
        for field_name, value in fields.items():
            flat[f"{namespace}.{field_name}"] = value
    return flat


def diff_settings(old: dict | None, new: dict | None) -> list[dict]:
    """
    Compare two ``{namespace: {field: value}}`` trees.

    Returns:
        A list sorted by ``field`` of dicts shaped as
        ``{"field": "ns.field", "change": "added"|"removed"|"changed",
        "old": value_or_None, "new": value_or_None}``.  Unchanged fields are
        omitted.
    """
    before = _flatten(old)
    after = _flatten(new)
    changes: list[dict] = []

    for path in sorted(before.keys() | after.keys()):
        if path not in before:
            changes.append({"field": path, "change": "added", "old": None, "new": after[path]})
        elif path not in after:
            changes.append({"field": path, "change": "removed", "old": before[path], "new": None})
        elif _differs(before[path], after[path]):
            changes.append({
                "field": path,
                "change": "changed",
                "old": before[path],
                "new": after[path],
            })

    return changes


def _differs(a: object, b: object) -> bool:
    # ``1 == True`` and ``0 == 0.0`` in Python; treat type changes as changes.
    if type(a) is not type(b):
        return True
    return a != b
