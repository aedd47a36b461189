"""
apps.config_core.services.gitlab_rb_renderer
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Writes a settings tree back out as ``gitlab.rb`` text.

Output is deterministic: directive calls from the ``top_level`` namespace
come first, then every other namespace in name order, each field in name
order.  A namespace with no fields writes no lines, so it does not survive a
round trip; any other tree parses back unchanged with
:class:`~apps.config_core.services.gitlab_rb_parser.GitlabRbParser`.

This module is **pure Python**: it has zero Django imports.
"""
from __future__ import annotations

import math
import re

from apps.config_core.services.gitlab_rb_parser import TOP_LEVEL

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_CONTROL_ESCAPES: dict[str, str] = {
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\x1b": "\\e",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
}


def _is_control(ch: str) -> bool:
    return ord(ch) < 32 or ord(ch) == 127


def _quote(text: str) -> str:
    """Return a Ruby string literal for *text*."""
    if not any(_is_control(ch) for ch in text):
        return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"

    out: list[str] = []
    for ch in text:
        if ch in ("\\", '"', "#"):
            out.append("\\" + ch)
        elif ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
        elif _is_control(ch):
            out.append(f"\\x{ord(ch):02x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


class GitlabRbRenderer:
    """
    Stateless renderer for settings trees.

    Usage::

        text = GitlabRbRenderer.render(
            {"top_level": {"registry_external_url": "http://127.0.0.1:5050"},
             "registry": {"enable": True}},
            header="Managed by omnibus-config-engine",
        )
    """

    @staticmethod
    def render(
        settings: dict,
        *,
        omit_nil: bool = False,
        header: str | None = None,
    ) -> str:
        """
        Render *settings* as ``gitlab.rb`` text.

        Args:
            settings: ``{namespace: {field: value}}`` tree.
            omit_nil: Skip fields whose value is ``None`` instead of writing
                ``nil``.
            header: Optional text emitted as ``#`` comment lines at the top.

        Raises:
            ValueError: If a namespace or directive name is not a valid
                identifier, or a float is not finite.
            TypeError: If a value is not JSON-compatible.
        """
        blocks: list[str] = []

        if header:
            blocks.append("\n".join(
                f"# {line}".rstrip() for line in header.splitlines()
            ))

        top_level = settings.get(TOP_LEVEL) or {}
        lines = []
        for name in sorted(top_level):
            value = top_level[name]
            if omit_nil and value is None:
                continue
            GitlabRbRenderer._require_identifier(name)
            lines.append(f"{name} {GitlabRbRenderer.render_value(value)}")
        if lines:
            blocks.append("\n".join(lines))

        for namespace in sorted(ns for ns in settings if ns != TOP_LEVEL):
            fields = settings[namespace] or {}
            GitlabRbRenderer._require_identifier(namespace)
            lines = []
            for field_name in sorted(fields):
                value = fields[field_name]
                if omit_nil and value is None:
                    continue
                lines.append(
                    f"{namespace}[{_quote(field_name)}] = "
                    f"{GitlabRbRenderer.render_value(value)}"
                )
            if lines:
                blocks.append("\n".join(lines))

        if not blocks:
            return ""
        return "\n\n".join(blocks) + "\n"

    @staticmethod
    def render_value(value: object) -> str:
        """Return the Ruby literal for a single JSON-compatible *value*."""
        if value is None:
            return "nil"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"Cannot render non-finite float {value!r}.")
            return repr(value)
        if isinstance(value, str):
            return _quote(value)
        if isinstance(value, (list, tuple)):
            return "[" + ", ".join(GitlabRbRenderer.render_value(v) for v in value) + "]"
        if isinstance(value, dict):
            if not value:
                return "{}"
            entries = ", ".join(
                f"{_quote(str(k))} => {GitlabRbRenderer.render_value(v)}"
                for k, v in value.items()
            )
            return "{ " + entries + " }"
        raise TypeError(f"Cannot render value of type {type(value).__name__}.")

    @staticmethod
    def _require_identifier(name: str) -> None:
        if not _IDENTIFIER_RE.match(name):
            raise ValueError(f"{name!r} is not a valid gitlab.rb setting name.")
