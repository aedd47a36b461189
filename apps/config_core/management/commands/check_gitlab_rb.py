"""
apps.config_core.management.commands.check_gitlab_rb
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
``manage.py check_gitlab_rb /etc/gitlab/gitlab.rb``

Parses a gitlab.rb file and validates it against the built-in Omnibus
schema.  No database access is needed, so the command can run in CI or on
the GitLab host itself.  Exits non-zero on parse or validation errors.
"""
from __future__ import annotations

import json

import structlog
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.config_core.services.gitlab_rb_parser import GitlabRbParseError, GitlabRbParser
from apps.config_core.services.gitlab_rb_renderer import GitlabRbRenderer
from apps.config_core.services.override_validator import (
    OverrideValidationRequest,
    OverrideValidationService,
)
from apps.schema_registry.defaults import omnibus_settings_schema

logger = structlog.get_logger(__name__)


class Command(BaseCommand):
    help = "Parse a gitlab.rb file and validate it against the built-in Omnibus settings schema."

    def add_arguments(self, parser):
        parser.add_argument("path", help="Path to the gitlab.rb file.")
        parser.add_argument(
            "--strict",
            action="store_true",
            help="Reject unknown keys and keys assigned more than once.",
        )
        parser.add_argument(
            "--check-paths",
            action="store_true",
            help="Require certificate and key files to exist on this host.",
        )
        parser.add_argument("--role", default="admin", help="Acting role for policy checks.")
        parser.add_argument(
            "--environment",
            default=None,
            help="Environment for policy checks (default: OMNIBUS_DEFAULT_ENVIRONMENT).",
        )
        parser.add_argument("--format", choices=["text", "json"], default="text")
        parser.add_argument(
            "--render",
            action="store_true",
            help="Print the normalised gitlab.rb instead of the parsed settings.",
        )

    def handle(self, *args, **options):
        path = options["path"]
        environment = options["environment"] or settings.OMNIBUS_DEFAULT_ENVIRONMENT
        strict = options["strict"]
        as_json = options["format"] == "json"

        try:
            parsed = GitlabRbParser.parse_file(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise CommandError(f"Cannot read {path}: {exc}") from exc
        except GitlabRbParseError as exc:
            errors = [
                {"field": "source", "code": "parse_error", **err} for err in exc.errors
            ]
            self._report(path, None, [], errors, as_json=as_json, render=False)
            raise CommandError(f"{len(errors)} syntax error(s) in {path}.")

        result = OverrideValidationService.validate(
            OverrideValidationRequest(
                schema=omnibus_settings_schema(),
                overrides=parsed.settings,
                acting_role=options["role"],
                environment=environment,
                allow_unknown=not (strict or settings.OMNIBUS_STRICT_IMPORT),
                check_paths=options["check_paths"] or settings.OMNIBUS_CHECK_PATHS,
            )
        )
        errors = list(result.errors)
        if strict:
            errors.extend(
                {
                    "field": dup["field"],
                    "code": "duplicate_key",
                    "message": (
                        f'"{dup["field"]}" is assigned on line {dup["line"]} '
                        f'and earlier on line {dup["previous_line"]}.'
                    ),
                }
                for dup in parsed.duplicates
            )

        logger.info(
            "gitlab_rb_checked",
            path=path,
            assignments=len(parsed.assignments),
            duplicates=len(parsed.duplicates),
            error_count=len(errors),
        )

        self._report(
            path,
            parsed.settings,
            parsed.duplicates,
            errors,
            as_json=as_json,
            render=options["render"],
        )
        if errors:
            raise CommandError(f"{len(errors)} problem(s) found in {path}.")

    def _report(self, path, parsed_settings, duplicates, errors, *, as_json, render):
        if as_json:
            self.stdout.write(json.dumps(
                {
                    "path": path,
                    "valid": not errors,
                    "settings": parsed_settings,
                    "duplicates": duplicates,
                    "errors": errors,
                },
                indent=2,
                sort_keys=True,
            ))
            return

        for err in errors:
            if "line" in err:
                location = f"{path}:{err['line']}:{err['column']}"
            else:
                location = err["field"]
            self.stderr.write(f"{location}: [{err['code']}] {err['message']}")

        if parsed_settings is None:
            return
        if render:
            self.stdout.write(GitlabRbRenderer.render(parsed_settings), ending="")
            return

        for dup in duplicates:
            self.stdout.write(
                self.style.WARNING(
                    f"{dup['field']} set again on line {dup['line']} "
                    f"(first on line {dup['previous_line']}); last value wins."
                )
            )
        for namespace in sorted(parsed_settings):
            for field_name in sorted(parsed_settings[namespace]):
                value = parsed_settings[namespace][field_name]
                self.stdout.write(
                    f"{namespace}.{field_name} = {GitlabRbRenderer.render_value(value)}"
                )
        if not errors:
            self.stdout.write(self.style.SUCCESS(f"{path}: OK"))
