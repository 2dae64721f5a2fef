"""Nginx provider for managing the application site configuration."""
from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..config import RECONCILE, WRITE_ONCE
from ..templates import TemplateEngine
from .commands import Runner, describe_failure, run_command

DEFAULT_SITE = "default"


class NginxError(RuntimeError):
    """Raised when nginx operations fail."""


@dataclass(slots=True)
class NginxRenderResult:
    """Outcome of rendering an nginx site configuration."""

    changed: bool
    existed: bool = False
    validation: subprocess.CompletedProcess[str] | None = None
    validation_error: str | None = None


@dataclass(slots=True)
class NginxProvider:
    """Render, enable and validate a single nginx site."""

    templates: TemplateEngine
    site_name: str
    runner: Runner = field(default=run_command)
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    nginx_bin: str = "nginx"

    @property
    def site_path(self) -> Path:
        """Return the path to the nginx site configuration file."""
        return self.sites_available / self.site_name

    @property
    def enabled_path(self) -> Path:
        """Return the path of the symlink in sites-enabled."""
        return self.sites_enabled / self.site_name

    def render_site(
        self,
        context: Mapping[str, object],
        *,
        policy: str = WRITE_ONCE,
    ) -> NginxRenderResult:
        """Render, enable and validate the site configuration.

        Under ``write-once`` an existing site file is left untouched and nothing
        else happens. Otherwise the template is rendered; when the on-disk
        content changes the site is enabled, the stock ``default`` site is
        removed and ``nginx -t`` validates the result. A failed validation is
        reported through ``validation_error``; the written site stays in place.
        """
        destination = self.site_path
        existed = destination.exists()
        if existed and policy != RECONCILE:
            return NginxRenderResult(changed=False, existed=True)

        destination.parent.mkdir(parents=True, exist_ok=True)
        changed = self.templates.render_to_path(
            "nginx/site.conf.j2",
            destination,
            context,
            mode=0o644,
        )
        if not changed:
            return NginxRenderResult(changed=False, existed=existed)

        self.enable()
        self.disable_default()

        try:
            validation_result = self.test_config()
        except NginxError as exc:
            return NginxRenderResult(
                changed=True,
                existed=existed,
                validation=None,
                validation_error=str(exc),
            )

        return NginxRenderResult(
            changed=True,
            existed=existed,
            validation=validation_result,
        )

    def enable(self) -> None:
        """Enable the site by creating a symlink in sites-enabled."""
        source = self.site_path
        target = self.enabled_path
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() or target.is_symlink():
            try:
                if target.resolve() == source.resolve():
                    return
            except FileNotFoundError:
                # Broken symlink; replace it with a fresh one.
                pass
            target.unlink()
        target.symlink_to(source)

    def disable_default(self) -> bool:
        """Remove the distribution's ``default`` site; return ``True`` if removed."""
        target = self.sites_enabled / DEFAULT_SITE
        if not target.exists() and not target.is_symlink():
            return False
        target.unlink()
        return True

    def is_enabled(self) -> bool:
        """Return True when the site is enabled via sites-enabled symlink."""
        target = self.enabled_path
        if not target.is_symlink():
            return False
        try:
            return target.resolve() == self.site_path.resolve()
        except FileNotFoundError:
            return False

    def test_config(self) -> subprocess.CompletedProcess[str]:
        """Run ``nginx -t`` to validate the configuration."""
        return self._run_nginx(["-t"])

    # ------------------------------------------------------------------
    def _run_nginx(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.nginx_bin, *args]
        try:
            result = self.runner(command)
        except FileNotFoundError as exc:
            raise NginxError(f"{self.nginx_bin} not found: {exc}") from exc
        if result.returncode != 0:
            raise NginxError(describe_failure(f"{self.nginx_bin} {' '.join(args)}", result))
        return result


__all__ = ["DEFAULT_SITE", "NginxError", "NginxProvider", "NginxRenderResult"]
