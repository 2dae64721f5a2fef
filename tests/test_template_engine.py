"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest

from atsctl.templates import TemplateEngine, TemplateRenderError


def _unit_context(**overrides: object) -> dict[str, object]:
    context: dict[str, object] = {
        "description": "ATS FastAPI backend (uvicorn)",
        "after": ["network.target", "postgresql.service"],
        "wants": ["postgresql.service"],
        "service_user": "ubuntu",
        "service_group": "www-data",
        "working_directory": "/var/www/Elden-ATS/Backend-ATS",
        "environment": [
            "PATH=/var/www/Elden-ATS/Backend-ATS/.venv/bin",
            "PYTHONUNBUFFERED=1",
        ],
        "exec_start": (
            "/var/www/Elden-ATS/Backend-ATS/.venv/bin/uvicorn app.main:app "
            "--host 127.0.0.1 --port 8000"
        ),
        "restart_sec": "5s",
    }
    context.update(overrides)
    return context


def _site_context() -> dict[str, object]:
    return {
        "site_name": "elden-ats",
        "listen_port": 80,
        "server_name": "_",
        "frontend_root": "/var/www/Elden-ATS/Frontend-ATS/dist",
        "backend_prefix": "/backend/",
        "upstream_host": "127.0.0.1",
        "upstream_port": 8000,
    }


def test_render_unit_template(tmp_path: Path) -> None:
    """The built-in unit template renders every directive."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("systemd/service.j2", _unit_context())

    assert "Description=ATS FastAPI backend (uvicorn)" in output
    assert "After=network.target postgresql.service" in output
    assert "Wants=postgresql.service" in output
    assert "User=ubuntu" in output
    assert "Group=www-data" in output
    assert 'Environment="PATH=/var/www/Elden-ATS/Backend-ATS/.venv/bin"' in output
    assert 'Environment="PYTHONUNBUFFERED=1"' in output
    assert "--host 127.0.0.1 --port 8000" in output
    assert "Restart=always" in output
    assert "RestartSec=5s" in output
    assert "WantedBy=multi-user.target" in output


def test_unit_template_omits_empty_wants() -> None:
    """No Wants= line is emitted without dependencies."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("systemd/service.j2", _unit_context(wants=[]))

    assert "Wants=" not in output


def test_render_site_template() -> None:
    """The nginx site proxies the backend prefix and serves the SPA."""
    engine = TemplateEngine.with_overrides(None)

    output = engine.render_to_string("nginx/site.conf.j2", _site_context())

    assert "listen 80;" in output
    assert "root /var/www/Elden-ATS/Frontend-ATS/dist;" in output
    assert "try_files $uri $uri/ /index.html;" in output
    assert "location /backend/ {" in output
    assert "rewrite ^/backend/?(.*)$ /$1 break;" in output
    assert "proxy_pass http://127.0.0.1:8000;" in output
    assert 'proxy_set_header Connection "upgrade";' in output
    assert "error_page 500 502 503 504 /50x.html;" in output


def test_missing_variable_raises() -> None:
    """Strict undefined variables surface as render errors."""
    engine = TemplateEngine.with_overrides(None)
    context = _site_context()
    del context["upstream_port"]

    with pytest.raises(TemplateRenderError):
        engine.render_to_string("nginx/site.conf.j2", context)


def test_render_to_path_writes_with_mode(tmp_path: Path) -> None:
    """Rendering to a file writes content and respects the requested mode."""
    engine = TemplateEngine.with_overrides(None)
    destination = tmp_path / "ats-backend.service"

    changed = engine.render_to_path(
        "systemd/service.j2",
        destination,
        _unit_context(),
        mode=0o600,
    )

    assert changed is True
    assert destination.exists()
    assert oct(destination.stat().st_mode & 0o777) == "0o600"

    # Second render with same content should be a no-op.
    changed_again = engine.render_to_path(
        "systemd/service.j2",
        destination,
        _unit_context(),
        mode=0o600,
    )
    assert changed_again is False

    # Only the mode differs: reported as a change.
    changed_mode = engine.render_to_path(
        "systemd/service.j2",
        destination,
        _unit_context(),
        mode=0o644,
    )
    assert changed_mode is True
    assert oct(destination.stat().st_mode & 0o777) == "0o644"


def test_override_path_takes_precedence(tmp_path: Path) -> None:
    """Override templates shadow the built-in ones."""
    override_dir = tmp_path / "templates"
    override_template = override_dir / "nginx" / "site.conf.j2"
    override_template.parent.mkdir(parents=True, exist_ok=True)
    override_template.write_text("override {{ site_name }}", encoding="utf-8")

    engine = TemplateEngine.with_overrides(override_dir)

    rendered = engine.render_to_string("nginx/site.conf.j2", _site_context())

    assert rendered == "override elden-ats"


def test_missing_override_dir_falls_back_to_builtin(tmp_path: Path) -> None:
    """A non-existent override directory is ignored."""
    engine = TemplateEngine.with_overrides(tmp_path / "absent")

    rendered = engine.render_to_string("nginx/site.conf.j2", _site_context())

    assert rendered.startswith("# Managed by atsctl")
