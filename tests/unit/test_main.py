"""
Tests for the Entry Point
=========================
"""

import logging

import pytest

import main
import portal.config


@pytest.fixture
def offline_config(make_config, monkeypatch, tmp_path):
    """Run the entry point without a backend, logging into *tmp_path*."""
    config = make_config(SUPABASE_URL="", SUPABASE_ANON_KEY="")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(portal.config, "_config_instance", config)
    monkeypatch.setattr(main, "get_config", lambda: config)
    return config


def test_main_runs_without_backend(offline_config):
    assert main.main([]) == 0


def test_main_reports_route_decision(offline_config, caplog):
    with caplog.at_level(logging.INFO):
        assert main.main(["/admin/users"]) == 0

    messages = [record.getMessage() for record in caplog.records]
    assert "Route decision for /admin/users: REDIRECT_LOGIN" in messages
    assert "Session state: ANONYMOUS" in messages
