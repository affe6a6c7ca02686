"""Tests for the server entry point."""

from unittest.mock import patch

from stratagen.__main__ import main, parse_serve_args


def test_defaults():
    args = parse_serve_args([])
    assert args.host == "127.0.0.1"
    assert args.port == 8000
    assert args.log_level == "info"


def test_overrides():
    args = parse_serve_args(["--host", "0.0.0.0", "--port", "9000", "--log-level", "debug"])
    assert args.host == "0.0.0.0"
    assert args.port == 9000
    assert args.log_level == "debug"


def test_main_runs_single_worker():
    with patch("uvicorn.run") as run:
        main(["--port", "8123"])

    run.assert_called_once()
    assert run.call_args.args == ("stratagen.api.main:app",)
    assert run.call_args.kwargs["port"] == 8123
    assert run.call_args.kwargs["workers"] == 1
