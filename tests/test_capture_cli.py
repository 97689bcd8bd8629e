"""
Command line entry points that do not need a browser
"""

import json

import pytest

from capture_cli import build_parser, main


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("LONGSHOT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LONGSHOT_OUTPUT_DIR", str(tmp_path / "out"))


def test_capture_arguments():
    args = build_parser().parse_args([
        "capture", "https://example.com", "--mode", "grid4", "--top", "100",
        "--footer-url", "https://example.com/share", "--footer-scope", "last",
    ])
    assert args.mode == "grid4"
    assert args.top == 100
    assert args.bottom is None
    assert args.footer_scope == "last"


def test_unknown_mode_rejected():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["capture", "https://example.com", "--mode", "grid5"])


def test_cleanup(capsys):
    assert main(["cleanup"]) == 0
    assert json.loads(capsys.readouterr().out) == {"removed": 0}


def test_unknown_session(capsys):
    assert main(["session", "1700000000000_abcdef"]) == 1
    assert "expired" in capsys.readouterr().err


def test_export_unknown_session(capsys):
    assert main(["export", "1700000000000_abcdef", "--boundaries", "500"]) == 1
    assert "capture again" in capsys.readouterr().err
