import structlog

from unclaimed.observability.log import configure_logging


def test_fallback_logging_keeps_stdout_clean(tmp_path, capsys, caplog):
    configure_logging(tmp_path / "missing.yaml")

    structlog.get_logger("unclaimed.test").warning("fallback_check", detail="x")

    assert capsys.readouterr().out == ""
    assert "fallback_check" in caplog.text
