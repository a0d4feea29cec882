import logging

from defi_recon.logger import TRACE, ColoredFormatter, resolve_level, setup_logging


def _record(level: int) -> logging.LogRecord:
    return logging.LogRecord("defi_recon.test", level, __file__, 1, "hello %s", ("world",), None)


def test_resolve_level(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert resolve_level() == logging.INFO
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level("TRACE") == TRACE
    assert resolve_level("nonsense") == logging.INFO

    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert resolve_level() == logging.WARNING
    assert resolve_level("error") == logging.ERROR


def test_colored_formatter_leaves_record_untouched():
    formatter = ColoredFormatter(fmt="%(levelname)s %(message)s")
    record = _record(logging.WARNING)

    output = formatter.format(record)

    assert output.startswith("\033[33m")
    assert output.endswith("WARNING\033[0m hello world")
    assert record.levelname == "WARNING"


def test_plain_output_without_color():
    formatter = ColoredFormatter(fmt="%(levelname)s %(message)s", use_color=False)

    assert formatter.format(_record(logging.INFO)) == "INFO hello world"


def test_debug_keeps_noisy_loggers_quiet():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    try:
        setup_logging("DEBUG")
        assert logging.getLogger("web3").level == logging.WARNING

        setup_logging("TRACE")
        assert logging.getLogger("urllib3").level == TRACE
    finally:
        root.setLevel(saved[0])
        root.handlers[:] = saved[1]
        for name in ("web3", "urllib3", "requests"):
            logging.getLogger(name).setLevel(logging.NOTSET)
