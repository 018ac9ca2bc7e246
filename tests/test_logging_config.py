import logging

from logging_config import ContextualFormatter, configure_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("services.ingest", logging.WARNING, __file__, 1, "Skipping row: %s", ("bad",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_in_declared_order() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s")

    line = formatter.format(_record(row_number=4, job_id="job-1", unrelated="x"))

    assert line == "WARNING Skipping row: bad | job_id=job-1 row_number=4"


def test_formatter_without_context_leaves_message_alone() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["table"])

    assert formatter.format(_record(job_id="job-1")) == "Skipping row: bad"


def test_configure_logging_installs_contextual_handler() -> None:
    root = logging.getLogger()
    previous_handlers = root.handlers[:]
    previous_level = root.level
    try:
        configure_logging(level="DEBUG", force=True)

        assert root.level == logging.DEBUG
        assert any(isinstance(handler.formatter, ContextualFormatter) for handler in root.handlers)
    finally:
        root.handlers = previous_handlers
        root.setLevel(previous_level)
