"""Unit tests for the JSON log formatter in logging.py

Test coverage includes:

1. Standard fields (timestamp, level, logger, message)
2. `extra` fields are attached, LogRecord internals are not
3. Exceptions are formatted under `exception`
4. initialize_logging() honors LOG_LEVEL
"""

import sys
import json
import logging
from unittest.mock import MagicMock

from linkguard.utils.logging import JsonFormatter, initialize_logging


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name='linkguard.abuse.monitoring',
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg='Kill switch %s.',
        args=('activated',),
        exc_info=None,
    )
    record.created = 1760486400.0
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_format_standard_fields():
    log = json.loads(JsonFormatter().format(make_record()))

    assert log['timestamp'] == '2025-10-15T00:00:00.000Z'
    assert log['level'] == 'WARNING'
    assert log['logger'] == 'linkguard.abuse.monitoring'
    assert log['message'] == 'Kill switch activated.'
    assert 'lineno' not in log
    assert 'args' not in log


def test_format_extra_fields():
    log = json.loads(JsonFormatter().format(make_record(event='KILL_SWITCH_ACTIVATED', flaggedInWindow=10)))

    assert log['event'] == 'KILL_SWITCH_ACTIVATED'
    assert log['flaggedInWindow'] == 10


def test_format_exception():
    try:
        raise ValueError('boom')
    except ValueError:
        record = make_record()
        record.exc_info = sys.exc_info()

    log = json.loads(JsonFormatter().format(record))
    assert 'ValueError: boom' in log['exception']


def test_initialize_logging(monkeypatch):
    dict_config = MagicMock()
    monkeypatch.setattr(logging.config, 'dictConfig', dict_config)
    monkeypatch.setenv('LOG_LEVEL', 'debug')

    initialize_logging()

    configuration = dict_config.call_args.args[0]
    assert configuration['root'] == {'level': 'DEBUG', 'handlers': ['stdout']}
    assert configuration['formatters']['json']['()'] is JsonFormatter
    assert configuration['disable_existing_loggers'] is False
