"""Tests for logging setup and secret masking."""

import logging

import pytest

from common.logging_config import SensitiveDataFilter, get_logger, setup_logging

PACKAGE_LOGGERS = ('test-component', 'uploader', 'metadb', 'common')


@pytest.fixture
def restore_loggers():
    """Undo handler and propagation changes made by setup_logging."""
    saved = {
        name: (list(logging.getLogger(name).handlers), logging.getLogger(name).propagate, logging.getLogger(name).level)
        for name in PACKAGE_LOGGERS
    }
    yield
    for name, (handlers, propagate, level) in saved.items():
        logger = logging.getLogger(name)
        logger.handlers = handlers
        logger.propagate = propagate
        logger.setLevel(level)


def make_record(msg, args=()):
    return logging.LogRecord('uploader', logging.INFO, __file__, 1, msg, args, None)


class TestSensitiveDataFilter:
    """Tests for SensitiveDataFilter."""

    @pytest.mark.parametrize('message, secret', [
        ('mnemonic: "wisdom tree lamp"', 'wisdom tree lamp'),
        ("private_key=0xdeadbeef", '0xdeadbeef'),
        ('{"api_key": "k-123"}', 'k-123'),
        ('token=abc.def', 'abc.def'),
        ('Authorization: Bearer eyJhbGci', 'eyJhbGci'),
    ])
    def test_masks_secrets(self, message, secret):
        record = make_record(message)
        assert SensitiveDataFilter().filter(record)
        assert secret not in record.msg
        assert '***MASKED***' in record.msg

    def test_masks_args(self):
        record = make_record('%s', ('token=abc',))
        SensitiveDataFilter().filter(record)
        assert record.args == ('token=***MASKED***',)

    def test_leaves_plain_messages(self):
        record = make_record('Sent transcode to QmWorker for Qm123')
        SensitiveDataFilter().filter(record)
        assert record.msg == 'Sent transcode to QmWorker for Qm123'


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_package_loggers_share_handler(self, restore_loggers):
        for name in PACKAGE_LOGGERS:
            logging.getLogger(name).handlers = []

        logger = setup_logging('test-component', log_level='DEBUG')

        handler = logger.handlers[0]
        assert logger.level == logging.DEBUG
        for name in ('uploader', 'metadb', 'common'):
            package_logger = logging.getLogger(name)
            assert handler in package_logger.handlers
            assert package_logger.propagate is False
        assert get_logger('uploader.uploader').getEffectiveLevel() == logging.DEBUG

    def test_correlation_id_in_format(self, restore_loggers):
        for name in PACKAGE_LOGGERS:
            logging.getLogger(name).handlers = []
        logger = setup_logging('test-component', log_level='INFO', correlation_id='Qm123')

        formatted = logger.handlers[0].format(make_record('hello'))
        assert '[Qm123] - hello' in formatted
