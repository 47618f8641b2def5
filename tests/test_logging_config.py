"""Tests for log masking."""

import logging

from common.logging_config import SensitiveDataFilter, setup_logging


def make_record(msg, args=None):
    return logging.LogRecord("wopi_host.test", logging.INFO, __file__, 1, msg, args, None)


def test_masks_access_token_in_url():
    masked = SensitiveDataFilter.mask("GET /wopi/files/abc?access_token=eyJhbGciOi&x=1")
    assert "eyJhbGciOi" not in masked
    assert "access_token=***MASKED***&x=1" in masked


def test_masks_lock_tokens_and_proofs():
    masked = SensitiveDataFilter.mask("X-WOPI-Lock: lock-abc X-WOPI-ProofOld=c2lnbmF0dXJl")
    assert "c2lnbmF0dXJl" not in masked
    assert "lock-abc" not in masked


def test_masks_lock_holder_in_conflict_reason():
    assert SensitiveDataFilter.mask("File already locked by lock-42") == "File already locked by ***MASKED***"


def test_leaves_ordinary_messages_alone():
    message = "Lock conflict [file_id=abc] [reason=Lock mismatch]"
    assert SensitiveDataFilter.mask(message) == message


def test_filter_masks_args():
    record = make_record("issued %s", ("Bearer abc.def",))

    assert SensitiveDataFilter().filter(record) is True
    assert record.getMessage() == "issued Bearer ***MASKED***"


def test_setup_logging_is_idempotent():
    logger = setup_logging("wopi_host_logging_test", log_level="DEBUG")
    again = setup_logging("wopi_host_logging_test")

    assert logger is again
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].filters[0], SensitiveDataFilter)
