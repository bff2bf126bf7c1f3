"""Tests for uploader settings and option models."""

import pytest

from common.constants import CHUNK_SIZE_BYTES, DEFAULT_TRANSCODER, MAX_FILE_SIZE_BYTES
from uploader.config import MetaDataOptions, PinOptions, TranscodeOptions, UploaderSettings, validate_options
from uploader.exceptions import ValidationError


def test_settings_defaults():
    settings = UploaderSettings()
    assert settings.chunk_size == CHUNK_SIZE_BYTES == 131072
    assert settings.max_file_size == MAX_FILE_SIZE_BYTES == 300 * 1024 * 1024
    assert settings.default_transcoder == DEFAULT_TRANSCODER
    assert settings.job_timeout is None
    assert settings.connect_retries == 0


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv('VIDSWARM_CHUNK_SIZE', '65536')
    monkeypatch.setenv('VIDSWARM_KUBO_API_URL', 'http://ipfs:5001')

    settings = UploaderSettings.from_env(send_retries=3)

    assert settings.chunk_size == 65536
    assert settings.kubo_api_url == 'http://ipfs:5001'
    assert settings.send_retries == 3


def test_settings_reject_unknown_keys():
    with pytest.raises(ValidationError):
        UploaderSettings.from_env(chunksize=1)


def test_settings_are_frozen():
    settings = UploaderSettings()
    with pytest.raises(Exception):
        settings.chunk_size = 1


def test_transcode_options_defaults_and_extras():
    opts = validate_options(TranscodeOptions, {'ev': 'listener', 'size': 5})
    assert opts.author == '0x'
    assert opts.size == 5
    assert opts.transcoder is None
    assert opts.model_extra == {'ev': 'listener'}


def test_pin_options_match_transcode_options():
    assert validate_options(PinOptions, None).author == '0x'


@pytest.mark.parametrize('options', [{'size': -1}, {'timeout': 0}, {'author': None}])
def test_invalid_options(options):
    with pytest.raises(ValidationError) as exc_info:
        validate_options(TranscodeOptions, options)
    assert exc_info.value.errors


def test_metadata_options():
    opts = validate_options(MetaDataOptions, {'transcoder_id': 'QmW'})
    assert opts.transcoder_id == 'QmW'
    assert opts.timeout is None
