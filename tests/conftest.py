"""Shared pytest fixtures for all tests."""

import os

import pytest

from cli.config import Config
from common.types import PeerRecord
from tests.fakes import WORKER_ADDRESS, WORKER_ID, FakeEngine
from uploader.config import UploaderSettings
from uploader.uploader import Uploader


@pytest.fixture
def engine():
    """FakeEngine with the worker already among the connected peers."""
    return FakeEngine(peers=[PeerRecord(peer_id="QmSomeoneElse"), PeerRecord(peer_id=WORKER_ID)])


@pytest.fixture
def settings():
    """Settings pointing at the fake worker, small chunks."""
    return UploaderSettings(default_transcoder=WORKER_ADDRESS, chunk_size=128 * 1024)


@pytest.fixture
def uploader(engine, settings):
    """Uploader wired to the FakeEngine."""
    return Uploader(engine, settings)


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .vidswarm directory
    """
    config_dir = tmp_path / '.vidswarm'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Args:
        temp_config_dir: Temporary config directory fixture

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a sample file for testing uploads.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to sample file
    """
    file_path = tmp_path / 'clip.mp4'
    file_path.write_bytes(b'Sample content for testing')
    return file_path


@pytest.fixture
def large_file(tmp_path):
    """300 KiB file: two full 128 KiB chunks plus a 44 KiB tail."""
    file_path = tmp_path / 'movie.mp4'
    file_path.write_bytes(os.urandom(300 * 1024))
    return file_path


@pytest.fixture
def multiple_sample_files(tmp_path):
    """
    Create multiple sample files for testing bulk operations.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        List of Paths to sample files
    """
    files = []
    for i in range(3):
        file_path = tmp_path / f'part{i}.mp4'
        file_path.write_bytes(f'Sample content {i}'.encode() * (i + 1))
        files.append(file_path)
    return files
