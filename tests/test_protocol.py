"""Tests for the peer command envelope and inbound parsing."""

import json
from types import SimpleNamespace

import pytest

from common.protocol import InboundEvent, ProtocolCommand, parse_inbound
from uploader.exceptions import ParseError


class TestProtocolCommand:
    """Tests for ProtocolCommand."""

    def test_create_encodes_args_as_json(self):
        cmd = ProtocolCommand.create('pin', {'hash': 'Qm123', 'size': 10})
        assert cmd.command_name == 'pin'
        assert json.loads(cmd.args_payload) == {'hash': 'Qm123', 'size': 10}
        assert cmd.args() == {'hash': 'Qm123', 'size': 10}

    def test_envelope_carries_args_as_text(self):
        cmd = ProtocolCommand.create('transcode', {'hash': 'Qm1'})
        envelope = json.loads(cmd.to_json())
        assert envelope['payload'] == 'transcode'
        assert json.loads(envelope['args']) == {'hash': 'Qm1'}
        assert ProtocolCommand.from_json(cmd.to_json()) == cmd

    def test_create_without_args(self):
        assert ProtocolCommand.create('getMetaData').args() == {}


class TestParseInbound:
    """Tests for parse_inbound."""

    def test_parses_protocol_command(self):
        event = parse_inbound('QmPeer', ProtocolCommand.create('pin:done', {'hash': 'Qm1'}))
        assert event == InboundEvent(peer_id='QmPeer', command_name='pin:done', args={'hash': 'Qm1'})
        assert event.content_hash == 'Qm1'

    def test_parses_objects_with_byte_fields(self):
        raw = SimpleNamespace(payload=b'pin:progress', args=b'{"hash": "Qm1", "percent": 5}')
        event = parse_inbound('QmPeer', raw)
        assert event.command_name == 'pin:progress'
        assert event.args['percent'] == 5

    def test_bad_json_raises_parse_error(self):
        raw = SimpleNamespace(payload='pin:done', args='{not json')
        with pytest.raises(ParseError):
            parse_inbound('QmPeer', raw)

    def test_non_object_args_raise_parse_error(self):
        raw = SimpleNamespace(payload='pin:done', args='[1, 2]')
        with pytest.raises(ParseError):
            parse_inbound('QmPeer', raw)

    def test_missing_fields_raise_parse_error(self):
        with pytest.raises(ParseError):
            parse_inbound('QmPeer', object())

    def test_non_string_hash_is_ignored(self):
        event = parse_inbound('QmPeer', ProtocolCommand.create('pin:done', {'hash': 42}))
        assert event.content_hash is None
