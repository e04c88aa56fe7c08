"""
Tests for movement hashing and HMAC attestations.
"""

from __future__ import annotations

import json

import pytest

from mouse_check.attestation import (constant_time_equals, hash_movement,
                                     issue_attestation, verify_attestation)

KEY = "unit-test-key"


def test_hash_is_deterministic(human_points):
    assert hash_movement(human_points) == hash_movement([dict(p) for p in human_points])
    assert len(hash_movement(human_points)) == 64


def test_hash_is_order_sensitive(human_points):
    swapped = list(human_points)
    swapped[3], swapped[4] = swapped[4], swapped[3]
    assert hash_movement(swapped) != hash_movement(human_points)


def test_hash_ignores_extra_keys_and_key_order():
    a = [{"x": 1, "y": 2, "t": 3}]
    b = [{"t": 3, "y": 2, "x": 1, "pressure": 0.5}]
    assert hash_movement(a) == hash_movement(b)


def test_payload_binds_hash_record_time_and_count(human_points):
    att = issue_attestation(KEY, human_points, "rec-42", 7, timestamp=1234)
    payload = json.loads(att.payload)
    assert list(payload) == ["movementHash", "recordId", "timestamp", "checksPassed"]
    assert payload["movementHash"] == hash_movement(human_points)
    assert payload["recordId"] == "rec-42"
    assert payload["timestamp"] == 1234 == att.timestamp
    assert payload["checksPassed"] == 7


def test_round_trip(human_points):
    att = issue_attestation(KEY, human_points, "rec-1", 7)
    assert verify_attestation(KEY, att.signature, att.payload)


def test_tampered_payload_fails(human_points):
    att = issue_attestation(KEY, human_points, "rec-1", 7)
    tampered = att.payload.replace('"checksPassed":7', '"checksPassed":6')
    assert tampered != att.payload
    assert not verify_attestation(KEY, att.signature, tampered)


@pytest.mark.parametrize("index", [0, 31, 63])
def test_flipped_signature_byte_fails(index, human_points):
    att = issue_attestation(KEY, human_points, "rec-1", 7)
    flipped = "0" if att.signature[index] != "0" else "1"
    bad = att.signature[:index] + flipped + att.signature[index + 1:]
    assert not verify_attestation(KEY, bad, att.payload)


def test_wrong_key_fails(human_points):
    att = issue_attestation(KEY, human_points, "rec-1", 7)
    assert not verify_attestation("other-key", att.signature, att.payload)


@pytest.mark.parametrize("signature", ["", "abc", "zz" * 32, "é" * 64, None, 123, b"bytes"])
def test_malformed_signatures_fail_closed(signature, human_points):
    att = issue_attestation(KEY, human_points, "rec-1", 7)
    assert verify_attestation(KEY, signature, att.payload) is False


def test_non_string_payload_fails_closed():
    assert verify_attestation(KEY, "00" * 32, None) is False


def test_constant_time_equals():
    assert constant_time_equals("abc", "abc")
    assert not constant_time_equals("abc", "abd")
    assert not constant_time_equals("abc", "abcd")
    assert not constant_time_equals(None, "abc")
