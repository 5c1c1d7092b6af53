import hashlib

import pytest

from flowmetrics.webhooks.errors import InvalidSignatureError
from flowmetrics.webhooks.signatures import compute_signature, hash_identity, verify_signature
from flowmetrics.webhooks.ticket_refs import (
    DEFAULT_TICKET_PATTERN,
    compile_ticket_pattern,
    extract_ticket_reference,
)

BODY = b'{"action":"opened"}'


def test_valid_signature_passes():
    verify_signature(BODY, compute_signature(BODY, "s3cret"), "s3cret")


def test_signature_has_sha256_prefix():
    assert compute_signature(BODY, "s3cret").startswith("sha256=")


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "sha1=deadbeef",
        "sha256=deadbeef",
    ],
)
def test_bad_signatures_raise(header):
    with pytest.raises(InvalidSignatureError):
        verify_signature(BODY, header, "s3cret")


def test_tampered_body_fails():
    header = compute_signature(BODY, "s3cret")
    with pytest.raises(InvalidSignatureError):
        verify_signature(BODY + b" ", header, "s3cret")


def test_hash_identity_never_returns_raw_identifier():
    hashed = hash_identity("alice", key="pepper")

    assert hashed != "alice"
    assert len(hashed) == 64
    assert hashed == hash_identity("alice", key="pepper")
    assert hashed != hash_identity("alice", key="other")


def test_hash_identity_without_key_is_plain_sha256():
    assert hash_identity("alice", key="") == hashlib.sha256(b"alice").hexdigest()


def test_hash_identity_empty_is_none():
    assert hash_identity(None) is None
    assert hash_identity("") is None


def test_ticket_reference_prefers_branch_then_title_then_body():
    pattern = compile_ticket_pattern(None)

    assert extract_ticket_reference(pattern, "feature/PAY-12-refunds", "OPS-3 title", "CORE-9") == "PAY-12"
    assert extract_ticket_reference(pattern, "main", "OPS-3 title", "CORE-9") == "OPS-3"
    assert extract_ticket_reference(pattern, None, "no ticket", "fixes CORE-9") == "CORE-9"
    assert extract_ticket_reference(pattern, "main", "tidy", None) is None


def test_invalid_override_falls_back_to_default():
    pattern = compile_ticket_pattern("([unclosed")

    assert pattern.pattern == DEFAULT_TICKET_PATTERN
    assert extract_ticket_reference(pattern, "PAY-1-fix", None, None) == "PAY-1"


def test_override_without_group_returns_whole_match():
    pattern = compile_ticket_pattern(r"#\d+")

    assert extract_ticket_reference(pattern, None, "Closes #481", None) == "#481"
