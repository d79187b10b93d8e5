import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from engines.crypto_engine import NONCE_SIZE, TAG_SIZE
from engines.envelope import ReceiptEnvelope, ReceiptEnvelopeService
from engines.errors import (
    AuthenticationFailure,
    KeyGenerationError,
    ReceiptUnreadableError,
    ShortCiphertextError,
    UnwrapError,
    WrapError,
)
from engines.key_store import KeyStore
from engines.key_wrapper import KeyWrapper


def test_seal_and_open_after_reloading_keys(key_pair, tmp_path):
    store = KeyStore()
    store.persist(key_pair, tmp_path / "private_key.pem", tmp_path / "public_key.pem")

    plaintext = os.urandom(1000)
    envelope = ReceiptEnvelopeService(key_pair).seal(plaintext)

    # Simulate persistence and a process restart.
    record = envelope.to_record()
    reloaded = store.load_key_pair(tmp_path / "private_key.pem", tmp_path / "public_key.pem")
    opened = ReceiptEnvelopeService(reloaded).open(ReceiptEnvelope.from_record(record))

    assert opened == plaintext


def test_envelope_shape(envelope_service, key_pair):
    envelope = envelope_service.seal(b"x" * 10)
    assert len(envelope.payload) == NONCE_SIZE + 10 + TAG_SIZE
    assert len(envelope.wrapped_key) == key_pair.modulus_bytes


def test_empty_receipt(envelope_service):
    assert envelope_service.open(envelope_service.seal(b"")) == b""


def test_each_seal_uses_a_new_key(envelope_service):
    first = envelope_service.seal(b"same receipt")
    second = envelope_service.seal(b"same receipt")
    assert first.payload[:NONCE_SIZE] != second.payload[:NONCE_SIZE]
    assert first.wrapped_key != second.wrapped_key


def test_open_with_another_key_pair_fails(key_pair, other_key_pair):
    envelope = ReceiptEnvelopeService(key_pair).seal(b"proof of payment")
    with pytest.raises(UnwrapError):
        ReceiptEnvelopeService(other_key_pair).open(envelope)


def test_swapped_wrapped_keys_fail_authentication(envelope_service):
    a = envelope_service.seal(b"receipt A")
    b = envelope_service.seal(b"receipt B")
    with pytest.raises(AuthenticationFailure):
        envelope_service.open(ReceiptEnvelope(payload=a.payload, wrapped_key=b.wrapped_key))


def test_truncated_payload(envelope_service):
    envelope = envelope_service.seal(b"receipt")
    with pytest.raises(ShortCiphertextError):
        envelope_service.open(ReceiptEnvelope(payload=envelope.payload[:5], wrapped_key=envelope.wrapped_key))


def test_legacy_pkcs1v15_records(key_pair):
    service = ReceiptEnvelopeService(key_pair, wrapper=KeyWrapper("pkcs1v15"))
    assert service.open(service.seal(b"legacy")) == b"legacy"


def test_wrap_failure_returns_nothing(key_pair):
    class FailingWrapper(KeyWrapper):
        def wrap(self, key, public_key):
            raise WrapError("Receipt key could not be wrapped.")

    service = ReceiptEnvelopeService(key_pair, wrapper=FailingWrapper())
    with pytest.raises(WrapError):
        service.seal(b"receipt")


def test_key_generation_failure_propagates(key_pair):
    class EmptyGenerator:
        def generate(self):
            raise KeyGenerationError("Symmetric key generation failed.")

    service = ReceiptEnvelopeService(key_pair, key_generator=EmptyGenerator())
    with pytest.raises(KeyGenerationError):
        service.seal(b"receipt")


def test_record_round_trip():
    envelope = ReceiptEnvelope(payload=b"p" * 40, wrapped_key=b"w" * 256)
    record = envelope.to_record()
    assert record == {"receipt": b"p" * 40, "wrapped_key": b"w" * 256}
    assert ReceiptEnvelope.from_record({"_id": 1, "loan_id": 7, **record}) == envelope


def test_incomplete_record():
    with pytest.raises(ReceiptUnreadableError):
        ReceiptEnvelope.from_record({"receipt": b"payload"})


def test_concurrent_use(envelope_service):
    receipts = [os.urandom(512) for _ in range(16)]

    def round_trip(data):
        return envelope_service.open(envelope_service.seal(data))

    with ThreadPoolExecutor(max_workers=8) as pool:
        assert list(pool.map(round_trip, receipts)) == receipts


def test_legacy_padding_never_opens_with_another_key_pair(key_pair, other_key_pair):
    sealer = ReceiptEnvelopeService(key_pair, wrapper=KeyWrapper("pkcs1v15"))
    opener = ReceiptEnvelopeService(other_key_pair, wrapper=KeyWrapper("pkcs1v15"))

    for _ in range(200):
        envelope = sealer.seal(b"proof of payment")
        with pytest.raises((UnwrapError, AuthenticationFailure)):
            opener.open(envelope)
