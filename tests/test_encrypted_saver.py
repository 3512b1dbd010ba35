import pytest
from cryptography.exceptions import InvalidTag

from persistence.crypto import CryptoUtils
from persistence.encrypted_memory_saver import EncryptedInMemorySaver
from registration.rules import Messages


def _saver(wizard) -> EncryptedInMemorySaver:
    return wizard.graph.checkpointer


def test_sensitive_channels_encrypted_at_rest_and_plaintext_on_read(wizard):
    session_id = wizard.start()
    wizard.update_step1(session_id, {"aadhaarNumber": "123456789012", "entrepreneurName": "Asha Gupta"})
    wizard.request_otp(session_id)

    saver = _saver(wizard)
    for channel in ("step1", "issued_otp", "otp_aadhaar"):
        stored = saver.stored_channel_values(session_id, channel)
        assert stored
        assert all(isinstance(v, dict) and "__enc__" in v for v in stored)
        assert "123456789012" not in repr(stored)

    state = wizard.get_state(session_id)
    assert state.step1.aadhaar_number == "123456789012"
    assert state.otp_aadhaar == "123456789012"
    assert state.issued_otp == "123456"


def test_non_sensitive_channels_stay_plain(wizard):
    session_id = wizard.start()
    wizard.update_step1(session_id, {"aadhaarNumber": "1234"})

    stored = _saver(wizard).stored_channel_values(session_id, "step1_errors")
    assert {"aadhaarNumber": Messages.AADHAAR_INVALID} in stored


def test_pending_writes_are_sealed(wizard):
    session_id = wizard.start()
    wizard.update_step1(session_id, {"aadhaarNumber": "123456789012"})

    saver = _saver(wizard)
    config = wizard.graph.get_state({"configurable": {"thread_id": session_id}}).config
    saver.put_writes(config, [("step1", {"aadhaarNumber": "999988887777"})], "manual-task")

    raw = saver.stored_writes(session_id, "step1")
    assert raw
    assert all(isinstance(v, dict) and "__enc__" in v for v in raw)

    pending = saver.get_tuple(config).pending_writes
    assert ("manual-task", "step1", {"aadhaarNumber": "999988887777"}) in pending


def test_blob_is_bound_to_its_session(crypto):
    saver = EncryptedInMemorySaver(crypto)
    sealed = saver._seal({"otp": "123456"}, saver._aad({"configurable": {"thread_id": "a"}}), "step1")

    other = saver._aad({"configurable": {"thread_id": "b"}})
    with pytest.raises(InvalidTag):
        saver._open(sealed, other, "step1")

    same = saver._aad({"configurable": {"thread_id": "a"}})
    with pytest.raises(InvalidTag):
        saver._open(sealed, same, "step2")
    assert saver._open(sealed, same, "step1") == {"otp": "123456"}


def test_extra_encrypt_keys_from_config(crypto):
    saver = EncryptedInMemorySaver(crypto, encrypt_keys=[])
    assert saver._keys_for({"configurable": {"thread_id": "t", "encrypt_keys": ["alert"]}}) == {"alert"}


def test_wrong_key_cannot_read_sessions(wizard, crypto):
    session_id = wizard.start()
    wizard.update_step1(session_id, {"aadhaarNumber": "123456789012"})

    saver = _saver(wizard)
    saver.crypto = CryptoUtils.from_b64(None)
    with pytest.raises(InvalidTag):
        wizard.get_state(session_id)
