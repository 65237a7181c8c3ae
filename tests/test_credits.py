import json
import os
import stat

import pytest
from conftest import MASTER_KEY

from rakka.core.credits import CreditStore, derive_master_key
from rakka.errors import APIKeyNotFoundError, CreditStoreError, DecryptionFailedError


def _reopen(path, master_key=MASTER_KEY, limit=1000):
    return CreditStore(path, global_limit=limit, master_key=master_key)


def test_unknown_user_may_use_api(credits):
    assert credits.can_use_api("stranger")
    assert credits.get_user_stats("stranger") == (0, False)


def test_quota_boundary(credits):
    credits.record_usage("u1", 999)
    assert credits.can_use_api("u1")
    credits.record_usage("u1", 1)
    assert not credits.can_use_api("u1")


def test_zero_limit_blocks_known_users(tmp_path):
    store = _reopen(tmp_path / "c.json", limit=0)
    assert store.can_use_api("u1")
    store.record_usage("u1", 0)
    assert not store.can_use_api("u1")


def test_own_key_is_never_metered(credits):
    credits.set_user_api_key("u1", "sk-abc")
    credits.record_usage("u1", 10_000)
    assert credits.get_user_stats("u1") == (0, True)
    assert credits.can_use_api("u1")


def test_api_key_round_trip_unicode(credits):
    credits.set_user_api_key("u1", "sk-тест-🔑")
    assert credits.get_user_api_key("u1") == "sk-тест-🔑"


def test_missing_key_raises(credits):
    with pytest.raises(APIKeyNotFoundError):
        credits.get_user_api_key("u1")
    credits.record_usage("u1", 3)
    with pytest.raises(APIKeyNotFoundError):
        credits.get_user_api_key("u1")


def test_empty_key_and_negative_usage_rejected(credits):
    with pytest.raises(ValueError):
        credits.set_user_api_key("u1", "")
    with pytest.raises(ValueError):
        credits.record_usage("u1", -1)


def test_empty_master_key_rejected(tmp_path):
    with pytest.raises(ValueError):
        derive_master_key("")
    with pytest.raises(ValueError):
        _reopen(tmp_path / "c.json", master_key="")


def test_key_persists_encrypted(credits):
    credits.set_user_api_key("u1", "sk-super-secret")

    raw = credits.file_path.read_text(encoding="utf-8")
    assert "sk-super-secret" not in raw
    assert _reopen(credits.file_path).get_user_api_key("u1") == "sk-super-secret"


def test_wrong_master_key_cannot_decrypt(credits):
    credits.set_user_api_key("u1", "sk-abc")
    other = _reopen(credits.file_path, master_key="a-different-secret")
    with pytest.raises(DecryptionFailedError):
        other.get_user_api_key("u1")


def test_ciphertext_is_bound_to_user(credits):
    credits.set_user_api_key("u1", "sk-abc")
    credits.record_usage("u2", 1)
    credits.flush()

    data = json.loads(credits.file_path.read_text(encoding="utf-8"))
    data["u2"]["api_key"] = data["u1"]["api_key"]
    data["u2"]["nonce"] = data["u1"]["nonce"]
    credits.file_path.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(DecryptionFailedError):
        _reopen(credits.file_path).get_user_api_key("u2")


def test_usage_reaches_disk_only_on_flush(credits):
    credits.set_user_api_key("keyed", "sk-abc")  # creates the file
    credits.record_usage("u1", 42)
    assert credits.dirty
    assert _reopen(credits.file_path).get_user_stats("u1") == (0, False)

    assert credits.flush() is True
    assert not credits.dirty
    assert _reopen(credits.file_path).get_user_stats("u1") == (42, False)


def test_flush_skips_clean_store_unless_forced(credits):
    assert credits.flush() is False
    assert not credits.file_path.exists()
    assert credits.flush(force=True) is True
    assert credits.file_path.exists()


def test_search_flag_persists_immediately(credits):
    assert not credits.is_search_enabled("u1")
    credits.set_search_enabled("u1", True)
    assert credits.is_search_enabled("u1")
    assert _reopen(credits.file_path).is_search_enabled("u1")


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_file_is_owner_only(credits):
    credits.set_user_api_key("u1", "sk-abc")
    mode = stat.S_IMODE(os.stat(credits.file_path).st_mode)
    assert mode == 0o600


def test_corrupt_file_fails_loudly(tmp_path):
    path = tmp_path / "credits.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CreditStoreError):
        _reopen(path)


def test_empty_file_loads_as_empty(tmp_path):
    path = tmp_path / "credits.json"
    path.write_text("", encoding="utf-8")
    assert _reopen(path).get_user_stats("u1") == (0, False)


def test_failed_write_keeps_store_dirty(tmp_path):
    path = tmp_path / "credits.json"
    store = _reopen(path)
    path.mkdir()  # target now unwritable as a file

    store.record_usage("u1", 5)
    with pytest.raises(CreditStoreError):
        store.flush()
    assert store.dirty
    assert store.get_user_stats("u1") == (5, False)


def test_failed_setkey_raises_store_error(tmp_path):
    path = tmp_path / "credits.json"
    store = _reopen(path)
    path.mkdir()
    with pytest.raises(CreditStoreError):
        store.set_user_api_key("u1", "sk-abc")
    assert store.get_user_stats("u1") == (0, False)
    with pytest.raises(APIKeyNotFoundError):
        store.get_user_api_key("u1")


def test_failed_setkey_keeps_previous_key(tmp_path):
    path = tmp_path / "credits.json"
    store = _reopen(path)
    store.set_user_api_key("u1", "sk-old")
    path.unlink()
    path.mkdir()

    with pytest.raises(CreditStoreError):
        store.set_user_api_key("u1", "sk-new")
    assert store.get_user_api_key("u1") == "sk-old"


def test_failed_search_toggle_is_rolled_back(tmp_path):
    path = tmp_path / "credits.json"
    store = _reopen(path)
    path.mkdir()

    with pytest.raises(CreditStoreError):
        store.set_search_enabled("u1", True)
    assert not store.is_search_enabled("u1")
