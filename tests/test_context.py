import threading

import pytest

from rakka.core.context import ContextStore
from rakka.core.types import Role


def _exchange(store, n, chat_id="c1", user_id="u1"):
    store.add_message(chat_id, user_id, Role.USER, f"q{n}")
    store.add_message(chat_id, user_id, Role.ASSISTANT, f"a{n}")


def test_history_format_oldest_first():
    store = ContextStore(max_history=3)
    _exchange(store, 1)
    assert store.get_history("c1", "u1") == "user: q1\nassistant: a1"


def test_unknown_conversation_is_empty():
    store = ContextStore(max_history=3)
    assert store.get_history("nope", "nobody") == ""
    assert store.turns("nope", "nobody") == []


def test_window_keeps_last_exchanges_only():
    store = ContextStore(max_history=2)
    for n in range(1, 4):
        _exchange(store, n)

    contents = [t.content for t in store.turns("c1", "u1")]
    assert contents == ["q2", "a2", "q3", "a3"]
    assert store.max_turns == 4


def test_conversations_are_keyed_by_chat_and_user():
    store = ContextStore(max_history=2)
    _exchange(store, 1, chat_id="c1", user_id="u1")
    _exchange(store, 2, chat_id="c1", user_id="u2")
    _exchange(store, 3, chat_id="c2", user_id="u1")

    assert store.get_history("c1", "u1") == "user: q1\nassistant: a1"
    assert store.get_history("c1", "u2") == "user: q2\nassistant: a2"
    assert store.get_history("c2", "u1") == "user: q3\nassistant: a3"


def test_clear_is_idempotent_and_scoped():
    store = ContextStore(max_history=2)
    _exchange(store, 1, user_id="u1")
    _exchange(store, 2, user_id="u2")

    store.clear("c1", "u1")
    store.clear("c1", "u1")
    store.clear("c9", "u9")

    assert store.get_history("c1", "u1") == ""
    assert store.get_history("c1", "u2") != ""


def test_max_history_must_be_positive():
    with pytest.raises(ValueError):
        ContextStore(max_history=0)


def test_least_recently_used_conversation_is_evicted():
    store = ContextStore(max_history=1, max_conversations=2)
    _exchange(store, 1, user_id="a")
    _exchange(store, 2, user_id="b")
    store.turns("c1", "a")  # touch a
    _exchange(store, 3, user_id="c")

    assert len(store) == 2
    assert store.get_history("c1", "b") == ""
    assert store.get_history("c1", "a") == "user: q1\nassistant: a1"


def test_concurrent_appends_respect_bound():
    store = ContextStore(max_history=5)

    def worker(i):
        for n in range(200):
            store.add_message("c1", "u1", Role.USER, f"{i}-{n}")

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.turns("c1", "u1")) == 10


def test_seven_exchanges_keep_last_five():
    store = ContextStore(max_history=5)
    for n in range(1, 8):
        _exchange(store, n)

    lines = store.get_history("c1", "u1").split("\n")
    assert len(lines) == 10
    assert lines[0] == "user: q3"
    assert lines[-1] == "assistant: a7"
