from assistant_bot.delivery.dedup import DuplicateGuard, TTLCache, compute_fingerprint, normalize_for_fingerprint
from assistant_bot.delivery.models import Persona
from fakes import FakeClock


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(5, clock=clock)
    cache.add("k")
    assert cache.contains("k")

    clock.advance(4.9)
    assert cache.contains("k")
    clock.advance(0.2)
    assert not cache.contains("k")
    assert len(cache) == 0


def test_access_does_not_extend_life():
    clock = FakeClock()
    cache = TTLCache(5, clock=clock)
    cache.add("k")
    for _ in range(4):
        clock.advance(1)
        assert cache.contains("k")
    clock.advance(1)
    assert not cache.contains("k")


def test_oldest_entry_evicted_when_full():
    cache = TTLCache(60, max_entries=2, clock=FakeClock())
    cache.add("a")
    cache.add("b")
    cache.add("c")
    assert not cache.contains("a")
    assert cache.contains("b") and cache.contains("c")
    assert len(cache) == 2


def test_fingerprint_ignores_case_and_punctuation():
    assert normalize_for_fingerprint("Hello,   WORLD!!", 200) == "hello world"
    assert compute_fingerprint(1, "Hello, World!", Persona.FAST) == compute_fingerprint(1, "hello world", Persona.FAST)


def test_fingerprint_depends_on_target_and_persona():
    base = compute_fingerprint(1, "same text", Persona.FAST)
    assert base != compute_fingerprint(2, "same text", Persona.FAST)
    assert base != compute_fingerprint(1, "same text", Persona.BALANCED)


def test_fingerprint_uses_only_the_prefix():
    head = "x" * 200
    assert compute_fingerprint(1, head + "tail one", None) == compute_fingerprint(1, head + "other tail", None)


def test_guard_suppresses_within_window():
    clock = FakeClock()
    guard = DuplicateGuard(ttl_seconds=5, clock=clock)
    assert not guard.should_suppress(7, "text", Persona.FAST)

    guard.record(7, "text", Persona.FAST)
    assert guard.should_suppress(7, "text", Persona.FAST)
    assert not guard.should_suppress(8, "text", Persona.FAST)

    clock.advance(6)
    assert not guard.should_suppress(7, "text", Persona.FAST)


def test_guard_clear():
    guard = DuplicateGuard(clock=FakeClock())
    guard.record(1, "a", None)
    assert len(guard) == 1
    guard.clear()
    assert len(guard) == 0


def test_add_if_absent_claims_once():
    clock = FakeClock()
    cache = TTLCache(5, clock=clock)
    assert cache.add_if_absent("k")
    assert not cache.add_if_absent("k")

    cache.discard("k")
    assert cache.add_if_absent("k")
    clock.advance(5.1)
    assert cache.add_if_absent("k")


def test_guard_reserve_and_release():
    guard = DuplicateGuard(ttl_seconds=5, clock=FakeClock())
    assert guard.reserve(1, "Budget report", Persona.BALANCED)
    assert not guard.reserve(1, "budget report!", Persona.BALANCED)
    assert guard.should_suppress(1, "Budget report", Persona.BALANCED)

    guard.release(1, "Budget report", Persona.BALANCED)
    assert not guard.should_suppress(1, "Budget report", Persona.BALANCED)
    assert guard.reserve(1, "Budget report", Persona.BALANCED)
