import random
from unittest.mock import Mock

import pytest

from shortener.codes import (
    ALPHABET,
    CODE_LENGTH,
    CodeGenerator,
    ShortCodeAllocator,
    build_short_url,
)
from shortener.errors import (
    CodeSpaceExhausted,
    DeadlineExceeded,
    DuplicateCodeError,
    StorageError,
)

CANDIDATES = [f"code{i:02d}" for i in range(11)]


def scripted(codes):
    return iter(codes).__next__


def test_alphabet_has_62_symbols():
    assert len(ALPHABET) == 62
    assert len(set(ALPHABET)) == 62


def test_generated_codes_use_alphabet_and_length():
    generate = CodeGenerator(random.Random(7))
    for _ in range(500):
        code = generate()
        assert len(code) == CODE_LENGTH
        assert set(code) <= set(ALPHABET)


def test_same_seed_same_codes():
    first = CodeGenerator(random.Random(42))
    second = CodeGenerator(random.Random(42))
    assert [first() for _ in range(20)] == [second() for _ in range(20)]


def test_unseeded_generators_differ():
    codes = {CodeGenerator()() for _ in range(5)}
    assert len(codes) > 1


def test_build_short_url_concatenates():
    assert build_short_url("http://short.url/", "aB3dE9") == "http://short.url/aB3dE9"


@pytest.mark.parametrize("code", ["", "ab/cd", "abc de", "abc%20", "ü12345"])
def test_build_short_url_rejects_foreign_symbols(code):
    with pytest.raises(ValueError):
        build_short_url("http://short.url/", code)


def test_nine_collisions_then_success(deadline):
    store = Mock()
    store.code_exists.side_effect = [True] * 9 + [False]
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    code = allocator.allocate("http://example.com", deadline)

    assert code == CANDIDATES[9]
    assert store.code_exists.call_count == 10
    store.insert.assert_called_once_with(CANDIDATES[9], "http://example.com", deadline)


def test_ten_collisions_fail_without_insert(deadline):
    store = Mock()
    store.code_exists.return_value = True
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    with pytest.raises(CodeSpaceExhausted):
        allocator.allocate("http://example.com", deadline)

    assert store.code_exists.call_count == 10
    store.insert.assert_not_called()


def test_failed_existence_check_counts_as_collision(deadline):
    store = Mock()
    store.code_exists.side_effect = [StorageError("disk I/O error"), False]
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    assert allocator.allocate("http://example.com", deadline) == CANDIDATES[1]
    store.insert.assert_called_once_with(CANDIDATES[1], "http://example.com", deadline)


def test_deadline_during_existence_check_is_not_retried(deadline):
    store = Mock()
    store.code_exists.side_effect = DeadlineExceeded("too slow")
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    with pytest.raises(DeadlineExceeded):
        allocator.allocate("http://example.com", deadline)

    assert store.code_exists.call_count == 1
    store.insert.assert_not_called()


def test_insert_conflict_regenerates_once(deadline):
    store = Mock()
    store.code_exists.return_value = False
    store.insert.side_effect = [DuplicateCodeError("UNIQUE constraint failed"), 2]
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    assert allocator.allocate("http://example.com", deadline) == CANDIDATES[1]
    assert store.insert.call_count == 2


def test_second_insert_conflict_propagates(deadline):
    store = Mock()
    store.code_exists.return_value = False
    store.insert.side_effect = DuplicateCodeError("UNIQUE constraint failed")
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    with pytest.raises(DuplicateCodeError):
        allocator.allocate("http://example.com", deadline)

    assert store.insert.call_count == 2


def test_insert_conflict_without_retry(deadline):
    store = Mock()
    store.code_exists.return_value = False
    store.insert.side_effect = DuplicateCodeError("UNIQUE constraint failed")
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES), retry_on_conflict=False)

    with pytest.raises(DuplicateCodeError):
        allocator.allocate("http://example.com", deadline)

    store.insert.assert_called_once()


def test_other_insert_failures_are_not_retried(deadline):
    store = Mock()
    store.code_exists.return_value = False
    store.insert.side_effect = StorageError("database is locked")
    allocator = ShortCodeAllocator(store, scripted(CANDIDATES))

    with pytest.raises(StorageError):
        allocator.allocate("http://example.com", deadline)

    store.insert.assert_called_once()


def test_allocates_against_real_store(store, deadline):
    store.insert("taken0", "http://a.example", deadline)
    allocator = ShortCodeAllocator(store, scripted(["taken0", "free01"]))

    assert allocator.allocate("http://b.example", deadline) == "free01"
    assert store.count() == 2
