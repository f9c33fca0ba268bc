"""Tests for the flock helpers."""

import os
import threading

import pytest

from specflow.errors import LockTimeoutError
from specflow.locking import file_lock, keyed_lock, lock_name


class TestLockName:
    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            ("auth/add-mfa", "auth-add-mfa"),
            ("team auth//x", "team-auth-x"),
            ("///", "lock"),
            ("v1.2_final", "v1.2_final"),
        ],
    )
    def test_slugs(self, key, expected):
        assert lock_name(key) == expected


class TestFileLock:
    def test_creates_lock_file_with_pid(self, tmp_path):
        lock_file = tmp_path / "nested" / "state.lock"
        with file_lock(lock_file):
            assert lock_file.read_text() == f"{os.getpid()}\n"
        assert lock_file.exists()

    def test_reacquire_after_release(self, tmp_path):
        lock_file = tmp_path / "state.lock"
        with file_lock(lock_file, timeout=0.1):
            pass
        with file_lock(lock_file, timeout=0.1):
            pass

    def test_second_holder_times_out(self, tmp_path):
        lock_file = tmp_path / "state.lock"
        with file_lock(lock_file):
            with pytest.raises(LockTimeoutError, match="state.lock"):
                with file_lock(lock_file, timeout=0.1):
                    pass

    def test_waiter_gets_lock_once_released(self, tmp_path):
        lock_file = tmp_path / "state.lock"
        held = threading.Event()
        release = threading.Event()

        def holder():
            with file_lock(lock_file):
                held.set()
                release.wait(timeout=5)

        thread = threading.Thread(target=holder)
        thread.start()
        assert held.wait(timeout=5)
        timer = threading.Timer(0.2, release.set)
        timer.start()
        with file_lock(lock_file, timeout=5):
            assert release.is_set()
        thread.join()
        timer.join()

    def test_released_when_block_raises(self, tmp_path):
        lock_file = tmp_path / "state.lock"
        with pytest.raises(RuntimeError):
            with file_lock(lock_file):
                raise RuntimeError("boom")
        with file_lock(lock_file, timeout=0.1):
            pass


class TestKeyedLock:
    def test_without_dir_is_noop(self, tmp_path):
        with keyed_lock(None, "auth/add-mfa"):
            with keyed_lock(None, "auth/add-mfa"):
                pass
        assert list(tmp_path.iterdir()) == []

    def test_locks_slugged_file(self, tmp_path):
        with keyed_lock(tmp_path, "auth/add-mfa"):
            assert (tmp_path / "auth-add-mfa.lock").exists()
            with pytest.raises(LockTimeoutError):
                with keyed_lock(tmp_path, "auth/add-mfa", timeout=0.1):
                    pass
            with keyed_lock(tmp_path, "billing/x", timeout=0.1):
                pass
