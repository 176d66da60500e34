import logging
import threading
import time

import pytest

from couloykv.ttl import TTL, Job


class Recorder:
    def __init__(self, expected=1):
        self.keys = []
        self.expected = expected
        self.done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, key):
        with self._lock:
            self.keys.append(key)
            if len(self.keys) >= self.expected:
                self.done.set()


@pytest.fixture
def running():
    started = []

    def run(ttl):
        thread = threading.Thread(target=ttl.start, daemon=True)
        thread.start()
        started.append((ttl, thread))
        return thread

    yield run
    for ttl, thread in started:
        ttl.stop()
        thread.join(2)


def test_is_expired():
    ttl = TTL(lambda key: None)
    now = time.time()
    ttl.add(Job("past", now - 1))
    ttl.add(Job("future", now + 60))
    assert ttl.is_expired("past") is True
    assert ttl.is_expired("future") is False
    assert ttl.is_expired("missing") is False


def test_readding_resets_expiration():
    ttl = TTL(lambda key: None)
    ttl.add(Job("k", time.time() - 1))
    ttl.add(Job("k", time.time() + 60))
    assert ttl.is_expired("k") is False


def test_delete_cancels_job():
    ttl = TTL(lambda key: None)
    ttl.add(Job("k", time.time() - 1))
    ttl.delete("k")
    assert ttl.is_expired("k") is False


def test_expired_job_runs_deleter(running):
    recorder = Recorder()
    ttl = TTL(recorder)
    running(ttl)
    ttl.add(Job("k", time.time() + 0.05))
    assert recorder.done.wait(2)
    assert recorder.keys == ["k"]
    assert ttl.is_expired("k") is False


def test_jobs_expire_in_order(running):
    recorder = Recorder(expected=2)
    ttl = TTL(recorder)
    now = time.time()
    ttl.add(Job("late", now + 0.2))
    ttl.add(Job("early", now + 0.05))
    running(ttl)
    assert recorder.done.wait(2)
    assert recorder.keys == ["early", "late"]


def test_deleted_job_never_fires(running):
    recorder = Recorder(expected=2)
    ttl = TTL(recorder)
    now = time.time()
    ttl.add(Job("gone", now + 0.05))
    ttl.add(Job("kept", now + 0.1))
    ttl.delete("gone")
    running(ttl)
    time.sleep(0.3)
    assert recorder.keys == ["kept"]


def test_stop_ends_start():
    ttl = TTL(lambda key: None)
    thread = threading.Thread(target=ttl.start, daemon=True)
    thread.start()
    time.sleep(0.05)
    ttl.stop()
    thread.join(2)
    assert not thread.is_alive()


def test_deleter_error_is_logged(running, caplog):
    def failing(key):
        raise RuntimeError("boom")

    ttl = TTL(failing)
    with caplog.at_level(logging.ERROR, logger="couloykv.ttl"):
        running(ttl)
        ttl.add(Job("k", time.time()))
        deadline = time.time() + 2
        while time.time() < deadline and not caplog.records:
            time.sleep(0.01)
    assert any("boom" in record.getMessage() for record in caplog.records)