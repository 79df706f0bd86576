from __future__ import annotations

import threading
import time

from infra.locks import ReadWriteLock


def test_readers_share_the_lock() -> None:
    lock = ReadWriteLock()
    inside = threading.Barrier(3, timeout=2.0)

    def reader() -> None:
        with lock.read():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)
    assert not any(thread.is_alive() for thread in threads)
    assert not inside.broken


def test_writer_excludes_readers() -> None:
    lock = ReadWriteLock()
    events: list[str] = []
    writer_holding = threading.Event()

    def writer() -> None:
        with lock.write():
            writer_holding.set()
            time.sleep(0.05)
            events.append("write-done")

    def reader() -> None:
        writer_holding.wait()
        with lock.read():
            events.append("read")

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)

    assert events == ["write-done", "read"]


def test_concurrent_writers_do_not_lose_updates() -> None:
    lock = ReadWriteLock()
    counter = {"value": 0}

    def bump() -> None:
        for _ in range(200):
            with lock.write():
                current = counter["value"]
                counter["value"] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert counter["value"] == 1_600
