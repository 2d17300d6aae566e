"""Tests for the per-resource lock registry."""

from __future__ import annotations

import threading

from app.services.locks import ResourceLockRegistry


def test_locks_are_created_once_per_resource():
    registry = ResourceLockRegistry()
    with registry.hold(["equipment:E1", "person:T1", "equipment:E1"]):
        pass
    with registry.hold(["equipment:E1"]):
        pass
    assert len(registry) == 2


def test_hold_blocks_other_holders_of_the_same_resource():
    registry = ResourceLockRegistry()
    acquired = threading.Event()

    def contend():
        with registry.hold(["equipment:E1"]):
            acquired.set()

    with registry.hold(["equipment:E1", "person:T1"]):
        worker = threading.Thread(target=contend)
        worker.start()
        assert not acquired.wait(timeout=0.1)

    worker.join(timeout=1)
    assert acquired.is_set()


def test_disjoint_resources_do_not_block():
    registry = ResourceLockRegistry()
    acquired = threading.Event()

    def other():
        with registry.hold(["equipment:E2"]):
            acquired.set()

    with registry.hold(["equipment:E1"]):
        worker = threading.Thread(target=other)
        worker.start()
        assert acquired.wait(timeout=1)
    worker.join(timeout=1)
