# backend/tests/test_recalc_coordinator.py
import threading
import time

import pytest

from retrofit.engine import RecalcCoordinator


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_requests_queued_behind_a_run_are_coalesced():
    coord = RecalcCoordinator()
    release = threading.Event()
    started = threading.Event()
    calls = []

    def runner():
        calls.append(len(calls) + 1)
        n = len(calls)
        if n == 1:
            started.set()
            release.wait(5)
        return f"result-{n}"

    results = {}

    def request(name):
        results[name] = coord.recalculate(1, runner)

    first = threading.Thread(target=request, args=("A",))
    first.start()
    assert started.wait(5)

    # B, C and D arrive while A's run holds the audit
    others = [threading.Thread(target=request, args=(n,)) for n in ("B", "C", "D")]
    for t in others:
        t.start()
    assert _wait_until(lambda: coord.pending(1) == 4)

    release.set()
    first.join(5)
    for t in others:
        t.join(5)

    assert results["A"] == "result-1"
    # one more run covers all three queued requests
    assert len(calls) == 2
    assert results["B"] == results["C"] == results["D"] == "result-2"


def test_sequential_requests_each_run():
    coord = RecalcCoordinator()
    counter = iter(range(1, 100))

    assert coord.recalculate(7, lambda: next(counter)) == 1
    assert coord.recalculate(7, lambda: next(counter)) == 2


def test_audits_are_independent():
    coord = RecalcCoordinator()
    assert coord.recalculate(1, lambda: "one") == "one"
    assert coord.recalculate(2, lambda: "two") == "two"


def test_recalculate_inside_mutation_does_not_deadlock():
    coord = RecalcCoordinator()
    with coord.mutation(3):
        assert coord.recalculate(3, lambda: "ok") == "ok"


def test_mutation_blocks_recalculation_of_same_audit():
    coord = RecalcCoordinator()
    order = []
    entered = threading.Event()
    leave = threading.Event()

    def writer():
        with coord.mutation(5):
            entered.set()
            leave.wait(5)
            order.append("write")

    t = threading.Thread(target=writer)
    t.start()
    assert entered.wait(5)

    reader = threading.Thread(target=lambda: coord.recalculate(5, lambda: order.append("recalc")))
    reader.start()
    time.sleep(0.05)
    assert order == []

    leave.set()
    t.join(5)
    reader.join(5)
    assert order == ["write", "recalc"]


# -----------------------------
# SLOT LIFETIME
# -----------------------------
def test_slot_lives_only_while_in_use():
    coord = RecalcCoordinator()
    with coord.mutation(9):
        assert coord.tracked() == 1
        coord.recalculate(9, lambda: "x")
        assert coord.tracked() == 1
    assert coord.tracked() == 0
    assert coord.pending(9) == 0


def test_failed_mutations_leave_nothing_behind():
    coord = RecalcCoordinator()
    for audit_id in range(50):
        with pytest.raises(LookupError):
            with coord.mutation(audit_id):
                raise LookupError("no such audit")
    assert coord.tracked() == 0


def test_runner_error_releases_slot():
    coord = RecalcCoordinator()

    def boom():
        raise RuntimeError("db down")

    with pytest.raises(RuntimeError):
        coord.recalculate(4, boom)
    assert coord.tracked() == 0
    # the next request runs normally
    assert coord.recalculate(4, lambda: "ok") == "ok"
