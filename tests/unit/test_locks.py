"""
Unit tests for StudentLocks, the per-student lock registry.
"""

import threading

from swimschool.core.progress.repositories import StudentLocks


class TestStudentLocks:

    def test_entries_are_dropped_after_release(self):
        locks = StudentLocks()

        for i in range(1000):
            with locks.hold("t", f"student-{i}"):
                assert len(locks) == 1

        assert len(locks) == 0

    def test_nested_hold_is_reentrant(self):
        locks = StudentLocks()

        with locks.hold("t", "s1"):
            with locks.hold("t", "s1"):
                assert len(locks) == 1

        assert len(locks) == 0

    def test_entry_released_when_body_raises(self):
        locks = StudentLocks()

        try:
            with locks.hold("t", "s1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert len(locks) == 0

    def test_same_student_is_exclusive(self):
        locks = StudentLocks()
        first_holding = threading.Event()
        release_first = threading.Event()
        second_entered = threading.Event()

        def first():
            with locks.hold("t", "s1"):
                first_holding.set()
                release_first.wait(5)

        def second():
            with locks.hold("t", "s1"):
                second_entered.set()

        a = threading.Thread(target=first)
        a.start()
        assert first_holding.wait(5)

        b = threading.Thread(target=second)
        b.start()

        assert not second_entered.wait(0.1)

        release_first.set()
        assert second_entered.wait(5)
        a.join()
        b.join()

        assert len(locks) == 0

    def test_different_students_do_not_block(self):
        locks = StudentLocks()
        entered = threading.Event()

        def other():
            with locks.hold("t", "s2"):
                entered.set()

        with locks.hold("t", "s1"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(5)
            thread.join()
