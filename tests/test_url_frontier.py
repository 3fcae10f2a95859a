from __future__ import annotations

import threading

import pytest

from hydracrawl.crawler.url_frontier import URLFrontier, URLTask
from hydracrawl.errors import SharedStateError


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _task(path: str, domain: str = "a.test", depth: int = 0) -> URLTask:
    url = f"https://{domain}{path}"
    return URLTask(url=url, canonical=url, depth=depth, domain=domain)


def _drain(frontier: URLFrontier):
    order = []
    while True:
        item = frontier.dequeue_any()
        if item is None:
            return order
        domain, task = item
        order.append(task.canonical)
        frontier.task_done(task)


class TestEnqueue:
    def test_rejects_tasks_deeper_than_max_depth(self):
        frontier = URLFrontier(max_depth=1)
        assert frontier.enqueue(_task("/", depth=1))
        assert not frontier.enqueue(_task("/deep", depth=2))
        assert frontier.get_stats()['rejected_depth'] == 1

    def test_fifo_within_a_domain(self):
        frontier = URLFrontier(max_depth=3)
        for path in ("/1", "/2", "/3"):
            frontier.enqueue(_task(path))
        assert _drain(frontier) == ["https://a.test/1", "https://a.test/2", "https://a.test/3"]

    def test_round_robin_across_domains(self):
        frontier = URLFrontier(max_depth=3)
        frontier.enqueue(_task("/1", "a.test"))
        frontier.enqueue(_task("/2", "a.test"))
        frontier.enqueue(_task("/1", "b.test"))
        assert _drain(frontier) == ["https://a.test/1", "https://b.test/1", "https://a.test/2"]

    def test_closed_frontier_rejects_and_hands_out_nothing(self):
        frontier = URLFrontier(max_depth=3)
        frontier.enqueue(_task("/1"))
        frontier.close()
        assert frontier.closed
        assert frontier.dequeue_any() is None
        assert not frontier.enqueue(_task("/2"))
        assert not frontier.requeue(_task("/3"), 0)


class TestInFlight:
    def test_exhausted_only_after_task_done(self):
        frontier = URLFrontier(max_depth=3)
        frontier.enqueue(_task("/"))
        _, task = frontier.dequeue_any()

        assert frontier.is_empty()
        assert not frontier.is_exhausted()
        assert frontier.in_flight == 1

        frontier.task_done(task)
        assert frontier.is_exhausted()

    def test_empty_frontier_dequeues_none(self):
        frontier = URLFrontier(max_depth=3)
        assert frontier.dequeue_any() is None
        assert frontier.is_exhausted()


class TestRetries:
    def test_retry_is_held_until_backoff_expires(self):
        clock = FakeClock()
        frontier = URLFrontier(max_depth=3, clock=clock)
        task = _task("/flaky")

        assert frontier.requeue(task, delay=2.0)
        assert frontier.dequeue_any() is None
        assert not frontier.is_exhausted()
        assert frontier.next_eligible_in() == pytest.approx(2.0)

        clock.now += 2.0
        _, retried = frontier.dequeue_any()
        assert retried is task
        assert frontier.next_eligible_in() is None

    def test_retry_goes_ahead_of_deeper_entries(self):
        clock = FakeClock()
        frontier = URLFrontier(max_depth=3, clock=clock)
        frontier.enqueue(_task("/shallow", depth=1))
        frontier.enqueue(_task("/deep", depth=2))
        frontier.requeue(_task("/retry", depth=1), delay=0)

        assert _drain(frontier) == [
            "https://a.test/shallow", "https://a.test/retry", "https://a.test/deep"
        ]
        assert frontier.get_stats()['retries'] == 1


class TestPoliteness:
    def test_same_domain_waits_for_delay(self):
        clock = FakeClock()
        frontier = URLFrontier(max_depth=3, politeness_delay=1.0, clock=clock)
        frontier.enqueue(_task("/1"))
        frontier.enqueue(_task("/2"))

        _, first = frontier.dequeue_any()
        assert first.canonical == "https://a.test/1"
        assert frontier.dequeue_any() is None
        assert not frontier.is_exhausted()
        assert frontier.next_eligible_in() == pytest.approx(1.0)

        clock.now += 0.5
        assert frontier.dequeue_any() is None
        assert frontier.next_eligible_in() == pytest.approx(0.5)

        clock.now += 0.5
        _, second = frontier.dequeue_any()
        assert second.canonical == "https://a.test/2"

    def test_waiting_domain_does_not_block_others(self):
        clock = FakeClock()
        frontier = URLFrontier(max_depth=3, politeness_delay=1.0, clock=clock)
        frontier.enqueue(_task("/1", "a.test"))
        frontier.enqueue(_task("/2", "a.test"))
        frontier.enqueue(_task("/1", "b.test"))

        assert frontier.dequeue_any()[1].canonical == "https://a.test/1"
        assert frontier.dequeue_any()[1].canonical == "https://b.test/1"
        assert frontier.dequeue_any() is None
        assert frontier.get_stats()['polite_waits'] == 1

        clock.now += 1.0
        assert frontier.dequeue_any()[1].canonical == "https://a.test/2"

    def test_no_delay_means_no_wait(self):
        frontier = URLFrontier(max_depth=3, clock=FakeClock())
        frontier.enqueue(_task("/1"))
        frontier.enqueue(_task("/2"))

        assert _drain(frontier) == ["https://a.test/1", "https://a.test/2"]
        assert frontier.next_eligible_in() is None


class TestLocking:
    def test_lock_timeout_raises_shared_state_error(self):
        frontier = URLFrontier(max_depth=3, lock_timeout=0.01)
        frontier._lock.acquire()
        try:
            with pytest.raises(SharedStateError):
                frontier.enqueue(_task("/"))
        finally:
            frontier._lock.release()

    def test_concurrent_dequeues_hand_out_each_task_once(self):
        frontier = URLFrontier(max_depth=3)
        for i in range(200):
            frontier.enqueue(_task(f"/{i}", domain=f"d{i % 7}.test"))

        taken = []
        taken_lock = threading.Lock()

        def consume():
            while True:
                item = frontier.dequeue_any()
                if item is None:
                    return
                with taken_lock:
                    taken.append(item[1].canonical)

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(taken) == 200
        assert len(set(taken)) == 200

    def test_stats(self):
        frontier = URLFrontier(max_depth=3)
        frontier.enqueue(_task("/1", "a.test"))
        frontier.enqueue(_task("/1", "b.test"))
        frontier.dequeue_any()

        stats = frontier.get_stats()
        assert stats['total_queued'] == 1
        assert stats['in_flight'] == 1
        assert stats['domains_with_urls'] == 1
        assert stats['total_domains'] == 2
        assert stats['enqueued'] == 2
        assert stats['dequeued'] == 1
