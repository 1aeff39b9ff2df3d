import threading

from cityscore.services.scoring.debounce import CompileRequestTracker


def test_latest_request_wins():
    tracker = CompileRequestTracker()
    first = tracker.begin('editor-1')
    second = tracker.begin('editor-1')
    assert second > first
    assert not tracker.is_current('editor-1', first)
    assert tracker.is_current('editor-1', second)


def test_keys_are_independent():
    tracker = CompileRequestTracker()
    a = tracker.begin('a')
    b = tracker.begin('b')
    assert tracker.is_current('a', a)
    assert tracker.is_current('b', b)
    assert len(tracker) == 2


def test_forget_invalidates_and_tokens_are_never_reused():
    tracker = CompileRequestTracker()
    old = tracker.begin('a')
    tracker.forget('a')
    assert not tracker.is_current('a', old)
    new = tracker.begin('a')
    assert new != old
    assert not tracker.is_current('a', old)


def test_concurrent_begins_leave_exactly_one_current():
    tracker = CompileRequestTracker()
    tokens = []
    lock = threading.Lock()

    def worker():
        for _ in range(100):
            token = tracker.begin('shared')
            with lock:
                tokens.append(token)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(tokens)) == 800
    assert sum(1 for token in tokens if tracker.is_current('shared', token)) == 1


def test_forget_scope_drops_only_that_scope():
    tracker = CompileRequestTracker()
    a1 = tracker.begin(('sid-a', 'editor-1'))
    tracker.begin(('sid-a', 'editor-2'))
    b1 = tracker.begin(('sid-b', 'editor-1'))
    tracker.begin('sid-a')
    assert tracker.forget_scope('sid-a') == 2
    assert not tracker.is_current(('sid-a', 'editor-1'), a1)
    assert tracker.is_current(('sid-b', 'editor-1'), b1)
    assert len(tracker) == 2
    assert tracker.forget_scope('sid-c') == 0
