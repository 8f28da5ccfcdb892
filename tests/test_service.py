import threading

from rigcheck.builder import ProgressiveValidator
from rigcheck.data import InMemoryCatalogRepository
from rigcheck.schemas import BuildStatus
from rigcheck.service import ValidationScheduler, ValidationService


SELECTION_A = {"processors": "cpu-5600", "motherboards": "mb-b650"}
SELECTION_B = {"processors": "cpu-13600k", "motherboards": "mb-b650"}
SELECTION_C = {"processors": "cpu-7600", "motherboards": "mb-b650"}


class RecordingValidator(ProgressiveValidator):
    def __init__(self):
        super().__init__()
        self.seen = []

    def validate(self, snapshot, selection):
        self.seen.append(dict(selection))
        return super().validate(snapshot, selection)


class BlockingValidator(RecordingValidator):
    """Holds the first run until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def validate(self, snapshot, selection):
        if not self.seen:
            self.seen.append(dict(selection))
            self.started.set()
            self.release.wait(5)
            return ProgressiveValidator.validate(self, snapshot, selection)
        return super().validate(snapshot, selection)


def test_rapid_changes_collapse_into_one_run(snapshot):
    validator = RecordingValidator()
    scheduler = ValidationScheduler(validator, lambda: snapshot, debounce_seconds=0.2)

    scheduler.submit(SELECTION_A)
    scheduler.submit(SELECTION_B)
    last = scheduler.submit(SELECTION_C)
    assert scheduler.wait_idle(5)

    assert validator.seen == [SELECTION_C]
    assert scheduler.evaluations == 1
    run = scheduler.latest()
    assert run.generation == last
    assert run.selection == SELECTION_C
    assert run.result.status is BuildStatus.VALID
    scheduler.close()


def test_superseded_run_is_dropped(snapshot):
    validator = BlockingValidator()
    published = []
    delivered = threading.Event()

    def on_result(run):
        published.append(run)
        delivered.set()

    scheduler = ValidationScheduler(validator, lambda: snapshot, debounce_seconds=0, on_result=on_result)

    scheduler.submit(SELECTION_A)
    assert validator.started.wait(5)
    newer = scheduler.submit(SELECTION_C)
    validator.release.set()
    assert scheduler.wait_idle(5)
    assert delivered.wait(5)

    assert validator.seen == [SELECTION_A, SELECTION_C]
    assert scheduler.evaluations == 2
    assert scheduler.dropped == 1
    assert [run.generation for run in published] == [newer]
    assert scheduler.latest().selection == SELECTION_C
    scheduler.close()


def test_cancel_discards_pending_selection(snapshot):
    validator = RecordingValidator()
    scheduler = ValidationScheduler(validator, lambda: snapshot, debounce_seconds=5)

    scheduler.submit(SELECTION_A)
    scheduler.cancel()

    assert scheduler.wait_idle(1)
    assert scheduler.latest() is None
    assert validator.seen == []
    scheduler.close()


def test_failed_run_publishes_nothing(snapshot):
    class Exploding(ProgressiveValidator):
        def validate(self, snapshot, selection):
            raise RuntimeError("boom")

    scheduler = ValidationScheduler(Exploding(), lambda: snapshot, debounce_seconds=0)

    scheduler.submit(SELECTION_A)
    assert scheduler.wait_idle(5)

    assert scheduler.latest() is None
    assert scheduler.evaluations == 1
    scheduler.close()


def test_service_sessions_are_independent(snapshot):
    service = ValidationService(InMemoryCatalogRepository(snapshot), debounce_seconds=0)

    first = service.submit("s1", SELECTION_A)
    second = service.submit("s2", SELECTION_C)
    assert service.wait_idle("s1", 5)
    assert service.wait_idle("s2", 5)

    run_1 = service.latest("s1")
    run_2 = service.latest("s2")
    assert run_1.generation == first
    assert run_1.result.status is BuildStatus.ERROR
    assert run_2.generation == second
    assert run_2.result.status is BuildStatus.VALID
    assert service.latest("unknown") is None

    stats = service.stats()
    assert stats["active_sessions"] == 2
    assert stats["evaluations"] == 2
    assert stats["current_generation"] == second

    service.close_session("s1")
    assert service.latest("s1") is None
    service.close()


def test_validate_now_and_breakdown(snapshot):
    service = ValidationService(InMemoryCatalogRepository(snapshot))

    result = service.validate_now(SELECTION_A)
    breakdown = {entry.slug: entry for entry in service.breakdown(result)}

    assert not result.is_valid
    assert "nvme-ssd" not in breakdown
    assert len(breakdown["processors"].issues) == 1


def test_idle_sessions_are_evicted(snapshot):
    service = ValidationService(
        InMemoryCatalogRepository(snapshot),
        debounce_seconds=0,
        session_ttl_seconds=1,
        session_cleanup_interval_seconds=1,
    )
    service.submit("old", SELECTION_C)
    assert service.wait_idle("old", 5)

    service.sessions["old"].last_seen -= 10
    service._cleanup_idle_sessions(force=True)

    assert "old" not in service.sessions
    service.close()


def test_concurrent_submits_keep_the_newest_generation(snapshot):
    validator = RecordingValidator()
    scheduler = ValidationScheduler(validator, lambda: snapshot, debounce_seconds=0.05)
    selections = [SELECTION_A, SELECTION_B, SELECTION_C]
    start = threading.Barrier(6)

    def edit(index):
        start.wait()
        for _ in range(25):
            scheduler.submit(selections[index % 3])

    threads = [threading.Thread(target=edit, args=(i,)) for i in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert scheduler.wait_idle(5)

    assert scheduler.latest_generation == validator.current_generation == 150
    assert scheduler.latest().generation == 150
    scheduler.close()


def test_failing_callback_does_not_stop_the_worker(snapshot):
    calls = []

    def on_result(run):
        calls.append(run.generation)
        raise RuntimeError("listener down")

    scheduler = ValidationScheduler(ProgressiveValidator(), lambda: snapshot, debounce_seconds=0, on_result=on_result)

    first = scheduler.submit(SELECTION_A)
    assert scheduler.wait_idle(5)
    second = scheduler.submit(SELECTION_C)
    assert scheduler.wait_idle(5)

    assert scheduler.latest().generation == second
    assert scheduler.evaluations == 2
    assert calls[0] == first
    scheduler.close()
