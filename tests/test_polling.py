import pytest

from sourcing_pipeline.polling import JobPoller, JobSnapshot, JobState


class FakeTime:
    """Clock and sleep pair; sleeping advances the clock instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedJob:
    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.checks = 0

    async def __call__(self):
        self.checks += 1
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]


def _poller(fake, interval=2.0, max_wait=10.0):
    return JobPoller(interval, max_wait, sleep=fake.sleep, clock=fake.clock)


@pytest.mark.asyncio
async def test_stops_as_soon_as_items_appear():
    fake = FakeTime()
    job = ScriptedJob(
        [
            JobSnapshot(JobState.PENDING),
            JobSnapshot(JobState.RUNNING),
            JobSnapshot(JobState.RUNNING, items=[{"supplierName": "Acme"}]),
        ]
    )

    outcome = await _poller(fake).run(job)

    assert outcome.state == JobState.RUNNING
    assert outcome.items == [{"supplierName": "Acme"}]
    assert outcome.polls == 3
    assert fake.sleeps == [2.0, 2.0]


@pytest.mark.asyncio
async def test_succeeded_without_items_stops():
    fake = FakeTime()
    job = ScriptedJob([JobSnapshot(JobState.RUNNING), JobSnapshot(JobState.SUCCEEDED)])

    outcome = await _poller(fake).run(job)

    assert outcome.state == JobState.SUCCEEDED
    assert outcome.items == []
    assert job.checks == 2


@pytest.mark.asyncio
async def test_failed_job_stops_immediately():
    fake = FakeTime()
    job = ScriptedJob([JobSnapshot(JobState.FAILED)])

    outcome = await _poller(fake).run(job)

    assert outcome.state == JobState.FAILED
    assert fake.sleeps == []


@pytest.mark.asyncio
async def test_times_out_after_max_polls():
    fake = FakeTime()
    job = ScriptedJob([JobSnapshot(JobState.RUNNING)])
    poller = _poller(fake, interval=2.0, max_wait=10.0)

    outcome = await poller.run(job)

    assert poller.max_polls == 6
    assert outcome.state == JobState.TIMED_OUT
    assert outcome.polls == 6
    assert job.checks == 6
    assert outcome.elapsed_seconds == pytest.approx(10.0)


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        JobPoller(interval_seconds=0)


def test_tiny_budget_still_polls_once():
    assert JobPoller(interval_seconds=5, max_wait_seconds=1).max_polls == 1
    assert JobState.TIMED_OUT.is_terminal
    assert not JobState.RUNNING.is_terminal
