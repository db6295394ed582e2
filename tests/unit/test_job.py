"""Job state machine tests."""

import json
from datetime import datetime, timezone

import pytest

from flowgraph.contracts import Payload
from flowgraph.errors import PayloadNotFound
from flowgraph.job import Job, JobStatus, job_name, split_job_name


def _job(**kwargs) -> Job:
    return Job(id="1", klass="fetch", workflow_id="wf", **kwargs)


def test_new_job_is_pending():
    job = _job()
    assert job.status is JobStatus.PENDING
    assert job.pending
    assert not job.enqueued
    assert job.remaining
    assert job.has_no_dependencies()


def test_transitions_follow_timestamps():
    job = _job()
    job.enqueue()
    assert job.status is JobStatus.ENQUEUED

    job.start()
    assert job.status is JobStatus.RUNNING
    assert job.running

    job.record_error("boom")
    assert job.status is JobStatus.RETRYING
    assert job.retrying
    assert job.error == "boom"

    job.start()
    assert job.status is JobStatus.RUNNING
    assert job.error is None

    job.succeed()
    assert job.status is JobStatus.SUCCEEDED
    assert job.succeeded
    assert job.failed_at is None
    assert not job.remaining


def test_fail_is_terminal():
    job = _job()
    job.enqueue()
    job.start()
    job.fail("ValueError: bad input")
    assert job.status is JobStatus.FAILED
    assert job.finished
    assert job.failed
    assert not job.succeeded
    assert job.error == "ValueError: bad input"


def test_enqueue_resets_previous_run():
    job = _job()
    job.enqueue()
    job.start()
    job.fail("boom")

    job.enqueue()
    assert job.started_at is None
    assert job.finished_at is None
    assert job.failed_at is None
    assert job.error is None
    assert job.status is JobStatus.ENQUEUED


def test_status_is_derived_not_stored():
    now = datetime.now(timezone.utc)
    job = _job(enqueued_at=now, started_at=now, finished_at=now, failed_at=now)
    assert job.status is JobStatus.FAILED

    stored = json.dumps({"id": "1", "klass": "fetch", "status": "succeeded"})
    assert Job.from_json(stored).status is JobStatus.PENDING


def test_json_round_trip_keeps_record_fields():
    job = _job(
        incoming=["parse|2"],
        outgoing=["store|3"],
        params={"url": "https://example.com"},
        queue="critical",
    )
    job.enqueue()
    job.start()
    job.output({"rows": 3})
    job.succeed()
    job.payloads = [Payload(id="parse|2", klass="parse", output=1)]

    data = json.loads(job.to_json())
    assert data["status"] == "succeeded"
    assert "payloads" not in data

    restored = Job.from_json(job.to_json())
    assert restored.name == job.name
    assert restored.incoming == ["parse|2"]
    assert restored.outgoing == ["store|3"]
    assert restored.params == {"url": "https://example.com"}
    assert restored.queue == "critical"
    assert restored.output_payload == {"rows": 3}
    assert restored.finished_at == job.finished_at
    assert restored.payloads == []


def test_job_name_helpers():
    assert job_name("fetch", "abc") == "fetch|abc"
    assert split_job_name("fetch|abc") == ("fetch", "abc")
    assert split_job_name("fetch") == ("fetch", None)
    assert _job().name == "fetch|1"


def test_payload_lookup_by_class():
    job = _job(incoming=["parse|2"])
    job.payloads = [
        Payload(id="parse|2", klass="parse", output={"n": 1}),
        Payload(id="parse|9", klass="parse", output={"n": 9}),
    ]
    assert job.payload("parse") == {"n": 1}

    with pytest.raises(PayloadNotFound, match="parse"):
        job.payload("missing")
