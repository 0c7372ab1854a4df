"""Tests for the job orchestrator: ordering, persistence, retry, cancel and resume."""

import threading
import time

import pytest

from amicus_drafter.processors.eight_wave_processor import InvalidWaveInputError
from amicus_drafter.processors.model_client import (
    ModelAuthError,
    ModelConnectionError,
    ModelRateLimitError,
)
from amicus_drafter.processors.wave_pipeline import (
    BriefPipeline,
    JobAlreadyRunningError,
    JobStateError,
    gather_context,
)
from amicus_drafter.storage.case_store import NotFoundError
from conftest import OUTLINE, FakeModelClient


def make_pipeline(store, client, sleeps=None, **kwargs):
    recorded = sleeps if sleeps is not None else []
    return BriefPipeline(store, client=client, backoff_seconds=5, sleep=recorded.append, **kwargs)


def only_job(store, case_id):
    jobs = store.list_jobs(case_id)
    assert len(jobs) == 1
    return jobs[0]


def test_gather_context_uses_selected_documents(seeded_case):
    context = gather_context(seeded_case)

    assert context.approved_outline == OUTLINE
    assert [d["title"] for d in context.selected_documents] == ["Carpenter v. United States"]
    assert context.case_information["case_name"] == "Smith v. Jones"
    assert len(context.strategy_chat_history) == 2
    assert "Gorsuch" in context.justice_analysis


def test_runs_eight_waves_in_order(store, seeded_case):
    client = FakeModelClient()
    pipeline = make_pipeline(store, client)

    job = pipeline.start_job(seeded_case["id"], background=False)

    assert job["job_status"] == "completed"
    assert job["final_brief_id"] == job["id"]
    assert job["final_word_count"] > 0
    assert len(client.calls) == 8

    results = store.list_wave_results(job["id"])
    assert [r["waveNumber"] for r in results] == list(range(1, 9))
    assert all(w["status"] == "completed" for w in store.get_job(job["id"])["waves"].values())

    # Each wave's prompt carries the previous wave's brief
    for n in range(2, 9):
        assert f"PASS-{n - 1}" in client.calls[n - 1]["prompt"]
    assert "PASS-8" in store.get_brief(job["id"])["content"]


def test_job_config_reaches_executor(store, seeded_case):
    client = FakeModelClient()
    pipeline = make_pipeline(store, client)

    job = pipeline.start_job(seeded_case["id"], {"targetWordCount": 750, "model": "opus"}, background=False)

    assert all(call["model"] == "opus" for call in client.calls)
    final = store.get_wave_result(job["id"], 8)
    assert final["sourceMap"]["completionReport"]["targetWordCount"] == 750


def test_skipped_waves_are_recorded(store):
    case = store.create_case({"case_name": "Bare"})
    store.save_research_result(case["id"], "approved_outline", OUTLINE)
    client = FakeModelClient()

    job = make_pipeline(store, client).start_job(case["id"], background=False)

    waves = store.get_job(job["id"])["waves"]
    assert [waves[str(n)]["status"] for n in (2, 3, 4)] == ["skipped"] * 3
    assert len(client.calls) == 5
    assert store.get_wave_result(job["id"], 2)["briefContent"] == store.get_wave_result(job["id"], 1)["briefContent"]


def test_logs_and_thoughts_are_persisted(store, seeded_case):
    job = make_pipeline(store, FakeModelClient()).start_job(seeded_case["id"], background=False)

    messages = [entry["message"] for entry in store.get_logs(job["id"], 1)]
    assert messages[0] == "Starting Backbone Draft"
    assert messages[-1] == "Completed Backbone Draft"

    thoughts = store.get_thoughts(job["id"])
    assert {t["wave"] for t in thoughts} == set(range(1, 9))
    assert all(not t["thought"].startswith("[THOUGHT]") for t in thoughts)


def test_start_job_requires_outline(store):
    case = store.create_case({})
    pipeline = make_pipeline(store, FakeModelClient())

    with pytest.raises(InvalidWaveInputError):
        pipeline.start_job(case["id"], background=False)
    assert store.list_jobs(case["id"]) == []


def test_start_job_unknown_case(store):
    with pytest.raises(NotFoundError):
        make_pipeline(store, FakeModelClient()).start_job("missing1", background=False)


@pytest.mark.parametrize("target", [0, -5, "many"])
def test_start_job_rejects_bad_target(store, seeded_case, target):
    with pytest.raises(InvalidWaveInputError):
        make_pipeline(store, FakeModelClient()).start_job(
            seeded_case["id"], {"targetWordCount": target}, background=False)


def test_failure_marks_job_failed_and_keeps_completed_waves(store, seeded_case):
    client = FakeModelClient(responses={3: ModelAuthError("invalid x-api-key")})
    sleeps = []
    pipeline = make_pipeline(store, client, sleeps)

    with pytest.raises(ModelAuthError):
        pipeline.start_job(seeded_case["id"], background=False)

    job = only_job(store, seeded_case["id"])
    assert job["job_status"] == "failed"
    assert job["failed_wave"] == 3
    assert job["error_message"] == "Wave 3 (Document Integration) failed: invalid x-api-key"
    assert job["waves"]["3"]["status"] == "failed"
    assert [r["waveNumber"] for r in store.list_wave_results(job["id"])] == [1, 2]
    assert sleeps == []
    assert not pipeline.is_running(job["id"])


def test_resume_continues_from_first_missing_wave(store, seeded_case):
    client = FakeModelClient(responses={3: ModelAuthError("invalid x-api-key")})
    pipeline = make_pipeline(store, client)
    with pytest.raises(ModelAuthError):
        pipeline.start_job(seeded_case["id"], background=False)
    job_id = only_job(store, seeded_case["id"])["id"]

    job = pipeline.resume_job(job_id, background=False)

    assert job["job_status"] == "completed"
    assert job["error_message"] is None
    # Waves 1-2 are not repeated: 3 calls before, 6 after
    assert len(client.calls) == 9
    assert "PASS-2" in client.calls[3]["prompt"]
    assert [r["waveNumber"] for r in store.list_wave_results(job_id)] == list(range(1, 9))


def test_retryable_error_is_retried_with_backoff(store, seeded_case):
    client = FakeModelClient(responses={1: ModelRateLimitError("slow down")})
    sleeps = []

    job = make_pipeline(store, client, sleeps).start_job(seeded_case["id"], background=False)

    assert job["job_status"] == "completed"
    assert sleeps == [5]
    assert len(client.calls) == 9
    retry_logs = [e for e in store.get_logs(job["id"], 1) if e["log_level"] == "warning"]
    assert len(retry_logs) == 1


def test_retries_are_bounded(store, seeded_case):
    failures = {n: ModelConnectionError("connection reset") for n in (1, 2, 3)}
    client = FakeModelClient(responses=failures)
    sleeps = []

    with pytest.raises(ModelConnectionError):
        make_pipeline(store, client, sleeps, max_retries=2).start_job(seeded_case["id"], background=False)

    assert sleeps == [5, 10]
    assert len(client.calls) == 3
    assert only_job(store, seeded_case["id"])["failed_wave"] == 1


def test_cancel_stops_before_next_wave(store, seeded_case):
    holder = {}

    def cancel_during_wave_two(call_number):
        if call_number == 2:
            holder["pipeline"].cancel_job(only_job(store, seeded_case["id"])["id"])

    client = FakeModelClient(on_call=cancel_during_wave_two)
    pipeline = holder["pipeline"] = make_pipeline(store, client)

    job = pipeline.start_job(seeded_case["id"], background=False)

    assert job["job_status"] == "cancelled"
    assert len(client.calls) == 2
    assert [r["waveNumber"] for r in store.list_wave_results(job["id"])] == [1, 2]

    resumed = pipeline.resume_job(job["id"], background=False)
    assert resumed["job_status"] == "completed"
    assert resumed["cancel_requested"] is False
    assert len(client.calls) == 8


def test_finished_jobs_cannot_be_cancelled_or_resumed(store, seeded_case):
    pipeline = make_pipeline(store, FakeModelClient())
    job = pipeline.start_job(seeded_case["id"], background=False)

    with pytest.raises(JobStateError):
        pipeline.cancel_job(job["id"])
    with pytest.raises(JobStateError):
        pipeline.resume_job(job["id"], background=False)


def test_background_job_has_a_single_runner(store, seeded_case):
    release = threading.Event()
    client = FakeModelClient(on_call=lambda n: release.wait(5) if n == 1 else None)
    pipeline = make_pipeline(store, client)

    job = pipeline.start_job(seeded_case["id"])
    try:
        assert pipeline.is_running(job["id"])
        with pytest.raises(JobAlreadyRunningError):
            pipeline.run_job(job["id"])
    finally:
        release.set()

    deadline = time.time() + 5
    while pipeline.is_running(job["id"]) and time.time() < deadline:
        time.sleep(0.01)
    assert store.get_job(job["id"])["job_status"] == "completed"


class ProcessKilled(BaseException):
    """Ends a run the way a process exit would: no failure bookkeeping."""


def test_interrupted_job_resumes_in_a_new_pipeline(store, seeded_case):
    def die_on_wave_four(call_number):
        if call_number == 4:
            raise ProcessKilled()

    with pytest.raises(ProcessKilled):
        make_pipeline(store, FakeModelClient(on_call=die_on_wave_four)).start_job(
            seeded_case["id"], background=False)

    job = only_job(store, seeded_case["id"])
    assert job["job_status"] == "in_progress"
    assert [r["waveNumber"] for r in store.list_wave_results(job["id"])] == [1, 2, 3]

    client = FakeModelClient()
    resumed = make_pipeline(store, client).resume_job(job["id"], background=False)

    assert resumed["job_status"] == "completed"
    assert len(client.calls) == 5
    assert "PASS-3" in client.calls[0]["prompt"]
    assert [r["waveNumber"] for r in store.list_wave_results(job["id"])] == list(range(1, 9))
    messages = [entry["message"] for entry in store.get_logs(job["id"])]
    assert "Job was interrupted while in_progress" in messages


def test_running_job_cannot_be_resumed(store, seeded_case):
    release = threading.Event()
    client = FakeModelClient(on_call=lambda n: release.wait(5) if n == 1 else None)
    pipeline = make_pipeline(store, client)

    job = pipeline.start_job(seeded_case["id"])
    try:
        with pytest.raises(JobAlreadyRunningError):
            pipeline.resume_job(job["id"], background=False)
    finally:
        release.set()

    deadline = time.time() + 5
    while pipeline.is_running(job["id"]) and time.time() < deadline:
        time.sleep(0.01)
    assert store.get_job(job["id"])["job_status"] == "completed"


def test_store_error_after_model_call_fails_the_wave(store, seeded_case, monkeypatch):
    save_brief = store.save_brief

    def disk_full_on_wave_two(job_id, content, wave_number, *args):
        if wave_number == 2:
            raise OSError("No space left on device")
        return save_brief(job_id, content, wave_number, *args)

    monkeypatch.setattr(store, "save_brief", disk_full_on_wave_two)
    pipeline = make_pipeline(store, FakeModelClient())

    with pytest.raises(OSError):
        pipeline.start_job(seeded_case["id"], background=False)

    job = only_job(store, seeded_case["id"])
    assert job["job_status"] == "failed"
    assert job["failed_wave"] == 2
    assert job["error_message"] == "Wave 2 (Historical Integration) failed: No space left on device"
    assert [r["waveNumber"] for r in store.list_wave_results(job["id"])] == [1]
    assert not pipeline.is_running(job["id"])

    monkeypatch.setattr(store, "save_brief", save_brief)
    assert pipeline.resume_job(job["id"], background=False)["job_status"] == "completed"


def test_reference_brief_list_uses_first_entry(store, seeded_case):
    store.save_research_result(seeded_case["id"], "brief_references", [
        {"content": "MODEL BRIEF STYLE", "structure": {"sections": 4}},
        {"content": "Older reference"},
    ])
    client = FakeModelClient()

    job = make_pipeline(store, client).start_job(seeded_case["id"], background=False)

    assert job["job_status"] == "completed"
    assert "MODEL BRIEF STYLE" in client.calls[5]["prompt"]


@pytest.mark.parametrize("result_type, results", [
    ("brief_references", ["not an object"]),
    ("justice_analysis", ["Gorsuch"]),
    ("historical_research", [{"title": "The Federalist No. 78"}]),
    ("strategy_chat", ["Lead with history."]),
])
def test_malformed_research_rejected_before_any_model_call(store, seeded_case, result_type, results):
    store.save_research_result(seeded_case["id"], result_type, results)
    client = FakeModelClient()

    with pytest.raises(InvalidWaveInputError):
        make_pipeline(store, client).start_job(seeded_case["id"], background=False)

    assert client.calls == []
    assert store.list_jobs(seeded_case["id"]) == []
