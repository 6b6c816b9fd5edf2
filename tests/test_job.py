import pytest

from schedpool.core.job import Job, JobOutcome, JobResult, JobStatus, load_jobs


def test_load_jobs_skips_blank_lines_and_keeps_order(tmp_path):
    path = tmp_path / "commands.txt"
    path.write_text("echo a\n\n   \necho b\r\n\techo c\n\n", encoding="utf-8")

    jobs = load_jobs(path)

    assert [j.command for j in jobs] == ["echo a", "echo b", "\techo c"]
    assert all(j.status == JobStatus.PENDING for j in jobs)
    assert all(j.duration_ms == -1 for j in jobs)


def test_load_jobs_empty_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("\n\n", encoding="utf-8")
    assert load_jobs(path) == []


@pytest.mark.parametrize(
    "return_code, timed_out, succeeded, outcome",
    [
        (0, False, True, JobOutcome.SUCCESS),
        (2, False, False, JobOutcome.ERROR),
        (124, True, False, JobOutcome.TIMEOUT),
        (None, False, False, JobOutcome.ERROR),
    ],
)
def test_result_classification(return_code, timed_out, succeeded, outcome):
    job = Job("true")
    job.mark_started()

    result = JobResult.from_return_code(job, return_code, 12.5)
    job.finish(result)

    assert job.timed_out is timed_out
    assert job.succeeded is succeeded
    assert job.outcome == outcome
    assert job.duration_ms == 12.5
    assert job.status == JobStatus.FINISHED


def test_unfinished_jobs_are_aborted():
    pending = Job("sleep 1")
    started = Job("sleep 1")
    started.mark_started()

    assert pending.outcome == JobOutcome.ABORTED
    assert started.outcome == JobOutcome.ABORTED


def test_status_never_moves_backwards():
    job = Job("true")
    job.mark_started()
    job.finish(JobResult.from_return_code(job, 0, 1.0))

    with pytest.raises(ValueError):
        job.mark_started()
    with pytest.raises(ValueError):
        job.finish(JobResult.from_return_code(job, 1, 1.0))
    assert job.succeeded
