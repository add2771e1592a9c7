from unittest.mock import MagicMock

import pytest
from conftest import make_contest, make_game_score

from squares.services.scheduler_service import (
    SchedulerService,
    contest_job_id,
    game_job_id,
)
from squares.utils.errors import UpstreamError, UpstreamTimeout


@pytest.fixture()
def scheduler():
    return MagicMock()


@pytest.fixture()
def scheduler_service(flask_app, service, scheduler):
    instance = SchedulerService()
    instance.init_app(flask_app, scheduler=scheduler, service=service, start=False)
    return instance


def test_watch_game_adds_interval_job(scheduler_service, scheduler):
    job_id = scheduler_service.watch_game(401)

    assert job_id == game_job_id(401)
    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == "poll_game_401"
    assert kwargs["args"] == [401]
    assert kwargs["max_instances"] == 1
    assert kwargs["coalesce"] is True
    assert scheduler_service.intervals[job_id] == 12


def test_final_game_removes_job(scheduler_service, scheduler, feed):
    scheduler_service.watch_game(401)
    feed.scores[401] = make_game_score(q_complete=4)

    scheduler_service._poll_game(401)

    scheduler.remove_job.assert_called_once_with("poll_game_401")
    assert "poll_game_401" not in scheduler_service.intervals


def test_live_game_keeps_interval(scheduler_service, scheduler, feed):
    scheduler_service.watch_game(401)
    feed.scores[401] = make_game_score(q_complete=2)

    scheduler_service._poll_game(401)

    scheduler.reschedule_job.assert_not_called()
    scheduler.remove_job.assert_not_called()


def test_timed_out_game_switches_to_fast_polling(scheduler_service, scheduler, feed):
    scheduler_service.watch_game(401)
    feed.error = UpstreamTimeout("slow")

    scheduler_service._poll_game(401)

    scheduler.reschedule_job.assert_called_once()
    assert scheduler_service.intervals["poll_game_401"] == 5


def test_failed_poll_is_recorded(scheduler_service, scheduler, feed):
    scheduler_service.watch_game(401)
    feed.error = UpstreamError("down")

    scheduler_service._poll_game(401)

    assert scheduler_service.poll_stats["failed_polls"] == 1
    assert scheduler_service.poll_stats["last_error"] == "down"
    scheduler.remove_job.assert_not_called()


def test_settled_contest_removes_job(scheduler_service, scheduler, reader):
    reader.add(make_contest(total_payouts_made=4))
    job_id = scheduler_service.watch_contest(7)

    assert job_id == contest_job_id(8453, 7)
    scheduler_service._poll_contest(7, 8453)

    scheduler.remove_job.assert_called_once_with(job_id)


def test_active_contest_keeps_polling(scheduler_service, scheduler, reader):
    reader.add(make_contest(boxes_claimed=30, boxes_can_be_claimed=True))
    scheduler_service.watch_contest(7)

    scheduler_service._poll_contest(7, 8453)

    scheduler.remove_job.assert_not_called()
    assert scheduler_service.poll_stats["total_polls"] == 1


def test_get_status_lists_jobs(scheduler_service, scheduler):
    job = MagicMock(id="poll_game_1", next_run_time=None)
    job.name = "Poll game 1"
    scheduler.get_jobs.return_value = [job]
    scheduler_service.intervals["poll_game_1"] = 12

    status = scheduler_service.get_status()

    assert status["jobs"] == [
        {"id": "poll_game_1", "name": "Poll game 1", "next_run": None, "interval": 12}
    ]


def test_reading_live_game_schedules_polling(client, scheduler_service, scheduler, feed):
    feed.scores[401] = make_game_score(q_complete=2)

    client.get("/api/games/401/scores")
    client.get("/api/games/401/scores")

    assert scheduler.add_job.call_count == 1
    assert scheduler.add_job.call_args.kwargs["id"] == "poll_game_401"
    assert scheduler_service.intervals["poll_game_401"] == 12


def test_reading_final_game_schedules_nothing(client, scheduler_service, scheduler, feed):
    feed.scores[401] = make_game_score(q_complete=4)

    client.get("/api/games/401/scores")

    scheduler.add_job.assert_not_called()


def test_reading_active_contest_schedules_polling(client, scheduler_service, scheduler, reader):
    reader.add(make_contest(boxes_claimed=30, boxes_can_be_claimed=True))

    client.get("/api/contest/7")

    assert scheduler.add_job.call_args.kwargs["id"] == contest_job_id(8453, 7)


def test_reading_settled_contest_schedules_nothing(client, scheduler_service, scheduler, reader):
    reader.add(make_contest(total_payouts_made=4))

    client.get("/api/contest/7")

    scheduler.add_job.assert_not_called()
