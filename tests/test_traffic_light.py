"""
Traffic light tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from taskgate.core.traffic_light import (
    TrafficLight, age_in_days, light_for, sort_by_urgency, traffic_light,
)
from taskgate.models.task import Task, TaskStatus
from taskgate.services.task_service import task_service
from tests.conftest import auth_headers, identity_of

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestThresholds:

    @pytest.mark.parametrize("age, expected", [
        (0, TrafficLight.green),
        (30, TrafficLight.green),
        (31, TrafficLight.yellow),
        (60, TrafficLight.yellow),
        (61, TrafficLight.red),
        (365, TrafficLight.red),
    ])
    def test_boundaries(self, age, expected):
        assert traffic_light(age) is expected

    def test_negative_age_is_green(self):
        assert traffic_light(-3) is TrafficLight.green


class TestAge:

    def test_floors_partial_days(self):
        created = NOW - timedelta(days=30, hours=23)
        assert age_in_days(created, NOW) == 30
        assert light_for(created, NOW) is TrafficLight.green

    def test_naive_datetimes_are_utc(self):
        created = (NOW - timedelta(days=31)).replace(tzinfo=None)
        assert age_in_days(created, NOW) == 31
        assert light_for(created, NOW) is TrafficLight.yellow

    def test_future_created_at_is_green(self):
        assert light_for(NOW + timedelta(days=2), NOW) is TrafficLight.green


class TestUrgencyOrdering:

    def test_oldest_first(self):
        tasks = [
            Task(id=1, created_at=NOW - timedelta(days=5)),
            Task(id=2, created_at=NOW - timedelta(days=90)),
            Task(id=3, created_at=NOW - timedelta(days=40)),
        ]
        assert [t.id for t in sort_by_urgency(tasks, NOW)] == [2, 3, 1]


class TestReadPathsRecompute:

    def test_stale_cached_value_is_ignored(self, db, customer, make_task):
        task = make_task(age_days=45)
        assert task.traffic_light == TrafficLight.green  # cached at insert

        out = task_service.to_out(task_service.get(db, identity_of(customer), task.id))

        assert out["traffic_light"] == "yellow"
        assert out["age_days"] == 45

    def test_api_reports_recomputed_light(self, client, customer, make_task):
        task = make_task(age_days=75)

        resp = client.get(f"/api/tasks/{task.id}", headers=auth_headers(customer))

        assert resp.status_code == 200
        assert resp.json()["traffic_light"] == "red"

    def test_list_is_sorted_by_urgency(self, db, customer, make_task):
        make_task(age_days=2, title="new")
        make_task(age_days=70, title="old")
        make_task(age_days=40, title="middle")

        titles = [t.title for t in task_service.list_tasks(db, identity_of(customer))]

        assert titles == ["old", "middle", "new"]


class TestCacheRefresh:

    def test_refresh_updates_only_stale_unfinished_tasks(self, db, employee, make_task):
        stale = make_task(age_days=61)
        fresh = make_task(age_days=1)
        done = make_task(age_days=90, status=TaskStatus.completed, created_by=employee.id)

        changed = task_service.refresh_cached_traffic_lights(db)

        assert changed == 1
        db.expire_all()
        assert db.get(Task, stale.id).traffic_light == TrafficLight.red
        assert db.get(Task, fresh.id).traffic_light == TrafficLight.green
        assert db.get(Task, done.id).traffic_light == TrafficLight.green
