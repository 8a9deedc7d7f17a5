"""
Tests for the persistence gateway queries.
"""

from datetime import datetime, timedelta, timezone

from conftest import make_job, make_metric, make_occupancy
from monitor_api.models.job import Code, Parameter
from monitor_api.repositories import (
    CodeRepository,
    JobAnalysisRepository,
    JobFilters,
    JobRepository,
    JobSort,
    MetricsRepository,
    ParameterRepository,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestJobRepository:
    async def test_filters_combine(self, db, seed):
        await seed(
            make_job("a", pid=1, status="running", framework="pytorch"),
            make_job("b", pid=2, status="running", framework="mindspore"),
            make_job("c", pid=3, status="completed", framework="pytorch"),
            make_job("d", pid=4, status="running", framework="pytorch", node_id="other"),
        )
        repo = JobRepository(db)
        filters = JobFilters(node_id="n", statuses=["running"], frameworks=["pytorch"])

        jobs = await repo.find_filtered(filters)

        assert [job.job_id for job in jobs] == ["a"]
        assert await repo.count(filters) == 1

    async def test_sort_and_page(self, db, seed):
        await seed(*(make_job(f"j{i}", pid=i, start_time=i * 10) for i in range(1, 6)))
        repo = JobRepository(db)

        ascending = await repo.find(JobFilters(), JobSort("startTime", "asc"), limit=2, offset=1)
        default = await repo.find(JobFilters(), JobSort(), limit=10, offset=0)

        assert [job.job_id for job in ascending] == ["j2", "j3"]
        assert [job.job_id for job in default] == ["j5", "j4", "j3", "j2", "j1"]

    async def test_unknown_sort_falls_back_to_start_time_desc(self, db, seed):
        await seed(make_job("old", pid=1, start_time=1), make_job("new", pid=2, start_time=2))

        jobs = await JobRepository(db).find_filtered(JobFilters(), JobSort("bogus", "sideways"))

        assert [job.job_id for job in jobs] == ["new", "old"]

    async def test_update_fields(self, db, seed):
        await seed(make_job("a", pid=1))
        repo = JobRepository(db)

        await repo.update_fields("a", {"job_type": "training"})
        await db.commit()
        db.expire_all()

        assert (await repo.find_by_id("a")).job_type == "training"


class TestArtifactRepositories:
    async def test_newest_first(self, db, seed):
        await seed(
            Parameter(job_id="a", parameter_data="old", timestamp=T0),
            Parameter(job_id="a", parameter_data="new", timestamp=T0 + timedelta(minutes=1)),
            Parameter(job_id="b", parameter_data="other", timestamp=T0),
            Code(job_id="a", script_content="v1", timestamp=T0),
            Code(job_id="a", script_content="v2", timestamp=T0 + timedelta(minutes=1)),
        )

        parameters = await ParameterRepository(db).find_by_job_id("a")
        code = await CodeRepository(db).find_by_job_id("a")

        assert [row.parameter_data for row in parameters] == ["new", "old"]
        assert [row.script_content for row in code] == ["v2", "v1"]


class TestMetricsRepository:
    async def test_cards_by_pids_only_running_and_node_scoped(self, db, seed):
        await seed(
            make_occupancy(10, 0),
            make_occupancy(10, 1),
            make_occupancy(10, 1),
            make_occupancy(11, 2, status="stopped"),
            make_occupancy(10, 5, node_id="other"),
        )

        cards = await MetricsRepository(db).find_npu_cards_by_pids("n", [10, 11])

        assert cards == {10: [0, 1]}

    async def test_null_node_matches_null_rows(self, db, seed):
        await seed(make_occupancy(10, 3, node_id=None), make_occupancy(10, 4))

        cards = await MetricsRepository(db).find_npu_cards_by_pids(None, [10])

        assert cards == {10: [3]}

    async def test_empty_pids_skip_the_query(self, db):
        assert await MetricsRepository(db).find_npu_cards_by_pids("n", []) == {}

    async def test_latest_metric_per_chip(self, db, seed):
        await seed(
            make_metric(0, T0, bus_id="0000:01", aicore_usage_percent=10.0),
            make_metric(0, T0 + timedelta(seconds=30), bus_id="0000:01", aicore_usage_percent=20.0),
            make_metric(0, T0, bus_id="0000:02", aicore_usage_percent=30.0),
            make_metric(1, T0 + timedelta(seconds=60), aicore_usage_percent=40.0),
            make_metric(0, T0 + timedelta(hours=1), node_id="other", bus_id="0000:01", aicore_usage_percent=99.0),
        )

        metrics = await MetricsRepository(db).find_latest_npu_metrics("n", [0, 1])

        assert [(m.npu_id, m.bus_id, m.aicore_usage_percent) for m in metrics] == [
            (0, "0000:01", 20.0),
            (0, "0000:02", 30.0),
            (1, None, 40.0),
        ]


class TestJobAnalysisRepository:
    async def test_upsert_keeps_one_row_per_job(self, db):
        repo = JobAnalysisRepository(db)

        await repo.upsert("a", '{"v": 1}')
        await repo.upsert("a", '{"v": 2}')
        await db.commit()

        rows = await repo.find_by_job_ids(["a", "missing"])
        assert len(rows) == 1
        assert rows[0].result == '{"v": 2}'
        assert rows[0].status == "completed"
