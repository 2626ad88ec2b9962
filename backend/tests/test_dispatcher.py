from fastapi import BackgroundTasks, FastAPI
from fastapi.testclient import TestClient

from ats.services.dispatcher import TaskDispatcher


def _app(dispatcher, seen):
    app = FastAPI()

    @app.post("/work")
    def work(background_tasks: BackgroundTasks):
        dispatcher.submit(seen.append, "side effect", tasks=background_tasks)
        # Deferred: nothing has run by the time the handler returns.
        return {"seen": list(seen)}

    @app.post("/fail")
    def fail(background_tasks: BackgroundTasks):
        def boom():
            raise ValueError("nope")

        dispatcher.submit(boom, tasks=background_tasks)
        return {"ok": True}

    return app


class TestTaskDispatcher:
    def test_runs_inline_without_background_tasks(self):
        d = TaskDispatcher()
        seen = []
        assert d.submit(seen.append, 1) is True
        assert seen == [1]
        assert d.dropped == 0

    def test_failing_task_is_logged_and_dropped(self, caplog):
        d = TaskDispatcher()

        def boom():
            raise ValueError("nope")

        assert d.submit(boom) is True
        assert d.dropped == 1
        assert "boom" in caplog.text

    def test_defers_to_background_tasks(self):
        d = TaskDispatcher()
        tasks = BackgroundTasks()
        seen = []
        d.submit(seen.append, "later", tasks=tasks)
        assert seen == []
        assert len(tasks.tasks) == 1

    def test_runs_after_the_response(self):
        d = TaskDispatcher()
        seen = []
        client = TestClient(_app(d, seen))
        r = client.post("/work")
        assert r.status_code == 200
        assert r.json() == {"seen": []}
        assert seen == ["side effect"]

    def test_background_failure_does_not_reach_the_client(self):
        d = TaskDispatcher()
        client = TestClient(_app(d, []))
        r = client.post("/fail")
        assert r.status_code == 200
        assert d.dropped == 1
