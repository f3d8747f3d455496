"""
Tests for the command-line scripts

Tests cover:
- validate_plan human and JSON output, exit codes
- sessions list/recover/clean/validate commands
"""

import io
import json

from coordinator.session.models import Instance, Session
from coordinator.session.store import SessionStore
from scripts.sessions import run
from scripts.validate_plan import run_validate


VALID_PLAN = {"summary": "Two steps", "tasks": [
    {"id": "a", "title": "First", "description": "do a", "files": ["x.py"]},
    {"id": "b", "title": "Second", "description": "do b", "files": ["x.py"]},
]}


class TestValidatePlanScript:

    def test_human_output_valid_with_warning(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps(VALID_PLAN))
        out = io.StringIO()

        code = run_validate(str(path), out=out)

        text = out.getvalue()
        assert code == 0
        assert "Status: VALID" in text
        assert "Warnings:" in text
        assert "File 'x.py' is modified by multiple parallel tasks" in text

    def test_json_output_invalid(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"tasks": [{"id": "a", "depends_on": ["a"]}]}))
        out = io.StringIO()

        code = run_validate(str(path), as_json=True, out=out)

        report = json.loads(out.getvalue())
        assert code == 1
        assert report["valid"] is False
        assert report["file_path"] == str(path)
        assert report["error_count"] == 1

    def test_missing_file(self, tmp_path):
        out = io.StringIO()

        code = run_validate(str(tmp_path / "nope.json"), as_json=True, out=out)

        report = json.loads(out.getvalue())
        assert code == 1
        assert report["parse_error"].startswith("file not found")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text("{oops")
        out = io.StringIO()

        code = run_validate(str(path), out=out)

        assert code == 1
        assert "failed to parse plan" in out.getvalue()


class TestSessionsScript:

    def test_list_and_clean(self, config, dead_pid):
        store = SessionStore(config)
        store.save(Session(id="s1", name="Demo", instances=[Instance(id="i1")]))
        store.save(Session(id="s2", name="Empty"))
        lock = store.lock_manager.lock_path("s1")
        lock.write_text(json.dumps({"session_id": "s1", "pid": dead_pid, "hostname": "h"}))

        out = io.StringIO()
        assert run(config, ["list"], out=out) == 0
        assert "s1  Demo" in out.getvalue()
        assert "1 instance(s)" in out.getvalue()

        out = io.StringIO()
        assert run(config, ["clean", "--empty"], out=out) == 0
        assert "Removed 1 stale lock(s)" in out.getvalue()
        assert "Deleted 1 empty session(s)" in out.getvalue()
        assert not store.exists("s2")

    def test_recover_missing_session_reports_error(self, config):
        out = io.StringIO()

        assert run(config, ["recover", "ghost"], out=out) == 1
        assert "not found" in out.getvalue()

    def test_validate(self, config):
        SessionStore(config).save(Session(id="s1"))
        out = io.StringIO()

        assert run(config, ["validate", "s1"], out=out) == 0
        assert "is valid" in out.getvalue()
