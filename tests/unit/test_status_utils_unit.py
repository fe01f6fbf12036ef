from __future__ import annotations


def test_status_factories():
    from stella_sync.status import error_status, success_status, warning_status

    ok = success_status("done", data=1)
    assert ok.is_success and not ok.is_error and ok.details == {}
    assert str(ok) == "SUCCESS: done"
    assert warning_status("busy").is_warning
    assert error_status("bad", details={"x": 1}).is_error


def test_plate_solve_status_extracts_result():
    from stella_sync.platesolve.solver import PlateSolveResult
    from stella_sync.status import solve_error, solve_success

    ok = solve_success("ok", PlateSolveResult(1.0, 2.0, 3.0, solving_time=0.5, method="astap"))
    assert (ok.ra_deg, ok.dec_deg, ok.angle_deg) == (1.0, 2.0, 3.0)
    assert ok.solver_used == "astap"
    assert ok.reason is None

    failed = solve_error("nope", reason="tool_failed", details={"returncode": 1})
    assert failed.is_error
    assert failed.reason == "tool_failed"
    assert failed.details["returncode"] == 1


def test_exception_details_in_str():
    from stella_sync.exceptions import ExternalToolError, PlateSolveParseError, StellaSyncError

    err = PlateSolveParseError("error: couldn't solve for angle", details={"line": 3})
    assert isinstance(err, ExternalToolError) and isinstance(err, StellaSyncError)
    assert "Details" in str(err)
    assert str(StellaSyncError("plain")) == "plain"
