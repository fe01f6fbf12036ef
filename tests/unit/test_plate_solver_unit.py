from __future__ import annotations

from pathlib import Path

import pytest

WCS_TEXT = (
    "CRVAL1  =    1.8050000000E+002 / RA of reference pixel (deg)\n"
    "CRVAL2  =    4.5200000000E+001 / DEC of reference pixel (deg)\n"
    "CROTA1  =    1.0000000000E+001 / Image twist of X axis        (deg)\n"
)


@pytest.fixture
def astap_config(config, tmp_path: Path):
    exe = tmp_path / "astap"
    exe.write_text("#!/bin/sh\n", encoding="utf-8")
    config.set("plate_solve.astap.executable_path", str(exe))
    return config


def _image(tmp_path: Path, name: str = "frame001.fit") -> Path:
    img = tmp_path / name
    img.write_bytes(b"SIMPLE")
    return img


def test_astap_command_line(astap_config, tmp_path: Path):
    from stella_sync.platesolve.solver import AstapSolver, PlateSolveRequest

    solver = AstapSolver(config=astap_config)
    request = PlateSolveRequest(image_path="x.fit", ra_deg=180.0, dec_deg=-30.0, search_radius_deg=25.0)
    cmd = solver.build_command(Path("/scratch/x.fit"), request)
    assert cmd[1:] == ["-ra", "12.0", "-spd", "60.0", "-r", "25.0", "-f", "/scratch/x.fit"]


def test_solve_field_command_line(config):
    from stella_sync.platesolve.solver import PlateSolveRequest, SolveFieldSolver

    solver = SolveFieldSolver(config=config)
    request = PlateSolveRequest(image_path="x.fit", ra_deg=10.5, dec_deg=20.0, search_radius_deg=5.0)
    cmd = solver.build_command(Path("tmp.fit"), request)
    assert cmd == ["solve-field", "--cpulimit", "20", "--ra", "10.5", "--dec", "20.0",
                   "--radius", "5.0", "--no-plots", "--overwrite", "tmp.fit"]


def test_scratch_is_cleared_before_solver_runs(astap_config, tmp_path: Path, monkeypatch):
    from stella_sync.platesolve import solver as solver_mod
    from stella_sync.platesolve.solver import AstapSolver, PlateSolveRequest

    solver = AstapSolver(config=astap_config)
    solver.scratch_dir.mkdir(parents=True, exist_ok=True)
    (solver.scratch_dir / "stale.fit").write_bytes(b"old")
    (solver.scratch_dir / "stale.wcs").write_text("CRVAL1 = 1\n", encoding="utf-8")

    seen = {}

    def fake_run(cmd, timeout=None, cwd=None, logger=None):
        seen["files"] = sorted(p.name for p in solver.scratch_dir.iterdir())
        image = Path(cmd[-1])
        image.with_suffix(".wcs").write_text(WCS_TEXT, encoding="utf-8")
        return ""

    monkeypatch.setattr(solver_mod, "run_command", fake_run)
    img = _image(tmp_path)
    status = solver.solve(PlateSolveRequest(image_path=str(img), ra_deg=180.0, dec_deg=45.0))

    assert seen["files"] == ["frame001.fit"]
    assert status.is_success
    assert status.ra_deg == pytest.approx(180.5)
    assert status.dec_deg == pytest.approx(45.2)
    assert status.angle_deg == pytest.approx(170.0)
    assert status.solver_used == "astap"
    assert status.details["raw_angle"] == pytest.approx(10.0)


def test_missing_wcs_is_parse_error(astap_config, tmp_path: Path, monkeypatch):
    from stella_sync.platesolve import solver as solver_mod
    from stella_sync.platesolve.solver import AstapSolver, PlateSolveRequest

    monkeypatch.setattr(solver_mod, "run_command", lambda *a, **k: "")
    solver = AstapSolver(config=astap_config)
    status = solver.solve(PlateSolveRequest(image_path=str(_image(tmp_path)), ra_deg=1.0, dec_deg=2.0))
    assert status.is_error
    assert status.reason == "parse_error"
    assert "ra/dec" in status.message


def test_tool_failure_is_error_status(astap_config, tmp_path: Path, monkeypatch):
    from stella_sync.exceptions import ExternalToolError
    from stella_sync.platesolve import solver as solver_mod
    from stella_sync.platesolve.solver import AstapSolver, PlateSolveRequest

    def boom(*args, **kwargs):
        raise ExternalToolError("astap exited with code 1", details={"returncode": 1})

    monkeypatch.setattr(solver_mod, "run_command", boom)
    solver = AstapSolver(config=astap_config)
    status = solver.solve(PlateSolveRequest(image_path=str(_image(tmp_path)), ra_deg=1.0, dec_deg=2.0))
    assert status.is_error
    assert status.reason == "tool_failed"
    assert status.details["returncode"] == 1


def test_out_of_range_declination_rejected_before_tool(astap_config, tmp_path: Path, monkeypatch):
    from stella_sync.platesolve import solver as solver_mod
    from stella_sync.platesolve.solver import AstapSolver, PlateSolveRequest

    calls = []
    monkeypatch.setattr(solver_mod, "run_command", lambda *a, **k: calls.append(a))
    solver = AstapSolver(config=astap_config)
    status = solver.solve(PlateSolveRequest(image_path=str(_image(tmp_path)), ra_deg=1.0, dec_deg=95.0))
    assert status.reason == "invalid_input"
    assert calls == []


def test_missing_image_and_unavailable_solver(config, astap_config, tmp_path: Path):
    from stella_sync.platesolve.solver import AstapSolver, PlateSolveRequest

    request = PlateSolveRequest(image_path=str(tmp_path / "nope.fit"), ra_deg=1.0, dec_deg=2.0)
    assert AstapSolver(config=astap_config).solve(request).reason == "image_not_found"

    astap_config.set("plate_solve.astap.executable_path", str(tmp_path / "not-installed"))
    status = AstapSolver(config=astap_config).solve(request)
    assert status.reason == "solver_unavailable"
    assert "not available" in status.message


def test_solve_field_parses_stdout(config, tmp_path: Path, monkeypatch):
    from stella_sync.platesolve import solver as solver_mod
    from stella_sync.platesolve.solver import PlateSolveRequest, SolveFieldSolver

    exe = tmp_path / "solve-field"
    exe.write_text("", encoding="utf-8")
    config.set("plate_solve.solve_field.executable_path", str(exe))

    def fake_run(cmd, timeout=None, cwd=None, logger=None):
        assert cwd == str(SolveFieldSolver(config=config).scratch_dir)
        return "Field rotation angle: up is 10 degrees E of N\n"

    monkeypatch.setattr(solver_mod, "run_command", fake_run)
    status = SolveFieldSolver(config=config).solve(
        PlateSolveRequest(image_path=str(_image(tmp_path)), ra_deg=180.0, dec_deg=45.0)
    )
    assert status.is_error
    assert status.reason == "parse_error"


def test_factory_creates_known_types(config):
    from stella_sync.platesolve.remote import RemotePlateSolver
    from stella_sync.platesolve.solver import AstapSolver, PlateSolverFactory, SolveFieldSolver

    assert isinstance(PlateSolverFactory.create_solver("astap", config=config), AstapSolver)
    assert isinstance(PlateSolverFactory.create_solver("solve-field", config=config), SolveFieldSolver)
    assert PlateSolverFactory.create_solver("remote", config=config) is None
    config.set("peer.server_url", "http://peer:8000")
    remote = PlateSolverFactory.create_solver("remote", config=config)
    assert isinstance(remote, RemotePlateSolver)
    assert remote.server_url == "http://peer:8000"


def test_factory_unknown_returns_none(config, caplog):
    from stella_sync.platesolve.solver import PlateSolverFactory

    with caplog.at_level("ERROR"):
        assert PlateSolverFactory.create_solver("unknown_solver_type", config=config) is None
    assert any("Unknown solver type" in rec.getMessage() for rec in caplog.records)


def test_dispatcher_routes_by_server_url(config):
    from stella_sync.platesolve.solver import PlateSolveDispatcher, PlateSolveRequest
    from stella_sync.status import solve_error

    class _Local:
        def __init__(self):
            self.requests = []

        def solve(self, request):
            self.requests.append(request)
            return solve_error("local", reason="parse_error")

    class _Remote(_Local):
        pass

    local, remote = _Local(), _Remote()
    dispatcher = PlateSolveDispatcher(config=config, local_solver=local)
    dispatcher._remote_solvers["http://peer:8000"] = remote

    dispatcher.solve(PlateSolveRequest(image_path="a.fit", ra_deg=1.0, dec_deg=2.0))
    dispatcher.solve(PlateSolveRequest(image_path="b.fit", ra_deg=1.0, dec_deg=2.0,
                                       server_url="http://peer:8000"))
    assert [r.image_path for r in local.requests] == ["a.fit"]
    assert [r.image_path for r in remote.requests] == ["b.fit"]


def test_result_peer_payload_round_trip():
    from stella_sync.platesolve.solver import PlateSolveResult

    result = PlateSolveResult(180.5, 45.2, 370.0, solving_time=1.5, method="astap")
    assert result.angle_deg == pytest.approx(10.0)
    payload = result.to_peer_payload()
    assert payload == {"success": True, "angle": result.angle_deg, "raDeg": 180.5, "decDeg": 45.2}
    again = PlateSolveResult.from_peer_payload(payload, method="remote x")
    assert again.position.ra_deg == pytest.approx(180.5)
    assert "method=remote x" in str(again)
