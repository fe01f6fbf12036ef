from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from stella_sync.config_manager import ConfigManager


@pytest.fixture
def config(tmp_path: Path) -> ConfigManager:
    """ConfigManager isolated from config.yaml and STELLA_SYNC_* variables."""
    cfg = ConfigManager(str(tmp_path / "config.yaml"), environ={})
    cfg.set("paths.tmp_dir", str(tmp_path / "work"))
    cfg.set("notifications.enabled", False)
    return cfg


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            import requests

            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Records requests and answers them from a url -> response map."""

    def __init__(self, responses: Dict[str, Any] = None) -> None:
        self.responses = responses or {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def _answer(self, url: str):
        for suffix, response in self.responses.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse({}, 404)

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return self._answer(url)

    def post(self, url, **kwargs):
        self.calls.append(("POST", url, kwargs))
        return self._answer(url)


@pytest.fixture
def fake_session_factory():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse
