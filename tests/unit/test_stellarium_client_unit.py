from __future__ import annotations

import json

import pytest
import requests


def _view(vector):
    return {"j2000": json.dumps(vector), "altAz": "[0, 0, 1]"}


def test_get_current_pointing_parses_string_vector(config, fake_session_factory, fake_response):
    from stella_sync.coordinates import sky_to_unit_vector
    from stella_sync.drivers.stellarium.client import StellariumClient

    session = fake_session_factory({"main/view": fake_response(_view(list(sky_to_unit_vector(180.0, 45.0))))})
    client = StellariumClient(config=config, session=session)
    pos = client.get_current_pointing()
    assert pos.ra_deg == pytest.approx(180.0)
    assert pos.dec_deg == pytest.approx(45.0)
    assert session.calls[0][1] == "http://127.0.0.1:8090/api/main/view"
    assert session.calls[0][2]["timeout"] == 5.0


def test_unreachable_stellarium_is_fatal_error(config, fake_session_factory):
    from stella_sync.drivers.stellarium.client import StellariumClient
    from stella_sync.exceptions import PlanetariumUnavailableError

    session = fake_session_factory({"main/view": requests.ConnectionError("refused")})
    with pytest.raises(PlanetariumUnavailableError, match="remote control plugin"):
        StellariumClient(config=config, session=session).get_current_pointing()


def test_view_without_j2000(config, fake_session_factory, fake_response):
    from stella_sync.drivers.stellarium.client import StellariumClient
    from stella_sync.exceptions import PlanetariumUnavailableError

    session = fake_session_factory({"main/view": fake_response({"altAz": "[0, 0, 1]"})})
    with pytest.raises(PlanetariumUnavailableError):
        StellariumClient(config=config, session=session).get_current_pointing()


@pytest.mark.parametrize("index,ratio", [(-1, 1.0), (0, 2.5), (1, 0.73), (5, 1.6), (42, 1.0)])
def test_optical_train_ratio(config, fake_session_factory, fake_response, index, ratio):
    from stella_sync.drivers.stellarium.client import StellariumClient

    props = {"Oculars.selectedLensIndex": {"value": index, "variantType": "int"}}
    session = fake_session_factory({"stelproperty/list": fake_response(props)})
    client = StellariumClient(config=config, session=session)
    assert client.get_optical_train_ratio() == pytest.approx(ratio)
    assert client.estimate_fov() == pytest.approx(1.0 / ratio)


def test_set_pointing_posts_focus_and_rotation(config, fake_session_factory, fake_response):
    from stella_sync.coordinates import SkyPosition
    from stella_sync.drivers.stellarium.client import StellariumClient

    session = fake_session_factory({
        "main/focus": fake_response({}),
        "stelproperty/set": fake_response({}),
    })
    client = StellariumClient(config=config, session=session)
    client.set_pointing(SkyPosition(0.0, 0.0), 170.0)

    (m1, url1, kw1), (m2, url2, kw2) = session.calls
    assert (m1, url1) == ("POST", "http://127.0.0.1:8090/api/main/focus")
    x, y, z = json.loads(kw1["data"]["position"])
    assert (x, y, z) == pytest.approx((1.0, 0.0, 0.0))
    assert (m2, url2) == ("POST", "http://127.0.0.1:8090/api/stelproperty/set")
    assert kw2["data"] == {"id": "Oculars.selectedCCDRotationAngle", "value": "170.0"}


def test_set_pointing_sends_rotation_even_if_focus_fails(config, fake_session_factory, fake_response):
    from stella_sync.coordinates import SkyPosition
    from stella_sync.drivers.stellarium.client import StellariumClient

    session = fake_session_factory({
        "main/focus": fake_response({}, 500),
        "stelproperty/set": fake_response({}),
    })
    client = StellariumClient(config=config, session=session)
    with pytest.raises(requests.HTTPError):
        client.set_pointing(SkyPosition(10.0, 20.0), 5.0)
    assert [c[1].rsplit("/api/", 1)[1] for c in session.calls] == ["main/focus", "stelproperty/set"]
