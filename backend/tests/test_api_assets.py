import uuid

from sqlalchemy import select

from conftest import auth_headers_for, make_game, make_user, zip_bytes
from gamehost.db.session import SessionLocal
from gamehost.models.game import Game
from gamehost.models.game_asset import GameAsset
from gamehost.models.user import UserRole

INDEX = b"<!doctype html><html><body>hello</body></html>"


def _upload(client, headers, game_id, *, asset_type="main_game", name="game.zip", data=None, version=None):
    form = {"asset_type": asset_type}
    if version is not None:
        form["version"] = version
    files = {"asset_file": (name, data if data is not None else zip_bytes({"index.html": INDEX}), "application/zip")}
    return client.post(f"/developer/games/{game_id}/assets", data=form, files=files, headers=headers)


def _free_game_id(preferred: int) -> int | None:
    with SessionLocal() as db:
        return preferred if db.get(Game, preferred) is None else None


def test_fresh_superseding_and_test_serve_scenarios(client):
    dev = make_user(UserRole.developer)
    headers = auth_headers_for(dev)
    gid = make_game(dev, title="Scenario", game_id=_free_game_id(42))

    r = _upload(client, headers, gid, version="1.0.3")
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["message"] == "Asset uploaded successfully"
    first = body["asset"]
    assert first["is_active"] is True
    assert first["asset_type"] == "main_game"
    assert first["version"] == "1.0.3"
    with SessionLocal() as db:
        assert db.get(Game, gid).version == "1.0.3"

    r = _upload(client, headers, gid, version="1.0.4", data=zip_bytes({"index.html": b"<html>v2</html>"}))
    assert r.status_code == 201, r.text
    second = r.json()["asset"]
    assert second["asset_id"] != first["asset_id"]
    with SessionLocal() as db:
        assert db.get(GameAsset, first["asset_id"]).is_active is False
        assert db.get(GameAsset, second["asset_id"]).is_active is True
        assert db.get(Game, gid).version == "1.0.4"

    r = client.post(f"/developer/games/{gid}/assets/{first['asset_id']}/prepare-test", headers=headers)
    assert r.status_code == 200, r.text
    test_url = r.json()["test_url"]
    assert test_url == f"http://testserver/game-test/{gid}/{first['asset_id']}/index.html"

    r = client.get(test_url.replace("http://testserver", ""), headers=headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert r.content == INDEX
    assert r.headers["X-Frame-Options"] == "SAMEORIGIN"


def test_upload_requires_auth_and_ownership(client, game_id):
    r = _upload(client, {}, game_id)
    assert r.status_code == 401
    assert r.json()["error_code"] == "unauthorized"

    player = make_user(UserRole.player)
    r = _upload(client, auth_headers_for(player), game_id)
    assert r.status_code == 403

    other_dev = make_user(UserRole.developer)
    r = _upload(client, auth_headers_for(other_dev), game_id)
    assert r.status_code == 403
    body = r.json()
    assert body == {
        "ok": False,
        "error_code": "forbidden",
        "error_message": "you do not own this game",
        "request_id": r.headers["X-Request-ID"],
    }


def test_upload_validation_payload(client, developer_headers, game_id):
    r = _upload(client, developer_headers, game_id, asset_type="texture", name="evil.exe", data=b"MZ")
    assert r.status_code == 422
    body = r.json()
    assert body["ok"] is False
    assert body["error_code"] == "validation_failed"
    assert body["error_message"] == "File type 'exe' is not allowed"

    r = client.post(f"/developer/games/{game_id}/assets", data={"asset_type": "texture"}, headers=developer_headers)
    assert r.status_code == 422
    assert r.json()["error_message"] == "asset_file is required"


def test_unknown_game_is_404(client, developer_headers):
    r = _upload(client, developer_headers, 99999999)
    assert r.status_code == 404
    assert r.json()["error_code"] == "not_found"


def test_list_assets_filters(client, developer_headers, game_id):
    assert _upload(client, developer_headers, game_id, version="1").status_code == 201
    assert _upload(client, developer_headers, game_id, version="2").status_code == 201
    assert _upload(client, developer_headers, game_id, asset_type="sound", name="a.ogg", data=b"OggS").status_code == 201

    r = client.get(f"/developer/games/{game_id}/assets", headers=developer_headers)
    assert r.status_code == 200
    assert len(r.json()) == 3

    r = client.get(f"/developer/games/{game_id}/assets", params={"asset_type": "main_game", "active_only": "true"}, headers=developer_headers)
    rows = r.json()
    assert len(rows) == 1
    assert rows[0]["version"] == "2"


def test_get_test_alias_and_missing_blob(client, developer_headers, game_id):
    asset = _upload(client, developer_headers, game_id).json()["asset"]

    r = client.get(f"/developer/games/{game_id}/assets/{asset['asset_id']}/test", headers=developer_headers)
    assert r.status_code == 200
    assert r.json()["test_url"].endswith(f"/game-test/{game_id}/{asset['asset_id']}/index.html")

    second = _upload(client, developer_headers, game_id).json()["asset"]
    from gamehost.services.blob_store import get_blob_store

    get_blob_store().delete(second["file_path"])
    r = client.post(f"/developer/games/{game_id}/assets/{second['asset_id']}/prepare-test", headers=developer_headers)
    assert r.status_code == 404
    assert r.json()["error_code"] == "asset_missing"
    assert r.json()["error_message"] == "Game asset file missing"


def test_prepare_test_for_corrupt_archive(client, developer_headers, game_id):
    asset = _upload(client, developer_headers, game_id, data=b"definitely not a zip").json()["asset"]
    r = client.post(f"/developer/games/{game_id}/assets/{asset['asset_id']}/prepare-test", headers=developer_headers)
    assert r.status_code == 500
    assert r.json()["error_code"] == "extraction_failed"


def test_prepare_test_rejects_other_types(client, developer_headers, game_id):
    asset = _upload(client, developer_headers, game_id, asset_type="texture", name="t.png", data=b"\x89PNG").json()["asset"]
    r = client.post(f"/developer/games/{game_id}/assets/{asset['asset_id']}/prepare-test", headers=developer_headers)
    assert r.status_code == 422


def test_static_serving_access_and_traversal(client, developer, developer_headers, game_id):
    asset = _upload(client, developer_headers, game_id).json()["asset"]
    aid = asset["asset_id"]
    base = f"/game-test/{game_id}/{aid}"

    r = client.get(f"{base}/index.html", headers=developer_headers)
    assert r.status_code == 404
    assert r.json()["error_message"] == "game bundle is not prepared"

    assert client.post(f"/developer/games/{game_id}/assets/{aid}/prepare-test", headers=developer_headers).status_code == 200

    r = client.get(f"{base}/", headers=developer_headers)
    assert r.status_code == 200
    assert r.content == INDEX

    # Cookie auth, as sent by an iframe.
    token = developer_headers["Authorization"].split(" ", 1)[1]
    client.cookies.set("gh_token", token)
    try:
        r = client.get(f"{base}/index.html")
        assert r.status_code == 200
    finally:
        client.cookies.clear()

    r = client.get(f"{base}/..%2F..%2F..%2F..%2Fetc%2Fpasswd", headers=developer_headers)
    assert r.status_code in (403, 404)
    r = client.get(f"{base}/.extracted.json", headers=developer_headers)
    assert r.status_code == 404

    # Unpublished game: strangers see nothing.
    r = client.get(f"{base}/index.html")
    assert r.status_code == 404
    stranger = make_user(UserRole.developer)
    r = client.get(f"{base}/index.html", headers=auth_headers_for(stranger))
    assert r.status_code == 404


def test_compatibility_report_notifies_developer(client, developer, developer_headers, game_id):
    from gamehost.models.compatibility_report import CompatibilityReport
    from gamehost.models.notification import Notification

    asset = _upload(client, developer_headers, game_id, version="0.9").json()["asset"]
    payload = {"status": "issues", "browser": "Firefox 131", "os": "Linux", "notes": "audio stutters"}

    r = client.post(
        f"/developer/games/{game_id}/assets/{asset['asset_id']}/compatibility-report",
        json=payload,
        headers=developer_headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "issues"

    r = client.post(
        f"/developer/games/{game_id}/assets/{asset['asset_id']}/test-report",
        json={"status": "works"},
        headers=developer_headers,
    )
    assert r.status_code == 201

    r = client.post(
        f"/developer/games/{game_id}/assets/{asset['asset_id']}/test-report",
        json={"status": "sideways"},
        headers=developer_headers,
    )
    assert r.status_code == 422

    with SessionLocal() as db:
        reports = db.scalars(select(CompatibilityReport).where(CompatibilityReport.asset_id == asset["asset_id"])).all()
        assert len(reports) == 2
        notes = db.scalars(
            select(Notification).where(Notification.user_id == developer.id, Notification.type == "compatibility_report")
        ).all()
        assert len(notes) == 2
        assert any("Firefox 131 / Linux" in n.message for n in notes)


def test_publish_gate_and_public_play(client, developer, developer_headers):
    gid = make_game(developer, title=f"Pub {uuid.uuid4().hex[:6]}")

    r = client.post(f"/developer/games/{gid}/publish", headers=developer_headers)
    assert r.status_code == 422
    assert r.json()["error_message"] == "Cannot publish: game requires a main game asset"

    old = _upload(client, developer_headers, gid, version="1.0").json()["asset"]
    live = _upload(client, developer_headers, gid, version="1.1").json()["asset"]
    tex = _upload(client, developer_headers, gid, asset_type="texture", name="t.png", data=b"\x89PNG").json()["asset"]

    r = client.post(f"/games/{gid}/assets/{live['asset_id']}/prepare-play")
    assert r.status_code == 404

    r = client.post(f"/developer/games/{gid}/publish", headers=developer_headers)
    assert r.status_code == 200
    assert r.json()["is_published"] is True
    assert r.json()["version"] == "1.1"

    r = client.get(f"/games/{gid}/assets")
    assert r.status_code == 200
    assert {a["asset_id"] for a in r.json()} == {live["asset_id"], tex["asset_id"]}

    r = client.post(f"/games/{gid}/assets/{old['asset_id']}/prepare-play")
    assert r.status_code == 404

    r = client.post(f"/games/{gid}/assets/{live['asset_id']}/prepare-play")
    assert r.status_code == 200
    play_url = r.json()["play_url"]
    assert play_url == f"http://testserver/game-play/{gid}/{live['asset_id']}/index.html"

    r = client.get(play_url.replace("http://testserver", ""))
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")

    # Superseded builds stay private even when extracted.
    client.post(f"/developer/games/{gid}/assets/{old['asset_id']}/prepare-test", headers=developer_headers)
    assert client.get(f"/game-play/{gid}/{old['asset_id']}/index.html").status_code == 404
    assert client.get(f"/game-play/{gid}/{old['asset_id']}/index.html", headers=developer_headers).status_code == 200

    r = client.post(f"/developer/games/{gid}/unpublish", headers=developer_headers)
    assert r.status_code == 200
    assert r.json()["is_published"] is False
    assert client.get(f"/games/{gid}/assets").status_code == 404
    assert client.get(play_url.replace("http://testserver", "")).status_code == 404


def test_rate_limit_returns_429(client, developer_headers, game_id, mem_redis):
    key = f"rl:asset_prepare_test:POST:/developer/games/{{game_id}}/assets/{{asset_id}}/prepare-test:testclient"
    mem_redis.set(key, "60", ex=60)

    r = client.post(f"/developer/games/{game_id}/assets/1/prepare-test", headers=developer_headers)
    assert r.status_code == 429
    assert r.json()["error_code"] == "rate_limited"
    assert int(r.headers["Retry-After"]) > 0
