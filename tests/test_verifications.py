from typing import Dict

import pytest
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy import event, func, select, update

from app.api.v1.pumps.service import active_tag_ids, load_pump
from app.api.v1.verifications.service import record_verification
from app.core.models import GasStation, Pump, ScannedChildTag, VerificationSession
from app.core.reconciliation import reconcile_tags
from app.db.session import Database


async def verify(client: AsyncClient, headers: Dict[str, str], pump_id: int, main_tag: str, tags) -> Response:
    response = await client.post(
        f"/api/v1/pumps/{pump_id}/verify",
        json={"main_tag_scanned": main_tag, "scanned_child_tags": tags},
        headers=headers,
    )
    return response


async def pump_status(client: AsyncClient, headers: Dict[str, str], pump_id: int) -> str:
    response = await client.get(f"/api/v1/pumps/{pump_id}", headers=headers)
    assert response.status_code == 200
    return response.json()["status"]


@pytest.mark.asyncio
async def test_verify_all_tags_present(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    response = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B", "CHILD-C"])
    assert response.status_code == 200
    data = response.json()
    assert data["result"] == "success"
    assert data["message"] == "All RFID tags verified successfully. Pump is secure."
    assert data["details"] == {
        "expected_count": 3,
        "scanned_count": 3,
        "missing_tags": [],
        "unexpected_tags": [],
    }
    assert data["pump_status"] == "LOCKED"
    assert await pump_status(client, auth_headers, pump["id"]) == "LOCKED"


@pytest.mark.asyncio
async def test_missing_tag_breaks_locked_pump(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    response = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B"])
    assert response.status_code == 200
    data = response.json()
    assert data["result"] == "failed"
    assert data["details"]["missing_tags"] == ["CHILD-C"]
    assert data["details"]["unexpected_tags"] == []
    assert data["message"].startswith("ALERT: 1 tag(s) missing or broken")
    assert data["pump_status"] == "BROKEN"
    assert await pump_status(client, auth_headers, pump["id"]) == "BROKEN"


@pytest.mark.asyncio
async def test_unexpected_tag_fails(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"], child_tags=["CHILD-A", "CHILD-B"])

    response = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B", "ROGUE-X"])
    data = response.json()
    assert data["result"] == "failed"
    assert data["details"]["missing_tags"] == []
    assert data["details"]["unexpected_tags"] == ["ROGUE-X"]
    assert data["pump_status"] == "BROKEN"


@pytest.mark.asyncio
async def test_main_tag_mismatch_records_nothing(
    client: AsyncClient, auth_headers, create_station, create_pump, database: Database
) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    response = await verify(client, auth_headers, pump["id"], "MAIN-TAG-999", ["CHILD-A", "CHILD-B", "CHILD-C"])
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "MAIN_TAG_MISMATCH"
    assert "MAIN-TAG-001" not in body["error"]["message"]

    async with database.session() as db:
        count = (await db.execute(select(func.count(VerificationSession.id)))).scalar_one()
    assert count == 0
    assert await pump_status(client, auth_headers, pump["id"]) == "LOCKED"


@pytest.mark.asyncio
async def test_broken_pump_stays_broken_and_sessions_are_recorded(
    client: AsyncClient, auth_headers, create_station, create_pump
) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    first = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A"])
    assert first.json()["pump_status"] == "BROKEN"

    second = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", [])
    assert second.status_code == 200
    assert second.json()["result"] == "failed"
    assert second.json()["pump_status"] == "BROKEN"
    assert second.json()["session_id"] != first.json()["session_id"]

    # A clean scan does not clear the alarm either
    third = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B", "CHILD-C"])
    assert third.json()["result"] == "success"
    assert third.json()["pump_status"] == "BROKEN"

    history = await client.get(f"/api/v1/pumps/{pump['id']}/verifications", headers=auth_headers)
    assert history.json()["total"] == 3


@pytest.mark.asyncio
async def test_verify_unknown_pump(client: AsyncClient, auth_headers) -> None:
    response = await verify(client, auth_headers, 999, "MAIN-TAG-001", [])
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


@pytest.mark.asyncio
async def test_verify_requires_authentication(
    client: AsyncClient, create_station, create_pump
) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    response = await verify(client, {}, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B", "CHILD-C"])
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_verify_rejects_malformed_body(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    response = await client.post(
        f"/api/v1/pumps/{pump['id']}/verify",
        json={"main_tag_scanned": "MAIN-TAG-001", "scanned_child_tags": "CHILD-A"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert any(detail["field"] == "scanned_child_tags" for detail in body["error"]["details"])


@pytest.mark.asyncio
async def test_history_filters_and_pagination(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])
    full = ["CHILD-A", "CHILD-B", "CHILD-C"]

    for tags in (full, ["CHILD-A"], full, full):
        await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", tags)

    url = f"/api/v1/pumps/{pump['id']}/verifications"
    page = (await client.get(url, params={"page": 1, "limit": 3}, headers=auth_headers)).json()
    assert page["total"] == 4
    assert page["total_pages"] == 2
    assert page["has_next"] is True
    assert page["has_prev"] is False
    assert len(page["items"]) == 3
    # Newest first
    assert page["items"][0]["session_id"] > page["items"][1]["session_id"]

    second = (await client.get(url, params={"page": 2, "limit": 3}, headers=auth_headers)).json()
    assert len(second["items"]) == 1
    assert second["has_next"] is False
    assert second["has_prev"] is True

    failed = (await client.get(url, params={"result": "failed"}, headers=auth_headers)).json()
    assert failed["total"] == 1
    assert failed["items"][0]["result"] == "failed"
    assert failed["items"][0]["username"] == "admin"

    everything = (await client.get(url, params={"result": "all"}, headers=auth_headers)).json()
    assert everything["total"] == 4

    bad = await client.get(url, params={"result": "maybe"}, headers=auth_headers)
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "VALIDATION_ERROR"

    too_big = await client.get(url, params={"limit": 101}, headers=auth_headers)
    assert too_big.status_code == 400


@pytest.mark.asyncio
async def test_history_date_range(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])
    await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B", "CHILD-C"])

    url = f"/api/v1/pumps/{pump['id']}/verifications"
    past = (await client.get(url, params={"end_date": "2000-01-01T00:00:00Z"}, headers=auth_headers)).json()
    assert past["total"] == 0
    recent = (await client.get(url, params={"start_date": "2000-01-01T00:00:00Z"}, headers=auth_headers)).json()
    assert recent["total"] == 1


@pytest.mark.asyncio
async def test_history_for_unknown_pump(client: AsyncClient, auth_headers) -> None:
    response = await client.get("/api/v1/pumps/999/verifications", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_session_detail_replays_diff(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    response = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-B", "ROGUE-X", "CHILD-B"])
    session_id = response.json()["session_id"]

    detail = await client.get(f"/api/v1/verifications/{session_id}", headers=auth_headers)
    assert detail.status_code == 200
    data = detail.json()
    assert data["result"] == "failed"
    assert data["station_name"] == "Makpetrol Aerodrom"
    assert data["pump_number"] == 1
    assert data["user_full_name"] == "System Administrator"
    assert data["expected_tags"] == ["CHILD-A", "CHILD-B", "CHILD-C"]
    assert data["missing_tags"] == ["CHILD-A", "CHILD-C"]
    assert data["unexpected_tags"] == ["ROGUE-X"]
    assert data["total_scanned"] == 3
    assert [tag["tag_id"] for tag in data["scanned_tags"]] == ["CHILD-B", "ROGUE-X", "CHILD-B"]
    assert [tag["scan_order"] for tag in data["scanned_tags"]] == [1, 2, 3]
    assert [tag["is_expected"] for tag in data["scanned_tags"]] == [True, False, True]


@pytest.mark.asyncio
async def test_session_detail_not_found(client: AsyncClient, auth_headers) -> None:
    response = await client.get("/api/v1/verifications/12345", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


@pytest.mark.asyncio
async def test_verification_updates_station_last_verification(
    client: AsyncClient, auth_headers, create_station, create_pump
) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])
    assert station["last_verification_at"] is None

    await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "CHILD-B", "CHILD-C"])

    refreshed = (await client.get(f"/api/v1/stations/{station['id']}", headers=auth_headers)).json()
    assert refreshed["last_verification_at"] is not None
    assert refreshed["updated_at"] == station["updated_at"]


@pytest.mark.asyncio
async def test_padded_tags_match_trimmed_scans(client: AsyncClient, auth_headers, create_station, create_pump) -> None:
    station = await create_station()
    pump = await create_pump(station["id"], main_rfid_tag=" MAIN-PAD ", child_tags=[" CHILD-A", "CHILD-B "])
    assert pump["main_rfid_tag"] == "MAIN-PAD"
    assert pump["expected_child_tags"] == ["CHILD-A", "CHILD-B"]

    clean = await verify(client, auth_headers, pump["id"], "MAIN-PAD", ["CHILD-A", "CHILD-B"])
    assert clean.status_code == 200
    assert clean.json()["result"] == "success"

    padded = await verify(client, auth_headers, pump["id"], "MAIN-PAD\n", ["CHILD-A ", "\tCHILD-B"])
    assert padded.status_code == 200
    assert padded.json()["result"] == "success"
    assert padded.json()["details"]["unexpected_tags"] == []


@pytest.mark.asyncio
async def test_verify_rejects_oversized_or_blank_scanned_tags(
    client: AsyncClient, auth_headers, create_station, create_pump, database: Database
) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    too_long = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "X" * 256])
    assert too_long.status_code == 400
    assert too_long.json()["error"]["code"] == "VALIDATION_ERROR"

    blank = await verify(client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A", "   "])
    assert blank.status_code == 400

    blank_main = await verify(client, auth_headers, pump["id"], "   ", [])
    assert blank_main.status_code == 400

    async with database.session() as db:
        count = await db.scalar(select(func.count(VerificationSession.id)))
    assert count == 0
    assert await pump_status(client, auth_headers, pump["id"]) == "LOCKED"


@pytest.mark.asyncio
async def test_failed_write_rolls_back_whole_verification(
    app, auth_headers, create_station, create_pump, database: Database
) -> None:
    station = await create_station()
    pump = await create_pump(station["id"])

    def fail_insert(mapper, connection, target) -> None:
        raise RuntimeError("disk I/O error")

    event.listen(ScannedChildTag, "before_insert", fail_insert)
    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as raw_client:
            response = await verify(raw_client, auth_headers, pump["id"], "MAIN-TAG-001", ["CHILD-A"])
    finally:
        event.remove(ScannedChildTag, "before_insert", fail_insert)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"

    async with database.session() as db:
        assert await db.scalar(select(func.count(VerificationSession.id))) == 0
        assert await db.scalar(select(func.count(ScannedChildTag.id))) == 0
        assert await db.scalar(select(Pump.status).where(Pump.id == pump["id"])) == "LOCKED"
        last = await db.scalar(select(GasStation.last_verification_at).where(GasStation.id == station["id"]))
        assert last is None


@pytest.mark.asyncio
async def test_record_verification_reports_status_changed_underneath(
    create_station, create_pump, database: Database
) -> None:
    station = await create_station()
    created = await create_pump(station["id"])

    async with database.session() as db:
        pump = await load_pump(db, created["id"])
        assert pump.status == "LOCKED"

        # An admin opens the pump after it was read for this verification
        async with database.session() as other:
            await other.execute(update(Pump).where(Pump.id == created["id"]).values(status="OPEN"))
            await other.commit()

        result = reconcile_tags(active_tag_ids(pump), ["CHILD-A"])
        session, status = await record_verification(db, pump, None, "MAIN-TAG-001", result)

    assert status == "OPEN"
    assert session.id is not None
    async with database.session() as db:
        assert await db.scalar(select(Pump.status).where(Pump.id == created["id"])) == "OPEN"
        assert await db.scalar(select(func.count(VerificationSession.id))) == 1
