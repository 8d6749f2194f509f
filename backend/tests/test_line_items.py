from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import pytest
from sqlalchemy import func, select

from dealflow.core.db.models import Activity
from dealflow.domain.deals.models.deals import DealLineItem

from conftest import OTHER_TENANT


def _path(deal_id: str, version_id: str) -> str:
    return f"/deals/{deal_id}/versions/{version_id}/line-items"


def _count(db, model) -> int:
    db.expire_all()
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_scenario_totals(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()

    first = workflow.add_item(deal_id, version_id, description="Labor", quantity="10", unitCost="50", category="LABOR")
    assert Decimal(first["lineItem"]["lineTotal"]) == Decimal("500.00")
    assert Decimal(first["versionTotals"]["subtotal"]) == Decimal("500.00")

    second = workflow.add_item(deal_id, version_id, description="Lift", quantity="2", unitCost="200", category="EQUIPMENT")
    assert Decimal(second["lineItem"]["lineTotal"]) == Decimal("400.00")

    third = workflow.add_item(deal_id, version_id, description="Fasteners", quantity="1", unitCost="75", category="MATERIALS")
    assert Decimal(third["versionTotals"]["subtotal"]) == Decimal("975.00")
    assert Decimal(third["versionTotals"]["total"]) == Decimal("975.00")

    deal = client.get(f"/deals/{deal_id}", headers=as_actor("estimator")).json()
    assert Decimal(deal["subtotal"]) == Decimal("975.00")
    assert Decimal(deal["total"]) == Decimal("975.00")

    ws = client.get(f"/deals/{deal_id}/estimating", headers=as_actor("estimator")).json()
    assert Decimal(ws["version"]["subtotal"]) == Decimal("975.00")
    assert [i["description"] for i in ws["lineItems"]] == ["Labor", "Lift", "Fasteners"]


def test_client_supplied_line_total_is_ignored(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()
    body = workflow.add_item(deal_id, version_id, quantity="10", unitCost="50", lineTotal="99999.99")
    assert Decimal(body["lineItem"]["lineTotal"]) == Decimal("500.00")

    item_id = body["lineItem"]["id"]
    resp = client.patch(
        f"{_path(deal_id, version_id)}/{item_id}",
        json={"lineTotal": "1.00", "description": "Crew hours (night)"},
        headers=as_actor("estimator"),
    )
    assert resp.status_code == 200, resp.text
    assert Decimal(resp.json()["lineItem"]["lineTotal"]) == Decimal("500.00")


def test_line_total_rounds_to_cents(workflow):
    deal_id, version_id = workflow.estimating()
    body = workflow.add_item(deal_id, version_id, quantity="3", unitCost="0.333")
    assert Decimal(body["lineItem"]["lineTotal"]) == Decimal("1.00")


def test_line_total_is_priced_from_stored_inputs(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()
    body = workflow.add_item(deal_id, version_id, quantity="2.00004", unitCost="125.00005")
    assert Decimal(body["lineItem"]["quantity"]) == Decimal("2.0000")
    assert Decimal(body["lineItem"]["lineTotal"]) == Decimal("250.00")

    items = client.get(_path(deal_id, version_id), headers=as_actor("estimator")).json()
    assert len(items) == 1
    stored = items[0]
    expected = (Decimal(stored["quantity"]) * Decimal(stored["unitCost"])).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    assert Decimal(stored["lineTotal"]) == expected


@pytest.mark.parametrize(
    "fields",
    [
        {"quantity": "-1"},
        {"quantity": "0"},
        {"unitCost": "-0.01"},
        {"category": "PLUMBING"},
        {"description": "   "},
        {"unit": ""},
        {"quantity": "0.00004"},
        {"quantity": "10000000000"},
        {"unitCost": "1e12"},
        {"quantity": "9999999999", "unitCost": "1000"},
    ],
)
def test_invalid_fields_are_validation_errors(client, as_actor, workflow, db_session, fields):
    deal_id, version_id = workflow.estimating()
    before = _count(db_session, Activity)

    body = {"description": "Item", "quantity": "1", "unit": "ea", "unitCost": "10", "category": "MISC"}
    body.update(fields)
    resp = client.post(_path(deal_id, version_id), json=body, headers=as_actor("estimator"))

    assert resp.status_code == 422
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert _count(db_session, DealLineItem) == 0
    assert _count(db_session, Activity) == before


def test_zero_unit_cost_is_allowed(workflow):
    deal_id, version_id = workflow.estimating()
    body = workflow.add_item(deal_id, version_id, unitCost="0", category="discipline_specific")
    assert Decimal(body["lineItem"]["lineTotal"]) == Decimal("0.00")
    assert body["lineItem"]["category"] == "DISCIPLINE_SPECIFIC"


@pytest.mark.parametrize("actor", ["intake", "dispatch", "estimator_other"])
def test_roles_without_pricing_capability_are_forbidden(client, as_actor, workflow, db_session, actor):
    deal_id, version_id = workflow.estimating()
    body = {"description": "Item", "quantity": "1", "unit": "ea", "unitCost": "10", "category": "MISC"}
    resp = client.post(_path(deal_id, version_id), json=body, headers=as_actor(actor))
    assert resp.status_code == 403
    assert _count(db_session, DealLineItem) == 0


def test_admin_may_price_any_deal(workflow):
    deal_id, version_id = workflow.estimating()
    body = workflow.add_item(deal_id, version_id, actor="admin", quantity="4", unitCost="25")
    assert Decimal(body["versionTotals"]["subtotal"]) == Decimal("100.00")


def test_update_recomputes_totals_and_logs(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()
    workflow.add_item(deal_id, version_id, quantity="10", unitCost="50")
    target = workflow.add_item(deal_id, version_id, quantity="1", unitCost="75")["lineItem"]

    resp = client.patch(
        f"{_path(deal_id, version_id)}/{target['id']}",
        json={"quantity": "2"},
        headers=as_actor("estimator"),
    )
    assert resp.status_code == 200, resp.text
    item = resp.json()["lineItem"]
    assert Decimal(item["quantity"]) == Decimal("2")
    assert Decimal(item["unitCost"]) == Decimal("75")
    assert item["unit"] == "hr"
    assert Decimal(item["lineTotal"]) == Decimal("150.00")
    assert Decimal(resp.json()["versionTotals"]["subtotal"]) == Decimal("650.00")

    activities = client.get(f"/deals/{deal_id}/activities", headers=as_actor("estimator")).json()
    updated = [a for a in activities if a["type"] == "LINE_ITEM_UPDATED"]
    assert len(updated) == 1
    assert updated[0]["meta"]["changed"] == ["quantity"]


def test_delete_recomputes_totals(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()
    workflow.add_item(deal_id, version_id, quantity="10", unitCost="50")
    doomed = workflow.add_item(deal_id, version_id, quantity="2", unitCost="200")["lineItem"]

    resp = client.delete(f"{_path(deal_id, version_id)}/{doomed['id']}", headers=as_actor("estimator"))
    assert resp.status_code == 200, resp.text
    assert resp.json()["deleted"] is True
    assert Decimal(resp.json()["versionTotals"]["subtotal"]) == Decimal("500.00")

    listed = client.get(_path(deal_id, version_id), headers=as_actor("estimator")).json()
    assert len(listed) == 1
    assert doomed["id"] not in {i["id"] for i in listed}

    types = [a["type"] for a in client.get(f"/deals/{deal_id}/activities", headers=as_actor("estimator")).json()]
    assert types.count("LINE_ITEM_ADDED") == 2
    assert types.count("LINE_ITEM_DELETED") == 1


def test_subtotal_tracks_every_mutation(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()
    ids = [
        workflow.add_item(deal_id, version_id, quantity=q, unitCost=c)["lineItem"]["id"]
        for q, c in (("1.5", "19.99"), ("3", "7.333"), ("12", "0.5"))
    ]
    client.patch(f"{_path(deal_id, version_id)}/{ids[1]}", json={"unitCost": "8"}, headers=as_actor("estimator"))
    client.delete(f"{_path(deal_id, version_id)}/{ids[2]}", headers=as_actor("estimator"))

    listed = client.get(_path(deal_id, version_id), headers=as_actor("estimator")).json()
    for item in listed:
        expected = (Decimal(item["quantity"]) * Decimal(item["unitCost"])).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert Decimal(item["lineTotal"]) == expected

    ws = client.get(f"/deals/{deal_id}/estimating", headers=as_actor("estimator")).json()
    assert Decimal(ws["version"]["subtotal"]) == sum(Decimal(i["lineTotal"]) for i in listed)
    # 1.5 * 19.99 = 29.985 -> 29.99; 3 * 8 = 24.00
    assert Decimal(ws["version"]["subtotal"]) == Decimal("53.99")


def test_locked_version_rejects_every_mutation(client, as_actor, workflow, db_session):
    deal_id, version_id, _ = workflow.dispatched()
    item_id = client.get(_path(deal_id, version_id), headers=as_actor("admin")).json()[0]["id"]

    items_before = _count(db_session, DealLineItem)
    activities_before = _count(db_session, Activity)

    body = {"description": "Late add", "quantity": "1", "unit": "ea", "unitCost": "10", "category": "MISC"}
    for actor in ("estimator", "admin", "intake", "dispatch"):
        responses = [
            client.post(_path(deal_id, version_id), json=body, headers=as_actor(actor)),
            client.patch(f"{_path(deal_id, version_id)}/{item_id}", json={"quantity": "5"}, headers=as_actor(actor)),
            client.delete(f"{_path(deal_id, version_id)}/{item_id}", headers=as_actor(actor)),
        ]
        for resp in responses:
            assert resp.status_code == 409
            assert resp.json()["code"] == "VERSION_LOCKED"

    assert _count(db_session, DealLineItem) == items_before
    assert _count(db_session, Activity) == activities_before


def test_submitted_deal_rejects_edits_as_invalid_stage(client, as_actor, workflow):
    deal_id, version_id = workflow.submitted()
    body = {"description": "Late add", "quantity": "1", "unit": "ea", "unitCost": "10", "category": "MISC"}
    resp = client.post(_path(deal_id, version_id), json=body, headers=as_actor("estimator"))
    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_STAGE"


def test_unknown_version_item_or_tenant_is_not_found(client, as_actor, workflow):
    deal_id, version_id = workflow.estimating()
    body = {"description": "Item", "quantity": "1", "unit": "ea", "unitCost": "10", "category": "MISC"}

    other_deal, _ = workflow.estimating()
    other_version = client.get(f"/deals/{other_deal}/estimating", headers=as_actor("estimator")).json()["version"]["id"]
    assert client.post(_path(deal_id, other_version), json=body, headers=as_actor("estimator")).status_code == 404

    missing_item = f"{_path(deal_id, version_id)}/00000000-0000-0000-0000-000000000000"
    assert client.patch(missing_item, json={"quantity": "2"}, headers=as_actor("estimator")).status_code == 404

    resp = client.post(_path(deal_id, version_id), json=body, headers=as_actor("admin", tenant_id=OTHER_TENANT))
    assert resp.status_code == 404
