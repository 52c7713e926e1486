"""
Tests for the commission rule admin API.

Covers:
- Access control (anonymous, manager, admin)
- Create / get / list / update / toggle / delete with audit records
- Request validation and the error body shape
- On-demand evaluation
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from loyalty.models import AuditAction, AuditLog

RULES_URL = "/api/admin/commission-rules"


def _rule_body(**kwargs):
    body = {
        "name": "Gold boost",
        "description": "Twelve percent for gold sellers",
        "rate": 12,
        "type": "percentage",
        "priority": 20,
        "conditions": {"tier_restrictions": ["gold"]},
    }
    body.update(kwargs)
    return body


async def _create(client, **kwargs):
    response = await client.post(RULES_URL, json=_rule_body(**kwargs))
    assert response.status_code == 201, response.text
    return response.json()["rule"]


async def _audit_actions(session_factory):
    async with session_factory() as db:
        logs = (await db.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()
        return [log.action for log in logs], logs


# ── Access control ───────────────────────────────────────


class TestAccess:
    @pytest.mark.asyncio
    async def test_anonymous_rejected(self, anon_client):
        response = await anon_client.get(RULES_URL)

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "not_authenticated"

    @pytest.mark.asyncio
    async def test_manager_can_read(self, manager_client):
        response = await manager_client.get(RULES_URL)

        assert response.status_code == 200
        assert response.json() == {"success": True, "items": [], "total": 0}

    @pytest.mark.asyncio
    async def test_manager_cannot_create(self, manager_client):
        response = await manager_client.post(RULES_URL, json=_rule_body())

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"


# ── CRUD ─────────────────────────────────────────────────


class TestRuleCrud:
    @pytest.mark.asyncio
    async def test_create_and_get(self, admin_client, admin_user, session_factory):
        rule = await _create(admin_client)

        assert rule["name"] == "Gold boost"
        assert rule["type"] == "percentage"
        assert Decimal(str(rule["rate"])) == Decimal("12")
        assert rule["conditions"] == {"tier_restrictions": ["gold"]}
        assert rule["created_by_id"] == admin_user.id

        response = await admin_client.get(f"{RULES_URL}/{rule['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == rule["id"]

        actions, logs = await _audit_actions(session_factory)
        assert actions == [AuditAction.CREATE_RULE]
        assert logs[0].action_metadata["before"] is None
        assert logs[0].action_metadata["after"]["priority"] == 20

    @pytest.mark.asyncio
    async def test_list_in_priority_order(self, admin_client):
        await _create(admin_client, name="Low", priority=5)
        await _create(admin_client, name="High", priority=50)
        await _create(admin_client, name="Also low", priority=5, is_active=False)

        response = await admin_client.get(RULES_URL)
        names = [r["name"] for r in response.json()["items"]]
        assert names == ["High", "Low", "Also low"]

        response = await admin_client.get(RULES_URL, params={"active_only": "true"})
        assert [r["name"] for r in response.json()["items"]] == ["High", "Low"]

    @pytest.mark.asyncio
    async def test_partial_update(self, admin_client, session_factory):
        rule = await _create(admin_client)

        response = await admin_client.put(f"{RULES_URL}/{rule['id']}", json={"priority": 70})

        assert response.status_code == 200
        updated = response.json()["rule"]
        assert updated["priority"] == 70
        assert updated["name"] == rule["name"]
        assert updated["conditions"] == rule["conditions"]

        actions, logs = await _audit_actions(session_factory)
        assert actions[-1] == AuditAction.UPDATE_RULE
        assert logs[-1].action_metadata["before"]["priority"] == 20
        assert logs[-1].action_metadata["after"]["priority"] == 70

    @pytest.mark.asyncio
    async def test_update_type_and_conditions(self, admin_client):
        rule = await _create(admin_client)

        response = await admin_client.put(
            f"{RULES_URL}/{rule['id']}",
            json={"type": "fixed", "rate": 30, "conditions": {"minimum_sales": 5}},
        )

        updated = response.json()["rule"]
        assert updated["type"] == "fixed"
        assert updated["conditions"] == {"minimum_sales": 5.0}

    @pytest.mark.asyncio
    async def test_toggle(self, admin_client, session_factory):
        rule = await _create(admin_client)

        response = await admin_client.patch(
            f"{RULES_URL}/{rule['id']}/toggle", json={"is_active": False}
        )

        assert response.status_code == 200
        assert response.json()["rule"]["is_active"] is False
        actions, logs = await _audit_actions(session_factory)
        assert actions[-1] == AuditAction.TOGGLE_RULE
        assert logs[-1].action_metadata == {
            "before": {"is_active": True},
            "after": {"is_active": False},
        }

    @pytest.mark.asyncio
    async def test_delete(self, admin_client, session_factory):
        rule = await _create(admin_client)

        response = await admin_client.delete(f"{RULES_URL}/{rule['id']}")
        assert response.json() == {"success": True, "message": "Rule deleted"}

        response = await admin_client.get(f"{RULES_URL}/{rule['id']}")
        assert response.status_code == 404

        actions, logs = await _audit_actions(session_factory)
        assert actions[-1] == AuditAction.DELETE_RULE
        assert logs[-1].action_metadata["after"] is None

    @pytest.mark.asyncio
    async def test_missing_rule(self, admin_client):
        response = await admin_client.put(f"{RULES_URL}/999", json={"priority": 1})

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": {"code": "not_found", "message": "Commission rule 999 not found"},
        }


# ── Validation ───────────────────────────────────────────


class TestRuleValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "override",
        [
            {"rate": 1000.01},
            {"rate": -1},
            {"priority": 101},
            {"priority": -1},
            {"type": "tiered"},
            {"name": ""},
            {"description": "x" * 501},
            {"conditions": {"minimum_sale": 3}},
            {"conditions": {"tier_restrictions": ["diamond"]}},
        ],
    )
    async def test_invalid_rule_rejected(self, admin_client, override):
        response = await admin_client.post(RULES_URL, json=_rule_body(**override))

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_validity_window_order(self, admin_client):
        response = await admin_client.post(
            RULES_URL,
            json=_rule_body(
                valid_from="2026-06-01T00:00:00Z",
                valid_until="2026-05-01T00:00:00Z",
            ),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_against_stored_window(self, admin_client):
        rule = await _create(admin_client, valid_from="2026-06-01T00:00:00Z")

        response = await admin_client.put(
            f"{RULES_URL}/{rule['id']}", json={"valid_until": "2026-05-01T00:00:00Z"}
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"


# ── On-demand evaluation ─────────────────────────────────


class TestCalculate:
    @pytest.mark.asyncio
    async def test_fallback_path(self, manager_client, active_settings):
        response = await manager_client.post(
            f"{RULES_URL}/calculate",
            json={"salesAmount": 1000, "userTier": "gold", "networkSize": 0, "growthRate": 0, "liters": 50},
        )

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["rule_used"] == "fallback"
        assert Decimal(str(result["commission_amount"])) == Decimal("75.00")
        assert Decimal(str(result["commission_rate"])) == Decimal("7.50")
        assert Decimal(str(result["cashback_amount"])) == Decimal("37.50")
        assert result["settings_snapshot"]["settings_id"] == active_settings.id

    @pytest.mark.asyncio
    async def test_rule_path(self, admin_client, active_settings):
        rule = await _create(admin_client)

        response = await admin_client.post(
            f"{RULES_URL}/calculate",
            json={"salesAmount": 1000, "userTier": "gold", "networkSize": 3, "growthRate": 1.5},
        )

        result = response.json()["result"]
        assert result["rule_used"] == str(rule["id"])
        assert result["rule_name"] == "Gold boost"
        assert Decimal(str(result["commission_amount"])) == Decimal("120.00")
        assert Decimal(str(result["cashback_amount"])) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_network_condition(self, admin_client, active_settings):
        await _create(admin_client, conditions={"minimum_users": 10}, rate=9)

        small = await admin_client.post(
            f"{RULES_URL}/calculate",
            json={"salesAmount": 100, "userTier": "lead", "networkSize": 9, "growthRate": 0},
        )
        large = await admin_client.post(
            f"{RULES_URL}/calculate",
            json={"salesAmount": 100, "userTier": "lead", "networkSize": 10, "growthRate": 0},
        )

        assert small.json()["result"]["rule_used"] == "fallback"
        assert Decimal(str(large.json()["result"]["commission_amount"])) == Decimal("9.00")

    @pytest.mark.asyncio
    async def test_without_settings(self, admin_client):
        response = await admin_client.post(
            f"{RULES_URL}/calculate",
            json={"salesAmount": 100, "userTier": "lead", "networkSize": 0, "growthRate": 0},
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, admin_client, active_settings):
        response = await admin_client.post(
            f"{RULES_URL}/calculate",
            json={"salesAmount": -1, "userTier": "lead", "networkSize": 0, "growthRate": 0},
        )

        assert response.status_code == 400
