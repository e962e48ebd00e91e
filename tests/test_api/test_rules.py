"""
Tests for the rule store API endpoints.
"""
import pytest
from fastapi import status

from tests.seed_data import CALL_RULE, CLOSED, IN_MANAGEMENT, NEW, PHONE_CALL, VISIT


class TestRulesAPI:
    """Test cases for rule store API endpoints."""

    @pytest.fixture
    def url(self, api_prefix):
        return f"{api_prefix}/config/rules"

    def test_list_rules(self, client, url, manager_headers):
        response = client.get(url, params={"managementTypeId": PHONE_CALL}, headers=manager_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["totalCount"] == 2
        assert data["rules"][0]["id"] == CALL_RULE

    def test_create_rule(self, client, url, admin_headers):
        response = client.post(
            url,
            json={
                "managementTypeId": VISIT,
                "originStateId": IN_MANAGEMENT,
                "destinationStateId": CLOSED,
                "requiresAuthorization": True,
                "uiMessage": "Closing requires approval",
                "additionalValidation": {
                    "type": "comparison", "field": "days_overdue", "operator": "gte", "value": 180,
                },
            },
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["requiresAuthorization"] is True
        assert data["additionalValidation"]["value"] == 180

    def test_create_rule_requires_administrator(self, client, url, manager_headers):
        response = client.post(url, json={"managementTypeId": VISIT}, headers=manager_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_create_duplicate_rule(self, client, url, admin_headers):
        response = client.post(
            url,
            json={"managementTypeId": PHONE_CALL, "originStateId": NEW, "destinationStateId": CLOSED},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_update_rule(self, client, url, admin_headers):
        response = client.patch(
            f"{url}/{CALL_RULE}", json={"priority": 50, "uiMessage": None}, headers=admin_headers
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["priority"] == 50
        assert data["uiMessage"] is None
        assert data["active"] is True

    def test_update_rule_ignores_null_flags(self, client, url, admin_headers):
        response = client.patch(f"{url}/{CALL_RULE}", json={"active": None}, headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["active"] is True

    def test_management_types(self, client, api_prefix, admin_headers, manager_headers):
        url = f"{api_prefix}/config/management-types"

        created = client.post(url, json={"name": "Email", "displayOrder": 9}, headers=admin_headers)
        duplicate = client.post(url, json={"name": "Email"}, headers=admin_headers)
        listed = client.get(url, params={"active": True}, headers=manager_headers)

        assert created.status_code == status.HTTP_201_CREATED
        assert duplicate.status_code == status.HTTP_409_CONFLICT
        assert [t["name"] for t in listed.json()][-1] == "Email"

    def test_debt_states(self, client, api_prefix, manager_headers):
        response = client.get(f"{api_prefix}/debt-states", headers=manager_headers)

        assert response.status_code == status.HTTP_200_OK
        assert [s["name"] for s in response.json()][:2] == ["New", "In Management"]
        assert response.json()[3]["isFinal"] is True
