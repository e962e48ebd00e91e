"""
Tests for the follow-up API endpoints.
"""
from datetime import timedelta

import pytest
from fastapi import status

from collections_service.utils.clock import utc_now
from tests.seed_data import (
    IN_MANAGEMENT,
    MANAGED_DEBT,
    NEW_DEBT,
    OTHER_MANAGERS_DEBT,
    PAYMENT_AGREEMENT_TYPE,
    PERSONA_ID,
    PHONE_CALL,
)


class TestFollowUpAPI:
    """Test cases for follow-up API endpoints."""

    @pytest.fixture
    def url(self, api_prefix):
        return f"{api_prefix}/follow-ups"

    @pytest.fixture
    def payload(self):
        return {
            "personaId": PERSONA_ID,
            "debtIds": [MANAGED_DEBT],
            "managementTypeId": PAYMENT_AGREEMENT_TYPE,
            "observation": "Agreed to pay 200 per week",
            "nextFollowUpDate": (utc_now() + timedelta(days=3)).isoformat(),
        }

    def test_record_follow_up_requests_authorization(self, client, url, payload, manager_headers):
        response = client.post(url, json=payload, headers=manager_headers)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Payment agreement sent for supervisor approval"
        assert data["followUp"]["debtIds"] == [MANAGED_DEBT]
        [outcome] = data["outcomes"]
        assert outcome["outcome"] == "authorization_requested"
        assert outcome["originStateId"] == IN_MANAGEMENT
        assert outcome["authorizationRequestId"] is not None

    def test_record_follow_up_accepts_snake_case(self, client, url, manager_headers):
        response = client.post(
            url,
            json={
                "persona_id": PERSONA_ID,
                "debt_ids": [NEW_DEBT],
                "management_type_id": PHONE_CALL,
                "next_follow_up_date": (utc_now() + timedelta(days=1)).isoformat(),
            },
            headers=manager_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["outcomes"][0]["outcome"] == "state_changed"

    def test_record_follow_up_validation_errors(self, client, url, payload, manager_headers):
        payload["debtIds"] = []
        payload["nextFollowUpDate"] = None

        response = client.post(url, json=payload, headers=manager_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["error"] is True
        assert data["error_code"] == "COL_001"
        assert {e["field"] for e in data["context"]["errors"]} == {"debt_ids", "next_follow_up_date"}

    def test_record_follow_up_on_other_managers_debt(self, client, url, payload, manager_headers):
        payload["debtIds"] = [OTHER_MANAGERS_DEBT]

        response = client.post(url, json=payload, headers=manager_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error_code"] == "COL_005"

    def test_record_follow_up_unknown_debt(self, client, url, payload, supervisor_headers):
        payload["debtIds"] = [999999]

        response = client.post(url, json=payload, headers=supervisor_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "COL_002"

    def test_record_follow_up_requires_identity(self, client, url, payload):
        response = client.post(url, json=payload)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "COL_004"

    def test_invalid_role_header(self, client, url, payload):
        response = client.post(url, json=payload, headers={"X-User-ID": "20", "X-User-Role": "owner"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_follow_ups(self, client, url, payload, manager_headers):
        client.post(url, json=payload, headers=manager_headers)

        response = client.get(url, params={"personaId": PERSONA_ID}, headers=manager_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["totalCount"] == 1
        assert data["followUps"][0]["observation"] == "Agreed to pay 200 per week"

    def test_list_follow_ups_requires_filter(self, client, url, manager_headers):
        response = client.get(url, headers=manager_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_correlation_id_is_echoed(self, client, url, manager_headers):
        headers = {**manager_headers, "X-Correlation-ID": "test-correlation-123"}

        response = client.get(url, params={"debtId": MANAGED_DEBT}, headers=headers)

        assert response.headers["X-Correlation-ID"] == "test-correlation-123"
