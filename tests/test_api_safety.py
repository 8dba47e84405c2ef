"""Tests for the prescription safety API endpoints."""

from httpx import AsyncClient

PREFIX = "/api/v1/safety"


class TestEvaluateEndpoint:
    """Test POST /safety/evaluate."""

    async def test_condition_warning(self, client: AsyncClient) -> None:
        """Test pregnancy with ibuprofen gives one contraindication."""
        response = await client.post(
            f"{PREFIX}/evaluate",
            json={"conditions": ["pregnancy"], "medications": [{"raw_name": "Ibuprofen"}]},
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["warnings"]) == 1
        warning = data["warnings"][0]
        assert warning["kind"] == "condition"
        assert warning["condition"] == "pregnancy"
        assert warning["severity"] == "contraindicated"
        assert data["requires_acknowledgement"] is True
        assert data["highest_severity"] == "contraindicated"

    async def test_interaction_warning(self, client: AsyncClient) -> None:
        """Test warfarin with aspirin gives one drug-drug warning."""
        response = await client.post(
            f"{PREFIX}/evaluate",
            json={"medications": [{"raw_name": "Warfarin"}, {"raw_name": "Aspirin"}]},
        )
        data = response.json()
        assert [w["kind"] for w in data["warnings"]] == ["drug-drug"]
        assert data["warnings"][0]["display_names"] == ["Warfarin", "Aspirin"]
        assert data["counts"] == {"condition": 0, "drug-drug": 1}

    async def test_resolutions_and_unresolved(self, client: AsyncClient) -> None:
        """Test resolution details are returned for each medication."""
        response = await client.post(
            f"{PREFIX}/evaluate",
            json={"medications": [{"raw_name": "Augmentin 625"}, {"raw_name": "qwzx plvk"}]},
        )
        data = response.json()
        assert data["resolutions"][0]["drug"] == "amoxicillin + clavulanic acid"
        assert data["resolutions"][0]["ingredients"] == ["amoxicillin", "clavulanic acid"]
        assert data["unresolved"] == ["qwzx plvk"]
        assert data["warnings"] == []

    async def test_report_mode_all(self, client: AsyncClient) -> None:
        """Test all dangerous pairs are reported when requested."""
        response = await client.post(
            f"{PREFIX}/evaluate",
            json={
                "medications": [{"raw_name": "Warfarin"}, {"raw_name": "Aspirin"}, {"raw_name": "Ibuprofen"}],
                "report_mode": "all",
            },
        )
        assert len(response.json()["warnings"]) == 3

    async def test_unknown_condition_rejected(self, client: AsyncClient) -> None:
        """Test conditions outside the supported set are a validation error."""
        response = await client.post(
            f"{PREFIX}/evaluate",
            json={"conditions": ["gout"], "medications": [{"raw_name": "Ibuprofen"}]},
        )
        assert response.status_code == 422

    async def test_empty_medication_name_rejected(self, client: AsyncClient) -> None:
        """Test an empty medication name is a validation error."""
        response = await client.post(f"{PREFIX}/evaluate", json={"medications": [{"raw_name": ""}]})
        assert response.status_code == 422

    async def test_empty_prescription(self, client: AsyncClient) -> None:
        """Test a prescription without medications has no warnings."""
        response = await client.post(f"{PREFIX}/evaluate", json={"conditions": ["asthma"]})
        assert response.status_code == 200
        assert response.json()["warnings"] == []


class TestInteractionsEndpoint:
    """Test POST /safety/interactions."""

    async def test_reports_all_pairs_by_default(self, client: AsyncClient) -> None:
        """Test every dangerous pair is reported by default."""
        response = await client.post(
            f"{PREFIX}/interactions", json={"medications": ["Warfarin", "Aspirin", "Ibuprofen"]}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["has_interactions"] is True
        assert len(data["warnings"]) == 3

    async def test_no_interactions(self, client: AsyncClient) -> None:
        """Test a single safe medication has no interactions."""
        response = await client.post(f"{PREFIX}/interactions", json={"medications": ["Paracetamol"]})
        assert response.json()["has_interactions"] is False

    async def test_empty_list_rejected(self, client: AsyncClient) -> None:
        """Test an empty medication list is a validation error."""
        response = await client.post(f"{PREFIX}/interactions", json={"medications": []})
        assert response.status_code == 422


class TestResolveEndpoint:
    """Test GET /safety/resolve."""

    async def test_brand_name(self, client: AsyncClient) -> None:
        """Test resolving a brand name."""
        response = await client.get(f"{PREFIX}/resolve", params={"name": "Calpol"})
        assert response.status_code == 200
        data = response.json()
        assert data["resolved"] is True
        assert data["drug"] == "paracetamol"
        assert data["method"] == "exact_alias"
        assert data["display_name"] == "Calpol (paracetamol)"

    async def test_unresolved(self, client: AsyncClient) -> None:
        """Test resolving an unknown name."""
        response = await client.get(f"{PREFIX}/resolve", params={"name": "qwzx plvk"})
        data = response.json()
        assert data["resolved"] is False
        assert data["drug"] is None

    async def test_missing_name(self, client: AsyncClient) -> None:
        """Test the name parameter is required."""
        response = await client.get(f"{PREFIX}/resolve")
        assert response.status_code == 422


class TestConditionsEndpoints:
    """Test GET /safety/conditions and /safety/guidance."""

    async def test_list_conditions(self, client: AsyncClient) -> None:
        """Test conditions are listed in declared order."""
        response = await client.get(f"{PREFIX}/conditions")
        assert response.status_code == 200
        conditions = [c["condition"] for c in response.json()]
        assert conditions == [
            "hypertension",
            "diabetes",
            "pregnancy",
            "renal_impairment",
            "liver_disease",
            "asthma",
        ]

    async def test_guidance(self, client: AsyncClient) -> None:
        """Test guidance for several conditions."""
        response = await client.get(f"{PREFIX}/guidance", params={"conditions": ["pregnancy", "asthma"]})
        assert response.status_code == 200
        data = response.json()
        assert [g["condition"] for g in data] == ["pregnancy", "asthma"]
        assert "ibuprofen" in [a["drug"] for a in data[0]["contraindicated"]]
        assert data[1]["alternatives"]
        assert data[1]["advice"].startswith("Avoid non-selective beta blockers")

    async def test_guidance_unknown_condition(self, client: AsyncClient) -> None:
        """Test guidance rejects unsupported conditions."""
        response = await client.get(f"{PREFIX}/guidance", params={"conditions": ["gout"]})
        assert response.status_code == 422


class TestStatsEndpoint:
    """Test GET /safety/stats."""

    async def test_stats(self, client: AsyncClient) -> None:
        """Test rule set statistics."""
        response = await client.get(f"{PREFIX}/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["ruleset_version"] == "2026.10.1"
        assert data["interactions"]["total_pairs"] > 0
        assert data["resolver"]["brand_names"] > 100
