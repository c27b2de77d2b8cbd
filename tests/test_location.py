import asyncio
import pytest
from storefront.common.custom_exceptions import CollaboratorError
from storefront.location.constants import PincodeStatus
from storefront.location.resolver import check_pincode, cities_for_state, normalize_city_key, resolve_city
from storefront.location.validator import PincodeValidator
from tests.conftest import url_prefix


class ScriptedLookup:
    """Pincode lookups that block until released, to drive superseded responses."""

    def __init__(self):
        self.calls = []
        self.gates = {}

    async def validate_pincode(self, pincode):
        self.calls.append(pincode)
        gate = self.gates.get(pincode)
        if gate is not None:
            await gate.wait()
        if pincode.startswith("9"):
            raise CollaboratorError("GET /pincode/validate", status_code=503)
        return {"status": "success", "pincode_valid": True}


@pytest.mark.parametrize("token,key", [
    ("Bombay", "mumbai"), ("  bangalore ", "bengaluru"), ("New Delhi", "new_delhi"), ("delhi", "new_delhi"),
    ("Navi-Mumbai", "navi_mumbai"), (None, ""),
])
def test_normalize_city_key(token, key):
    assert normalize_city_key(token) == key


def test_resolve_city_and_state_listing():
    assert resolve_city("Madras")["label"] == "Chennai"
    assert resolve_city("Atlantis") is None

    labels = [c["label"] for c in cities_for_state("maharashtra")]
    assert labels == sorted(labels)
    assert {"Mumbai", "Pune", "Thane"} <= set(labels)


async def test_check_pincode_statuses(storefront_client, fake_storefront):
    assert await check_pincode(storefront_client, "56001") == PincodeStatus.INVALID
    assert fake_storefront.calls == []

    assert await check_pincode(storefront_client, "560001") == PincodeStatus.VALID

    fake_storefront.on("GET", "/pincode/validate", body={"status": "invalid", "pincode_valid": False})
    assert await check_pincode(storefront_client, "000000") == PincodeStatus.INVALID

    fake_storefront.on("GET", "/pincode/validate", status=500, body={"error": "db down"})
    assert await check_pincode(storefront_client, "560001") == PincodeStatus.INDETERMINATE


async def test_debounce_collapses_rapid_input():
    lookup = ScriptedLookup()
    validator = PincodeValidator(lookup, debounce=0.05)

    validator.submit("560001")
    validator.submit("560002")
    gen = validator.submit("560003")
    result = await validator.wait()

    assert lookup.calls == ["560003"]
    assert result.generation == gen
    assert result.status == PincodeStatus.VALID
    await validator.close()


async def test_stale_response_does_not_overwrite_newer_input():
    lookup = ScriptedLookup()
    lookup.gates["560001"] = asyncio.Event()
    seen = []

    async def record(check):
        seen.append(check)

    validator = PincodeValidator(lookup, debounce=0, on_result=record)
    validator.submit("560001")
    for _ in range(5):
        await asyncio.sleep(0)
    assert lookup.calls == ["560001"]

    newer = validator.submit("560099")
    await validator.wait()
    lookup.gates["560001"].set()
    await asyncio.sleep(0.01)

    assert validator.result.pincode == "560099"
    assert validator.result.generation == newer
    assert [c.pincode for c in seen] == ["560099"]
    await validator.close()


async def test_failed_lookup_is_retryable_not_invalid():
    validator = PincodeValidator(ScriptedLookup(), debounce=0)
    validator.submit("999999")
    result = await validator.wait()
    assert result.status == PincodeStatus.INDETERMINATE
    await validator.close()


async def test_malformed_input_resolves_immediately():
    lookup = ScriptedLookup()
    validator = PincodeValidator(lookup, debounce=0.05)
    validator.submit("12ab")
    assert not validator.in_flight
    assert validator.result.status == PincodeStatus.INVALID
    assert lookup.calls == []


async def test_location_routes(ac_client):
    res = await ac_client.get(f"{url_prefix}/locations/cities/bombay")
    assert res.status_code == 200
    assert res.json()["data"]["key"] == "mumbai"

    res = await ac_client.get(f"{url_prefix}/locations/cities/atlantis")
    assert res.status_code == 404
    assert res.json()["status"] == "error"

    res = await ac_client.get(f"{url_prefix}/locations/cities", params={"state": "Karnataka"})
    assert [c["key"] for c in res.json()["data"]["cities"]] == ["bengaluru", "mysuru"]

    res = await ac_client.get(f"{url_prefix}/locations/pincode/560001")
    assert res.json()["data"]["status"] == "valid"
