import asyncio

from csr_request_service.app.service.models import RequestStatus, ServiceProvider

SUBMIT_PAYLOAD = {
    "police_station_name": "Coimbatore North Police Station",
    "mobile_number": "8765432109",
    "service_provider": "Airtel",
}


def test_submit_request(client, request_store):
    response = client.post("/api/v1/requests", json=SUBMIT_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "Request Received"
    assert body["reference_id"].startswith("REF-")
    stored = request_store.get(body["request_id"])
    assert stored.police_station_email == "coimbatore.north.police.station@tnpolice.gov.in"


def test_submit_duplicate_id(client):
    payload = {**SUBMIT_PAYLOAD, "request_id": "CSR-DUP"}
    assert client.post("/api/v1/requests", json=payload).status_code == 201
    assert client.post("/api/v1/requests", json=payload).status_code == 409


def test_submit_invalid_request(client, request_store):
    assert client.post("/api/v1/requests", json={**SUBMIT_PAYLOAD, "mobile_number": "12ab"}).status_code == 422
    assert client.post("/api/v1/requests", json={**SUBMIT_PAYLOAD, "service_provider": "Vodafone"}).status_code == 422
    assert client.post("/api/v1/requests", json={"mobile_number": "8765432109"}).status_code == 422
    assert len(request_store) == 0


def test_submit_trims_padded_mobile_number(client, request_store):
    response = client.post("/api/v1/requests", json={**SUBMIT_PAYLOAD, "mobile_number": " 9876543210 "})

    assert response.status_code == 201
    assert request_store.get(response.json()["request_id"]).mobile_number == "9876543210"


def test_submit_rejects_non_ascii_digits(client, request_store):
    arabic_indic = "\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668\u0669\u0660"
    assert client.post("/api/v1/requests", json={**SUBMIT_PAYLOAD, "mobile_number": arabic_indic}).status_code == 422
    assert client.post("/api/v1/requests", json={**SUBMIT_PAYLOAD, "mobile_number": "98765432\u00b2\u00b3"}).status_code == 422
    assert len(request_store) == 0


def test_list_and_filter_requests(client, request_factory, seed_requests):
    asyncio.run(seed_requests(
        request_factory("CSR-1", provider=ServiceProvider.JIO),
        request_factory("CSR-2", provider=ServiceProvider.AIRTEL, status=RequestStatus.SENT_TO_PROVIDER),
        request_factory("CSR-3", provider=ServiceProvider.JIO, status=RequestStatus.SENT_TO_PROVIDER),
    ))

    all_ids = [r["id"] for r in client.get("/api/v1/requests").json()]
    assert all_ids == ["CSR-1", "CSR-2", "CSR-3"]

    sent = client.get("/api/v1/requests", params={"status": "Sent to Provider"}).json()
    assert [r["id"] for r in sent] == ["CSR-2", "CSR-3"]

    jio_sent = client.get("/api/v1/requests", params={"status": "Sent to Provider", "provider": "Jio"}).json()
    assert [r["id"] for r in jio_sent] == ["CSR-3"]


def test_get_request(client, request_factory, seed_requests):
    asyncio.run(seed_requests(request_factory("CSR-1")))
    response = client.get("/api/v1/requests/CSR-1")
    assert response.status_code == 200
    assert response.json()["mobile_number"] == "9876543210"
    assert client.get("/api/v1/requests/CSR-404").status_code == 404


def test_record_provider_response(client, request_factory, seed_requests):
    asyncio.run(seed_requests(
        request_factory("CSR-1", status=RequestStatus.SENT_TO_PROVIDER),
        request_factory("CSR-2"),
    ))

    response = client.post("/api/v1/requests/CSR-1/provider-response", json={"response_text": "Name: Priya Sharma"})
    assert response.status_code == 200
    assert response.json()["status"] == "Response Received"
    assert response.json()["provider_response"] == "Name: Priya Sharma"

    assert client.post("/api/v1/requests/CSR-2/provider-response", json={"response_text": "x"}).status_code == 409
    assert client.post("/api/v1/requests/CSR-404/provider-response", json={"response_text": "x"}).status_code == 404
    assert client.post("/api/v1/requests/CSR-1/provider-response", json={"response_text": ""}).status_code == 422
