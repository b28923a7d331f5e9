"""End-to-end job lifecycle tests through the HTTP API."""

from conftest import JPEG_FRAME, PNG_FRAME, MemoryBlobBackend, data_url
from fastapi.testclient import TestClient

HTTP_200_OK = 200
HTTP_202_ACCEPTED = 202
ALICE = {"X-User-Id": "alice"}


def test_inline_frames_job_lifecycle(api_client: TestClient) -> None:
    """Queue inline frames, let the triggered worker run, then read the result and transactions."""
    response = api_client.post("/jobs", json={"frames": [data_url(PNG_FRAME), data_url(JPEG_FRAME)]}, headers=ALICE)
    if response.status_code != HTTP_202_ACCEPTED:
        msg = f"Expected status {HTTP_202_ACCEPTED}, got {response.status_code}"
        raise AssertionError(msg)
    body = response.json()
    if body["status"] != "pending" or body["frame_count"] != 2:  # noqa: PLR2004
        msg = f"Unexpected enqueue response: {body}"
        raise AssertionError(msg)

    status = api_client.get(f"/jobs/{body['job_id']}", headers=ALICE).json()
    if status["status"] != "completed" or status["result"]["added"] != 1:
        msg = f"Expected the job completed with one transaction, got {status}"
        raise AssertionError(msg)
    if status["started_at"] is None or status["completed_at"] is None:
        msg = f"Expected start and completion times, got {status}"
        raise AssertionError(msg)

    transactions = api_client.get("/transactions", headers=ALICE).json()["transactions"]
    if len(transactions) != 1:
        msg = f"Expected one transaction, got {transactions}"
        raise AssertionError(msg)
    transaction = transactions[0]
    if transaction["merchant_name"] != "Starbucks" or transaction["transaction_date"] != "2024-01-15":
        msg = f"Unexpected transaction: {transaction}"
        raise AssertionError(msg)
    if transaction["amount_spent"] != "5.67" or transaction["category"] != "Food & Dining":
        msg = f"Unexpected amount or category: {transaction}"
        raise AssertionError(msg)


def test_uploaded_frames_job_lifecycle(api_client: TestClient, blob_backend: MemoryBlobBackend) -> None:
    """Uploaded frames are stored, extracted and deleted; the job listing counts it as completed."""
    files = [("files", ("frame-1.png", PNG_FRAME, "image/png")), ("files", ("frame-2.jpg", JPEG_FRAME, "image/jpeg"))]
    response = api_client.post("/upload-frames", files=files, headers=ALICE)
    if response.status_code != HTTP_202_ACCEPTED:
        msg = f"Expected status {HTTP_202_ACCEPTED}, got {response.status_code}"
        raise AssertionError(msg)
    job_id = response.json()["job_id"]

    if blob_backend.blobs or len(blob_backend.deleted) != 2:  # noqa: PLR2004
        msg = f"Expected both uploaded frames deleted after processing, left {list(blob_backend.blobs)}"
        raise AssertionError(msg)
    if not all(key.startswith("frames/alice/") for key in blob_backend.deleted):
        msg = f"Expected frames stored under the owner's prefix, got {blob_backend.deleted}"
        raise AssertionError(msg)

    listing = api_client.get("/jobs", headers=ALICE).json()
    if [job["job_id"] for job in listing["jobs"]] != [job_id] or listing["completed"] != 1:
        msg = f"Unexpected job listing: {listing}"
        raise AssertionError(msg)
    if api_client.get("/jobs", headers={"X-User-Id": "bob"}).json()["jobs"]:
        msg = "Expected bob to see no jobs"
        raise AssertionError(msg)
    if api_client.get(f"/jobs/{job_id}", headers=ALICE).status_code != HTTP_200_OK:
        msg = "Expected the job to be readable by its owner"
        raise AssertionError(msg)
