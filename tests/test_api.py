"""API integration tests for the Card Statement Tracker."""

from fastapi.testclient import TestClient

from main import app
from tracker.services.job_store import JobStore
from tracker.services.merchant_categories import MerchantCategoryStore
from tracker.services.transaction_store import TransactionStore

client = TestClient(app)
HTTP_200_OK = 200
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_409_CONFLICT = 409
HTTP_422_UNPROCESSABLE_ENTITY = 422
ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


def test_health() -> None:
    """Test the /health endpoint returns status ok."""
    response = client.get("/health")
    if response.status_code != HTTP_200_OK:
        msg = f"Expected status {HTTP_200_OK}, got {response.status_code}"
        raise AssertionError(msg)
    if response.json() != {"status": "ok"}:
        msg = f"Expected response {{'status': 'ok'}}, got {response.json()}"
        raise AssertionError(msg)


def test_scalar_docs() -> None:
    """Test the /scalar endpoint returns OpenAPI or Swagger docs."""
    response = client.get("/scalar")
    if response.status_code != HTTP_200_OK:
        msg = f"Expected status {HTTP_200_OK}, got {response.status_code}"
        raise AssertionError(msg)
    if not ("openapi" in response.text or "swagger" in response.text):
        msg = "Expected 'openapi' or 'swagger' in response text"
        raise AssertionError(msg)


def test_owner_header_is_required(api_client: TestClient) -> None:
    """Owner-scoped routes reject requests without X-User-Id."""
    responses = (
        api_client.get("/jobs"),
        api_client.get("/transactions"),
        api_client.post("/jobs", json={"frames": ["aGVsbG8="]}),
    )
    for response in responses:
        if response.status_code != HTTP_401_UNAUTHORIZED:
            msg = f"Expected {HTTP_401_UNAUTHORIZED}, got {response.status_code}"
            raise AssertionError(msg)


def test_enqueue_requires_frames(api_client: TestClient) -> None:
    """An empty frame list is rejected before a job is created."""
    response = api_client.post("/jobs", json={"frames": []}, headers=ALICE)
    if response.status_code != HTTP_422_UNPROCESSABLE_ENTITY:
        msg = f"Expected {HTTP_422_UNPROCESSABLE_ENTITY}, got {response.status_code}"
        raise AssertionError(msg)
    response = api_client.post("/upload-frames", files=[("files", ("empty.jpg", b"", "image/jpeg"))], headers=ALICE)
    if response.status_code != HTTP_400_BAD_REQUEST:
        msg = f"Expected {HTTP_400_BAD_REQUEST}, got {response.status_code}"
        raise AssertionError(msg)


def test_job_status_is_owner_scoped(api_client: TestClient, job_store: JobStore) -> None:
    """Another owner's job looks missing."""
    job_id = job_store.enqueue("alice", {"frames": ["aGVsbG8="]})
    if api_client.get(f"/jobs/{job_id}", headers=BOB).status_code != HTTP_404_NOT_FOUND:
        msg = "Expected bob to get 404 for alice's job"
        raise AssertionError(msg)
    response = api_client.get(f"/jobs/{job_id}", headers=ALICE)
    if response.status_code != HTTP_200_OK or response.json()["status"] != "pending":
        msg = f"Expected alice to see her pending job, got {response.json()}"
        raise AssertionError(msg)


def test_worker_endpoint_reports_idle(api_client: TestClient) -> None:
    """Both GET and POST run one cycle and return its summary."""
    for method in ("GET", "POST"):
        response = api_client.request(method, "/worker")
        if response.status_code != HTTP_200_OK or response.json()["status"] != "idle":
            msg = f"Expected an idle summary from {method}, got {response.json()}"
            raise AssertionError(msg)


def test_update_category_sets_owner_override(
    api_client: TestClient, transaction_store: TransactionStore, category_store: MerchantCategoryStore
) -> None:
    """Re-categorizing a transaction remembers the merchant for its owner only."""
    transaction_store.insert_if_absent("tx-1", "alice", "Corner Store", "2024-01-15", 12, 0, None)
    response = api_client.put("/transactions/tx-1/category", json={"category": "Business"}, headers=ALICE)
    if response.status_code != HTTP_200_OK:
        msg = f"Expected {HTTP_200_OK}, got {response.status_code}: {response.text}"
        raise AssertionError(msg)
    if transaction_store.get("tx-1")["category"] != "Business":
        msg = "Expected the transaction category to change"
        raise AssertionError(msg)
    if category_store.get_user_override("alice", "corner store") != "Business":
        msg = "Expected alice's override to be recorded"
        raise AssertionError(msg)
    if category_store.get_user_override("bob", "corner store") is not None:
        msg = "Expected no override for bob"
        raise AssertionError(msg)
    overrides = api_client.get("/merchant-categories", headers=ALICE).json()["categories"]
    if [o["merchant_name"] for o in overrides] != ["Corner Store"]:
        msg = f"Expected the override listed, got {overrides}"
        raise AssertionError(msg)


def test_update_category_rejections(api_client: TestClient, transaction_store: TransactionStore) -> None:
    """Unknown categories, missing transactions and foreign transactions are rejected."""
    transaction_store.insert_if_absent("tx-1", "alice", "Corner Store", "2024-01-15", 12, 0, None)
    cases = [
        ("tx-1", {"category": "Groceries"}, ALICE, HTTP_400_BAD_REQUEST),
        ("tx-missing", {"category": "Business"}, ALICE, HTTP_404_NOT_FOUND),
        ("tx-1", {"category": "Business"}, BOB, HTTP_403_FORBIDDEN),
    ]
    for transaction_id, body, headers, expected in cases:
        response = api_client.put(f"/transactions/{transaction_id}/category", json=body, headers=headers)
        if response.status_code != expected:
            msg = f"Expected {expected} for {transaction_id}/{body}, got {response.status_code}"
            raise AssertionError(msg)
    if transaction_store.get("tx-1")["category"] is not None:
        msg = "Expected the category to be unchanged"
        raise AssertionError(msg)


def test_manual_transaction_is_normalized_and_deduplicated(
    api_client: TestClient, transaction_store: TransactionStore
) -> None:
    """A manual add stores a normalized, fingerprinted row; the same transaction again is a conflict."""
    body = {"merchant_name": "Corner Store", "transaction_date": "Jan 15, 2024", "amount_spent": "$12.345"}
    response = api_client.post("/transactions", json=body, headers=ALICE)
    if response.status_code != HTTP_200_OK:
        msg = f"Expected {HTTP_200_OK}, got {response.status_code}: {response.text}"
        raise AssertionError(msg)
    stored = response.json()["transaction"]
    if stored["transaction_date"] != "2024-01-15" or stored["amount_spent"] != "12.35":
        msg = f"Expected the date normalized and the amount rounded to cents, got {stored}"
        raise AssertionError(msg)
    if transaction_store.get(stored["id"])["owner"] != "alice":
        msg = "Expected the row stored for alice"
        raise AssertionError(msg)
    again = {**body, "transaction_date": "01/15/2024", "amount_spent": "12.35"}
    response = api_client.post("/transactions", json=again, headers=ALICE)
    if response.status_code != HTTP_409_CONFLICT:
        msg = f"Expected {HTTP_409_CONFLICT} for a duplicate, got {response.status_code}"
        raise AssertionError(msg)
    if api_client.post("/transactions", json=again, headers=BOB).status_code != HTTP_200_OK:
        msg = "Expected the same transaction to be accepted for another owner"
        raise AssertionError(msg)


def test_manual_transaction_rejections(api_client: TestClient, transaction_store: TransactionStore) -> None:
    """Unparseable dates and unknown categories are rejected without storing anything."""
    cases = [
        {"merchant_name": "Corner Store", "transaction_date": "02/30/2024", "amount_spent": "5"},
        {"merchant_name": "Corner Store", "transaction_date": "yesterday", "amount_spent": "5"},
        {"merchant_name": "Corner Store", "transaction_date": "2024-01-15", "amount_spent": "5", "category": "Food"},
    ]
    for body in cases:
        response = api_client.post("/transactions", json=body, headers=ALICE)
        if response.status_code != HTTP_400_BAD_REQUEST:
            msg = f"Expected {HTTP_400_BAD_REQUEST} for {body}, got {response.status_code}"
            raise AssertionError(msg)
    if transaction_store.list_for_owner("alice"):
        msg = "Expected no transactions stored"
        raise AssertionError(msg)


def test_delete_transaction_is_owner_checked(api_client: TestClient, transaction_store: TransactionStore) -> None:
    """Only the owner can delete a transaction; a deleted transaction is gone."""
    transaction_store.insert_if_absent("tx-1", "alice", "Corner Store", "2024-01-15", 12, 0, None)
    if api_client.delete("/transactions/tx-1", headers=BOB).status_code != HTTP_403_FORBIDDEN:
        msg = "Expected bob to be forbidden from deleting alice's transaction"
        raise AssertionError(msg)
    if transaction_store.get("tx-1") is None:
        msg = "Expected the transaction to survive a forbidden delete"
        raise AssertionError(msg)
    response = api_client.delete("/transactions/tx-1", headers=ALICE)
    if response.status_code != HTTP_200_OK or response.json() != {"success": True}:
        msg = f"Expected a successful delete, got {response.status_code}: {response.text}"
        raise AssertionError(msg)
    if transaction_store.get("tx-1") is not None:
        msg = "Expected the transaction to be deleted"
        raise AssertionError(msg)
    if api_client.delete("/transactions/tx-1", headers=ALICE).status_code != HTTP_404_NOT_FOUND:
        msg = "Expected a second delete to report the transaction missing"
        raise AssertionError(msg)
