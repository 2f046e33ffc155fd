from datetime import timedelta
import uuid

import pytest
from fastapi.testclient import TestClient

from loanledger.core.security import create_actor_token
from loanledger.db.base import get_db
from loanledger.main import app


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(role, actor_id=None):
    token = create_actor_token(actor_id or uuid.uuid4(), role)
    return {"Authorization": f"Bearer {token}"}


ADMIN = auth("admin")


@pytest.fixture
def profiles(client):
    lender = client.post("/api/admin/lenders", headers=ADMIN, json={
        "name": "Asha Lender",
        "phone_number": "9000000001",
        "upi_id": "asha@upi",
        "upi_qr_code_url": "https://files.example.com/qr/asha.png",
    })
    borrower = client.post("/api/admin/borrowers", headers=ADMIN, json={
        "name": "Ravi Borrower",
        "phone_number": "9000000002",
        "address": "12 Market Road",
    })
    assert lender.status_code == 201
    assert borrower.status_code == 201
    return lender.json(), borrower.json()


@pytest.fixture
def loan(client, profiles):
    lender, borrower = profiles
    response = client.post("/api/loans", headers=ADMIN, json={
        "borrower_id": borrower["id"],
        "lender_id": lender["id"],
        "principal_amount": "3000",
        "total_days": 30,
        "emi_per_day": "100",
        "start_date": "2024-01-01",
    })
    assert response.status_code == 201
    return response.json()


def test_root_and_health(client):
    assert client.get("/").status_code == 200
    health = client.get("/api/health").json()
    assert health["services"]["api"] == "ok"


def test_requires_bearer_token(client):
    assert client.get("/api/loans").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get("/api/loans", headers=bad).status_code == 401


def test_wrong_role_is_forbidden(client):
    assert client.get("/api/loans", headers=auth("borrower")).status_code == 403


def test_expired_token_is_rejected(client):
    token = create_actor_token(uuid.uuid4(), "admin", expires_delta=timedelta(minutes=-1))
    response = client.get("/api/loans", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_create_and_fetch_loan(client, loan):
    assert loan["loan_id"].startswith("LN-")
    assert loan["end_date"] == "2024-01-31"
    assert loan["status"] == "active"

    details = client.get(f"/api/loans/{loan['loan_id']}", headers=ADMIN)
    assert details.status_code == 200
    assert details.json()["payment_summary"]["total_payments"] == 0

    listing = client.get("/api/loans", headers=ADMIN, params={"status": "active"}).json()
    assert listing["total"] == 1

    stats = client.get("/api/loans/stats", headers=ADMIN).json()
    assert stats["active_loans"] == 1


def test_second_loan_conflicts(client, profiles, loan):
    lender, borrower = profiles
    response = client.post("/api/loans", headers=ADMIN, json={
        "borrower_id": borrower["id"],
        "lender_id": lender["id"],
        "principal_amount": "1000",
        "total_days": 10,
        "emi_per_day": "100",
        "start_date": "2024-02-01",
    })
    assert response.status_code == 409


def test_unknown_loan_is_404(client):
    assert client.get("/api/loans/LN-19990101-001", headers=ADMIN).status_code == 404


def test_invalid_status_is_409(client, loan):
    response = client.put(f"/api/loans/{loan['loan_id']}/status", headers=ADMIN, json={"status": "paused"})
    assert response.status_code == 409


def test_payment_flow(client, profiles, loan):
    lender, borrower = profiles
    borrower_auth = auth("borrower", borrower["id"])

    mismatch = client.post("/api/borrower/payments", headers=borrower_auth, json={
        "amount": "250", "for_days": 3, "screenshot_url": "https://files.example.com/p.png",
    })
    assert mismatch.status_code == 400

    submitted = client.post("/api/borrower/payments", headers=borrower_auth, json={
        "amount": "300", "for_days": 3, "screenshot_url": "https://files.example.com/p.png",
        "utr_number": "UTR123",
    })
    assert submitted.status_code == 201
    payment_id = submitted.json()["id"]

    pending = client.get("/api/admin/payments/pending", headers=ADMIN).json()
    assert pending["total"] == 1

    approved = client.put(f"/api/admin/payments/{payment_id}/approve", headers=ADMIN)
    assert approved.status_code == 200
    body = approved.json()
    assert body["payment"]["status"] == "approved"
    assert float(body["loan"]["remaining_balance"]) == 2700
    assert body["loan"]["next_due_date"] == "2024-01-04"

    again = client.put(f"/api/admin/payments/{payment_id}/approve", headers=ADMIN)
    assert again.status_code == 409

    my_loan = client.get("/api/borrower/loan", headers=borrower_auth).json()
    assert float(my_loan["payment_summary"]["total_paid"]) == 300

    history = client.get("/api/borrower/payments", headers=borrower_auth).json()
    assert history["total"] == 1

    dashboard = client.get("/api/lender/dashboard", headers=auth("lender", lender["id"])).json()
    assert float(dashboard["total_earnings"]) == 300
    assert float(dashboard["recoverable_amount"]) == 2700


def test_reject_payment(client, profiles, loan):
    _, borrower = profiles
    submitted = client.post("/api/borrower/payments", headers=auth("borrower", borrower["id"]), json={
        "amount": "100", "for_days": 1, "screenshot_url": "https://files.example.com/p.png",
    }).json()

    rejected = client.put(
        f"/api/admin/payments/{submitted['id']}/reject", headers=ADMIN,
        json={"rejection_reason": "Blurry screenshot"}
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    listed = client.get("/api/admin/payments", headers=ADMIN, params={"status": "rejected"}).json()
    assert listed["total"] == 1


def test_delete_loan_and_profiles(client, profiles, loan):
    lender, borrower = profiles
    blocked = client.delete(f"/api/admin/borrowers/{borrower['id']}", headers=ADMIN)
    assert blocked.status_code == 409

    assert client.delete(f"/api/loans/{loan['loan_id']}", headers=ADMIN).status_code == 200
    assert client.delete(f"/api/admin/borrowers/{borrower['id']}", headers=ADMIN).status_code == 200
    assert client.delete(f"/api/admin/lenders/{lender['id']}", headers=ADMIN).status_code == 200


def test_manual_overdue_sweep(client, loan):
    response = client.post("/api/admin/maintenance/update-overdue-loans", headers=ADMIN)
    assert response.status_code == 200
    body = response.json()
    # The loan started in 2024, so it is long overdue by now
    assert body["loans_examined"] == 1
    assert body["loans_defaulted"] == [loan["loan_id"]]


def test_scheduler_status_when_disabled(client):
    status = client.get("/api/admin/scheduler/status", headers=ADMIN).json()
    assert status["running"] is False
    response = client.put("/api/admin/scheduler/interval", headers=ADMIN, json={"interval_minutes": 60})
    assert response.status_code == 409


def test_money_fields_limited_to_cents(client, profiles, loan):
    lender, borrower = profiles
    response = client.post("/api/loans", headers=ADMIN, json={
        "borrower_id": borrower["id"],
        "lender_id": lender["id"],
        "principal_amount": "1000.005",
        "total_days": 10,
        "emi_per_day": "100",
        "start_date": "2024-02-01",
    })
    assert response.status_code == 422

    payment = client.post("/api/borrower/payments", headers=auth("borrower", borrower["id"]), json={
        "amount": "100.001", "for_days": 1, "screenshot_url": "https://files.example.com/p.png",
    })
    assert payment.status_code == 422


def test_overdrawing_approval_leaves_payment_pending(client, profiles, loan):
    _, borrower = profiles
    borrower_auth = auth("borrower", borrower["id"])
    big = client.post("/api/borrower/payments", headers=borrower_auth, json={
        "amount": "2500", "for_days": 25, "screenshot_url": "https://files.example.com/a.png",
    }).json()
    other = client.post("/api/borrower/payments", headers=borrower_auth, json={
        "amount": "1000", "for_days": 10, "screenshot_url": "https://files.example.com/b.png",
    }).json()

    assert client.put(f"/api/admin/payments/{big['id']}/approve", headers=ADMIN).status_code == 200
    refused = client.put(f"/api/admin/payments/{other['id']}/approve", headers=ADMIN)
    assert refused.status_code == 400

    pending = client.get("/api/admin/payments/pending", headers=ADMIN).json()
    assert [p["id"] for p in pending["payments"]] == [other["id"]]

    rejected = client.put(
        f"/api/admin/payments/{other['id']}/reject", headers=ADMIN,
        json={"rejection_reason": "Exceeds the remaining balance"}
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"


def test_borrower_sees_lender_qr_code(client, profiles, loan):
    _, borrower = profiles
    response = client.get("/api/borrower/lender-qr-code", headers=auth("borrower", borrower["id"]))
    assert response.status_code == 200
    body = response.json()
    assert body["lender_name"] == "Asha Lender"
    assert body["upi_id"] == "asha@upi"
    assert body["qr_code_url"] == "https://files.example.com/qr/asha.png"
    assert float(body["emi_per_day"]) == 100

    nobody = client.get("/api/borrower/lender-qr-code", headers=auth("borrower"))
    assert nobody.status_code == 404


def test_lender_profile_and_loan_payments(client, profiles, loan):
    lender, borrower = profiles
    lender_auth = auth("lender", lender["id"])
    client.post("/api/borrower/payments", headers=auth("borrower", borrower["id"]), json={
        "amount": "100", "for_days": 1, "screenshot_url": "https://files.example.com/p.png",
    })

    profile = client.get("/api/lender/profile", headers=lender_auth)
    assert profile.status_code == 200
    assert profile.json()["upi_id"] == "asha@upi"

    payments = client.get(f"/api/lender/loans/{loan['loan_id']}/payments", headers=lender_auth)
    assert payments.status_code == 200
    assert payments.json()["total"] == 1

    stranger = client.get(f"/api/lender/loans/{loan['loan_id']}/payments", headers=auth("lender"))
    assert stranger.status_code == 404
    assert client.get("/api/lender/profile", headers=auth("lender")).status_code == 404


def test_admin_lists_and_inspects_profiles(client, profiles, loan):
    lender, borrower = profiles
    lenders = client.get("/api/admin/lenders", headers=ADMIN).json()
    assert lenders["total"] == 1
    assert lenders["lenders"][0]["id"] == lender["id"]

    found = client.get("/api/admin/borrowers", headers=ADMIN, params={"search": "ravi"}).json()
    assert [b["id"] for b in found["borrowers"]] == [borrower["id"]]

    details = client.get(f"/api/admin/borrowers/{borrower['id']}", headers=ADMIN)
    assert details.status_code == 200
    assert [l["loan_id"] for l in details.json()["loans"]] == [loan["loan_id"]]

    lender_details = client.get(f"/api/admin/lenders/{lender['id']}", headers=ADMIN).json()
    assert lender_details["profile"]["name"] == "Asha Lender"

    missing = client.get(f"/api/admin/lenders/{uuid.uuid4()}", headers=ADMIN)
    assert missing.status_code == 404
