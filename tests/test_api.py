import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.user import UserRole
from app.services import user_service

PASSWORD = "motdepasse123"

@pytest.fixture
def client():
    return TestClient(app)

def _register(client, email, pseudo=None):
    response = client.post("/api/v1/auth/register", json={
        "email": email, "password": PASSWORD, "pseudo": pseudo or email.split("@")[0],
    })
    assert response.status_code == 201, response.text
    return response.json()

def _headers(client, email):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}

@pytest.fixture
def published_ride(client):
    _register(client, "chauffeur@ecoride.fr")
    headers = _headers(client, "chauffeur@ecoride.fr")
    assert client.put("/api/v1/auth/me/roles", json={"roles": ["chauffeur", "passager"]}, headers=headers).status_code == 200

    response = client.post("/api/v1/vehicles", json={
        "plate": "AB-123-CD", "brand": "Tesla", "model": "Model 3", "color": "Blanc", "seats": 4, "is_electric": True,
    }, headers=headers)
    assert response.status_code == 201, response.text

    response = client.post("/api/v1/rides", json={
        "vehicle_plate": "AB-123-CD",
        "origin": "Paris",
        "destination": "Lyon",
        "departure_at": "2030-05-17T08:00:00",
        "arrival_at": "2030-05-17T12:00:00",
        "price": 10,
        "seats": 4,
    }, headers=headers)
    assert response.status_code == 201, response.text
    return response.json(), headers

def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

def test_register_and_balance(client):
    user = _register(client, "passager@ecoride.fr")
    assert user["roles"] == ["passager"]

    headers = _headers(client, "passager@ecoride.fr")
    assert client.get("/api/v1/auth/me", headers=headers).json()["email"] == "passager@ecoride.fr"
    assert client.get("/api/v1/credits/me", headers=headers).json()["balance"] == 20

def test_token_form_login(client):
    _register(client, "passager@ecoride.fr")
    response = client.post("/api/v1/auth/token", data={"username": "passager@ecoride.fr", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"

def test_authentication_required(client):
    assert client.get("/api/v1/credits/me").status_code == 401
    response = client.get("/api/v1/credits/me", headers={"Authorization": "Bearer pas-un-jwt"})
    assert response.status_code == 401

def test_wrong_password(client):
    _register(client, "passager@ecoride.fr")
    response = client.post("/api/v1/auth/login", json={"email": "passager@ecoride.fr", "password": "faux-mot-de-passe"})
    assert response.status_code == 403
    assert response.json()["code"] == "AuthorizationError"

def test_duplicate_registration(client):
    _register(client, "passager@ecoride.fr")
    response = client.post("/api/v1/auth/register", json={
        "email": "passager@ecoride.fr", "password": PASSWORD, "pseudo": "Doublon",
    })
    assert response.status_code == 409
    assert response.json()["code"] == "Conflict"

def test_booking_flow(client, published_ride):
    ride, driver_headers = published_ride
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")

    response = client.post(f"/api/v1/rides/{ride['id']}/booking", headers={**headers, "Idempotency-Key": "essai-1"})
    assert response.status_code == 201, response.text
    assert response.json()["amount_paid"] == 12
    assert response.json()["balance"] == 8

    response = client.post(f"/api/v1/rides/{ride['id']}/booking", headers=headers)
    assert response.status_code == 409

    detail = client.get(f"/api/v1/rides/{ride['id']}", headers=headers).json()
    assert detail["seats_taken"] == 1
    assert detail["driver_rating"] is None

    statement = client.get("/api/v1/credits/me/statement", headers=headers).json()
    assert statement["balance"] == 8
    assert [e["amount"] for e in statement["entries"]] == [-12, 20]

def test_insufficient_funds_response(client, published_ride, db):
    ride, _ = published_ride
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")
    admin = user_service.register_user(db, "admin@ecoride.fr", PASSWORD, "Admin", role=UserRole.ADMIN, roles=[])
    user_id = client.get("/api/v1/auth/me", headers=headers).json()["id"]
    admin_headers = _headers(client, admin.email)
    response = client.post(f"/api/v1/admin/users/{user_id}/credits", json={"amount": -15}, headers=admin_headers)
    assert response.json()["balance"] == 5

    response = client.post(f"/api/v1/rides/{ride['id']}/booking", headers=headers)

    assert response.status_code == 402
    body = response.json()
    assert body["code"] == "InsufficientFunds"
    assert body["required"] == 12
    assert body["available"] == 5

def test_settlement_flow(client, published_ride, db):
    ride, driver_headers = published_ride
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")
    user_service.register_user(db, "employe@ecoride.fr", PASSWORD, "Employe", role=UserRole.EMPLOYEE, roles=[])
    employee_headers = _headers(client, "employe@ecoride.fr")

    client.post(f"/api/v1/rides/{ride['id']}/booking", headers=headers)
    assert client.post(f"/api/v1/rides/{ride['id']}/start", headers=driver_headers).json()["status"] == "en_cours"
    validations = client.post(f"/api/v1/rides/{ride['id']}/finish", headers=driver_headers).json()
    assert len(validations) == 1
    validation_id = validations[0]["id"]

    response = client.post(f"/api/v1/validations/{validation_id}/dispute", json={"reason": "Retard"}, headers=headers)
    assert response.json()["status"] == "litige"

    # Un passager ne peut pas trancher
    response = client.post(f"/api/v1/disputes/{validation_id}/resolve", json={"outcome": "passager"}, headers=headers)
    assert response.status_code == 403

    assert [d["id"] for d in client.get("/api/v1/disputes", headers=employee_headers).json()] == [validation_id]
    response = client.post(f"/api/v1/disputes/{validation_id}/resolve", json={"outcome": "passager"}, headers=employee_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "remboursé"

    assert client.get("/api/v1/credits/me", headers=headers).json()["balance"] == 8 + 11
    pools = client.get("/api/v1/credits/pools", headers=employee_headers).json()
    assert pools["escrow"] == 0
    assert pools["platform"] == 2

def test_review_after_validation(client, published_ride):
    ride, driver_headers = published_ride
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")
    client.post(f"/api/v1/rides/{ride['id']}/booking", headers=headers)
    client.post(f"/api/v1/rides/{ride['id']}/start", headers=driver_headers)
    [validation] = client.post(f"/api/v1/rides/{ride['id']}/finish", headers=driver_headers).json()

    response = client.post(f"/api/v1/validations/{validation['id']}/confirm", json={"rating": 5, "comment": "Parfait"}, headers=headers)
    assert response.json()["status"] == "validé"

    reviews = client.get(f"/api/v1/reviews/drivers/{ride['driver_id']}", headers=headers).json()
    assert reviews["count"] == 1
    assert reviews["average_rating"] == 5.0
    assert client.get("/api/v1/credits/me", headers=driver_headers).json()["balance"] == 18 + 10

def test_unknown_ride_is_404(client):
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")
    response = client.get("/api/v1/rides/4242", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NotFound"

def test_staff_routes_are_protected(client):
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")
    assert client.get("/api/v1/admin/users", headers=headers).status_code == 403
    assert client.get("/api/v1/credits/pools", headers=headers).status_code == 403
    assert client.get("/api/v1/reviews", headers=headers).status_code == 403

def test_blocked_user_is_rejected(client, db):
    _register(client, "passager@ecoride.fr")
    headers = _headers(client, "passager@ecoride.fr")
    admin = user_service.register_user(db, "admin@ecoride.fr", PASSWORD, "Admin", role=UserRole.ADMIN, roles=[])
    user_id = client.get("/api/v1/auth/me", headers=headers).json()["id"]

    response = client.put(f"/api/v1/admin/users/{user_id}/status", json={"status": "bloqué"}, headers=_headers(client, admin.email))
    assert response.status_code == 200

    assert client.get("/api/v1/auth/me", headers=headers).status_code == 403
