import os
import tempfile

# Configuration de test, à poser avant le premier import de app.core.config
_tmp_dir = tempfile.mkdtemp(prefix="ecoride-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'ecoride.db')}"
os.environ["CELERY_ALWAYS_EAGER"] = "true"
os.environ["SECRET_KEY"] = "test-secret"
for var in ("SUPABASE_URL", "SUPABASE_KEY", "EMAILJS_SERVICE_ID", "EMAILJS_TEMPLATE_ID", "EMAILJS_PUBLIC_KEY"):
    os.environ.pop(var, None)

from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel

from app.main import app  # noqa: F401  (enregistre tous les modèles)
from app.db.session import engine
from app.models.user import DRIVER, PASSENGER, UserRole
from app.schemas.ride import RideCreate, VehicleCreate
from app.services import ride_service, user_service
from app.services.ledger import LedgerService, ensure_pool_accounts

PASSWORD = "motdepasse123"

@pytest.fixture(autouse=True)
def reset_database():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        ensure_pool_accounts(session)
    yield

@pytest.fixture
def db():
    with Session(engine) as session:
        yield session

@pytest.fixture
def make_user(db):
    def factory(email, roles=None, role=UserRole.USER):
        if roles is None:
            roles = [PASSENGER]
        return user_service.register_user(db, email, PASSWORD, email.split("@")[0], role=role, roles=roles)
    return factory

@pytest.fixture
def driver(make_user):
    return make_user("chauffeur@ecoride.fr", roles=[DRIVER, PASSENGER])

@pytest.fixture
def passenger(make_user):
    return make_user("passager@ecoride.fr")

@pytest.fixture
def employee(make_user):
    return make_user("employe@ecoride.fr", roles=[], role=UserRole.EMPLOYEE)

@pytest.fixture
def admin(make_user):
    return make_user("admin@ecoride.fr", roles=[], role=UserRole.ADMIN)

@pytest.fixture
def vehicle(db, driver):
    return ride_service.register_vehicle(db, driver, VehicleCreate(
        plate="AB-123-CD", brand="Renault", model="Zoé", color="Bleu", seats=4, is_electric=True,
    ))

@pytest.fixture
def make_ride(db, driver, vehicle):
    def factory(price=10, seats=4):
        departure = datetime(2030, 5, 17, 8, 0)
        return ride_service.publish_ride(db, driver, RideCreate(
            vehicle_plate=vehicle.plate,
            origin="Paris",
            destination="Lyon",
            departure_at=departure,
            arrival_at=departure + timedelta(hours=4),
            price=price,
            seats=seats,
        ))
    return factory

@pytest.fixture
def ride(make_ride):
    return make_ride()

@pytest.fixture
def ledger(db):
    return LedgerService(db)
