import threading

import pytest
from sqlmodel import Session, func, select

from app.core.errors import AuthorizationError, Conflict, InsufficientFunds, NotFound, SeatUnavailable, ValidationError
from app.db.session import engine
from app.models.credit import LedgerTransaction
from app.models.ride import RidePassenger
from app.models.user import DRIVER, User
from app.schemas.ledger import ESCROW_POOL, PLATFORM_FEE_POOL, UserAccount
from app.services import booking_service, ride_service, user_service
from app.services.ledger import LedgerService

def _snapshot(ledger, *users):
    state = {
        "platform": ledger.balance(PLATFORM_FEE_POOL),
        "escrow": ledger.balance(ESCROW_POOL),
        "total": ledger.total_supply(),
    }
    for user in users:
        state[user.email] = ledger.balance(UserAccount(user_id=user.id))
    return state

def _transaction_count(db):
    return db.exec(select(func.count()).select_from(LedgerTransaction)).one()

def test_booking_scenario(db, ledger, passenger, ride):
    before = _snapshot(ledger, passenger)
    assert before[passenger.email] == 20

    result = booking_service.book_ride(db, passenger, ride.id)

    after = _snapshot(ledger, passenger)
    assert result["amount_paid"] == 12
    assert result["balance"] == 8
    assert after[passenger.email] == 8
    assert after["platform"] == before["platform"] + 2
    assert after["escrow"] == before["escrow"] + 10
    assert after["total"] == before["total"]

    db.refresh(ride)
    assert ride.seats_taken == 1
    assert ride_service.passenger_ids(db, ride.id) == [passenger.id]

def test_insufficient_funds_changes_nothing(db, ledger, admin, passenger, ride):
    user_service.adjust_credits(db, admin, passenger.id, -15)
    before = _snapshot(ledger, passenger)
    transactions = _transaction_count(db)

    with pytest.raises(InsufficientFunds) as exc:
        booking_service.book_ride(db, passenger, ride.id)

    assert exc.value.required == 12
    assert exc.value.available == 5
    assert _snapshot(ledger, passenger) == before
    assert _transaction_count(db) == transactions
    db.refresh(ride)
    assert ride.seats_taken == 0
    assert ride_service.passenger_ids(db, ride.id) == []

@pytest.mark.parametrize("failing_step", ["begin", "debit", "platform", "escrow"])
def test_booking_is_atomic(db, ledger, passenger, ride, monkeypatch, failing_step):
    before = _snapshot(ledger, passenger)
    transactions = _transaction_count(db)

    original_begin = LedgerService.begin
    original_debit = LedgerService.debit
    original_credit = LedgerService.credit

    def begin(self, *args, **kwargs):
        if failing_step == "begin":
            raise RuntimeError("panne simulée")
        return original_begin(self, *args, **kwargs)

    def debit(self, ref, amount):
        original_debit(self, ref, amount)
        if failing_step == "debit":
            raise RuntimeError("panne simulée")

    def credit(self, ref, amount):
        original_credit(self, ref, amount)
        if (failing_step == "platform" and ref == PLATFORM_FEE_POOL) or (failing_step == "escrow" and ref == ESCROW_POOL):
            raise RuntimeError("panne simulée")

    monkeypatch.setattr(LedgerService, "begin", begin)
    monkeypatch.setattr(LedgerService, "debit", debit)
    monkeypatch.setattr(LedgerService, "credit", credit)

    with pytest.raises(RuntimeError):
        booking_service.book_ride(db, passenger, ride.id)
    monkeypatch.undo()

    assert _snapshot(ledger, passenger) == before
    assert _transaction_count(db) == transactions
    db.refresh(ride)
    assert ride.seats_taken == 0
    assert ride_service.passenger_ids(db, ride.id) == []

def test_cannot_book_twice(db, passenger, ride):
    booking_service.book_ride(db, passenger, ride.id)
    with pytest.raises(Conflict):
        booking_service.book_ride(db, passenger, ride.id)

def test_driver_cannot_book_own_ride(db, driver, ride):
    with pytest.raises(ValidationError):
        booking_service.book_ride(db, driver, ride.id)

def test_passenger_role_required(db, make_user, ride):
    driver_only = make_user("conducteur@ecoride.fr", roles=[DRIVER])
    with pytest.raises(AuthorizationError):
        booking_service.book_ride(db, driver_only, ride.id)

def test_idempotency_key_is_scoped_to_the_passenger(db, ledger, make_user, ride):
    first = make_user("premier@ecoride.fr")
    second = make_user("second@ecoride.fr")

    booking_service.book_ride(db, first, ride.id, idempotency_key="cle-client-1")
    booking_service.book_ride(db, second, ride.id, idempotency_key="cle-client-1")

    assert ledger.balance(UserAccount(user_id=first.id)) == 8
    assert ledger.balance(UserAccount(user_id=second.id)) == 8
    db.refresh(ride)
    assert ride.seats_taken == 2

def test_replayed_idempotency_key_is_rejected(db, ledger, passenger, ride):
    booking_service.book_ride(db, passenger, ride.id, idempotency_key="cle-client-1")
    booking_service.cancel_booking(db, passenger, ride.id)

    with pytest.raises(Conflict):
        booking_service.book_ride(db, passenger, ride.id, idempotency_key="cle-client-1")

    assert ledger.balance(UserAccount(user_id=passenger.id)) == 20
    db.refresh(ride)
    assert ride.seats_taken == 0

def test_last_seat_with_stale_read(db, ledger, make_user, make_ride):
    ride = make_ride(seats=1)
    first = make_user("premier@ecoride.fr")
    second = make_user("second@ecoride.fr")

    # Cette session garde une vue où la place est encore libre
    stale = ride_service.get_ride(db, ride.id)
    assert stale.free_seats == 1

    with Session(engine) as other:
        booking_service.book_ride(other, first, ride.id)

    with pytest.raises(SeatUnavailable):
        booking_service.book_ride(db, second, ride.id)

    db.refresh(ride)
    assert ride.seats_taken == 1
    assert ledger.balance(UserAccount(user_id=second.id)) == 20
    assert ride_service.passenger_ids(db, ride.id) == [first.id]

def test_concurrent_bookings_of_last_seat(db, ledger, make_user, make_ride):
    ride = make_ride(seats=1)
    ride_id = ride.id
    passenger_ids = [make_user(f"passager{i}@ecoride.fr").id for i in range(4)]
    supply = ledger.total_supply()
    barrier = threading.Barrier(len(passenger_ids))
    results = []
    lock = threading.Lock()

    def attempt(user_id):
        # Une session par thread, comme une requête HTTP
        with Session(engine) as session:
            user = session.get(User, user_id)
            barrier.wait()
            try:
                booking_service.book_ride(session, user, ride_id)
                outcome = "ok"
            except Conflict as e:
                outcome = e
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(user_id,)) for user_id in passenger_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == len(passenger_ids)
    assert results.count("ok") == 1
    assert all(isinstance(r, Conflict) for r in results if r != "ok")

    db.refresh(ride)
    assert ride.seats_taken == 1
    assert len(ride_service.passenger_ids(db, ride.id)) == 1
    assert ledger.balance(ESCROW_POOL) == ride.price
    assert ledger.total_supply() == supply

def test_cancel_booking_refunds_price_and_fee(db, ledger, passenger, ride):
    before = _snapshot(ledger, passenger)
    booking_service.book_ride(db, passenger, ride.id)

    result = booking_service.cancel_booking(db, passenger, ride.id)

    assert result["refund"] == 12
    assert _snapshot(ledger, passenger) == before
    db.refresh(ride)
    assert ride.seats_taken == 0
    assert db.exec(select(RidePassenger)).all() == []

def test_cancel_booking_requires_a_booking(db, passenger, ride):
    with pytest.raises(NotFound):
        booking_service.cancel_booking(db, passenger, ride.id)

def test_rebook_then_cancel_again(db, ledger, passenger, ride):
    supply = ledger.total_supply()
    for _ in range(2):
        booking_service.book_ride(db, passenger, ride.id)
        result = booking_service.cancel_booking(db, passenger, ride.id)
        assert result["balance"] == 20

    assert ledger.total_supply() == supply
    assert ledger.balance(ESCROW_POOL) == 0
    db.refresh(ride)
    assert ride.seats_taken == 0
    assert ride_service.passenger_ids(db, ride.id) == []
