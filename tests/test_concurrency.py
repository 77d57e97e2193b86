import threading
from datetime import datetime

from sqlalchemy import func
from sqlmodel import Session, select

from turnos.appointments import AppointmentService
from turnos.conflicts import ACTIVE_STATES
from turnos.db import build_engine, create_db_and_tables
from turnos.errors import RejectionReason, SchedulingError
from turnos.models import Appointment, User
from turnos.schemas import Actor, UserRole

NOW = datetime(2026, 11, 2, 8, 0)
SLOT = datetime(2026, 11, 3, 11, 0)


def _seed(engine, clients):
    with Session(engine) as session:
        barber = User(email="barber@example.com", name="Barber", password_hash="!", role="barber")
        people = [
            User(email=f"c{i}@example.com", name=f"C{i}", password_hash="!", role="client") for i in range(clients)
        ]
        session.add(barber)
        session.add_all(people)
        session.commit()
        return barber.id, [p.id for p in people]


def _race(engine, barber_id, client_ids, starts):
    barrier = threading.Barrier(len(client_ids))
    outcomes = []
    lock = threading.Lock()

    def attempt(client_id, start):
        barrier.wait(timeout=10)
        with Session(engine) as session:
            service = AppointmentService(session, clock=lambda: NOW)
            try:
                service.create_appointment(barber_id, start, Actor(id=client_id, role=UserRole.client))
                outcome = "ok"
            except SchedulingError as e:
                outcome = e.reason
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(c, s)) for c, s in zip(client_ids, starts)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def _active_count(engine, barber_id):
    with Session(engine) as session:
        return session.exec(
            select(func.count())
            .select_from(Appointment)
            .where(Appointment.barber_id == barber_id)
            .where(Appointment.state_id.in_(ACTIVE_STATES))
        ).one()


def test_only_one_of_many_concurrent_bookings_wins(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    create_db_and_tables(engine)
    barber_id, client_ids = _seed(engine, 5)

    outcomes = _race(engine, barber_id, client_ids, [SLOT] * 5)

    assert outcomes.count("ok") == 1
    assert sorted(o for o in outcomes if o != "ok") == [RejectionReason.SLOT_CONFLICT] * 4
    assert _active_count(engine, barber_id) == 1
    engine.dispose()


def test_concurrent_overlapping_starts_never_both_land(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'overlap.db'}")
    create_db_and_tables(engine)
    barber_id, client_ids = _seed(engine, 2)

    # 11:00 and 11:30 overlap but are not the same start
    outcomes = _race(engine, barber_id, client_ids, [SLOT, SLOT.replace(minute=30)])

    assert outcomes.count("ok") == 1
    assert _active_count(engine, barber_id) == 1
    engine.dispose()
