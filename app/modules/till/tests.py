"""
Tests para el módulo de Caja (till)

Cubren:
- Arqueo en centavos (esperado, diferencia, exactitud)
- Conversión de montos en la frontera HTTP
- Ciclo de vida: apertura, cierre, cierre repetido
- Libro de movimientos: validaciones, orden, inmutabilidad
- Fallas transitorias: rollback completo y reintento limpio
- Concurrencia: aperturas simultáneas, cierre vs movimiento, cierres simultáneos
- API: escenario completo PHARM-1, códigos de error y permisos
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from app.common.money import MAX_MINOR_UNITS, from_minor_units, to_minor_units
from app.conftest import LOCATION, OTHER_LOCATION, access_headers, context_headers
from app.modules.auth.schemas import CallerContext
from app.modules.till.exceptions import (
    AlreadyClosedError, AlreadyOpenError, ImmutableRecordError, InvalidStateError,
    NotFoundError, TransientStoreError, ValidationError
)
from app.modules.till.facade import TillFacade
from app.modules.till.ledger import MovementLedger
from app.modules.till.models import CashMovement, CashSession, MovementKind, SessionStatus
from app.modules.till.reconciliation import ReconciliationEngine, ReconciliationResult
from app.modules.till.schemas import OpenSessionRequest
from app.modules.till.services import SessionManager
from app.modules.till.store import store_transaction
from sqlalchemy.exc import OperationalError


ACTOR = uuid4()


def _movement(kind, amount):
    return SimpleNamespace(id=uuid4(), kind=kind, amount=amount)


# ===== ARQUEO =====

class TestReconciliationEngine:
    """Cálculo puro del arqueo"""

    def test_expected_and_variance(self):
        session = SimpleNamespace(opening_float=10000)
        movements = [
            _movement(MovementKind.SALE_SETTLEMENT, 5000),
            _movement(MovementKind.DEPOSIT, 2000),
            _movement(MovementKind.WITHDRAWAL, 3000),
        ]

        result = ReconciliationEngine().compute(session, movements, 13500)

        assert result.expected_close_amount == 14000
        assert result.variance == -500
        assert result.sum_sales == 5000
        assert result.sum_deposits == 2000
        assert result.sum_withdrawals == 3000
        assert not result.is_balanced

    def test_minor_units_are_exact(self):
        session = SimpleNamespace(opening_float=0)
        movements = [_movement(MovementKind.SALE_SETTLEMENT, 1999), _movement(MovementKind.DEPOSIT, 1)]

        result = ReconciliationEngine().compute(session, movements, 2000)

        assert result.expected_close_amount == 2000
        assert result.variance == 0
        assert result.is_balanced

    def test_no_movements_expects_opening_float(self):
        result = ReconciliationEngine().compute(SimpleNamespace(opening_float=7550), [], 8000)
        assert result.expected_close_amount == 7550
        assert result.variance == 450

    def test_rejects_non_integer_amounts(self):
        engine = ReconciliationEngine()
        with pytest.raises(TypeError):
            engine.compute(SimpleNamespace(opening_float=100.0), [], 100)
        with pytest.raises(TypeError):
            engine.summarize([_movement(MovementKind.DEPOSIT, Decimal("1.50"))])
        with pytest.raises(TypeError):
            engine.compute(SimpleNamespace(opening_float=0), [], True)

    def test_rejects_non_positive_movement(self):
        with pytest.raises(ValueError):
            ReconciliationEngine().summarize([_movement(MovementKind.WITHDRAWAL, 0)])


class TestMoney:
    """Conversión decimal <-> centavos"""

    def test_to_minor_units(self):
        assert to_minor_units(Decimal("125.50")) == 12550
        assert to_minor_units("0.10") + to_minor_units("0.20") == 30
        assert to_minor_units(7) == 700

    def test_from_minor_units(self):
        assert from_minor_units(12550) == Decimal("125.50")
        assert str(from_minor_units(-50)) == "-0.50"
        assert from_minor_units(None) is None

    def test_rejects_float_and_extra_decimals(self):
        with pytest.raises(TypeError):
            to_minor_units(0.1)
        with pytest.raises(ValueError):
            to_minor_units(Decimal("10.005"))
        with pytest.raises(ValueError):
            to_minor_units("abc")

    def test_rejects_amounts_beyond_bigint(self):
        assert to_minor_units("92233720368547758.07") == MAX_MINOR_UNITS
        with pytest.raises(ValueError):
            to_minor_units("1e30")
        with pytest.raises(ValueError):
            to_minor_units("100000000000000000.00")
        with pytest.raises(ValueError):
            to_minor_units(Decimal("-92233720368547758.08"))


# ===== CICLO DE VIDA =====

class TestSessionLifecycle:
    """Apertura y cierre a nivel de servicio"""

    def test_open_and_status(self, db):
        manager = SessionManager(db)
        session = manager.open("pharm-1", ACTOR, 10000, notes="  turno   mañana ")

        assert session.status == SessionStatus.OPEN
        assert session.location_id == LOCATION
        assert session.opening_notes == "turno mañana"
        assert manager.status(LOCATION).id == session.id
        assert manager.status(OTHER_LOCATION) is None

    def test_second_open_is_rejected(self, db):
        manager = SessionManager(db)
        first = manager.open(LOCATION, ACTOR, 10000)

        with pytest.raises(AlreadyOpenError) as exc_info:
            manager.open(LOCATION, uuid4(), 5000)

        assert exc_info.value.open_session_id == first.id
        assert exc_info.value.code == "SESSION_ALREADY_OPEN"
        assert db.execute(select(func.count(CashSession.id))).scalar_one() == 1
        db.commit()

    def test_open_validation(self, db):
        manager = SessionManager(db)
        with pytest.raises(ValidationError):
            manager.open(LOCATION, ACTOR, -1)
        with pytest.raises(ValidationError):
            manager.open(LOCATION, ACTOR, 10.5)
        with pytest.raises(ValidationError):
            manager.open("bad location!", ACTOR, 100)
        with pytest.raises(ValidationError):
            manager.open(LOCATION, ACTOR, MAX_MINOR_UNITS + 1)

        assert manager.status(LOCATION) is None

    def test_facade_rejects_unrepresentable_amount(self, db):
        caller = CallerContext(actor_id=ACTOR, location_id=LOCATION, role="cashier")
        data = OpenSessionRequest.model_construct(opening_float=Decimal("1e30"), notes=None)

        with pytest.raises(ValidationError) as exc_info:
            TillFacade(db).open(caller, data)

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert SessionManager(db).status(LOCATION) is None

    def test_close_persists_reconciliation(self, db):
        manager = SessionManager(db)
        ledger = MovementLedger(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        ledger.record(session.id, MovementKind.SALE_SETTLEMENT, 5000, None, ACTOR, sale_reference="V-1")
        ledger.record(session.id, MovementKind.DEPOSIT, 2000, "troco", ACTOR)
        ledger.record(session.id, MovementKind.WITHDRAWAL, 3000, "sangria", ACTOR)

        result = manager.close(session.id, ACTOR, 13500, notes="faltou troco")

        assert result.expected_close_amount == 14000
        assert result.variance == -500
        assert result.status == SessionStatus.CLOSED
        assert ReconciliationResult.from_session(result).to_dict() == {
            "opening_float": 10000,
            "sum_sales": 5000,
            "sum_deposits": 2000,
            "sum_withdrawals": 3000,
            "expected_close_amount": 14000,
            "counted_close_amount": 13500,
            "variance": -500,
        }
        stored = manager.get(session.id)
        assert stored.status == SessionStatus.CLOSED
        assert stored.expected_close_amount == 14000
        assert stored.counted_close_amount == 13500
        assert stored.variance == -500
        assert stored.closed_by == ACTOR
        assert stored.closing_notes == "faltou troco"

    def test_retried_close_does_not_recompute(self, db):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        manager.close(session.id, ACTOR, 10000)

        with pytest.raises(AlreadyClosedError):
            manager.close(session.id, ACTOR, 99999)

        stored = manager.get(session.id)
        assert stored.counted_close_amount == 10000
        assert stored.variance == 0

    def test_reopen_after_close(self, db):
        manager = SessionManager(db)
        first = manager.open(LOCATION, ACTOR, 10000)
        manager.close(first.id, ACTOR, 10000)

        second = manager.open(LOCATION, ACTOR, 5000)

        assert second.id != first.id
        assert manager.status(LOCATION).id == second.id

    def test_close_validation_and_unknown_session(self, db):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)

        with pytest.raises(ValidationError):
            manager.close(session.id, ACTOR, -100)
        with pytest.raises(ValidationError):
            manager.close(session.id, ACTOR, None)
        with pytest.raises(ValidationError):
            manager.close(session.id, ACTOR, MAX_MINOR_UNITS + 1)
        with pytest.raises(NotFoundError):
            manager.close(uuid4(), ACTOR, 100)
        with pytest.raises(NotFoundError):
            manager.close(session.id, ACTOR, 100, location_id=OTHER_LOCATION)

        assert manager.status(LOCATION).id == session.id

    def test_summary_tracks_running_total(self, db):
        manager = SessionManager(db)
        ledger = MovementLedger(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        ledger.record(session.id, MovementKind.SALE_SETTLEMENT, 4550, None, ACTOR)
        ledger.record(session.id, MovementKind.WITHDRAWAL, 2000, "sangria teste", ACTOR)

        summary = manager.summary(session.id)

        assert summary.expected_amount == 12550
        assert summary.totals.movement_count == 2

    def test_history_filters_and_pagination(self, db):
        manager = SessionManager(db)
        for opening in (100, 200, 300):
            session = manager.open(LOCATION, ACTOR, opening)
            manager.close(session.id, ACTOR, opening)
        manager.open(LOCATION, ACTOR, 400)

        page = manager.history(LOCATION, limit=2)
        assert page["total"] == 4
        assert [s.opening_float for s in page["sessions"]] == [400, 300]

        closed = manager.history(LOCATION, status=SessionStatus.CLOSED)
        assert closed["total"] == 3

        with pytest.raises(ValidationError):
            manager.history(LOCATION, limit=0)


# ===== MOVIMIENTOS =====

class TestMovementLedger:

    def test_manual_movement_requires_description(self, db):
        session = SessionManager(db).open(LOCATION, ACTOR, 10000)
        ledger = MovementLedger(db)

        with pytest.raises(ValidationError):
            ledger.record(session.id, MovementKind.WITHDRAWAL, 100, "   ", ACTOR)
        with pytest.raises(ValidationError):
            ledger.record(session.id, MovementKind.DEPOSIT, 0, "troco", ACTOR)
        with pytest.raises(ValidationError):
            ledger.record(session.id, MovementKind.DEPOSIT, Decimal("1.00"), "troco", ACTOR)
        with pytest.raises(ValidationError):
            ledger.record(session.id, MovementKind.SALE_SETTLEMENT, MAX_MINOR_UNITS + 1, None, ACTOR)
        assert ledger.list_for_session(session.id) == []

        sale = ledger.record(session.id, MovementKind.SALE_SETTLEMENT, 100, None, ACTOR)
        assert sale.description is None

    def test_record_against_closed_session_is_rejected(self, db):
        manager = SessionManager(db)
        ledger = MovementLedger(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        manager.close(session.id, ACTOR, 10000)

        with pytest.raises(InvalidStateError):
            ledger.record(session.id, MovementKind.SALE_SETTLEMENT, 500, None, ACTOR)

        assert ledger.list_for_session(session.id) == []
        db.commit()

    def test_record_against_unknown_session(self, db):
        with pytest.raises(NotFoundError):
            MovementLedger(db).record(uuid4(), MovementKind.DEPOSIT, 100, "troco", ACTOR)

    def test_movements_are_ordered(self, db):
        session = SessionManager(db).open(LOCATION, ACTOR, 0)
        ledger = MovementLedger(db)
        for amount in (300, 100, 200, 50):
            ledger.record(session.id, MovementKind.SALE_SETTLEMENT, amount, None, ACTOR)

        movements = ledger.list_for_session(session.id)
        db.commit()

        assert [m.amount for m in movements] == [300, 100, 200, 50]
        stamps = [m.recorded_at for m in movements]
        assert stamps == sorted(stamps)

    def test_movements_and_closed_sessions_are_immutable(self, db):
        manager = SessionManager(db)
        ledger = MovementLedger(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        movement = ledger.record(session.id, MovementKind.DEPOSIT, 100, "troco", ACTOR)
        manager.close(session.id, ACTOR, 10100)

        movement.amount = 1
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

        closed = db.get(CashSession, session.id)
        closed.counted_close_amount = 1
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

        db.delete(db.get(CashSession, session.id))
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()


# ===== ERRORES DE ALMACENAMIENTO =====

class TestStoreTransaction:

    def test_operational_error_becomes_transient(self, db):
        with pytest.raises(TransientStoreError) as exc_info:
            with store_transaction(db, "open_session"):
                raise OperationalError("INSERT ...", {}, Exception("database is locked"))

        assert exc_info.value.retryable
        assert exc_info.value.details == {"operation": "open_session", "reason": "OperationalError"}

    def _fail_first_commit(self, monkeypatch, db, after_commit=False):
        """El primer commit falla; con after_commit la falla llega después de confirmar."""
        real_commit = db.commit
        calls = []

        def commit():
            calls.append(1)
            if len(calls) == 1:
                if after_commit:
                    real_commit()
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
            real_commit()

        monkeypatch.setattr(db, "commit", commit)

    def _stored(self, session_factory, session_id):
        other = session_factory()
        try:
            return other.get(CashSession, session_id)
        finally:
            other.close()

    def test_failed_open_leaves_nothing_and_retry_succeeds(self, db, session_factory, monkeypatch):
        manager = SessionManager(db)
        self._fail_first_commit(monkeypatch, db)

        with pytest.raises(TransientStoreError):
            manager.open(LOCATION, ACTOR, 10000)

        other = session_factory()
        assert other.execute(select(func.count(CashSession.id))).scalar_one() == 0
        other.close()

        session = manager.open(LOCATION, ACTOR, 10000)
        assert manager.status(LOCATION).id == session.id

    def test_retry_after_committed_open_reports_open_session(self, db, session_factory, monkeypatch):
        manager = SessionManager(db)
        self._fail_first_commit(monkeypatch, db, after_commit=True)

        with pytest.raises(TransientStoreError):
            manager.open(LOCATION, ACTOR, 10000)

        with pytest.raises(AlreadyOpenError) as exc_info:
            manager.open(LOCATION, ACTOR, 10000)

        other = session_factory()
        open_ids = list(other.execute(
            select(CashSession.id).where(CashSession.status == SessionStatus.OPEN)
        ).scalars())
        other.close()
        assert open_ids == [exc_info.value.open_session_id]

    def test_failed_close_keeps_session_open_and_retry_closes(self, db, session_factory, monkeypatch):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        manager.ledger.record(session.id, MovementKind.SALE_SETTLEMENT, 2500, None, ACTOR)
        self._fail_first_commit(monkeypatch, db)

        with pytest.raises(TransientStoreError):
            manager.close(session.id, ACTOR, 12500)

        stored = self._stored(session_factory, session.id)
        assert stored.status == SessionStatus.OPEN
        assert stored.closed_at is None
        assert stored.expected_close_amount is None

        closed = manager.close(session.id, ACTOR, 12500)
        assert closed.status == SessionStatus.CLOSED
        assert closed.expected_close_amount == 12500
        assert closed.variance == 0

    def test_retry_after_committed_close_is_rejected(self, db, session_factory, monkeypatch):
        manager = SessionManager(db)
        session = manager.open(LOCATION, ACTOR, 10000)
        self._fail_first_commit(monkeypatch, db, after_commit=True)

        with pytest.raises(TransientStoreError):
            manager.close(session.id, ACTOR, 9000)
        with pytest.raises(AlreadyClosedError):
            manager.close(session.id, ACTOR, 10000)

        stored = self._stored(session_factory, session.id)
        assert stored.status == SessionStatus.CLOSED
        assert stored.counted_close_amount == 9000
        assert stored.variance == -1000


# ===== CONCURRENCIA =====

class TestConcurrency:
    """Terminales reales en paralelo, cada una con su propia sesión de base"""

    def _run_parallel(self, session_factory, workers, task):
        barrier = threading.Barrier(workers)

        def run(index):
            db = session_factory()
            try:
                barrier.wait()
                return task(db, index)
            except Exception as exc:
                return exc
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(run, range(workers)))

    def test_only_one_concurrent_open_wins(self, session_factory):
        results = self._run_parallel(
            session_factory, 8,
            lambda db, i: SessionManager(db).open(LOCATION, uuid4(), 1000 * (i + 1)).id,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, AlreadyOpenError) for r in losers)

        db = session_factory()
        open_count = db.execute(
            select(func.count(CashSession.id)).where(CashSession.status == SessionStatus.OPEN)
        ).scalar_one()
        db.close()
        assert open_count == 1

    def test_concurrent_closes_compute_once(self, session_factory):
        db = session_factory()
        session_id = SessionManager(db).open(LOCATION, ACTOR, 10000).id
        db.close()

        results = self._run_parallel(
            session_factory, 5,
            lambda db, i: SessionManager(db).close(session_id, ACTOR, 10000 + i),
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert all(isinstance(r, AlreadyClosedError) for r in results if isinstance(r, Exception))

    def test_record_racing_close_is_counted_or_rejected(self, session_factory):
        for round_number in range(5):
            location_id = f"RACE-{round_number}"
            db = session_factory()
            session_id = SessionManager(db).open(location_id, ACTOR, 10000).id
            db.close()

            def task(db, index):
                if index == 0:
                    return MovementLedger(db).record(session_id, MovementKind.SALE_SETTLEMENT, 500, None, ACTOR)
                return SessionManager(db).close(session_id, ACTOR, 10500)

            movement_result, close_result = self._run_parallel(session_factory, 2, task)

            assert not isinstance(close_result, Exception)
            if isinstance(movement_result, Exception):
                assert isinstance(movement_result, InvalidStateError)
                assert close_result.sum_sales == 0
            else:
                assert close_result.sum_sales == 500

            db = session_factory()
            persisted = db.execute(
                select(func.coalesce(func.sum(CashMovement.amount), 0)).where(CashMovement.session_id == session_id)
            ).scalar_one()
            db.close()
            assert persisted == close_result.sum_sales


# ===== API =====

class TestTillAPI:
    """Endpoints /api/v1/till"""

    BASE = "/api/v1/till"

    def test_pharm1_end_to_end(self, client, cashier_headers):
        opened = client.post(f"{self.BASE}/sessions/open", json={"opening_float": "100.00"}, headers=cashier_headers)
        assert opened.status_code == 201
        session_id = opened.json()["session_id"]

        sale = client.post(
            f"{self.BASE}/sessions/{session_id}/sale-settlements",
            json={"amount": "45.50", "sale_reference": "VENDA-1"},
            headers=cashier_headers,
        )
        assert sale.status_code == 201
        withdrawal = client.post(
            f"{self.BASE}/sessions/{session_id}/movements",
            json={"kind": "WITHDRAWAL", "amount": "20.00", "description": "sangria teste"},
            headers=cashier_headers,
        )
        assert withdrawal.status_code == 201

        closed = client.post(
            f"{self.BASE}/sessions/{session_id}/close",
            json={"counted_close_amount": "125.00"},
            headers=cashier_headers,
        )
        assert closed.status_code == 200
        body = closed.json()
        assert Decimal(body["expected_close_amount"]) == Decimal("125.50")
        assert Decimal(body["variance"]) == Decimal("-0.50")
        assert body["status"] == "CLOSED"

        retry = client.post(
            f"{self.BASE}/sessions/{session_id}/close",
            json={"counted_close_amount": "125.50"},
            headers=cashier_headers,
        )
        assert retry.status_code == 409
        assert retry.json()["error"]["code"] == "SESSION_ALREADY_CLOSED"

        movements = client.get(f"{self.BASE}/sessions/{session_id}/movements", headers=cashier_headers).json()
        assert [m["kind"] for m in movements] == ["SALE_SETTLEMENT", "WITHDRAWAL"]

    def test_second_open_returns_conflict(self, client, operators, cashier_headers):
        first = client.post(f"{self.BASE}/sessions/open", json={"opening_float": "50.00"}, headers=cashier_headers)
        owner_headers = context_headers(operators["owner"], "owner")

        second = client.post(f"{self.BASE}/sessions/open", json={"opening_float": "80.00"}, headers=owner_headers)

        assert second.status_code == 409
        body = second.json()
        assert body["error_version"] == "1"
        assert body["error"]["code"] == "SESSION_ALREADY_OPEN"
        assert body["error"]["retryable"] is False
        assert body["error"]["details"]["open_session_id"] == first.json()["session_id"]

    def test_current_session_and_history(self, client, cashier_headers):
        empty = client.get(f"{self.BASE}/sessions/current", headers=cashier_headers)
        assert empty.status_code == 200
        assert empty.json()["session"] is None

        session_id = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "10.00"}, headers=cashier_headers
        ).json()["session_id"]
        current = client.get(f"{self.BASE}/sessions/current", headers=cashier_headers).json()
        assert current["session"]["id"] == session_id

        history = client.get(f"{self.BASE}/sessions", params={"status": "OPEN"}, headers=cashier_headers).json()
        assert history["total"] == 1
        assert history["sessions"][0]["opened_by_name"] == "Carla Caixa"

    def test_summary_reports_current_value(self, client, cashier_headers):
        session_id = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "100.00"}, headers=cashier_headers
        ).json()["session_id"]
        client.post(
            f"{self.BASE}/sessions/{session_id}/movements",
            json={"kind": "DEPOSIT", "amount": "0.10", "description": "troco"},
            headers=cashier_headers,
        )
        client.post(
            f"{self.BASE}/sessions/{session_id}/movements",
            json={"kind": "DEPOSIT", "amount": "0.20", "description": "troco"},
            headers=cashier_headers,
        )

        summary = client.get(f"{self.BASE}/sessions/{session_id}/summary", headers=cashier_headers).json()

        assert Decimal(summary["expected_amount"]) == Decimal("100.30")
        assert summary["movement_count"] == 2
        assert summary["currency"] == "BRL"

    def test_validation_errors(self, client, cashier_headers):
        too_precise = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "10.005"}, headers=cashier_headers
        )
        assert too_precise.status_code == 422
        assert too_precise.json()["error"]["code"] == "VALIDATION_ERROR"

        session_id = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "10.00"}, headers=cashier_headers
        ).json()["session_id"]
        sale_as_manual = client.post(
            f"{self.BASE}/sessions/{session_id}/movements",
            json={"kind": "SALE_SETTLEMENT", "amount": "1.00", "description": "x"},
            headers=cashier_headers,
        )
        assert sale_as_manual.status_code == 422

        negative_count = client.post(
            f"{self.BASE}/sessions/{session_id}/close",
            json={"counted_close_amount": "-1.00"},
            headers=cashier_headers,
        )
        assert negative_count.status_code == 422

    def test_oversized_amounts_are_rejected(self, client, cashier_headers):
        for amount in ("1e30", "100000000000000000.00"):
            response = client.post(
                f"{self.BASE}/sessions/open", json={"opening_float": amount}, headers=cashier_headers
            )
            assert response.status_code == 422
            assert response.json()["error"]["code"] == "VALIDATION_ERROR"

        session_id = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "10.00"}, headers=cashier_headers
        ).json()["session_id"]
        oversized_sale = client.post(
            f"{self.BASE}/sessions/{session_id}/sale-settlements",
            json={"amount": "1e30"},
            headers=cashier_headers,
        )
        oversized_count = client.post(
            f"{self.BASE}/sessions/{session_id}/close",
            json={"counted_close_amount": "100000000000000000.00"},
            headers=cashier_headers,
        )
        assert oversized_sale.status_code == 422
        assert oversized_count.status_code == 422

        current = client.get(f"{self.BASE}/sessions/current", headers=cashier_headers).json()
        assert current["session"]["id"] == session_id

    def test_session_of_other_location_is_not_found(self, client, operators, cashier_headers):
        session_id = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "10.00"}, headers=cashier_headers
        ).json()["session_id"]
        other_headers = context_headers(operators["other_cashier"], "cashier", OTHER_LOCATION)

        detail = client.get(f"{self.BASE}/sessions/{session_id}", headers=other_headers)
        close = client.post(
            f"{self.BASE}/sessions/{session_id}/close", json={"counted_close_amount": "10.00"}, headers=other_headers
        )

        assert detail.status_code == 404
        assert close.status_code == 404
        assert close.json()["error"]["code"] == "NOT_FOUND"

    def test_authentication_and_roles(self, client, operators):
        missing = client.get(f"{self.BASE}/sessions/current")
        assert missing.status_code == 401
        assert missing.json()["error"]["code"] == "UNAUTHORIZED"

        garbage = client.get(f"{self.BASE}/sessions/current", headers={"Authorization": "Bearer nope"})
        assert garbage.status_code == 401

        viewer = context_headers(operators["viewer"], "viewer")
        forbidden = client.post(f"{self.BASE}/sessions/open", json={"opening_float": "1.00"}, headers=viewer)
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["code"] == "FORBIDDEN"

        unknown_user = context_headers(uuid4(), "owner")
        assert client.get(f"{self.BASE}/sessions/current", headers=unknown_user).status_code == 401

    def test_access_token_with_location_header(self, client, operators):
        member = access_headers(operators["cashier"], "pharm-1")
        opened = client.post(f"{self.BASE}/sessions/open", json={"opening_float": "5.00"}, headers=member)
        assert opened.status_code == 201
        assert opened.json()["location_id"] == LOCATION

        not_member = access_headers(operators["cashier"], OTHER_LOCATION)
        assert client.get(f"{self.BASE}/sessions/current", headers=not_member).status_code == 403

    def test_audit_trail_requires_audit_role(self, client, operators, cashier_headers):
        session_id = client.post(
            f"{self.BASE}/sessions/open", json={"opening_float": "10.00"}, headers=cashier_headers
        ).json()["session_id"]

        denied = client.get(f"{self.BASE}/sessions/{session_id}/audit", headers=cashier_headers)
        assert denied.status_code == 403

        accountant = context_headers(operators["accountant"], "accountant")
        trail = client.get(f"{self.BASE}/sessions/{session_id}/audit", headers=accountant)
        assert trail.status_code == 200
        assert [entry["event_type"] for entry in trail.json()] == ["OPEN"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "not-a-uuid"})
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] != "not-a-uuid"
