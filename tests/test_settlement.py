"""Settlement engine tests."""

import pytest

from conftest import T0, at


def add_item(db, order_id, kind, total_minor, name="item"):
    from app.models.order import OrderItem

    db.add(OrderItem(order_id=order_id, kind=kind, name=name, qty=1,
                     unit_price_minor=total_minor, tax_minor=0, total_minor=total_minor))
    db.commit()


class TestTotals:
    def test_exact_total_succeeds(self, db, seed, gateway):
        from app.models.payment_attempt import PaymentAttempt
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90)
        result = settle_order(db, order.id, [Tender("cash", 50000), Tender("card", 25000)],
                              gateway=gateway, now=at(100))

        db.refresh(order)
        assert result.total_minor == 75000
        assert result.change_minor == 0
        assert order.status == "paid"
        assert order.closed_at is not None
        assert order.closed_by_user_id == "system"
        assert db.query(PaymentAttempt).count() == 2
        event = order.events[-1]
        assert event.kind == "payment.completed"
        assert sorted(event.payload["payment_ids"]) == sorted(result.payment_ids)

    def test_one_unit_short_fails_without_side_effects(self, db, seed, gateway):
        from app.core.exceptions import InsufficientPayment
        from app.models.payment_attempt import PaymentAttempt
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90)
        with pytest.raises(InsufficientPayment) as exc_info:
            settle_order(db, order.id, [Tender("cash", 74999)], gateway=gateway, now=at(100))

        assert exc_info.value.context["shortfall_minor"] == 1
        db.refresh(order)
        db.refresh(seats[0])
        assert order.status == "awaiting_payment"
        assert seats[0].status == "occupied"
        assert db.query(PaymentAttempt).count() == 0

    def test_total_is_recomputed_from_items(self, db, seed, gateway):
        from app.services import orders
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=60)
        orders.add_item(db, order.id, "fnb", "ラテ", 55000)
        result = settle_order(db, order.id, [Tender("cash", 110000)], gateway=gateway, now=at(70))
        assert result.total_minor == 105000
        assert result.change_minor == 5000

    def test_game_items_cost_nothing(self, db, seed, gateway):
        from app.services.settlement import Tender, settle_order

        order = seed.order()
        add_item(db, order.id, "fnb", 30000)
        add_item(db, order.id, "game", 99999)
        result = settle_order(db, order.id, [Tender("cash", 30000)], gateway=gateway, now=T0)
        assert result.total_minor == 30000

    def test_already_paid(self, db, seed, gateway):
        from app.core.exceptions import InvalidState
        from app.services.settlement import Tender, settle_order

        order = seed.order()
        settle_order(db, order.id, [], gateway=gateway, now=T0)
        with pytest.raises(InvalidState):
            settle_order(db, order.id, [], gateway=gateway, now=T0)

    def test_unknown_method(self, db, seed, gateway):
        from app.core.exceptions import InvalidState
        from app.services.settlement import Tender, settle_order

        order = seed.order()
        with pytest.raises(InvalidState):
            settle_order(db, order.id, [Tender("bitcoin", 100)], gateway=gateway, now=T0)


class TestPoints:
    def test_points_tender_without_customer(self, db, seed, gateway):
        from app.core.exceptions import CustomerRequired
        from app.models.points_transaction import PointsTransaction
        from app.services.settlement import Tender, settle_order

        order = seed.order()
        add_item(db, order.id, "fnb", 10000)
        with pytest.raises(CustomerRequired):
            settle_order(db, order.id, [Tender("points", 10000)], gateway=gateway, now=T0)
        assert db.query(PointsTransaction).count() == 0

    def test_insufficient_points(self, db, seed, gateway):
        from app.core.exceptions import InsufficientPoints
        from app.services.settlement import Tender, settle_order

        customer = seed.customer(points=50)
        order = seed.order(customer.id)
        add_item(db, order.id, "fnb", 10000)
        with pytest.raises(InsufficientPoints) as exc_info:
            settle_order(db, order.id, [Tender("points", 10000)], gateway=gateway, now=T0)
        assert exc_info.value.context["requested"] == 100
        db.refresh(customer)
        assert customer.points_balance == 50

    def test_points_must_be_whole(self, db, seed, gateway):
        from app.core.exceptions import InvalidState
        from app.services.settlement import Tender, settle_order

        customer = seed.customer(points=500)
        order = seed.order(customer.id)
        add_item(db, order.id, "fnb", 10050)
        with pytest.raises(InvalidState):
            settle_order(db, order.id, [Tender("points", 10050)], gateway=gateway, now=T0)

    def test_redeem_and_earn(self, db, seed, gateway):
        from app.services import points_service
        from app.services.settlement import Tender, settle_order

        customer = seed.customer(points=1000)
        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90, customer_id=customer.id)
        result = settle_order(db, order.id, [Tender("points", 20000), Tender("cash", 55000)],
                              gateway=gateway, now=at(100))

        assert result.points_redeemed == 200
        assert result.points_awarded == 11
        assert points_service.balance(db, customer.id) == 811

    def test_change_does_not_earn_points(self, db, seed, gateway):
        from app.services.settlement import Tender, settle_order

        customer = seed.customer(points=100)
        order = seed.order(customer.id)
        add_item(db, order.id, "fnb", 500000)
        result = settle_order(db, order.id, [Tender("points", 10000), Tender("cash", 500000)],
                              gateway=gateway, now=T0)
        # cash actually kept is 490000 after 10000 change
        assert result.change_minor == 10000
        assert result.points_awarded == 98

    def test_membership_items_do_not_earn(self, db, seed, gateway):
        from app.services.settlement import Tender, settle_order

        customer = seed.customer()
        order = seed.order(customer.id)
        add_item(db, order.id, "fnb", 100000)
        add_item(db, order.id, "membership", 500000)
        result = settle_order(db, order.id, [Tender("card", 600000)], gateway=gateway, now=T0)
        assert result.points_awarded == 20

    def test_member_earn_rate(self, db, seed, gateway):
        from app.services.settlement import Tender, settle_order

        customer = seed.customer()
        plan = seed.plan()
        seed.membership(customer.id, plan.id)
        order = seed.order(customer.id)
        add_item(db, order.id, "fnb", 500000)
        result = settle_order(db, order.id, [Tender("cash", 500000)], gateway=gateway, now=at(60))
        assert result.points_awarded == 125


class TestFloorRelease:
    def test_table_freed_only_when_all_seats_vacated(self, db, seed, gateway):
        from app.models.game import Game, TableGameSession
        from app.services import floor, seat_sessions
        from app.services.settlement import Tender, settle_order

        table, seats = seed.table(seats=2)
        game = seed.game()
        first = seed.order()
        second = seed.order()
        seat_sessions.start_session(db, seats[0].id, first.id, now=T0)
        seat_sessions.start_session(db, seats[1].id, second.id, now=T0)
        game_session = floor.assign_game(db, table.id, game.id, now=at(5))

        seat_sessions.stop_session(db, seats[0].id, now=at(60))
        settle_order(db, first.id, [Tender("cash", 50000)], gateway=gateway, now=at(61))
        db.refresh(table)
        db.refresh(seats[0])
        assert seats[0].status == "open"
        assert table.status == "seated"
        assert db.query(TableGameSession).filter(TableGameSession.id == game_session.id).one().ended_at is None

        seat_sessions.stop_session(db, seats[1].id, now=at(60))
        settle_order(db, second.id, [Tender("cash", 50000)], gateway=gateway, now=at(62))
        db.refresh(table)
        assert table.status == "available"
        ended = db.query(TableGameSession).filter(TableGameSession.id == game_session.id).one()
        assert ended.ended_at is not None
        assert db.query(Game).filter(Game.id == game.id).one().available is True

    def test_running_timer_is_ended_at_settlement(self, db, seed, gateway):
        from app.models.seat_session import SeatSession, SessionState
        from app.services import seat_sessions
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table(seats=1)
        order = seed.order()
        seat_sessions.start_session(db, seats[0].id, order.id, now=T0)
        settle_order(db, order.id, [Tender("cash", 0)], gateway=gateway, now=at(20))

        session = db.query(SeatSession).one()
        assert session.state == SessionState.CLOSED
        assert session.ended_at is not None
        db.refresh(seats[0])
        assert seats[0].status == "open"


class TestPaymentGroups:
    def test_primary_settles_whole_group(self, db, seed, gateway):
        from app.core.exceptions import InsufficientPayment
        from app.services import bill_merge
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table(seats=2)
        first = seed.stopped_order(seats[0], minutes=90)
        second = seed.stopped_order(seats[1], minutes=150)
        bill_merge.merge_bills(db, first.id, [second.id])

        with pytest.raises(InsufficientPayment):
            settle_order(db, first.id, [Tender("cash", 75000)], gateway=gateway, now=at(200))

        result = settle_order(db, first.id, [Tender("cash", 195000)], gateway=gateway, now=at(200))
        assert sorted(result.order_ids) == sorted([first.id, second.id])
        for order in (first, second):
            db.refresh(order)
            assert order.status == "paid"
        assert second.paid_by_order_id == first.id
        for seat in seats:
            db.refresh(seat)
            assert seat.status == "open"

    def test_secondary_cannot_settle_directly(self, db, seed, gateway):
        from app.core.exceptions import InvalidState
        from app.services import bill_merge
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table(seats=2)
        first = seed.stopped_order(seats[0], minutes=90)
        second = seed.stopped_order(seats[1], minutes=90)
        bill_merge.merge_bills(db, first.id, [second.id])
        with pytest.raises(InvalidState) as exc_info:
            settle_order(db, second.id, [Tender("cash", 75000)], gateway=gateway, now=at(100))
        assert exc_info.value.context["primary_order_id"] == first.id


class TestCardTenders:
    def test_declined_card_aborts(self, db, seed):
        from app.core.exceptions import TenderNotApproved
        from app.services.settlement import Tender, settle_order
        from app.services.tender_gateway import SandboxTerminalGateway

        gateway = SandboxTerminalGateway(declined_amounts=[75000])
        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90)
        with pytest.raises(TenderNotApproved) as exc_info:
            settle_order(db, order.id, [Tender("card", 75000)], gateway=gateway, now=at(100))
        assert exc_info.value.context["status"] == "declined"
        db.refresh(order)
        assert order.status == "awaiting_payment"

    def test_pending_card_can_be_retried(self, db, seed):
        from app.core.exceptions import TenderNotApproved
        from app.services.settlement import Tender, settle_order
        from app.services.tender_gateway import SandboxTerminalGateway

        gateway = SandboxTerminalGateway(delay_seconds=3600)
        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90)
        tenders = [Tender("card", 75000, reference="term-1")]
        with pytest.raises(TenderNotApproved):
            settle_order(db, order.id, tenders, gateway=gateway, now=at(100))
        assert gateway.status("term-1").status == "pending"

        gateway._checkouts["term-1"].ready_at = 0
        result = settle_order(db, order.id, tenders, gateway=gateway, now=at(101))
        assert result.total_minor == 75000

    def test_changed_amount_gets_a_new_default_reference(self, db, seed):
        from app.core.exceptions import TenderNotApproved
        from app.services import orders
        from app.services.settlement import Tender, settle_order
        from app.services.tender_gateway import SandboxTerminalGateway

        gateway = SandboxTerminalGateway(delay_seconds=3600)
        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90)
        with pytest.raises(TenderNotApproved):
            settle_order(db, order.id, [Tender("card", 75000)], gateway=gateway, now=at(100))

        orders.add_item(db, order.id, "fnb", "ラテ", 5000)
        with pytest.raises(TenderNotApproved) as exc_info:
            settle_order(db, order.id, [Tender("card", 80000)], gateway=gateway, now=at(101))
        assert exc_info.value.context["status"] == "pending"
        assert exc_info.value.context["reference"] != f"order-{order.id}-card-1-75000"

        gateway._checkouts[exc_info.value.context["reference"]].ready_at = 0
        result = settle_order(db, order.id, [Tender("card", 80000)], gateway=gateway, now=at(102))
        assert result.total_minor == 80000

    def test_authorize_is_idempotent_per_reference(self):
        from app.services.tender_gateway import SandboxTerminalGateway

        gateway = SandboxTerminalGateway()
        first = gateway.authorize(1000, "ref-1")
        again = gateway.authorize(1000, "ref-1")
        assert first.approved and again.approved
        assert first.checkout_id == again.checkout_id
        assert gateway.authorize(2000, "ref-1").status == "declined"
        assert gateway.status("missing").status == "unknown"


class TestAtomicity:
    def test_failure_inside_transaction_rolls_back_everything(self, db, seed, gateway, monkeypatch):
        from app.models.payment_attempt import PaymentAttempt
        from app.services import points_service
        from app.services.settlement import Tender, settle_order

        customer = seed.customer(points=500)
        _, seats = seed.table()
        order = seed.stopped_order(seats[0], minutes=90, customer_id=customer.id)

        def broken_award(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(points_service, "award", broken_award)
        with pytest.raises(RuntimeError):
            settle_order(db, order.id, [Tender("points", 20000), Tender("cash", 55000)],
                         gateway=gateway, now=at(100))

        db.refresh(order)
        db.refresh(seats[0])
        assert order.status == "awaiting_payment"
        assert seats[0].status == "occupied"
        assert points_service.balance(db, customer.id) == 500
        assert db.query(PaymentAttempt).count() == 0


class TestGameHistory:
    def _played(self, db, seed):
        from app.services import floor, seat_sessions

        table, seats = seed.table(seats=2)
        game = seed.game()
        alice = seed.customer("Alice")
        bob = seed.customer("Bob")
        order = seed.order(alice.id)
        other = seed.order(bob.id)
        seat_sessions.start_session(db, seats[0].id, order.id, now=T0)
        seat_sessions.start_session(db, seats[1].id, other.id, now=T0)
        floor.assign_game(db, table.id, game.id, now=at(10))
        seat_sessions.stop_session(db, seats[0].id, now=at(60))
        return order, other, alice

    def test_history_recorded_once(self, db, seed, gateway):
        from app.models.game import CustomerGameHistory
        from app.services.settlement import Tender, settle_order

        order, _, alice = self._played(db, seed)
        settle_order(db, order.id, [Tender("cash", 50000)], gateway=gateway, now=at(70))

        [history] = db.query(CustomerGameHistory).all()
        assert history.customer_id == alice.id
        assert history.order_id == order.id
        assert history.duration_minutes == 60

    def test_recording_is_idempotent(self, db, seed, gateway):
        from app.models.game import CustomerGameHistory
        from app.services import settlement
        from app.services.settlement import Tender, settle_order

        order, _, alice = self._played(db, seed)
        settle_order(db, order.id, [Tender("cash", 50000)], gateway=gateway, now=at(70))
        db.refresh(order)
        assert settlement._record_game_history(db, [order], alice.id, [], at(80)) == 0
        assert db.query(CustomerGameHistory).count() == 1

    def test_co_players_from_same_table_group(self, db, seed, gateway):
        from app.models.game import CustomerGameHistory
        from app.services import bill_merge, seat_sessions
        from app.services.settlement import Tender, settle_order

        order, other, alice = self._played(db, seed)
        seat_sessions.stop_session(db, other.seat_sessions[0].seat_id, now=at(60))
        bill_merge.merge_bills(db, order.id, [other.id])
        settle_order(db, order.id, [Tender("cash", 100000)], gateway=gateway, now=at(70))

        rows = db.query(CustomerGameHistory).order_by(CustomerGameHistory.order_id).all()
        assert [r.order_id for r in rows] == [order.id, other.id]
        assert all(r.customer_id == alice.id for r in rows)
        assert rows[0].co_player_names == ["Bob"]

    def test_history_failure_does_not_block_payment(self, db, seed, gateway, monkeypatch):
        from app.models.game import CustomerGameHistory
        from app.services import settlement
        from app.services.settlement import Tender, settle_order

        order, _, _ = self._played(db, seed)

        def broken(*args, **kwargs):
            raise RuntimeError("history store down")

        monkeypatch.setattr(settlement, "_record_game_history", broken)
        settle_order(db, order.id, [Tender("cash", 50000)], gateway=gateway, now=at(70))
        db.refresh(order)
        assert order.status == "paid"
        assert db.query(CustomerGameHistory).count() == 0


class TestRowLocks:
    def _capture_locked_order_reads(self, db):
        from sqlalchemy import event
        from sqlalchemy.dialects import postgresql

        locked = []

        @event.listens_for(db, "do_orm_execute")
        def capture(state):
            if not state.is_select or state.is_relationship_load:
                return
            sql = str(state.statement.compile(dialect=postgresql.dialect()))
            if "FROM orders" in sql and "FOR UPDATE" in sql:
                locked.append(sql)

        return locked

    def test_settlement_locks_group_orders(self, db, seed, gateway):
        from app.services import bill_merge
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table(seats=2)
        first = seed.stopped_order(seats[0], minutes=90)
        second = seed.stopped_order(seats[1], minutes=90)
        bill_merge.merge_bills(db, first.id, [second.id])

        locked = self._capture_locked_order_reads(db)
        settle_order(db, first.id, [Tender("cash", 150000)], gateway=gateway, now=at(100))
        assert any("orders.id = " in sql for sql in locked)
        assert any("orders.payment_group_id = " in sql for sql in locked)

    def test_merge_and_unmerge_lock_orders(self, db, seed):
        from app.services import bill_merge

        _, seats = seed.table(seats=2)
        first = seed.stopped_order(seats[0], minutes=90)
        second = seed.stopped_order(seats[1], minutes=90)

        locked = self._capture_locked_order_reads(db)
        result = bill_merge.merge_bills(db, first.id, [second.id])
        assert len(locked) == 1
        bill_merge.unmerge_bills(db, result.payment_group_id)
        assert len(locked) == 2

    def test_stale_session_rereads_order_before_settling(self, session_factory, seed, gateway):
        from app.core.exceptions import InvalidState
        from app.models.order import Order
        from app.services.settlement import Tender, settle_order

        _, seats = seed.table()
        order_id = seed.stopped_order(seats[0], minutes=90).id

        stale = session_factory(expire_on_commit=False)
        other = session_factory()
        try:
            assert stale.get(Order, order_id).status == "awaiting_payment"
            stale.commit()

            settle_order(other, order_id, [Tender("cash", 75000)], gateway=gateway, now=at(100))

            with pytest.raises(InvalidState):
                settle_order(stale, order_id, [Tender("cash", 75000)], gateway=gateway, now=at(101))
        finally:
            stale.close()
            other.close()
