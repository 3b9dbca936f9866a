"""HTTP layer: routing, error bodies, actor headers and operation logs."""

import base64
import time


def create_floor(client, name="T-1", seats=2):
    response = client.post("/api/tables", json={"name": name, "seat_count": seats})
    assert response.status_code == 200
    return response.json()


class TestCheckoutFlow:
    def test_seat_to_settlement(self, client):
        table = create_floor(client)
        seat_id = table["seats"][0]["id"]
        customer = client.post("/api/customers", json={"display_name": "Alice", "phone": "090-1111"}).json()
        order = client.post("/api/orders", json={"customer_id": customer["id"]}).json()

        started = client.post(f"/api/seats/{seat_id}/start", json={"order_id": order["id"]})
        assert started.status_code == 200
        assert started.json()["state"] == "running"

        floor = client.get("/api/tables/floor").json()
        assert floor[0]["status"] == "seated"
        assert floor[0]["seats"][0]["session_id"] == started.json()["id"]

        estimate = client.get(f"/api/seats/{seat_id}/estimate").json()
        assert estimate["minutes"] == 0
        assert estimate["total_minor"] == 0

        stopped = client.post(f"/api/seats/{seat_id}/stop")
        assert stopped.json()["state"] == "stopped"

        with_item = client.post(f"/api/orders/{order['id']}/items",
                                json={"kind": "fnb", "name": "ラテ", "unit_price_minor": 55000})
        assert with_item.status_code == 200
        assert with_item.json()["total_minor"] == 55000
        assert with_item.json()["items"][0]["tax_minor"] == 5000

        settled = client.post(f"/api/orders/{order['id']}/settle",
                              json={"tenders": [{"method": "cash", "amount_minor": 60000}]})
        assert settled.status_code == 200
        body = settled.json()
        assert body["change_minor"] == 5000
        assert body["points_awarded"] == 11

        floor = client.get("/api/tables/floor").json()
        assert floor[0]["status"] == "available"
        assert floor[0]["seats"][0]["session_id"] is None
        assert client.get(f"/api/customers/{customer['id']}").json()["points_balance"] == 11

        logs = client.get("/api/operation-logs").json()
        actions = [log["action"] for log in logs]
        assert "结账" in actions
        assert "停表" in actions
        assert all(log["method"] != "GET" for log in logs)

        order_logs = client.get("/api/operation-logs", params={"order_id": order["id"]}).json()
        assert {log["action"] for log in order_logs} == {"订单明细", "结账"}
        seat_logs = client.get("/api/operation-logs", params={"seat_id": seat_id}).json()
        assert [log["action"] for log in seat_logs] == ["停表", "开台计时"]

    def test_events_record_actor_from_headers(self, client):
        order = client.post("/api/orders", json={}, headers={
            "X-User-Id": "u-7",
            "X-Username": base64.b64encode("%E5%BC%A0%E4%B8%89".encode()).decode(),
            "X-Username-Encoded": "base64",
        }).json()

        [event] = client.get(f"/api/orders/{order['id']}/events").json()
        assert event["kind"] == "order.created"
        assert event["actor_id"] == "u-7"
        assert event["actor_name"] == "张三"

        [log] = client.get("/api/operation-logs").json()
        assert log["username"] == "张三"
        assert log["module"] == "订单"


class TestOrders:
    def test_items_customer_and_cancel(self, client):
        customer = client.post("/api/customers", json={"display_name": "Bob"}).json()
        order = client.post("/api/orders", json={}).json()

        updated = client.put(f"/api/orders/{order['id']}/customer", json={"customer_id": customer["id"]})
        assert updated.json()["customer_id"] == customer["id"]

        added = client.post(f"/api/orders/{order['id']}/items",
                            json={"kind": "rental_deposit", "name": "保証金", "unit_price_minor": 100000}).json()
        item_id = added["items"][0]["id"]
        assert added["total_minor"] == 100000

        bad_kind = client.post(f"/api/orders/{order['id']}/items",
                               json={"kind": "seat_time", "name": "x", "unit_price_minor": 1})
        assert bad_kind.status_code == 400

        removed = client.delete(f"/api/orders/{order['id']}/items/{item_id}")
        assert removed.json()["items"] == []
        assert removed.json()["total_minor"] == 0

        canceled = client.post(f"/api/orders/{order['id']}/cancel")
        assert canceled.json()["status"] == "canceled"
        kinds = [e["kind"] for e in client.get(f"/api/orders/{order['id']}/events").json()]
        assert kinds == ["order.created", "order.customer.changed", "order.item.added",
                         "order.item.removed", "order.canceled"]

    def test_cannot_cancel_seated_order(self, client):
        seat_id = create_floor(client)["seats"][0]["id"]
        order = client.post("/api/orders", json={}).json()
        client.post(f"/api/seats/{seat_id}/start", json={"order_id": order["id"]})

        response = client.post(f"/api/orders/{order['id']}/cancel")
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_state"


class TestErrorBodies:
    def test_conflict_names_existing_session(self, client):
        seat_id = create_floor(client)["seats"][0]["id"]
        first = client.post("/api/orders", json={}).json()
        second = client.post("/api/orders", json={}).json()
        session = client.post(f"/api/seats/{seat_id}/start", json={"order_id": first["id"]}).json()

        response = client.post(f"/api/seats/{seat_id}/start", json={"order_id": second["id"]})
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"
        assert response.json()["session_id"] == session["id"]

    def test_short_payment_reports_shortfall(self, client):
        order = client.post("/api/orders", json={}).json()
        client.post(f"/api/orders/{order['id']}/items",
                    json={"kind": "retail", "name": "ダイス", "unit_price_minor": 1000, "qty": 3})

        response = client.post(f"/api/orders/{order['id']}/settle",
                               json={"tenders": [{"method": "cash", "amount_minor": 2500}]})
        assert response.status_code == 402
        assert response.json()["code"] == "insufficient_payment"
        assert response.json()["shortfall_minor"] == 500
        assert client.get(f"/api/orders/{order['id']}").json()["status"] == "open"

    def test_missing_seat(self, client):
        response = client.post("/api/seats/999/stop")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_card_status_endpoint(self, client, gateway):
        gateway.authorize(1000, "term-9")
        body = client.get("/api/payments/tenders/term-9").json()
        assert body["status"] == "approved"
        assert client.get("/api/payments/tenders/nope").json()["status"] == "unknown"


class TestBills:
    def test_merge_and_settle_group(self, client):
        table = create_floor(client)
        orders = []
        for seat in table["seats"]:
            order = client.post("/api/orders", json={}).json()
            client.post(f"/api/seats/{seat['id']}/start", json={"order_id": order["id"]})
            client.post(f"/api/seats/{seat['id']}/stop")
            client.post(f"/api/orders/{order['id']}/items",
                        json={"kind": "fnb", "name": "紅茶", "unit_price_minor": 40000})
            orders.append(order["id"])

        merged = client.post("/api/bills/merge",
                             json={"primary_order_id": orders[0], "order_ids": orders[1:]})
        assert merged.status_code == 200
        group_id = merged.json()["payment_group_id"]
        assert merged.json()["combined_total_minor"] == 80000

        group = client.get(f"/api/bills/groups/{group_id}").json()
        assert group["primary_order_id"] == orders[0]
        assert [o["id"] for o in group["orders"]] == orders

        secondary = client.post(f"/api/orders/{orders[1]}/settle",
                                json={"tenders": [{"method": "cash", "amount_minor": 40000}]})
        assert secondary.status_code == 400
        assert secondary.json()["primary_order_id"] == orders[0]

        settled = client.post(f"/api/orders/{orders[0]}/settle",
                              json={"tenders": [{"method": "card", "amount_minor": 80000}]})
        assert settled.status_code == 200
        assert sorted(settled.json()["order_ids"]) == sorted(orders)
        assert client.get("/api/tables/floor").json()[0]["status"] == "available"


class TestSystemConfigs:
    def test_defaults_are_listed(self, client):
        configs = {c["key"]: c for c in client.get("/api/system-configs").json()}
        assert configs["points_regular_earn_rate"]["value"] == "50"
        assert configs["points_regular_earn_rate"]["is_default"] is True

    def test_update_records_editor(self, client):
        response = client.put("/api/system-configs/tax_rate_percent", json={"value": "8"},
                              headers={"X-Username": "manager"})
        assert response.status_code == 200
        assert response.json()["updated_by"] == "manager"
        assert response.json()["is_default"] is False
        assert client.get("/api/system-configs/tax_rate_percent").json()["value"] == "8"

    def test_builtin_values_must_be_numeric(self, client):
        response = client.put("/api/system-configs/tax_rate_percent", json={"value": "ten"})
        assert response.status_code == 400


def test_decode_username():
    from app.api.deps import UNKNOWN_USER, decode_username

    assert decode_username("5byg5LiJ", "base64") == "张三"
    assert decode_username("alice") == "alice"
    assert decode_username(None) == UNKNOWN_USER
    assert decode_username("***", "base64") == UNKNOWN_USER


def test_seed_populates_empty_database_once(db):
    from app.db.init_db import DEFAULT_GAMES, DEFAULT_TABLES, seed
    from app.models import Game, Seat, Table

    assert seed(db) is True
    assert seed(db) is False
    assert db.query(Table).count() == len(DEFAULT_TABLES)
    assert db.query(Seat).count() == sum(n for _, n in DEFAULT_TABLES)
    assert db.query(Game).count() == len(DEFAULT_GAMES)


class TestOperationLogWrites:
    def test_each_write_is_logged_promptly(self, client, session_factory):
        from app.models.operation_log import OperationLog

        started = time.monotonic()
        table = create_floor(client)
        order = client.post("/api/orders", json={}).json()
        client.post(f"/api/seats/{table['seats'][0]['id']}/start", json={"order_id": order["id"]})
        assert time.monotonic() - started < 3

        db = session_factory()
        try:
            logs = db.query(OperationLog).order_by(OperationLog.id).all()
        finally:
            db.close()
        assert [(log.method, log.path) for log in logs] == [
            ("POST", "/api/tables"),
            ("POST", "/api/orders"),
            ("POST", f"/api/seats/{table['seats'][0]['id']}/start"),
        ]
        assert logs[2].seat_id == table["seats"][0]["id"]
        assert all(log.status_code == 200 for log in logs)

    def test_logs_are_read_only(self, client):
        create_floor(client)
        assert client.delete("/api/operation-logs").status_code == 405
        assert len(client.get("/api/operation-logs").json()) == 1
