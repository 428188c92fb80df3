"""API endpoint tests."""

import pytest
from fastapi.testclient import TestClient

API = "/api/v1"


def _create_product(client, headers, **overrides):
    payload = {"name": "Café molido", "unit_price": "4.50", "stock_available": 10}
    payload.update(overrides)
    response = client.post(f"{API}/products/", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _create_sale(client, headers, product_id, quantity=2):
    response = client.post(
        f"{API}/sales/",
        json={
            "customer_name": "Marta",
            "items": [{"product_id": product_id, "quantity": quantity, "unit_price": "4.50"}],
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _advance(client, headers, sale_id, *statuses):
    response = None
    for status in statuses:
        response = client.patch(f"{API}/sales/{sale_id}/status", json={"status": status}, headers=headers)
    return response


class TestHealthCheck:
    """Test health check endpoints."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_security_headers(self, client: TestClient):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_run_serves_app_with_uvicorn(self, monkeypatch):
        import uvicorn

        from stockledger import main
        from stockledger.core.config import settings

        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        main.run()

        assert calls == [(
            "stockledger.main:app",
            {
                "host": settings.host,
                "port": settings.port,
                "reload": settings.debug,
                "log_level": settings.log_level.lower(),
            },
        )]


class TestAuth:
    """Every API route needs an actor."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/products/"),
        ("get", "/stock/movements"),
        ("get", "/alerts/"),
        ("get", "/sales/"),
        ("get", "/audits/"),
        ("get", "/analytics/notifications"),
        ("get", "/analytics/recommendations"),
    ])
    def test_requires_token(self, client: TestClient, method, path):
        response = getattr(client, method)(f"{API}{path}")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_invalid_token(self, client: TestClient):
        response = client.get(f"{API}/products/", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestProducts:
    def test_create_and_get(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        assert product["stock_available"] == 10

        response = client.get(f"{API}/products/{product['id']}", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Café molido"
        assert data["stored_stock"] == 10

    def test_list_envelope_and_search(self, client: TestClient, auth_headers):
        _create_product(client, auth_headers, name="Café molido")
        _create_product(client, auth_headers, name="Té verde", brand="Hojas")

        response = client.get(f"{API}/products/", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2

        response = client.get(f"{API}/products/", params={"search": "hojas"}, headers=auth_headers)
        assert [p["name"] for p in response.json()["items"]] == ["Té verde"]

    def test_tenants_are_isolated(self, client: TestClient, auth_headers, other_auth_headers):
        product = _create_product(client, auth_headers)
        response = client.get(f"{API}/products/{product['id']}", headers=other_auth_headers)
        assert response.status_code == 404
        assert client.get(f"{API}/products/", headers=other_auth_headers).json()["total"] == 0

    def test_update(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        response = client.patch(f"{API}/products/{product['id']}", json={"min_stock": 3}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["min_stock"] == 3

    def test_invalid_thresholds(self, client: TestClient, auth_headers):
        response = client.post(
            f"{API}/products/", json={"name": "Sal", "min_stock": 9, "max_stock": 2}, headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["field"] == "min_stock"

    def test_soft_delete(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        response = client.delete(f"{API}/products/{product['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["is_deleted"] is True

        response = client.get(f"{API}/products/{product['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["is_deleted"] is True

        response = client.post(
            f"{API}/stock/entries",
            json={"product_id": product["id"], "quantity": 1, "reason": "Compra"},
            headers=auth_headers,
        )
        assert response.status_code == 404


class TestStock:
    def test_entry_and_exit(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)

        response = client.post(
            f"{API}/stock/entries",
            json={"product_id": product["id"], "quantity": 5, "reason": "Compra proveedor"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["type"] == "ENTRADA"
        assert response.json()["user_name"] == "Ana Pérez"

        response = client.post(
            f"{API}/stock/exits",
            json={"product_id": product["id"], "quantity": 3, "reason": "Consumo"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["amount"] == -3

        stock = client.get(f"{API}/products/{product['id']}", headers=auth_headers).json()["stock_available"]
        assert stock == 12

    def test_exit_beyond_stock(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers, stock_available=2)
        response = client.post(
            f"{API}/stock/exits",
            json={"product_id": product["id"], "quantity": 5, "reason": "Consumo"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["available"] == 2
        assert response.json()["needed"] == 5

    def test_raw_movement_sign_is_normalized(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        response = client.post(
            f"{API}/stock/movements",
            json={"product_id": product["id"], "type": "MERMA", "amount": 4, "reason": "Rotura"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["amount"] == -4

    def test_movement_pages(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        for _ in range(3):
            client.post(
                f"{API}/stock/entries",
                json={"product_id": product["id"], "quantity": 1, "reason": "Compra"},
                headers=auth_headers,
            )

        first = client.get(f"{API}/stock/movements", params={"limit": 2}, headers=auth_headers).json()
        assert first["total"] == 2
        assert first["next_cursor"] == first["items"][-1]["id"]

        second = client.get(
            f"{API}/stock/movements",
            params={"limit": 2, "start_after": first["next_cursor"]},
            headers=auth_headers,
        ).json()
        assert second["total"] == 2
        assert second["next_cursor"] == second["items"][-1]["id"]
        ids = [m["id"] for m in first["items"] + second["items"]]
        assert ids == sorted(ids, reverse=True)

    def test_movement_limit_bounds(self, client: TestClient, auth_headers):
        response = client.get(f"{API}/stock/movements", params={"limit": 0}, headers=auth_headers)
        assert response.status_code == 422

    def test_transfer(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        response = client.post(
            f"{API}/stock/transfers",
            json={
                "product_id": product["id"], "quantity": 4, "reason": "Reposición",
                "from_location": "Almacén", "to_location": "Tienda",
            },
            headers=auth_headers,
        )
        assert response.status_code == 201
        legs = response.json()["items"]
        assert [leg["amount"] for leg in legs] == [-4, 4]
        assert legs[0]["reference_id"] == legs[1]["reference_id"]

    def test_reservations(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        response = client.post(
            f"{API}/stock/reservations",
            json={"product_id": product["id"], "quantity": 4, "order_id": "web-77"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        reservation = response.json()

        product_view = client.get(f"{API}/products/{product['id']}", headers=auth_headers).json()
        assert product_view["stock_available"] == 6
        assert product_view["reserved_stock"] == 4

        listed = client.get(f"{API}/stock/reservations", headers=auth_headers).json()
        assert [r["id"] for r in listed["items"]] == [reservation["id"]]

        response = client.delete(f"{API}/stock/reservations/{reservation['id']}", headers=auth_headers)
        assert response.status_code == 204
        response = client.delete(f"{API}/stock/reservations/{reservation['id']}", headers=auth_headers)
        assert response.status_code == 204

    def test_cancel_unknown_reservation_is_a_no_op(self, client: TestClient, auth_headers, other_auth_headers):
        product = _create_product(client, auth_headers)
        reservation = client.post(
            f"{API}/stock/reservations",
            json={"product_id": product["id"], "quantity": 3, "order_id": "order-7", "reason": "Pedido"},
            headers=auth_headers,
        ).json()

        assert client.delete(f"{API}/stock/reservations/999999", headers=auth_headers).status_code == 204
        response = client.delete(f"{API}/stock/reservations/{reservation['id']}", headers=other_auth_headers)
        assert response.status_code == 204

        listed = client.get(f"{API}/stock/reservations", headers=auth_headers).json()
        assert [r["id"] for r in listed["items"]] == [reservation["id"]]


class TestAlerts:
    def test_list_and_acknowledge(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers, stock_available=2, min_stock=5)

        alerts = client.get(f"{API}/alerts/", headers=auth_headers).json()["items"]
        assert [a["id"] for a in alerts] == [f"alert-{product['id']}-min-stock"]
        assert alerts[0]["acknowledged"] is False

        response = client.post(f"{API}/alerts/{alerts[0]['id']}/acknowledge", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["alert_type"] == "MIN_STOCK"

        alerts = client.get(f"{API}/alerts/", headers=auth_headers).json()["items"]
        assert alerts[0]["acknowledged"] is True
        pending = client.get(
            f"{API}/alerts/", params={"include_acknowledged": False}, headers=auth_headers,
        ).json()
        assert pending["total"] == 0

    def test_malformed_alert_id(self, client: TestClient, auth_headers):
        response = client.post(f"{API}/alerts/not-an-alert/acknowledge", headers=auth_headers)
        assert response.status_code == 422


class TestSales:
    def test_lifecycle(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        sale = _create_sale(client, auth_headers, product["id"])
        assert sale["status"] == "PENDIENTE"
        assert sale["total"] == "9.00"
        assert sale["sale_number"] == f"V-{sale['id']:08d}"

        response = _advance(client, auth_headers, sale["id"], "CONFIRMADA", "EN_PROCESO", "COMPLETADA")
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETADA"
        assert response.json()["stock_applied"] is True

        # Completing again does not debit twice
        response = _advance(client, auth_headers, sale["id"], "COMPLETADA")
        assert response.status_code == 200

        stock = client.get(f"{API}/products/{product['id']}", headers=auth_headers).json()["stock_available"]
        assert stock == 8
        movements = client.get(
            f"{API}/stock/movements", params={"reference_id": str(sale["id"])}, headers=auth_headers,
        ).json()
        assert [m["type"] for m in movements["items"]] == ["SALIDA"]

    def test_invalid_transition(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        sale = _create_sale(client, auth_headers, product["id"])
        response = _advance(client, auth_headers, sale["id"], "COMPLETADA")
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_completion_without_stock(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers, stock_available=1)
        sale = _create_sale(client, auth_headers, product["id"], quantity=3)
        response = _advance(client, auth_headers, sale["id"], "CONFIRMADA", "EN_PROCESO", "COMPLETADA")
        assert response.status_code == 422

        current = client.get(f"{API}/sales/{sale['id']}", headers=auth_headers).json()
        assert current["status"] == "EN_PROCESO"

    def test_delete_only_pending(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        pending = _create_sale(client, auth_headers, product["id"])
        confirmed = _create_sale(client, auth_headers, product["id"])
        _advance(client, auth_headers, confirmed["id"], "CONFIRMADA")

        assert client.delete(f"{API}/sales/{pending['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"{API}/sales/{pending['id']}", headers=auth_headers).status_code == 404
        assert client.delete(f"{API}/sales/{confirmed['id']}", headers=auth_headers).status_code == 409

    def test_list_and_analytics(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)
        _create_sale(client, auth_headers, product["id"])
        _create_sale(client, auth_headers, product["id"], quantity=1)

        listed = client.get(f"{API}/sales/", headers=auth_headers).json()
        assert listed["total"] == 2

        analytics = client.get(f"{API}/sales/analytics", headers=auth_headers).json()
        assert analytics["total_sales"] == 2
        assert analytics["total_revenue"] == "13.50"


class TestAudits:
    def test_reconcile_and_resolve(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers, stock_available=20)
        response = client.post(
            f"{API}/audits/",
            json={"product_id": product["id"], "expected_count": 20, "actual_count": 17},
            headers=auth_headers,
        )
        assert response.status_code == 201
        audit = response.json()
        assert audit["difference"] == -3
        assert audit["status"] == "pending"

        stock = client.get(f"{API}/products/{product['id']}", headers=auth_headers).json()["stock_available"]
        assert stock == 17

        recent = client.get(f"{API}/audits/", headers=auth_headers).json()
        assert [a["id"] for a in recent["items"]] == [audit["id"]]

        response = client.post(
            f"{API}/audits/{audit['id']}/resolve", json={"notes": "Merma confirmada"}, headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "discrepancy_resolved"
        assert response.json()["notes"] == "Merma confirmada"

    def test_unknown_audit(self, client: TestClient, auth_headers):
        assert client.get(f"{API}/audits/999", headers=auth_headers).status_code == 404


class TestAnalytics:
    def test_thin_history_returns_empty_results(self, client: TestClient, auth_headers):
        product = _create_product(client, auth_headers)

        forecast = client.get(f"{API}/analytics/sales-forecast", headers=auth_headers)
        assert forecast.status_code == 200
        assert forecast.json() == {"items": [], "total": 0}

        demand = client.get(f"{API}/analytics/demand/{product['id']}", headers=auth_headers).json()
        assert demand["confidence"] == 0.0
        assert demand["factors"] == ["Sin datos históricos"]

        pricing = client.get(f"{API}/analytics/pricing/{product['id']}", headers=auth_headers).json()
        assert pricing["suggested_price"] == pricing["current_price"]

        assert client.get(f"{API}/analytics/seasonal", headers=auth_headers).json()["total"] == 0

    def test_dashboard_and_optimization(self, client: TestClient, auth_headers):
        _create_product(client, auth_headers, stock_available=50)

        dashboard = client.get(f"{API}/analytics/dashboard", headers=auth_headers)
        assert dashboard.status_code == 200
        assert len(dashboard.json()["top_demand_predictions"]) == 1

        report = client.get(f"{API}/analytics/optimization", headers=auth_headers).json()
        assert report["total_recommendations"] == 1
        assert report["summary"]["dead_stock_items"] == 1

    def test_unknown_product(self, client: TestClient, auth_headers):
        assert client.get(f"{API}/analytics/demand/999", headers=auth_headers).status_code == 404

    def test_notifications(self, client: TestClient, auth_headers):
        _create_product(client, auth_headers, stock_available=0)

        notifications = client.get(f"{API}/analytics/notifications", headers=auth_headers).json()
        assert [n["type"] for n in notifications["items"]] == ["OUT_OF_STOCK"]

        stats = client.get(f"{API}/analytics/notifications/stats", headers=auth_headers).json()
        assert stats["total"] == 1
        assert stats["by_priority"] == {"critical": 1}

    def test_recommendations_and_insights(self, client: TestClient, auth_headers):
        coffee = _create_product(client, auth_headers, name="Café")
        milk = _create_product(client, auth_headers, name="Leche", unit_price="1.20")
        response = client.post(
            f"{API}/sales/",
            json={
                "customer_id": "c-1",
                "items": [
                    {"product_id": coffee["id"], "quantity": 1, "unit_price": "4.50"},
                    {"product_id": milk["id"], "quantity": 1, "unit_price": "1.20"},
                ],
            },
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text

        recs = client.get(
            f"{API}/analytics/recommendations", params={"product_id": coffee["id"]}, headers=auth_headers,
        ).json()
        assert [(r["product_id"], r["type"]) for r in recs["items"]] == [(milk["id"], "CROSS_SELL")]

        insights = client.get(f"{API}/analytics/insights/{coffee['id']}", headers=auth_headers).json()
        assert insights["cross_sell_opportunities"] == [milk["id"]]
        assert client.get(f"{API}/analytics/insights/999", headers=auth_headers).status_code == 404
