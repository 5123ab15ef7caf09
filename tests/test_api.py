import pytest
from sqlalchemy import select

from backoffice.core.permissions import require_roles
from backoffice.models.audit_log import AuditLog


def _register(client, *, tenant_name: str = "Monita Mart", username: str = "owner"):
    return client.post(
        "/auth/register",
        json={
            "tenant_name": tenant_name,
            "username": username,
            "password": "password123",
        },
    )


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _owner_token(client, tenant_name: str = "Monita Mart") -> str:
    res = _register(client, tenant_name=tenant_name)
    assert res.status_code == 200, res.text
    return res.json()["access_token"]


def _create_item(client, token: str, *, initial_stock: int = 100) -> str:
    res = client.post(
        "/inventory",
        json={
            "name": "Beras Ramos 5kg",
            "code": "brs-5",
            "price": 78000,
            "cost": 70000,
            "initial_stock": initial_stock,
        },
        headers=_auth_headers(token),
    )
    assert res.status_code == 201, res.text
    return res.json()["id"]


def _create_supplier(client, token: str) -> str:
    res = client.post("/suppliers", json={"name": "PT Sumber Pangan"}, headers=_auth_headers(token))
    assert res.status_code == 201, res.text
    return res.json()["id"]


def test_register_login_and_me(test_context):
    client, _ = test_context
    token = _owner_token(client)

    me = client.get("/auth/me", headers=_auth_headers(token))
    assert me.status_code == 200, me.text
    assert me.json()["role"] == "owner"
    assert me.json()["tenant_name"] == "Monita Mart"

    login = client.post(
        "/auth/login",
        json={"tenant": "monita mart", "username": "OWNER", "password": "password123"},
    )
    assert login.status_code == 200, login.text

    bad = client.post(
        "/auth/login",
        json={"tenant": "Monita Mart", "username": "owner", "password": "wrong-password"},
    )
    assert bad.status_code == 401
    assert bad.json()["error"]["code"] == "unauthorized"

    form = client.post("/auth/token", data={"username": "Monita Mart/owner", "password": "password123"})
    assert form.status_code == 200, form.text

    duplicate = _register(client)
    assert duplicate.status_code == 409


def test_sale_flow_over_http(test_context):
    client, session_local = test_context
    token = _owner_token(client)
    item_id = _create_item(client, token)

    sale_res = client.post(
        "/sales",
        json={"method": "CASH", "items": [{"inventory_id": item_id, "quantity": 30, "unit_price": 78000}]},
        headers=_auth_headers(token),
    )
    assert sale_res.status_code == 201, sale_res.text
    sale = sale_res.json()
    assert sale["invoice"].startswith("MONI-")
    assert sale["items"][0]["code"] == "BRS-5"

    item = client.get(f"/inventory/{item_id}", headers=_auth_headers(token)).json()
    assert (item["stock"], item["sold"]) == (70, 30)

    cancel_res = client.delete(f"/sales/{sale['id']}", headers=_auth_headers(token))
    assert cancel_res.status_code == 200, cancel_res.text
    assert cancel_res.json()["is_deleted"] is True

    item = client.get(f"/inventory/{item_id}", headers=_auth_headers(token)).json()
    assert (item["stock"], item["sold"]) == (100, 0)

    ledger = client.get("/inventory/ledger", params={"inventory_id": item_id}, headers=_auth_headers(token))
    assert ledger.status_code == 200, ledger.text
    assert [row["type"] for row in ledger.json()["items"]] == ["CANCEL_SALE", "SALE"]

    verify = client.get(f"/inventory/{item_id}/ledger/verify", headers=_auth_headers(token))
    assert verify.status_code == 200, verify.text
    assert verify.json() == {"inventory_id": item_id, "consistent": True, "stock": 100, "entries": 2}

    deleted = client.get("/sales", params={"status": "deleted"}, headers=_auth_headers(token))
    assert deleted.json()["pagination"]["total"] == 1

    db = session_local()
    try:
        actions = db.execute(select(AuditLog.action).order_by(AuditLog.created_at)).scalars().all()
    finally:
        db.close()
    assert "sale.create" in actions
    assert "sale.cancel" in actions


def test_insufficient_stock_error_envelope(test_context):
    client, _ = test_context
    token = _owner_token(client)
    item_id = _create_item(client, token)

    res = client.post(
        "/sales",
        json={"method": "CASH", "items": [{"inventory_id": item_id, "quantity": 150, "unit_price": 78000}]},
        headers={**_auth_headers(token), "X-Request-ID": "req-150"},
    )
    assert res.status_code == 409, res.text
    error = res.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["request_id"] == "req-150"
    assert error["path"] == "/sales"
    assert error["details"] == {"inventory_id": item_id, "requested": 150, "available": 100}

    item = client.get(f"/inventory/{item_id}", headers=_auth_headers(token)).json()
    assert item["stock"] == 100
    ledger = client.get("/inventory/ledger", headers=_auth_headers(token)).json()
    assert ledger["pagination"]["total"] == 0


def test_purchase_payment_and_return_over_http(test_context):
    client, _ = test_context
    token = _owner_token(client)
    item_id = _create_item(client, token, initial_stock=0)
    supplier_id = _create_supplier(client, token)

    purchase_res = client.post(
        "/purchases",
        json={
            "supplier_id": supplier_id,
            "items": [{"inventory_id": item_id, "quantity": 10, "unit_cost": 500}],
            "initial_payment": {"amount": 1000, "method": "TRANSFER"},
        },
        headers=_auth_headers(token),
    )
    assert purchase_res.status_code == 201, purchase_res.text
    purchase = purchase_res.json()
    assert purchase["status"] == "PARTIALLY_PAID"
    assert len(purchase["payments"]) == 1

    pay_res = client.post(
        f"/purchases/{purchase['id']}/payments",
        json={"amount": 4000, "method": "CASH"},
        headers=_auth_headers(token),
    )
    assert pay_res.status_code == 201, pay_res.text
    assert pay_res.json()["status"] == "PAID"

    over_res = client.post(
        f"/purchases/{purchase['id']}/payments",
        json={"amount": 1, "method": "CASH"},
        headers=_auth_headers(token),
    )
    assert over_res.status_code == 422
    assert over_res.json()["error"]["code"] == "validation_error"

    item = client.get(f"/inventory/{item_id}", headers=_auth_headers(token)).json()
    assert (item["stock"], item["cost"]) == (10, 500)

    line_id = purchase["items"][0]["id"]
    too_many = client.post(
        "/returns",
        json={
            "purchase_id": purchase["id"],
            "reason": "Sacks arrived torn and soaked after the delivery",
            "items": [{"purchase_item_id": line_id, "quantity": 12}],
        },
        headers=_auth_headers(token),
    )
    assert too_many.status_code == 422, too_many.text
    assert too_many.json()["error"]["message"] == "Max returnable quantity is 10"

    return_res = client.post(
        "/returns",
        json={
            "purchase_id": purchase["id"],
            "reason": "Sacks arrived torn and soaked after the delivery",
            "items": [{"purchase_item_id": line_id, "quantity": 4}],
        },
        headers=_auth_headers(token),
    )
    assert return_res.status_code == 201, return_res.text
    return_id = return_res.json()["id"]

    approve = client.patch(f"/returns/{return_id}/approve", headers=_auth_headers(token))
    assert approve.status_code == 200, approve.text
    assert approve.json()["status"] == "APPROVED"
    again = client.patch(f"/returns/{return_id}/approve", headers=_auth_headers(token))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "conflict"

    item = client.get(f"/inventory/{item_id}", headers=_auth_headers(token)).json()
    assert item["stock"] == 6

    blocked_cancel = client.delete(f"/purchases/{purchase['id']}", headers=_auth_headers(token))
    assert blocked_cancel.status_code == 409
    assert blocked_cancel.json()["error"]["message"] == "Purchase has a return in progress"

    complete = client.patch(f"/returns/{return_id}/complete", headers=_auth_headers(token))
    assert complete.status_code == 200, complete.text
    assert complete.json()["status"] == "DONE"

    cancel_res = client.delete(f"/purchases/{purchase['id']}", headers=_auth_headers(token))
    assert cancel_res.status_code == 200, cancel_res.text
    second_cancel = client.delete(f"/purchases/{purchase['id']}", headers=_auth_headers(token))
    assert second_cancel.status_code == 409

    item = client.get(f"/inventory/{item_id}", headers=_auth_headers(token)).json()
    assert item["stock"] == 0


def test_staff_cannot_cancel_or_edit(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    item_id = _create_item(client, owner_token)

    staff_res = client.post(
        "/auth/users",
        json={"username": "kasir", "password": "password123", "role": "staff"},
        headers=_auth_headers(owner_token),
    )
    assert staff_res.status_code == 201, staff_res.text
    staff_login = client.post(
        "/auth/login",
        json={"tenant": "Monita Mart", "username": "kasir", "password": "password123"},
    )
    staff_token = staff_login.json()["access_token"]

    sale_res = client.post(
        "/sales",
        json={"method": "QRIS", "items": [{"inventory_id": item_id, "quantity": 1, "unit_price": 78000}]},
        headers=_auth_headers(staff_token),
    )
    assert sale_res.status_code == 201, sale_res.text
    sale_id = sale_res.json()["id"]

    forbidden = client.delete(f"/sales/{sale_id}", headers=_auth_headers(staff_token))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "forbidden"

    edit_res = client.put(
        f"/sales/{sale_id}",
        json={"items": [{"inventory_id": item_id, "quantity": 2, "unit_price": 78000}]},
        headers=_auth_headers(staff_token),
    )
    assert edit_res.status_code == 403

    edit_res = client.put(
        f"/sales/{sale_id}",
        json={"items": [{"inventory_id": item_id, "quantity": 2, "unit_price": 78000}]},
        headers=_auth_headers(owner_token),
    )
    assert edit_res.status_code == 200, edit_res.text
    assert edit_res.json()["is_edited"] is True
    assert edit_res.json()["total_amount"] == 156000

def test_manage_tenant_users(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    owner_headers = _auth_headers(owner_token)

    admin = client.post(
        "/auth/users",
        json={"username": "gudang", "password": "password123", "role": "admin"},
        headers=owner_headers,
    ).json()
    other_admin = client.post(
        "/auth/users",
        json={"username": "gudang2", "password": "password123", "role": "admin"},
        headers=owner_headers,
    ).json()
    staff = client.post(
        "/auth/users",
        json={"username": "kasir", "password": "password123", "role": "staff"},
        headers=owner_headers,
    ).json()
    admin_token = client.post(
        "/auth/login",
        json={"tenant": "Monita Mart", "username": "gudang", "password": "password123"},
    ).json()["access_token"]
    admin_headers = _auth_headers(admin_token)

    listing = client.get("/auth/users", headers=admin_headers)
    assert listing.status_code == 200, listing.text
    assert [row["username"] for row in listing.json()["items"]] == ["gudang", "gudang2", "kasir", "owner"]

    renamed = client.patch(f"/auth/users/{staff['id']}", json={"username": "Kasir1"}, headers=admin_headers)
    assert renamed.status_code == 200, renamed.text
    assert renamed.json()["username"] == "kasir1"

    unchanged = client.patch(f"/auth/users/{staff['id']}", json={"role": "staff"}, headers=admin_headers)
    assert unchanged.status_code == 400

    promote = client.patch(f"/auth/users/{staff['id']}", json={"role": "admin"}, headers=admin_headers)
    assert promote.status_code == 403
    touch_admin = client.patch(
        f"/auth/users/{other_admin['id']}", json={"password": "new-password"}, headers=admin_headers
    )
    assert touch_admin.status_code == 403
    touch_self = client.delete(f"/auth/users/{admin['id']}", headers=admin_headers)
    assert touch_self.status_code == 400

    me = client.get("/auth/me", headers=owner_headers).json()
    touch_owner = client.delete(f"/auth/users/{me['user_id']}", headers=admin_headers)
    assert touch_owner.status_code == 403

    deactivated = client.delete(f"/auth/users/{staff['id']}", headers=admin_headers)
    assert deactivated.status_code == 200, deactivated.text
    assert deactivated.json()["is_active"] is False
    again = client.delete(f"/auth/users/{staff['id']}", headers=admin_headers)
    assert again.status_code == 409

    login = client.post(
        "/auth/login",
        json={"tenant": "Monita Mart", "username": "kasir1", "password": "password123"},
    )
    assert login.status_code == 401

    active = client.get("/auth/users", headers=owner_headers).json()
    assert active["pagination"]["total"] == 3
    everyone = client.get("/auth/users", params={"include_inactive": True}, headers=owner_headers).json()
    assert everyone["pagination"]["total"] == 4

    missing = client.patch("/auth/users/missing", json={"username": "siapa"}, headers=owner_headers)
    assert missing.status_code == 404


def test_other_tenant_sees_not_found(test_context):
    client, _ = test_context
    first_token = _owner_token(client, "Monita Mart")
    second_token = _owner_token(client, "Toko Lain")
    item_id = _create_item(client, first_token)

    res = client.get(f"/inventory/{item_id}", headers=_auth_headers(second_token))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"

    verify = client.get(f"/inventory/{item_id}/ledger/verify", headers=_auth_headers(second_token))
    assert verify.status_code == 404

    sale_res = client.post(
        "/sales",
        json={"method": "CASH", "items": [{"inventory_id": item_id, "quantity": 1, "unit_price": 1}]},
        headers=_auth_headers(second_token),
    )
    assert sale_res.status_code == 422


def test_request_validation_envelope(test_context):
    client, _ = test_context
    token = _owner_token(client)

    res = client.post(
        "/inventory",
        json={"name": "ab", "code": "X", "price": -1, "cost": 0},
        headers=_auth_headers(token),
    )
    assert res.status_code == 422
    body = res.json()["error"]
    assert body["code"] == "validation_error"
    fields = {detail["field"] for detail in body["details"]}
    assert {"name", "code", "price"} <= fields


def test_health_endpoints(test_context):
    client, _ = test_context
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/ready").status_code == 200


def test_require_roles_rejects_unknown_role():
    with pytest.raises(ValueError):
        require_roles("owner", "cashier")
