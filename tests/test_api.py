import os

from bson import ObjectId


def product_form(**overrides):
    data = {
        "name": "Mate",
        "description": "Calabash gourd",
        "price": "12.5",
        "category": "kitchen",
        "stock": "10",
    }
    data.update(overrides)
    return data


def create_product(client, headers, **overrides):
    res = client.post("/api/products", data=product_form(**overrides), headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def test_root(client):
    assert client.get("/").json() == {"message": "Storefront Backend Running"}


# Auth

def test_register_login_flow(client):
    res = client.post("/api/auth/register", json={"name": "Ana", "email": "Ana@Example.com", "password": "secret123"})
    assert res.status_code == 201
    body = res.json()
    assert body["token"]
    assert body["result"]["email"] == "ana@example.com"
    assert "password" not in body["result"]

    res = client.post("/api/auth/register", json={"name": "Ana", "email": "ANA@example.com", "password": "secret123"})
    assert res.status_code == 400
    assert res.json() == {"message": "User already exists"}

    res = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "secret123"})
    assert res.status_code == 200
    assert res.json()["result"]["name"] == "Ana"

    res = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "nope"})
    assert res.status_code == 400


def test_register_validation(client):
    res = client.post("/api/auth/register", json={"name": "Ana", "email": "ana@example.com", "password": "123"})
    assert res.status_code == 400
    assert "password" in res.json()["message"]

    res = client.post("/api/auth/register", json={"name": "Ana", "email": "not-an-email", "password": "secret123"})
    assert res.status_code == 400


def test_forgot_and_reset_password(client, customer, mailer, db):
    res = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert res.status_code == 200
    generic = res.json()["message"]

    res = client.post("/api/auth/forgot-password", json={"email": "ana@example.com"})
    assert res.json()["message"] == generic
    assert len(mailer.outbox) == 1

    token = db["user"].find_one({"_id": customer["_id"]})["reset_password_token"]
    res = client.post("/api/auth/reset-password", json={"token": "bogus", "password": "newpass1"})
    assert res.status_code == 400

    res = client.post("/api/auth/reset-password", json={"token": token, "password": "newpass1"})
    assert res.status_code == 200
    res = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "newpass1"})
    assert res.status_code == 200


# Guards

def test_mutations_require_admin(client, customer_headers):
    assert client.post("/api/products", data=product_form()).status_code == 401
    res = client.post("/api/products", data=product_form(), headers=customer_headers)
    assert res.status_code == 403
    assert res.json()["message"] == "Admin privileges required"
    assert client.get("/api/stock-movements", headers=customer_headers).status_code == 403


def test_bad_token(client):
    res = client.get("/api/cart", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json() == {"message": "Invalid token"}


def test_invalid_id(client):
    res = client.get("/api/products/123")
    assert res.status_code == 400
    assert res.json() == {"message": "Invalid id"}


# Products

def test_product_crud(client, admin_headers):
    product = create_product(client, admin_headers, images="https://cdn.example.com/mate.png")
    assert product["stock"] == 10
    assert product["price"] == 12.5
    assert product["available"] is True
    assert product["images"] == ["https://cdn.example.com/mate.png"]

    pid = product["id"]
    assert client.get(f"/api/products/{pid}").json()["name"] == "Mate"
    assert [p["id"] for p in client.get("/api/products").json()] == [pid]
    assert client.get("/api/products", params={"category": "garden"}).json() == []

    # no images field keeps the existing list
    res = client.put(f"/api/products/{pid}", data=product_form(name="Mate XL", available="false"),
                     headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["name"] == "Mate XL"
    assert res.json()["available"] is False
    assert res.json()["images"] == ["https://cdn.example.com/mate.png"]

    # empty images field clears
    res = client.put(f"/api/products/{pid}", data=product_form(images=""), headers=admin_headers)
    assert res.json()["images"] == []

    res = client.delete(f"/api/products/{pid}", headers=admin_headers)
    assert res.status_code == 200
    assert client.get(f"/api/products/{pid}").status_code == 404
    assert client.delete(f"/api/products/{pid}", headers=admin_headers).status_code == 404


def test_product_validation(client, admin_headers):
    res = client.post("/api/products", data=product_form(stock="-1"), headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"].startswith("stock")

    form = product_form()
    del form["name"]
    res = client.post("/api/products", data=form, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"].startswith("name")


def test_product_image_upload(client, admin_headers, tmp_path):
    files = {"image": ("mate.png", b"\x89PNG fake bytes", "image/png")}
    res = client.post("/api/products", data=product_form(), files=files, headers=admin_headers)
    assert res.status_code == 201
    [filename] = res.json()["images"]
    assert filename.startswith("mate-") and filename.endswith(".png")
    assert os.path.exists(tmp_path / filename)


def test_product_image_rejects_non_images(client, admin_headers):
    files = {"image": ("notes.txt", b"hello", "text/plain")}
    res = client.post("/api/products", data=product_form(), files=files, headers=admin_headers)
    assert res.status_code == 400
    assert res.json() == {"message": "Only image files are allowed"}


def test_product_image_size_limit(client, admin_headers):
    files = {"image": ("big.png", b"0" * (5 * 1024 * 1024 + 1), "image/png")}
    res = client.post("/api/products", data=product_form(), files=files, headers=admin_headers)
    assert res.status_code == 400


def test_product_update_keeps_availability(client, admin_headers):
    pid = create_product(client, admin_headers, available="false")["id"]
    res = client.put(f"/api/products/{pid}", data=product_form(name="Mate XL"), headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["available"] is False


def test_product_image_under_images_field(client, admin_headers, tmp_path):
    files = {"images": ("mate.png", b"\x89PNG fake bytes", "image/png")}
    res = client.post("/api/products", data=product_form(), files=files, headers=admin_headers)
    assert res.status_code == 201
    [filename] = res.json()["images"]
    assert filename.startswith("mate-")
    assert os.path.exists(tmp_path / filename)

    pid = res.json()["id"]
    files = {"images": ("notes.txt", b"hello", "text/plain")}
    res = client.put(f"/api/products/{pid}", data=product_form(), files=files, headers=admin_headers)
    assert res.status_code == 400
    assert client.get(f"/api/products/{pid}").json()["images"] == [filename]


def test_product_stock_out_of_range(client, admin_headers):
    res = client.post("/api/products", data=product_form(stock=str(2 ** 70)), headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"].startswith("stock")
    assert client.get("/api/products").json() == []


# Stock

def test_stock_scenario(client, admin_headers):
    pid = create_product(client, admin_headers, stock="10")["id"]

    res = client.patch(f"/api/products/{pid}/stock", json={"quantity": -3, "description": "sale"},
                       headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == {"message": "Stock updated", "stock": 7}

    res = client.patch(f"/api/products/{pid}/stock", json={"quantity": -10}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json() == {"message": "Insufficient stock"}
    assert client.get(f"/api/products/{pid}").json()["stock"] == 7

    movements = client.get("/api/stock-movements", headers=admin_headers).json()
    assert len(movements) == 1
    assert movements[0]["quantity"] == -3
    assert movements[0]["type"] == "egreso"
    assert movements[0]["description"] == "sale"
    assert movements[0]["product"]["name"] == "Mate"
    assert movements[0]["user"]["email"] == "admin@example.com"


def test_stock_quantity_must_be_a_number(client, admin_headers):
    pid = create_product(client, admin_headers)["id"]
    res = client.patch(f"/api/products/{pid}/stock", json={"quantity": "5"}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"].startswith("quantity")
    assert client.get(f"/api/products/{pid}").json()["stock"] == 10


def test_stock_unknown_product(client, admin_headers):
    res = client.patch(f"/api/products/{ObjectId()}/stock", json={"quantity": 1}, headers=admin_headers)
    assert res.status_code == 404
    assert res.json() == {"message": "Product not found"}


def test_movement_edit_and_delete(client, admin_headers):
    pid = create_product(client, admin_headers, stock="10")["id"]
    client.patch(f"/api/products/{pid}/stock", json={"quantity": 4}, headers=admin_headers)
    [movement] = client.get("/api/stock-movements", headers=admin_headers).json()
    mid = movement["id"]

    res = client.patch(f"/api/stock-movements/{mid}", json={"quantity": 40, "description": "typo"},
                       headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["movement"]["quantity"] == 40
    assert client.get(f"/api/products/{pid}").json()["stock"] == 14

    assert client.delete(f"/api/stock-movements/{mid}", headers=admin_headers).status_code == 200
    assert client.get("/api/stock-movements", headers=admin_headers).json() == []
    assert client.get(f"/api/products/{pid}").json()["stock"] == 14

    assert client.patch(f"/api/stock-movements/{mid}", json={"description": "x"},
                        headers=admin_headers).status_code == 404


def test_stock_quantity_out_of_range(client, admin_headers):
    pid = create_product(client, admin_headers)["id"]
    res = client.patch(f"/api/products/{pid}/stock", json={"quantity": 2 ** 70}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"].startswith("quantity")
    assert client.get(f"/api/products/{pid}").json()["stock"] == 10
    assert client.get("/api/stock-movements", headers=admin_headers).json() == []

    client.patch(f"/api/products/{pid}/stock", json={"quantity": 1}, headers=admin_headers)
    [movement] = client.get("/api/stock-movements", headers=admin_headers).json()
    res = client.patch(f"/api/stock-movements/{movement['id']}", json={"quantity": -(2 ** 70)},
                       headers=admin_headers)
    assert res.status_code == 400
    assert client.get("/api/stock-movements", headers=admin_headers).json()[0]["quantity"] == 1


# Cart

def test_cart_scenario(client, admin_headers, customer_headers):
    pid = create_product(client, admin_headers, stock="10")["id"]

    assert client.get("/api/cart", headers=customer_headers).json() == {"items": []}

    res = client.post("/api/cart", json={"product_id": pid, "quantity": 2}, headers=customer_headers)
    assert res.status_code == 200
    assert [(i["product"]["id"], i["quantity"]) for i in res.json()["items"]] == [(pid, 2)]

    res = client.post("/api/cart", json={"product_id": pid, "quantity": 3}, headers=customer_headers)
    assert [(i["product"]["id"], i["quantity"]) for i in res.json()["items"]] == [(pid, 5)]

    res = client.put(f"/api/cart/{pid}", json={"quantity": 1}, headers=customer_headers)
    assert [(i["product"]["id"], i["quantity"]) for i in res.json()["items"]] == [(pid, 1)]

    res = client.delete(f"/api/cart/{ObjectId()}", headers=customer_headers)
    assert res.status_code == 200
    assert len(res.json()["items"]) == 1

    res = client.delete(f"/api/cart/{pid}", headers=customer_headers)
    assert res.json()["items"] == []


def test_cart_errors(client, admin_headers, customer_headers):
    pid = create_product(client, admin_headers, stock="2")["id"]

    assert client.get("/api/cart").status_code == 401

    res = client.post("/api/cart", json={"product_id": str(ObjectId()), "quantity": 1}, headers=customer_headers)
    assert res.status_code == 404

    res = client.post("/api/cart", json={"product_id": pid, "quantity": 0}, headers=customer_headers)
    assert res.status_code == 400

    res = client.post("/api/cart", json={"product_id": pid, "quantity": 3}, headers=customer_headers)
    assert res.status_code == 400
    assert res.json() == {"message": "Insufficient stock"}

    res = client.put(f"/api/cart/{pid}", json={"quantity": 1}, headers=customer_headers)
    assert res.status_code == 404


def test_carts_are_per_user(client, admin_headers, customer_headers):
    pid = create_product(client, admin_headers)["id"]
    client.post("/api/cart", json={"product_id": pid, "quantity": 1}, headers=customer_headers)
    assert client.get("/api/cart", headers=admin_headers).json() == {"items": []}


def test_cart_accepts_camel_case_product_id(client, admin_headers, customer_headers):
    pid = create_product(client, admin_headers)["id"]
    res = client.post("/api/cart", json={"productId": pid, "quantity": 1}, headers=customer_headers)
    assert res.status_code == 200
    assert [(i["product"]["id"], i["quantity"]) for i in res.json()["items"]] == [(pid, 1)]


# Contact

def test_contact_sends_mail(client, mailer):
    res = client.post("/api/contact", json={
        "name": "Ana", "email": "ana@example.com", "phone": "555-0101", "message": "Do you ship abroad?",
    })
    assert res.status_code == 200
    [mail] = mailer.outbox
    assert "Ana" in mail["subject"]
    assert "Do you ship abroad?" in mail["body"]
    assert mail["reply_to"] == "ana@example.com"


def test_contact_requires_message(client, mailer):
    res = client.post("/api/contact", json={"name": "Ana", "email": "ana@example.com"})
    assert res.status_code == 400
    assert mailer.outbox == []
