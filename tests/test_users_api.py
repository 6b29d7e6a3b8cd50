import pytest

from security.helpers import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, verify_password


def registration(**overrides) -> dict:
    body = {
        "fullname": "Sita Karki",
        "email": "sita.karki@gmail.com",
        "phoneNumber": "9811111111",
        "password": "Secret#123",
        "city": "Bhaktapur",
        "wardNumber": "3",
        "tole": "Suryabinayak",
        "gender": "female",
        "dob": "1998-02-14",
    }
    body.update(overrides)
    return body


async def bearer_for(session_service, account) -> dict:
    tokens = await session_service.issue_session(account.id)
    return {"Authorization": f"Bearer {tokens.access_token}"}


@pytest.mark.asyncio
async def test_register_creates_account_and_logs_in(client, account_store) -> None:
    response = await client.post("/api/v1/users/register", json=registration())

    assert response.status_code == 201
    body = response.json()
    assert body["statusCode"] == 201
    assert body["message"] == "User registered and logged in successfully"

    profile = body["data"]["loggedInUser"]
    assert profile["username"] == "sita_karki"
    assert profile["wardNumber"] == "3"
    assert profile["role"] == "user"
    assert "password" not in profile

    stored = account_store.accounts[profile["_id"]]
    assert stored.password != "Secret#123"
    assert verify_password("Secret#123", stored.password)
    assert stored.refresh_token == body["data"]["refreshToken"]

    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        [header] = [h.lower() for h in response.headers.get_list("set-cookie") if h.startswith(f"{name}=")]
        assert "max-age=86400" in header


@pytest.mark.asyncio
async def test_register_duplicate(client, user) -> None:
    response = await client.post(
        "/api/v1/users/register", json=registration(email=user.email)
    )

    assert response.status_code == 400
    assert response.json()["message"] == "User already exists with this email or phone number"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"wardNumber": "11"}, "Ward number for Bhaktapur must be between 1 and 10"),
        ({"email": "sita@yahoo.com"}, None),
        ({"password": "weakpass"}, None),
        ({"city": "Pokhara"}, None),
        ({"dob": "2999-01-01"}, "Invalid date of birth"),
        ({"role": "ward_admin"}, None),
    ],
)
async def test_register_rejects_invalid_fields(client, account_store, overrides, message) -> None:
    response = await client.post("/api/v1/users/register", json=registration(**overrides))

    assert response.status_code == 400
    assert response.json()["success"] is False
    if message:
        assert message in response.json()["message"]
    assert account_store.accounts == {}


@pytest.mark.asyncio
async def test_register_missing_field(client) -> None:
    body = registration()
    del body["city"]

    response = await client.post("/api/v1/users/register", json=body)

    assert response.status_code == 400
    assert response.json()["message"] == "Field 'city' is required"


@pytest.mark.asyncio
async def test_get_all_users_requires_super_admin(client, session_service, user, ward_admin) -> None:
    for account in (user, ward_admin):
        response = await client.get("/api/v1/users/get-all-users", headers=await bearer_for(session_service, account))
        assert response.status_code == 403

    assert (await client.get("/api/v1/users/get-all-users")).status_code == 401


@pytest.mark.asyncio
async def test_get_all_users(client, session_service, user, super_admin) -> None:
    response = await client.get(
        "/api/v1/users/get-all-users", headers=await bearer_for(session_service, super_admin)
    )

    assert response.status_code == 200
    emails = {profile["email"] for profile in response.json()["data"]}
    assert emails == {user.email, super_admin.email}
    assert all("password" not in profile for profile in response.json()["data"])


@pytest.mark.asyncio
async def test_register_admin_roles_need_a_super_admin(client, session_service, account_store, user) -> None:
    body = registration(role="super_admin")

    anonymous = await client.post("/api/v1/users/register", json=body)
    as_user = await client.post("/api/v1/users/register", json=body, headers=await bearer_for(session_service, user))

    for response in (anonymous, as_user):
        assert response.status_code == 403
        assert response.json()["message"] == "Only super admins can create admin accounts"
    assert set(account_store.accounts) == {user.id}


@pytest.mark.asyncio
async def test_super_admin_creates_ward_admin(client, session_service, account_store, super_admin) -> None:
    headers = await bearer_for(session_service, super_admin)
    session_before = account_store.accounts[super_admin.id].refresh_token

    response = await client.post(
        "/api/v1/users/register",
        json=registration(role="ward_admin", assignedWards=["3"]),
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User created successfully"
    assert body["data"]["user"]["role"] == "ward_admin"
    assert body["data"]["user"]["assignedWards"] == ["3"]
    assert response.headers.get_list("set-cookie") == []
    assert account_store.accounts[super_admin.id].refresh_token == session_before


@pytest.mark.asyncio
async def test_get_user_by_id(client, session_service, user, ward_admin) -> None:
    headers = await bearer_for(session_service, user)

    response = await client.get(f"/api/v1/users/get-user/{ward_admin.id}", headers=headers)

    assert response.status_code == 200
    assert response.json()["message"] == "User retrieved successfully"
    assert response.json()["data"]["email"] == ward_admin.email
    assert "password" not in response.json()["data"]

    missing = await client.get("/api/v1/users/get-user/665f1c2e9b1d4a0012345678", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["message"] == "User not found"

    assert (await client.get(f"/api/v1/users/get-user/{ward_admin.id}")).status_code == 401


@pytest.mark.asyncio
async def test_owner_updates_own_profile(client, session_service, account_store, user) -> None:
    stored_password = account_store.accounts[user.id].password

    response = await client.patch(
        f"/api/v1/users/update-user/{user.id}",
        json={"tole": "Koteshwor", "city": "Lalitpur", "wardNumber": "12", "password": "Hacked#999", "refreshToken": "x"},
        headers=await bearer_for(session_service, user),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User updated successfully"
    assert body["data"]["tole"] == "Koteshwor"
    assert body["data"]["city"] == "Lalitpur"
    assert body["data"]["wardNumber"] == "12"

    stored = account_store.accounts[user.id]
    assert stored.password == stored_password
    assert stored.refresh_token != "x"


@pytest.mark.asyncio
async def test_non_admin_cannot_change_role(client, session_service, account_store, user) -> None:
    response = await client.patch(
        f"/api/v1/users/update-user/{user.id}",
        json={"role": "super_admin", "assignedWards": ["1"], "tole": "Thamel"},
        headers=await bearer_for(session_service, user),
    )

    assert response.status_code == 200
    stored = account_store.accounts[user.id]
    assert stored.role == "user"
    assert stored.assigned_wards == []
    assert stored.tole == "Thamel"


@pytest.mark.asyncio
async def test_update_someone_else_is_forbidden(client, session_service, user, ward_admin) -> None:
    response = await client.patch(
        f"/api/v1/users/update-user/{user.id}",
        json={"tole": "Thamel"},
        headers=await bearer_for(session_service, ward_admin),
    )

    assert response.status_code == 403
    assert response.json()["message"] == "You are not authorized to update this user"


@pytest.mark.asyncio
async def test_super_admin_changes_role(client, session_service, account_store, user, super_admin) -> None:
    headers = await bearer_for(session_service, super_admin)

    no_wards = await client.patch(
        f"/api/v1/users/update-user/{user.id}", json={"role": "ward_admin"}, headers=headers
    )
    assert no_wards.status_code == 400
    assert no_wards.json()["message"] == "Ward admins must have at least one assigned ward"

    # Path the web client was shipped with
    response = await client.patch(
        f"/api/v1/users/upadte-user/{user.id}",
        json={"role": "ward_admin", "assignedWards": ["4", "5"]},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["role"] == "ward_admin"
    assert account_store.accounts[user.id].assigned_wards == ["4", "5"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("changes", "message"),
    [
        ({"city": "Bhaktapur", "wardNumber": "12"}, "Ward number for Bhaktapur must be between 1 and 10"),
        ({"wardNumber": "33"}, "Ward number for Kathmandu must be between 1 and 32"),
        ({"email": "ram@yahoo.com"}, "Email must be a valid Gmail address"),
        ({"gender": "other"}, "Gender must be male or female"),
        ({"dob": "2999-01-01"}, "Invalid date of birth"),
    ],
)
async def test_update_rejects_invalid_fields(client, session_service, account_store, user, changes, message) -> None:
    response = await client.patch(
        f"/api/v1/users/update-user/{user.id}", json=changes, headers=await bearer_for(session_service, user)
    )

    assert response.status_code == 400
    assert message in response.json()["message"]
    assert account_store.accounts[user.id].ward_number == "4"


@pytest.mark.asyncio
async def test_update_missing_user(client, session_service, super_admin) -> None:
    response = await client.patch(
        "/api/v1/users/update-user/665f1c2e9b1d4a0012345678",
        json={"tole": "Thamel"},
        headers=await bearer_for(session_service, super_admin),
    )

    assert response.status_code == 404
