from conftest import PASSWORD, auth_header


def login(client, phone_number, password=PASSWORD):
    return client.post(
        "/auth/login",
        json={"phone_code": "966", "phone_number": phone_number, "password": password},
    )


def test_user_login(client, register_user):
    account = register_user()

    response = login(client, account.phone_number)
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successfully"
    assert body["data"]["user_type"] == "user"
    assert client.get("/users/profile", headers=auth_header(body["data"]["access_token"])).status_code == 200


def test_bad_credentials_look_the_same(client, register_user):
    account = register_user()

    wrong_password = login(client, account.phone_number, "Wrong@123")
    unknown_phone = login(client, "599999999")

    for response in (wrong_password, unknown_phone):
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid credentials"
        assert response.json()["error"]["error_code"] == "INVALID_CREDENTIALS"


def test_unverified_login_requires_verification(client, register_user):
    pending = register_user(verify=False)

    response = login(client, pending.phone_number)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["error_code"] == "VERIFICATION_REQUIRED"
    assert error["user_id"] == pending.id
    assert error["otp_expires_at"]

    verified = client.post("/users/verify-verification-otp", json={"user_id": pending.id, "otp": "1111"})
    assert verified.status_code == 200


def verify_registration(client, user_id, otp):
    return client.post("/users/verify-verification-otp", json={"user_id": user_id, "otp": otp})


def test_login_keeps_attempt_count_of_live_otp(client, register_user):
    pending = register_user(verify=False)

    for _ in range(4):
        assert verify_registration(client, pending.id, "9999").json()["error"]["error_code"] == "OTP_INVALID"
        assert login(client, pending.phone_number).status_code == 403

    locked = verify_registration(client, pending.id, "9999").json()["error"]
    assert locked["message"] == "Too many failed attempts"
    assert locked["error_code"] == "OTP_ATTEMPTS_EXCEEDED"

    # The locked code is gone; the right digits no longer help.
    assert verify_registration(client, pending.id, "1111").json()["error"]["error_code"] == "OTP_EXPIRED"

    # With nothing live, the next login issues a new code.
    assert login(client, pending.phone_number).status_code == 403
    assert verify_registration(client, pending.id, "1111").status_code == 200


def test_login_is_rate_limited(client, register_user, rate_limited):
    account = register_user()

    for _ in range(10):
        assert login(client, account.phone_number, "Wrong@123").status_code == 400

    response = login(client, account.phone_number)
    assert response.status_code == 429
    assert response.json()["error"]["error_code"] == "RATE_LIMITED"


def test_provider_login_without_profile(client, register_provider):
    provider = register_provider()

    response = login(client, provider.phone_number)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user_type"] == "provider"
    assert data["profile_required"] is True
    assert data["access_token"]


def test_provider_login_mid_onboarding(client, register_provider, onboard):
    provider = register_provider()
    onboard(provider.token, upto=3)

    response = login(client, provider.phone_number)
    body = response.json()
    assert body["message"] == "Please complete your profile setup first"
    assert body["data"]["setup_required"] is True
    assert body["data"]["current_step"] == 3
    assert body["data"]["total_steps"] == 6


def test_password_reset_flow(client, register_user):
    account = register_user()
    old_session = account.token

    unknown = client.post("/auth/forgot-password", json={"phone_code": "966", "phone_number": "599999999"})
    assert unknown.status_code == 404

    forgot = client.post("/auth/forgot-password", json={"phone_code": "966", "phone_number": account.phone_number})
    assert forgot.status_code == 200
    assert forgot.json()["data"]["user_id"] == account.id

    verified = client.post("/auth/verify-forgot-password-otp", json={"user_id": account.id, "otp": "1111"})
    assert verified.status_code == 200
    reset_token = verified.json()["data"]["reset_token"]

    # A reset token is not an access token.
    assert client.get("/users/profile", headers=auth_header(reset_token)).status_code == 403

    reset = client.post(
        "/auth/reset-password",
        json={"reset_token": reset_token, "password": "Fresh@1234", "confirm_password": "Fresh@1234"},
    )
    assert reset.status_code == 200
    assert reset.json()["message"] == "Password updated successfully"

    reused = client.post(
        "/auth/reset-password",
        json={"reset_token": reset_token, "password": "Other@1234", "confirm_password": "Other@1234"},
    )
    assert reused.json()["error"]["error_code"] == "INVALID_RESET_TOKEN"

    assert client.get("/users/profile", headers=auth_header(old_session)).status_code == 403
    assert login(client, account.phone_number).status_code == 400
    assert login(client, account.phone_number, "Fresh@1234").status_code == 200


def test_reset_requires_matching_passwords(client, register_user):
    account = register_user()
    client.post("/auth/forgot-password", json={"phone_code": "966", "phone_number": account.phone_number})
    reset_token = client.post(
        "/auth/verify-forgot-password-otp", json={"user_id": account.id, "otp": "1111"}
    ).json()["data"]["reset_token"]

    response = client.post(
        "/auth/reset-password",
        json={"reset_token": reset_token, "password": "Fresh@1234", "confirm_password": "Fresh@9999"},
    )
    assert response.status_code == 400


def test_access_token_cannot_reset_password(client, register_user):
    account = register_user()

    response = client.post(
        "/auth/reset-password",
        json={"reset_token": account.token, "password": "Fresh@1234", "confirm_password": "Fresh@1234"},
    )
    assert response.json()["error"]["error_code"] == "INVALID_RESET_TOKEN"


def test_logout_revokes_only_that_token(client, register_user):
    account = register_user()
    second = login(client, account.phone_number).json()["data"]["access_token"]

    response = client.post("/auth/logout", headers=auth_header(account.token))
    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"

    assert client.get("/users/profile", headers=auth_header(account.token)).status_code == 403
    assert client.get("/users/profile", headers=auth_header(second)).status_code == 200
