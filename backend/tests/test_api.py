"""
StackIt Backend — API Tests
=============================

What:  End-to-end tests through the FastAPI app: routing, auth dependencies,
       multipart parsing, response models and the error body shape.
How:   `test_client` from conftest (HTTPX over ASGITransport) with every
       gateway replaced by an in-process double.

Test Strategy:
    1. Health and cross-cutting behaviour (request id, error shape)
    2. Accounts: register → profile, bad credentials, field errors
    3. Questions: ask (multipart) → feed → thread → answer → vote → accept → comment
    4. Admin: role check, user list, delete → later requests sent to /register
"""

import json

import pytest

TITLE = "How do I join two tables?"
DESCRIPTION = "<p>I have two tables and want rows that match in both.</p>"


async def ask(client, headers, title=TITLE, tags=("SQL", "joins"), files=None, **extra):
    data = {"title": title, "description": DESCRIPTION, "tags": list(tags), **extra}
    return await client.post("/api/questions", data=data, files=files, headers=headers)


# ══════════════════════════════════════════════════════════════════════════
# Health & cross-cutting
# ══════════════════════════════════════════════════════════════════════════


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["document_store"] == "connected"
        assert body["object_store"] == "recording"

    @pytest.mark.asyncio
    async def test_unhealthy_when_store_down(self, test_client, document_store):
        document_store.fail_on.add("ping")

        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["document_store"] == "disconnected"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"

    @pytest.mark.asyncio
    async def test_error_body_shape(self, test_client):
        response = await test_client.get("/api/questions/does-not-exist")

        assert response.status_code == 404
        body = response.json()
        assert set(body) == {"error", "message", "details", "request_id"}
        assert body["error"] == "not_found"
        assert body["request_id"] == response.headers["X-Request-ID"]


# ══════════════════════════════════════════════════════════════════════════
# Accounts
# ══════════════════════════════════════════════════════════════════════════


class TestAccounts:

    @pytest.mark.asyncio
    async def test_register_then_read_profile(self, test_client):
        response = await test_client.post(
            "/api/auth/register",
            json={
                "username": "bob_smith",
                "email": "bob@example.com",
                "password": "Passw0rd",
                "confirm_password": "Passw0rd",
                "phone_number": "+919812345678",
                "accept_terms": True,
            },
        )
        assert response.status_code == 201
        token = response.json()["token"]

        profile = await test_client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})

        assert profile.status_code == 200
        assert profile.json()["username"] == "bob_smith"
        assert profile.json()["role"] == "user"

    @pytest.mark.asyncio
    async def test_register_field_errors(self, test_client):
        response = await test_client.post("/api/auth/register", json={"username": "ab"})

        assert response.status_code == 400
        errors = response.json()["details"]["errors"]
        assert {"username", "email", "password", "phone_number", "accept_terms"} <= set(errors)

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, test_client, alice):
        response = await test_client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "nope"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_and_logout(self, test_client, alice):
        login = await test_client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "Passw0rd!"}
        )
        headers = {"Authorization": f"Bearer {login.json()['token']}"}

        logout = await test_client.post("/api/auth/logout", headers=headers)
        after = await test_client.get("/api/profile", headers=headers)

        assert logout.status_code == 200
        assert after.status_code == 401

    @pytest.mark.asyncio
    async def test_password_strength(self, test_client):
        response = await test_client.post("/api/auth/password-strength", json={"password": "Abcdef1!"})
        assert response.json() == {"score": 5, "label": "Strong"}

    @pytest.mark.asyncio
    async def test_reset_password(self, test_client, identity):
        response = await test_client.post("/api/auth/reset-password", json={"email": "alice@example.com"})
        assert response.status_code == 200
        assert identity.reset_requests == ["alice@example.com"]


# ══════════════════════════════════════════════════════════════════════════
# Questions
# ══════════════════════════════════════════════════════════════════════════


class TestAskQuestion:

    @pytest.mark.asyncio
    async def test_requires_sign_in(self, test_client):
        response = await ask(test_client, headers={})

        assert response.status_code == 401
        assert response.json()["details"]["redirect"] == "/login"

    @pytest.mark.asyncio
    async def test_create_and_find_in_feed(self, test_client, alice, auth_headers, object_store):
        files = [("files", ("schema.png", b"\x89PNG....", "image/png"))]

        created = await ask(test_client, auth_headers(alice), files=files)

        assert created.status_code == 201
        assert created.json()["message"] == "Question submitted successfully!"
        question_id = created.json()["question_id"]

        feed = await test_client.get("/api/questions", params={"search": "join"})
        item = feed.json()["items"][0]
        assert item["id"] == question_id
        assert sorted(item["tags"]) == ["joins", "sql"]
        assert item["files"] == [object_store.uploads[0]["url"]]
        assert item["time_ago"] == "just now"

    @pytest.mark.asyncio
    async def test_short_title(self, test_client, alice, auth_headers):
        response = await ask(test_client, auth_headers(alice), title="Too short")

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "title"

    @pytest.mark.asyncio
    async def test_description_from_editor_commands(self, test_client, alice, auth_headers, document_store):
        commands = [
            {"type": "toggle_mark", "mark": "bold"},
            {"type": "insert_text", "text": "Rows that match in both tables"},
        ]
        response = await ask(test_client, auth_headers(alice), description_commands=json.dumps(commands))

        question_id = response.json()["question_id"]
        stored = document_store.collections["questions"][question_id]
        assert stored["question_description"] == "<p><strong>Rows that match in both tables</strong></p>"

    @pytest.mark.asyncio
    async def test_stored_description_is_sanitised(self, test_client, alice, auth_headers):
        markup = "<p>hello world long enough text</p><script>alert(1)</script>"
        question_id = (await ask(test_client, auth_headers(alice), description=markup)).json()["question_id"]

        thread = (await test_client.get(f"/api/questions/{question_id}")).json()

        assert thread["question"]["description_html"].startswith("<p>hello world long enough text</p>")
        assert "<script" not in thread["question"]["description_html"]

    @pytest.mark.asyncio
    async def test_preview(self, test_client):
        response = await test_client.post(
            "/api/questions/preview",
            json={"title": TITLE, "description": DESCRIPTION, "tags": ["SQL", "sql"]},
        )

        body = response.json()
        assert body["tags"] == ["sql"]
        assert body["errors"] == {}

    @pytest.mark.asyncio
    async def test_feed_rejects_unknown_sort(self, test_client):
        response = await test_client.get("/api/questions", params={"sort": "random"})
        assert response.status_code == 400


class TestQuestionThread:

    @pytest.mark.asyncio
    async def test_answer_vote_accept_comment(self, test_client, alice, admin, auth_headers, identity, document_store):
        question_id = (await ask(test_client, auth_headers(alice))).json()["question_id"]

        # bob answers
        identity.add_account("bob@example.com", "Passw0rd!", user_id="uid-bob")
        await document_store.set_document("users", "uid-bob", {"username": "bob", "role": "user"})
        bob_headers = {"Authorization": f"Bearer {identity.issue_token('uid-bob')}"}

        answered = await test_client.post(
            f"/api/questions/{question_id}/answers",
            json={"content": "<p>Use an INNER JOIN</p>"},
            headers=bob_headers,
        )
        assert answered.status_code == 201
        answer_id = answered.json()["answers"][0]["id"]

        voted = await test_client.post(
            f"/api/questions/{question_id}/answers/{answer_id}/votes", json={"direction": "up"}
        )
        assert voted.json()["answers"][0]["votes"] == 1

        refused = await test_client.post(
            f"/api/questions/{question_id}/answers/{answer_id}/accept", headers=bob_headers
        )
        assert refused.status_code == 403

        accepted = await test_client.post(
            f"/api/questions/{question_id}/answers/{answer_id}/accept", headers=auth_headers(alice)
        )
        assert accepted.json()["accepted_answer_id"] == answer_id

        commented = await test_client.post(
            f"/api/questions/{question_id}/answers/{answer_id}/comments",
            json={"content": "Thanks, that worked"},
            headers=auth_headers(alice),
        )
        assert commented.json()["answers"][0]["comments"][0]["username"] == "alice"

        thread = (await test_client.get(f"/api/questions/{question_id}")).json()
        assert thread["state"] == "ready"
        assert thread["answer_count"] == 1
        assert thread["question"]["views"] == 1
        assert thread["answers"][0]["is_accepted"] is True

    @pytest.mark.asyncio
    async def test_namesake_cannot_accept(self, test_client, alice, auth_headers, identity, document_store):
        question_id = (await ask(test_client, auth_headers(alice))).json()["question_id"]
        identity.add_account("mallory@example.com", "Passw0rd!", user_id="uid-mallory")
        await document_store.set_document("users", "uid-mallory", {"username": "alice", "role": "user"})
        mallory_headers = {"Authorization": f"Bearer {identity.issue_token('uid-mallory')}"}

        answered = await test_client.post(
            f"/api/questions/{question_id}/answers",
            json={"content": "<p>Use an INNER JOIN</p>"},
            headers=mallory_headers,
        )
        answer_id = answered.json()["answers"][0]["id"]

        response = await test_client.post(
            f"/api/questions/{question_id}/answers/{answer_id}/accept", headers=mallory_headers
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_register_with_taken_username(self, test_client, alice):
        response = await test_client.post(
            "/api/auth/register",
            json={
                "username": "alice",
                "email": "mallory@example.com",
                "password": "Passw0rd",
                "confirm_password": "Passw0rd",
                "phone_number": "+919812345678",
                "accept_terms": True,
            },
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "username"

    @pytest.mark.asyncio
    async def test_question_vote_needs_valid_direction(self, test_client, alice, auth_headers):
        question_id = (await ask(test_client, auth_headers(alice))).json()["question_id"]
        response = await test_client.post(f"/api/questions/{question_id}/votes", json={"direction": "sideways"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_blank_answer(self, test_client, alice, auth_headers):
        question_id = (await ask(test_client, auth_headers(alice))).json()["question_id"]
        response = await test_client.post(
            f"/api/questions/{question_id}/answers", json={"content": "  "}, headers=auth_headers(alice)
        )
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "content"


# ══════════════════════════════════════════════════════════════════════════
# Admin
# ══════════════════════════════════════════════════════════════════════════


class TestAdmin:

    @pytest.mark.asyncio
    async def test_regular_user_forbidden(self, test_client, alice, auth_headers):
        response = await test_client.get("/api/admin/users", headers=auth_headers(alice))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_users(self, test_client, alice, admin, auth_headers):
        response = await test_client.get(
            "/api/admin/users", params={"role": "user"}, headers=auth_headers(admin)
        )

        body = response.json()
        assert body["total_count"] == 1
        assert body["users"][0]["username"] == "alice"

    @pytest.mark.asyncio
    async def test_deleted_user_sent_to_register(self, test_client, alice, admin, auth_headers):
        assert (await test_client.get("/api/profile", headers=auth_headers(alice))).status_code == 200

        deleted = await test_client.delete(f"/api/admin/users/{alice.user_id}", headers=auth_headers(admin))
        after = await test_client.get("/api/profile", headers=auth_headers(alice))

        assert deleted.status_code == 200
        assert after.status_code == 401
        assert after.json()["details"]["redirect"] == "/register"

    @pytest.mark.asyncio
    async def test_delete_unknown_user(self, test_client, admin, auth_headers):
        response = await test_client.delete("/api/admin/users/uid-nobody", headers=auth_headers(admin))
        assert response.status_code == 404


class TestFiles:

    @pytest.mark.asyncio
    async def test_remote_object_store_serves_nothing(self, test_client):
        response = await test_client.get("/api/files/2026/10/19/x.png")
        assert response.status_code == 404
