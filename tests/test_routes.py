"""Tests for the permissions and users HTTP API."""
from datetime import timedelta

from httpx import AsyncClient

from app.features.permissions.enums import Permission
from app.features.permissions.events import PERMISSION_GRANTED, PERMISSION_REQUEST_REVIEWED
from app.features.users.models import User
from app.utils import utcnow


def auth(user: User) -> dict:
    """The test identity override reads the bearer token as a user id."""
    return {"Authorization": f"Bearer {user.id}"}


async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_definitions_are_public(client: AsyncClient):
    response = await client.get("/permissions/definitions")

    assert response.status_code == 200
    data = response.json()
    assert len(data["permissions"]) == len(Permission)
    assert data["permission_labels"]["HANDOVER_VIEW"]
    assert "MANAGER" in data["positions"]
    assert data["default_permissions_by_position"]["ADMIN"] == [p.value for p in Permission]


async def test_my_permissions_requires_identity(client: AsyncClient):
    response = await client.get("/permissions/my")

    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


async def test_my_permissions(client: AsyncClient, policy, nurse: User):
    response = await client.get("/permissions/my", headers=auth(nurse))

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == nurse.id
    assert data["position"] == "NURSE"
    assert data["custom_permissions"] == []
    assert set(data["effective_permissions"]) == {p.value for p in policy.defaults_for(nurse.position)}


async def test_guarded_routes_forbid_missing_permission(client: AsyncClient, nurse: User, manager: User):
    for path in ("/permissions/matrix", "/permissions/requests", f"/permissions/users/{manager.id}"):
        response = await client.get(path, headers=auth(nurse))
        assert response.status_code == 403, path
        assert response.json()["error"] == "FORBIDDEN"


async def test_manager_can_view_users_but_not_manage_permissions(client: AsyncClient, nurse: User, manager: User):
    response = await client.get(f"/permissions/users/{nurse.id}", headers=auth(manager))
    assert response.status_code == 200
    assert response.json()["position"] == "NURSE"

    response = await client.post(
        f"/permissions/users/{nurse.id}/grant",
        json={"permission": "HR_VIEW"},
        headers=auth(manager),
    )
    assert response.status_code == 403


async def test_grant_and_revoke(client: AsyncClient, events, receptionist: User, admin: User):
    expires = (utcnow() + timedelta(days=30)).isoformat()
    response = await client.post(
        f"/permissions/users/{receptionist.id}/grant",
        json={"permission": "INVENTORY_MANAGE", "reason": "Stock take", "expires_at": expires},
        headers=auth(admin),
    )
    assert response.status_code == 201
    grant = response.json()
    assert grant["granted"] is True
    assert grant["granted_by_id"] == admin.id
    assert grant["expires_at"] is not None

    response = await client.post(
        f"/permissions/users/{receptionist.id}/revoke",
        json={"permission": "DOCUMENTS_VIEW"},
        headers=auth(admin),
    )
    assert response.status_code == 201
    assert response.json()["granted"] is False

    data = (await client.get("/permissions/my", headers=auth(receptionist))).json()
    assert "INVENTORY_MANAGE" in data["effective_permissions"]
    assert "DOCUMENTS_VIEW" not in data["effective_permissions"]
    assert [g["permission"] for g in data["custom_permissions"]] == ["INVENTORY_MANAGE", "DOCUMENTS_VIEW"]
    assert events.audits[0].action == PERMISSION_GRANTED


async def test_grant_validation(client: AsyncClient, nurse: User, admin: User):
    response = await client.post(
        f"/permissions/users/{nurse.id}/grant",
        json={"permission": "TELEPORT"},
        headers=auth(admin),
    )
    assert response.status_code == 400
    assert "permission" in response.json()

    response = await client.post(
        f"/permissions/users/{nurse.id}/grant",
        json={"permission": "HR_VIEW", "expires_at": (utcnow() - timedelta(days=1)).isoformat()},
        headers=auth(admin),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"

    response = await client.post(
        "/permissions/users/01HZY00000000000000000NONE/grant",
        json={"permission": "HR_VIEW"},
        headers=auth(admin),
    )
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


async def test_position_change_requires_users_manage(client: AsyncClient, nurse: User, manager: User, admin: User):
    response = await client.post(
        f"/permissions/users/{nurse.id}/position", json={"position": "MANAGER"}, headers=auth(manager)
    )
    assert response.status_code == 403

    response = await client.post(
        f"/permissions/users/{nurse.id}/position", json={"position": "MANAGER"}, headers=auth(admin)
    )
    assert response.status_code == 200
    assert response.json() == {"user_id": nurse.id, "position": "MANAGER"}

    data = (await client.get("/permissions/my", headers=auth(nurse))).json()
    assert "USERS_VIEW" in data["effective_permissions"]


async def test_request_review_flow(client: AsyncClient, events, nurse: User, manager: User, admin: User):
    response = await client.post(
        "/permissions/requests",
        json={"permission": "QUALITY_MANAGE", "reason": "Covering the QA lead"},
        headers=auth(nurse),
    )
    assert response.status_code == 201
    request = response.json()
    assert request["status"] == "PENDING"
    assert request["reviewer_id"] is None

    duplicate = await client.post(
        "/permissions/requests",
        json={"permission": "QUALITY_MANAGE", "reason": "Again"},
        headers=auth(nurse),
    )
    assert duplicate.status_code == 409

    # Managers hold QUALITY_MANAGE but not PERMISSIONS_MANAGE
    response = await client.post(
        f"/permissions/requests/{request['id']}/review", json={"approved": True}, headers=auth(manager)
    )
    assert response.status_code == 403

    response = await client.post(
        f"/permissions/requests/{request['id']}/review",
        json={"approved": True, "review_note": "Until the 14th"},
        headers=auth(admin),
    )
    assert response.status_code == 200
    reviewed = response.json()
    assert reviewed["status"] == "APPROVED"
    assert reviewed["reviewer_id"] == admin.id
    assert reviewed["reviewed_at"] is not None

    again = await client.post(
        f"/permissions/requests/{request['id']}/review", json={"approved": False}, headers=auth(admin)
    )
    assert again.status_code == 409
    assert again.json()["error"] == "CONFLICT"

    data = (await client.get("/permissions/my", headers=auth(nurse))).json()
    assert "QUALITY_MANAGE" in data["effective_permissions"]
    assert [e.action for e in events.audits] == [PERMISSION_REQUEST_REVIEWED]
    assert events.notifications[0].recipient_id == nurse.id

    mine = (await client.get("/permissions/requests/my", headers=auth(nurse))).json()
    assert [r["id"] for r in mine] == [request["id"]]


async def test_request_validation(client: AsyncClient, nurse: User):
    response = await client.post(
        "/permissions/requests", json={"permission": "QUALITY_MANAGE", "reason": "   "}, headers=auth(nurse)
    )
    assert response.status_code == 400
    assert "reason" in response.json()

    response = await client.post(
        "/permissions/requests", json={"permission": "HANDOVER_VIEW", "reason": "Need it"}, headers=auth(nurse)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_review_unknown_request(client: AsyncClient, admin: User):
    response = await client.post(
        "/permissions/requests/01HZY00000000000000000NONE/review", json={"approved": True}, headers=auth(admin)
    )
    assert response.status_code == 404


async def test_list_requests_filters_by_status(client: AsyncClient, nurse: User, receptionist: User, admin: User):
    for user in (nurse, receptionist):
        response = await client.post(
            "/permissions/requests", json={"permission": "FINANCE_VIEW", "reason": "Month end"}, headers=auth(user)
        )
        assert response.status_code == 201
    first_id = (await client.get("/permissions/requests/my", headers=auth(nurse))).json()[0]["id"]
    await client.post(f"/permissions/requests/{first_id}/review", json={"approved": False}, headers=auth(admin))

    response = await client.get("/permissions/requests", params={"status": "PENDING"}, headers=auth(admin))
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["requester_id"] == receptionist.id

    response = await client.get("/permissions/requests", params={"page_size": 1, "page": 2}, headers=auth(admin))
    data = response.json()
    assert data["total"] == 2
    assert data["pages"] == 2
    assert len(data["items"]) == 1

    response = await client.get("/permissions/requests", params={"page": 0}, headers=auth(admin))
    assert response.status_code == 400


async def test_matrix(client: AsyncClient, nurse: User, receptionist: User, admin: User):
    await client.post(
        f"/permissions/users/{receptionist.id}/grant", json={"permission": "INVENTORY_MANAGE"}, headers=auth(admin)
    )

    response = await client.get("/permissions/matrix", headers=auth(admin))

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    rows = {row["user_id"]: row for row in data["items"]}
    assert "INVENTORY_MANAGE" in rows[receptionist.id]["permissions"]
    assert rows[receptionist.id]["custom_permission_count"] == 1
    assert rows[nurse.id]["custom_permission_count"] == 0


async def test_request_creation_is_rate_limited(client: AsyncClient, nurse: User):
    statuses = []
    for _ in range(11):
        response = await client.post(
            "/permissions/requests", json={"permission": "HR_VIEW", "reason": "rota"}, headers=auth(nurse)
        )
        statuses.append(response.status_code)

    assert statuses[0] == 201
    assert set(statuses[1:10]) == {409}
    assert statuses[10] == 429


async def test_users_me(client: AsyncClient, nurse: User):
    response = await client.get("/users/me", headers=auth(nurse))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == nurse.id
    assert data["position"] == "NURSE"


async def test_users_list_and_get(client: AsyncClient, nurse: User, manager: User):
    response = await client.get("/users/", headers=auth(nurse))
    assert response.status_code == 200
    assert [u["name"] for u in response.json()] == ["Mark Manager", "Nina Nurse"]

    response = await client.get(f"/users/{manager.id}", headers=auth(nurse))
    assert response.status_code == 200
    assert response.json()["position"] == "MANAGER"

    response = await client.get("/users/missing", headers=auth(nurse))
    assert response.status_code == 404
