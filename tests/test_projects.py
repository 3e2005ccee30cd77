"""
API tests for projects: creation, scoped reads, updates, deletion and
ownership transfer.
"""
import pytest

from app.features.projects.models import ProjectStatus
from tests.conftest import auth_headers


async def create_project(client, actor, **payload):
    return await client.post("/projects", json={"name": "Launch", **payload}, headers=auth_headers(actor))


class TestCreateProject:

    async def test_admin_creates_project(self, client, factory, tenant):
        gamma = await factory.team("Gamma", tenant.admin_a)
        response = await create_project(client, tenant.admin_a, teams=[gamma.id, tenant.alpha.id])
        assert response.status_code == 201
        project = response.json()
        assert project["admin_id"] == tenant.admin_a.id
        assert project["created_by_id"] == tenant.admin_a.id
        # Legacy team_id mirrors the first listed team
        assert project["team_id"] == gamma.id
        assert {t["name"] for t in project["teams"]} == {"Alpha", "Gamma"}
        assert project["status"] == "Not Started"

    async def test_empty_teams_is_400(self, client, tenant):
        response = await create_project(client, tenant.admin_a, teams=[])
        assert response.status_code == 400
        assert "teams" in response.json()

    async def test_missing_teams_is_400(self, client, tenant):
        response = await create_project(client, tenant.admin_a)
        assert response.status_code == 400

    async def test_unknown_team_is_400(self, client, tenant):
        response = await create_project(client, tenant.admin_a, teams=[tenant.alpha.id, "nope"])
        assert response.status_code == 400

    async def test_other_tenant_team_is_403(self, client, tenant):
        response = await create_project(client, tenant.admin_b, teams=[tenant.alpha.id])
        assert response.status_code == 403

    async def test_member_without_permission_is_403(self, client, tenant):
        response = await create_project(client, tenant.member_u, teams=[tenant.alpha.id])
        assert response.status_code == 403

    async def test_member_with_permission_creates_in_team_tenant(self, client, factory, tenant):
        creator = await factory.user("cora@example.com")
        await factory.member(creator, tenant.alpha, permissions=["create_project"])

        response = await create_project(client, creator, teams=[tenant.alpha.id])
        assert response.status_code == 201
        project = response.json()
        assert project["created_by_id"] == creator.id
        assert project["admin_id"] == tenant.admin_a.id

        listed = (await client.get("/projects", headers=auth_headers(tenant.admin_a))).json()
        assert [p["id"] for p in listed["items"]] == [project["id"]]

    async def test_legacy_team_admin_role_grants_create(self, client, factory, tenant):
        lead = await factory.user("lead@example.com")
        await factory.member(lead, tenant.alpha, role="admin")
        response = await create_project(client, lead, teams=[tenant.alpha.id])
        assert response.status_code == 201

    async def test_teams_from_two_tenants_is_400(self, client, factory, tenant):
        creator = await factory.user("cora@example.com")
        await factory.member(creator, tenant.alpha, permissions=["create_project"])
        await factory.member(creator, tenant.beta)

        response = await create_project(client, creator, teams=[tenant.alpha.id, tenant.beta.id])
        assert response.status_code == 400

        listed = (await client.get("/projects", headers=auth_headers(tenant.admin_b))).json()
        assert listed["total"] == 0

    async def test_unowned_legacy_team_may_join_a_tenant_project(self, client, factory, tenant):
        legacy = await factory.team("Legacy", None, created_by=tenant.admin_a)
        response = await create_project(client, tenant.admin_a, teams=[tenant.alpha.id, legacy.id])
        assert response.status_code == 201
        assert response.json()["admin_id"] == tenant.admin_a.id

    async def test_admin_cannot_delegate_ownership(self, client, tenant):
        response = await create_project(client, tenant.admin_a, teams=[tenant.alpha.id], admin_id=tenant.admin_b.id)
        assert response.status_code == 403

    async def test_super_admin_delegates_ownership(self, client, factory, tenant):
        root = await factory.super_admin()
        response = await create_project(client, root, teams=[tenant.alpha.id], admin_id=tenant.admin_a.id)
        assert response.status_code == 201
        assert response.json()["admin_id"] == tenant.admin_a.id

    async def test_staff_must_belong_to_a_project_team(self, client, tenant):
        response = await create_project(
            client, tenant.admin_a,
            teams=[tenant.alpha.id],
            team_members=[{"user_id": tenant.admin_b.id, "team_id": tenant.alpha.id}],
        )
        assert response.status_code == 400

        response = await create_project(
            client, tenant.admin_a,
            teams=[tenant.alpha.id],
            team_members=[{"user_id": tenant.member_u.id, "team_id": tenant.alpha.id, "role": "lead"}],
        )
        assert response.status_code == 201
        members = response.json()["members"]
        assert [(m["user_id"], m["role"]) for m in members] == [(tenant.member_u.id, "lead")]


class TestTenantIsolation:

    async def test_cross_tenant_project_is_invisible_and_untouchable(self, client, factory, tenant):
        project = (await create_project(client, tenant.admin_a, teams=[tenant.alpha.id])).json()
        # B also holds a membership in Alpha, the same team id
        await factory.member(tenant.admin_b, tenant.alpha)
        headers_b = auth_headers(tenant.admin_b)

        listed = (await client.get("/projects", headers=headers_b)).json()
        assert project["id"] not in [p["id"] for p in listed["items"]]
        assert (await client.get(f"/projects/{project['id']}", headers=headers_b)).status_code == 403
        assert (await client.put(f"/projects/{project['id']}", json={"name": "x"}, headers=headers_b)).status_code == 403
        assert (await client.delete(f"/projects/{project['id']}", headers=headers_b)).status_code == 403

    async def test_member_outside_project_teams_gets_403_not_404(self, client, factory, tenant):
        gamma = await factory.team("Gamma", tenant.admin_a)
        project = await factory.project("Hidden", [gamma], tenant.admin_a, admin=tenant.admin_a)

        response = await client.get(f"/projects/{project.id}", headers=auth_headers(tenant.member_u))
        assert response.status_code == 403

        response = await client.get("/projects/01HZZZZZZZZZZZZZZZZZZZZZZZ", headers=auth_headers(tenant.member_u))
        assert response.status_code == 404

    async def test_super_admin_sees_union_admin_sees_own(self, client, factory, tenant):
        root = await factory.super_admin()
        await factory.project("A-1", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        await factory.project("B-1", [tenant.beta], tenant.admin_b, admin=tenant.admin_b)

        everything = (await client.get("/projects", headers=auth_headers(root))).json()
        assert everything["total"] == 2
        assert {p["name"] for p in everything["items"]} == {"A-1", "B-1"}

        own = (await client.get("/projects", headers=auth_headers(tenant.admin_a))).json()
        assert [p["name"] for p in own["items"]] == ["A-1"]


class TestListProjects:

    async def test_pagination_and_status_filter(self, client, factory, tenant):
        for i in range(3):
            await factory.project(f"P{i}", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        await factory.project("Live", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a, status=ProjectStatus.IN_PROGRESS)
        headers = auth_headers(tenant.admin_a)

        page = (await client.get("/projects", params={"page": 2, "limit": 3}, headers=headers)).json()
        assert page["total"] == 4
        assert page["pages"] == 2
        assert page["page"] == 2
        assert page["page_size"] == 3
        assert len(page["items"]) == 1

        live = (await client.get("/projects", params={"status": "In Progress"}, headers=headers)).json()
        assert [p["name"] for p in live["items"]] == ["Live"]

    async def test_member_team_filter(self, client, factory, tenant):
        await factory.project("Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        headers = auth_headers(tenant.member_u)

        own = await client.get("/projects", params={"team_id": tenant.alpha.id}, headers=headers)
        assert own.status_code == 200
        assert own.json()["total"] == 1

        # Filtering by a team the member is not in is an error, not an empty page
        other = await client.get("/projects", params={"team_id": tenant.beta.id}, headers=headers)
        assert other.status_code == 403

    async def test_admin_cannot_filter_by_foreign_team(self, client, tenant):
        response = await client.get("/projects", params={"team_id": tenant.beta.id}, headers=auth_headers(tenant.admin_a))
        assert response.status_code == 403

    async def test_member_sees_projects_of_their_teams(self, client, factory, tenant):
        gamma = await factory.team("Gamma", tenant.admin_a)
        await factory.project("Visible", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        await factory.project("Hidden", [gamma], tenant.admin_a, admin=tenant.admin_a)
        await factory.project("Staffed", [gamma], tenant.admin_a, admin=tenant.admin_a, staff=[(tenant.member_u, gamma)])

        listed = (await client.get("/projects", headers=auth_headers(tenant.member_u))).json()
        assert {p["name"] for p in listed["items"]} == {"Visible", "Staffed"}


class TestUpdateProject:

    async def test_admin_id_is_ignored_on_update(self, client, tenant):
        project = (await create_project(client, tenant.admin_a, teams=[tenant.alpha.id])).json()
        response = await client.put(
            f"/projects/{project['id']}",
            json={"name": "Relaunch", "admin_id": tenant.admin_b.id},
            headers=auth_headers(tenant.admin_a),
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Relaunch"
        assert response.json()["admin_id"] == tenant.admin_a.id

    async def test_changing_teams_rederives_team_id_and_prunes_staff(self, client, factory, tenant):
        gamma = await factory.team("Gamma", tenant.admin_a)
        project = (await create_project(
            client, tenant.admin_a,
            teams=[tenant.alpha.id],
            team_members=[{"user_id": tenant.member_u.id, "team_id": tenant.alpha.id}],
        )).json()

        response = await client.put(
            f"/projects/{project['id']}",
            json={"teams": [gamma.id]},
            headers=auth_headers(tenant.admin_a),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["team_id"] == gamma.id
        assert [t["id"] for t in body["teams"]] == [gamma.id]
        assert body["members"] == []

    async def test_unknown_team_on_update_is_400(self, client, tenant):
        project = (await create_project(client, tenant.admin_a, teams=[tenant.alpha.id])).json()
        response = await client.put(
            f"/projects/{project['id']}",
            json={"teams": ["nope"]},
            headers=auth_headers(tenant.admin_a),
        )
        assert response.status_code == 400

    async def test_foreign_team_on_update_is_403(self, client, tenant):
        project = (await create_project(client, tenant.admin_a, teams=[tenant.alpha.id])).json()
        response = await client.put(
            f"/projects/{project['id']}",
            json={"teams": [tenant.beta.id]},
            headers=auth_headers(tenant.admin_a),
        )
        assert response.status_code == 403

    async def test_member_needs_edit_project(self, client, factory, tenant):
        project = await factory.project("Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        response = await client.put(f"/projects/{project.id}", json={"name": "x"}, headers=auth_headers(tenant.member_u))
        assert response.status_code == 403

        editor = await factory.user("ed@example.com")
        await factory.member(editor, tenant.alpha, permissions=["edit_project"])
        response = await client.put(f"/projects/{project.id}", json={"status": "Completed"}, headers=auth_headers(editor))
        assert response.status_code == 200
        assert response.json()["status"] == "Completed"

    async def test_adding_another_tenants_team_is_400(self, client, factory, tenant):
        project = await factory.project("Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        editor = await factory.user("ed@example.com")
        await factory.member(editor, tenant.alpha, permissions=["edit_project"])
        await factory.member(editor, tenant.beta)

        response = await client.put(
            f"/projects/{project.id}",
            json={"teams": [tenant.alpha.id, tenant.beta.id]},
            headers=auth_headers(editor),
        )
        assert response.status_code == 400

        current = (await client.get(f"/projects/{project.id}", headers=auth_headers(tenant.admin_a))).json()
        assert [t["id"] for t in current["teams"]] == [tenant.alpha.id]


class TestDeleteProject:

    async def test_delete_removes_tasks_first(self, client, factory, tenant):
        project = await factory.project("Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        task = await factory.task("Write spec", project, tenant.admin_a)
        headers = auth_headers(tenant.admin_a)

        response = await client.delete(f"/projects/{project.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["deleted_tasks"] == 1

        assert (await client.get(f"/projects/{project.id}", headers=headers)).status_code == 404
        assert (await client.get(f"/tasks/{task.id}", headers=headers)).status_code == 404

    async def test_member_needs_delete_project(self, client, factory, tenant):
        project = await factory.project("Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)
        response = await client.delete(f"/projects/{project.id}", headers=auth_headers(tenant.member_u))
        assert response.status_code == 403


class TestProjectMembers:

    async def test_assignable_members(self, client, factory, tenant):
        project = await factory.project(
            "Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a,
            staff=[(tenant.member_u, tenant.alpha)],
        )
        response = await client.get(f"/projects/{project.id}/members", headers=auth_headers(tenant.member_u))
        assert response.status_code == 200
        members = {m["username"]: m for m in response.json()}
        assert set(members) == {"Alice", "Uma"}
        assert members["Uma"]["project_role"] == "member"
        assert members["Alice"]["project_role"] is None


class TestTransferOwnership:

    @pytest.fixture
    async def project(self, factory, tenant):
        return await factory.project("Launch", [tenant.alpha], tenant.admin_a, admin=tenant.admin_a)

    async def test_owner_transfers_to_another_admin(self, client, tenant, project):
        response = await client.post(
            f"/projects/{project.id}/transfer-ownership",
            json={"admin_id": tenant.admin_b.id},
            headers=auth_headers(tenant.admin_a),
        )
        assert response.status_code == 200
        assert response.json()["admin_id"] == tenant.admin_b.id

        # The previous owner has lost access
        assert (await client.get(f"/projects/{project.id}", headers=auth_headers(tenant.admin_a))).status_code == 403
        assert (await client.get(f"/projects/{project.id}", headers=auth_headers(tenant.admin_b))).status_code == 200

    async def test_target_must_be_active_admin(self, client, factory, tenant, project):
        headers = auth_headers(tenant.admin_a)
        url = f"/projects/{project.id}/transfer-ownership"

        assert (await client.post(url, json={"admin_id": tenant.member_u.id}, headers=headers)).status_code == 400

        inactive = await factory.admin("idle@example.com", is_active=False)
        assert (await client.post(url, json={"admin_id": inactive.id}, headers=headers)).status_code == 400

        root = await factory.super_admin()
        assert (await client.post(url, json={"admin_id": root.id}, headers=headers)).status_code == 400

    async def test_member_cannot_transfer(self, client, tenant, project):
        response = await client.post(
            f"/projects/{project.id}/transfer-ownership",
            json={"admin_id": tenant.admin_b.id},
            headers=auth_headers(tenant.member_u),
        )
        assert response.status_code == 403

    async def test_super_admin_transfers(self, client, factory, tenant, project):
        root = await factory.super_admin()
        response = await client.post(
            f"/projects/{project.id}/transfer-ownership",
            json={"admin_id": tenant.admin_b.id},
            headers=auth_headers(root),
        )
        assert response.status_code == 200
        assert response.json()["admin_id"] == tenant.admin_b.id


class TestLegacyProjects:

    async def test_unowned_project_follows_legacy_access_setting(self, client, factory, tenant, monkeypatch):
        from app.core import config

        project = await factory.project("Old", [tenant.alpha], tenant.admin_b, admin=None)
        headers = auth_headers(tenant.admin_a)

        monkeypatch.setattr(config, "ALLOW_UNOWNED_LEGACY_ACCESS", True)
        assert (await client.get(f"/projects/{project.id}", headers=headers)).status_code == 200

        monkeypatch.setattr(config, "ALLOW_UNOWNED_LEGACY_ACCESS", False)
        assert (await client.get(f"/projects/{project.id}", headers=headers)).status_code == 403
        assert (await client.get(f"/projects/{project.id}", headers=auth_headers(tenant.admin_b))).status_code == 200
