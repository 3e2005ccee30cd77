"""
Unit tests for the authorization rule chain.

Each test asserts the rule that produced the verdict, not only the verdict,
so a reordering of the chain is caught.
"""
import pytest
from fastapi import HTTPException

from app.features.permissions.dependencies import (
    ACTION_PERMISSIONS,
    ADMIN_ONLY_ACTIONS,
    Action,
    AuthorizationContext,
    decide,
    ensure_allowed,
)
from app.features.permissions.models import Role
from app.features.projects.models import Project
from app.features.tasks.models import Task
from app.features.teams.models import Team
from app.features.users.actor import Actor, MembershipSnapshot


def snapshot(team_id: str, role: str = "member", permissions=(), tenant: str = "admin-a") -> MembershipSnapshot:
    return MembershipSnapshot(
        team_id=team_id,
        team_name=team_id,
        role=role,
        role_id=None,
        permissions=frozenset(permissions),
        joined_at=None,
        tenant_admin_id=tenant,
    )


def member(*memberships: MembershipSnapshot, user_id: str = "member") -> Actor:
    return Actor(id=user_id, email=f"{user_id}@x.test", memberships=tuple(memberships))


ADMIN_A = Actor(id="admin-a", email="a@x.test", is_admin=True)
ADMIN_B = Actor(id="admin-b", email="b@x.test", is_admin=True)
ROOT = Actor(id="root", email="root@x.test", is_admin=True, is_super_admin=True)

ALPHA = Team(id="alpha", name="Alpha", admin_id="admin-a")
BETA = Team(id="beta", name="Beta", admin_id="admin-a")


def project_in(*teams: Team, admin_id: str = "admin-a") -> Project:
    project = Project(id="p1", name="Launch", admin_id=admin_id, created_by_id=admin_id)
    project.teams = list(teams)
    project.team_id = teams[0].id
    project.members = []
    return project


def task_in(project: Project, assignees=()) -> Task:
    return Task(id="t1", title="Write spec", project=project, teams=list(project.teams), assignees=list(assignees))


class TestRuleOrder:

    def test_super_admin_wins_before_scope(self):
        decision = decide(ROOT, Action.DELETE_PROJECT, AuthorizationContext.for_project(project_in(ALPHA, admin_id="admin-b")))
        assert decision.allowed
        assert decision.rule == "super_admin"

    def test_scope_denies_before_admin_allow(self):
        decision = decide(ADMIN_B, Action.EDIT_PROJECT, AuthorizationContext.for_project(project_in(ALPHA)))
        assert not decision
        assert decision.rule == "tenant_scope"

    def test_scope_denies_proposed_team_from_other_tenant(self):
        foreign = Team(id="gamma", name="Gamma", admin_id="admin-b")
        decision = decide(ADMIN_A, Action.CREATE_PROJECT, AuthorizationContext.for_new_resource([ALPHA, foreign]))
        assert decision.rule == "tenant_scope"

    def test_scope_denies_member_even_with_permission(self):
        actor = member(snapshot("beta", permissions=["edit_project"]))
        decision = decide(actor, Action.EDIT_PROJECT, AuthorizationContext.for_project(project_in(ALPHA)))
        assert decision.rule == "tenant_scope"

    def test_tenant_admin_allowed_for_everything_in_tenant(self):
        context = AuthorizationContext.for_project(project_in(ALPHA))
        for action in Action:
            decision = decide(ADMIN_A, action, context)
            assert decision.allowed, action
            assert decision.rule == "tenant_admin"

    def test_admin_assigns_to_anyone_before_self_assignment_rule(self):
        context = AuthorizationContext.for_project(project_in(ALPHA), assignee_ids=["someone-else"])
        assert decide(ADMIN_A, Action.ASSIGN_TASK, context).rule == "tenant_admin"

    def test_member_self_assignment_needs_no_permission(self):
        actor = member(snapshot("alpha"))
        context = AuthorizationContext.for_project(project_in(ALPHA), assignee_ids=["member"])
        decision = decide(actor, Action.ASSIGN_TASK, context)
        assert decision.allowed
        assert decision.rule == "self_assignment"

    def test_member_cannot_assign_others_even_as_legacy_team_admin(self):
        actor = member(snapshot("alpha", role="admin", permissions=["edit_task", "create_task"]))
        context = AuthorizationContext.for_project(project_in(ALPHA), assignee_ids=["member", "other"])
        decision = decide(actor, Action.ASSIGN_TASK, context)
        assert not decision
        assert decision.rule == "assign_requires_admin"

    @pytest.mark.parametrize("action", sorted(ADMIN_ONLY_ACTIONS, key=lambda a: a.value))
    def test_admin_only_actions_deny_members_before_permission_rules(self, action):
        actor = member(snapshot("alpha", role="admin", permissions=["edit_project"]))
        decision = decide(actor, action, AuthorizationContext.for_team(ALPHA))
        assert decision.rule == "admin_required"

    def test_permission_string_before_legacy_role(self):
        actor = member(snapshot("alpha", role="admin", permissions=["edit_project"]))
        decision = decide(actor, Action.EDIT_PROJECT, AuthorizationContext.for_project(project_in(ALPHA)))
        assert decision.rule == "team_permission"

    def test_legacy_team_admin_allowed_without_permissions(self):
        actor = member(snapshot("alpha", role="admin"))
        decision = decide(actor, Action.DELETE_PROJECT, AuthorizationContext.for_project(project_in(ALPHA)))
        assert decision.allowed
        assert decision.rule == "legacy_team_admin"

    def test_missing_permission_is_last(self):
        actor = member(snapshot("alpha", permissions=["view_project"]))
        decision = decide(actor, Action.DELETE_PROJECT, AuthorizationContext.for_project(project_in(ALPHA)))
        assert not decision
        assert decision.rule == "missing_permission"
        assert "delete_project" in decision.reason


class TestPermissionRules:

    def test_edit_project_grants_create_task(self):
        assert ACTION_PERMISSIONS[Action.CREATE_TASK][0] == "create_task"
        actor = member(snapshot("alpha", permissions=["edit_project"]))
        decision = decide(actor, Action.CREATE_TASK, AuthorizationContext.for_project(project_in(ALPHA)))
        assert decision.rule == "team_permission"

    def test_edit_project_does_not_grant_edit_task(self):
        actor = member(snapshot("alpha", permissions=["edit_project"]))
        project = project_in(ALPHA)
        decision = decide(actor, Action.EDIT_TASK, AuthorizationContext.for_task(task_in(project)))
        assert decision.rule == "missing_permission"

    def test_only_memberships_of_relevant_teams_count(self):
        # Permission held in Beta does not apply to a project of Alpha
        actor = member(snapshot("alpha"), snapshot("beta", permissions=["edit_project"]))
        decision = decide(actor, Action.EDIT_PROJECT, AuthorizationContext.for_project(project_in(ALPHA)))
        assert decision.rule == "missing_permission"

    def test_permission_in_any_project_team_is_enough(self):
        actor = member(snapshot("beta", permissions=["edit_project"]))
        decision = decide(actor, Action.EDIT_PROJECT, AuthorizationContext.for_project(project_in(ALPHA, BETA)))
        assert decision.rule == "team_permission"

    def test_create_project_needs_permission_in_a_proposed_team(self):
        actor = member(snapshot("alpha", permissions=["create_project"]), snapshot("beta"))
        assert decide(actor, Action.CREATE_PROJECT, AuthorizationContext.for_new_resource([ALPHA, BETA])).allowed
        assert not decide(member(snapshot("alpha")), Action.CREATE_PROJECT, AuthorizationContext.for_new_resource([ALPHA]))

    def test_role_actions_use_memberships_in_role_tenant(self):
        role = Role(id="r1", role_name="Editor", permissions=[], admin_id="admin-a")
        actor = member(snapshot("alpha", permissions=["view_role"]))
        assert decide(actor, Action.VIEW_ROLE, AuthorizationContext.for_role(role, actor)).rule == "team_permission"
        assert decide(actor, Action.EDIT_ROLE, AuthorizationContext.for_role(role, actor)).rule == "missing_permission"

        foreign = Role(id="r2", role_name="Editor", permissions=[], admin_id="admin-b")
        assert decide(actor, Action.VIEW_ROLE, AuthorizationContext.for_role(foreign, actor)).rule == "tenant_scope"


class TestEnsureAllowed:

    def test_returns_decision_when_allowed(self):
        assert ensure_allowed(ADMIN_A, Action.CREATE_TEAM).rule == "tenant_admin"

    def test_raises_forbidden_with_reason(self):
        with pytest.raises(HTTPException) as exc_info:
            ensure_allowed(member(), Action.CREATE_TEAM)
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Admin privileges required"
