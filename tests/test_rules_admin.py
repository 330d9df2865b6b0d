"""Tests for assignflow/admin/rules.py."""
from __future__ import annotations

import pytest

from assignflow.admin.rules import RuleManager, validate_rule_definition
from assignflow.audit.audit_log import get_events_by_type, get_target_history
from assignflow.audit.events import EVENT_RULE_CREATED, EVENT_RULE_DELETED, EVENT_RULES_REORDERED
from assignflow.core.context import OrgContext
from assignflow.db.models import RequestType

ORG = "org-a"
CTX = OrgContext(ORG, user_id="admin-1")
OTHER_CTX = OrgContext("org-b", user_id="admin-9")


def _request_type(db, org=ORG) -> RequestType:
    rt = RequestType(organization_id=org, name="Expense")
    db.add(rt)
    db.flush()
    return rt


def _create(manager, rt, name="rule", **kwargs):
    kwargs.setdefault("rule_type", "role_based")
    kwargs.setdefault("conditions", {"roles": ["manager"]})
    return manager.create_rule(CTX, rt.id, name, **kwargs)


# ===========================================================================
# validate_rule_definition
# ===========================================================================

class TestValidateRuleDefinition:
    def test_valid_definitions(self):
        validate_rule_definition("role_based", "round_robin", {"roles": ["admin"]})
        validate_rule_definition("job_role_based", "load_balanced", {"job_roles": ["Finance"]})
        validate_rule_definition("team_hierarchy", "manual", {"team_ids": ["t-1"]})
        validate_rule_definition("custom", "first_available", {"custom_logic": "urgent priority"})

    @pytest.mark.parametrize(
        "rule_type,strategy,conditions,message",
        [
            ("location_based", "round_robin", {"roles": ["admin"]}, "Invalid rule_type"),
            ("role_based", "fastest", {"roles": ["admin"]}, "Invalid strategy"),
            ("role_based", "round_robin", {}, "conditions.roles"),
            ("job_role_based", "round_robin", {"roles": ["admin"]}, "conditions.job_roles"),
            ("custom", "round_robin", {"custom_logic": "department is HR"}, "at least one predicate"),
            ("role_based", "round_robin", {"roles": "admin"}, "invalid rule conditions"),
        ],
    )
    def test_invalid_definitions(self, rule_type, strategy, conditions, message):
        with pytest.raises(ValueError, match=message):
            validate_rule_definition(rule_type, strategy, conditions)

    def test_invalid_escalation_policy(self):
        with pytest.raises(ValueError, match="escalation"):
            validate_rule_definition("role_based", "round_robin", {"roles": ["a"]}, {"timeout_hours": -1})


# ===========================================================================
# RuleManager
# ===========================================================================

class TestRuleManager:
    def test_create_appends_priority_and_audits(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)

        first = _create(manager, rt, "first")
        second = _create(manager, rt, "second")

        assert (first.priority, second.priority) == (0, 1)
        assert first.created_by == "admin-1"
        assert [r.id for r in manager.list_rules(CTX, rt.id)] == [first.id, second.id]
        assert len(get_events_by_type(db_session, ORG, EVENT_RULE_CREATED)) == 2

    def test_create_for_unknown_request_type(self, db_session):
        with pytest.raises(KeyError):
            _create(RuleManager(db_session), RequestType(id="missing"))

    def test_create_for_other_organization_request_type(self, db_session):
        rt = _request_type(db_session, org="org-b")
        with pytest.raises(PermissionError):
            _create(RuleManager(db_session), rt)

    def test_create_rejects_blank_name(self, db_session):
        rt = _request_type(db_session)
        with pytest.raises(ValueError, match="name"):
            _create(RuleManager(db_session), rt, "  ")

    def test_update_revalidates(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)
        rule = _create(manager, rt)

        updated = manager.update_rule(CTX, rule.id, strategy="least_busy", name=" Renamed ")
        assert updated.strategy == "least_busy"
        assert updated.name == "Renamed"

        with pytest.raises(ValueError):
            manager.update_rule(CTX, rule.id, rule_type="job_role_based")
        with pytest.raises(ValueError, match="Cannot update"):
            manager.update_rule(CTX, rule.id, organization_id="org-b")

        history = get_target_history(db_session, ORG, rule.id)
        assert len(history) == 2

    def test_update_rejects_null_active(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)
        rule = _create(manager, rt)

        with pytest.raises(ValueError, match="active"):
            manager.update_rule(CTX, rule.id, active=None)

        assert manager.get_rule(CTX, rule.id).active is True

    def test_update_other_organization_rule(self, db_session):
        rt = _request_type(db_session)
        rule = _create(RuleManager(db_session), rt)

        with pytest.raises(PermissionError):
            RuleManager(db_session).update_rule(OTHER_CTX, rule.id, name="stolen")

    def test_set_active_and_active_only_listing(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)
        rule = _create(manager, rt)
        manager.set_active(CTX, rule.id, False)

        assert manager.list_rules(CTX, rt.id, active_only=True) == []
        assert len(manager.list_rules(CTX, rt.id)) == 1

    def test_delete(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)
        rule = _create(manager, rt)
        rule_id = rule.id

        manager.delete_rule(CTX, rule_id)

        assert manager.list_rules(CTX, rt.id) == []
        assert get_events_by_type(db_session, ORG, EVENT_RULE_DELETED)[0].target_id == rule_id
        with pytest.raises(KeyError):
            manager.delete_rule(CTX, rule_id)

    def test_reorder(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)
        a = _create(manager, rt, "a")
        b = _create(manager, rt, "b")
        c = _create(manager, rt, "c")

        reordered = manager.reorder_rules(CTX, rt.id, [c.id, a.id, b.id])

        assert [r.id for r in reordered] == [c.id, a.id, b.id]
        assert [r.priority for r in reordered] == [0, 1, 2]
        assert [r.id for r in manager.list_rules(CTX, rt.id)] == [c.id, a.id, b.id]
        [event] = get_events_by_type(db_session, ORG, EVENT_RULES_REORDERED)
        assert event.detail["order"] == [c.id, a.id, b.id]

    def test_reorder_requires_every_rule_once(self, db_session):
        rt = _request_type(db_session)
        manager = RuleManager(db_session)
        a = _create(manager, rt, "a")
        b = _create(manager, rt, "b")

        with pytest.raises(ValueError, match="every rule"):
            manager.reorder_rules(CTX, rt.id, [a.id])
        with pytest.raises(ValueError, match="duplicates"):
            manager.reorder_rules(CTX, rt.id, [a.id, a.id, b.id])
