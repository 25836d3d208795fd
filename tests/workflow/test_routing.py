"""Tests for initial route planning."""

from expenseflow.workflow.routing import plan_initial_route
from expenseflow.workflow.types import ApprovalLevel, ApprovalRuleRecord, ApproverRef


def lookup_from(staff):
    users = {user.id: user for user in vars(staff).values()}
    return lambda user_id: users.get(user_id)


def make_rule(**kwargs) -> ApprovalRuleRecord:
    return ApprovalRuleRecord(id=7, company_id=1, name="rule", **kwargs)


class TestPlanInitialRoute:
    def test_no_rule_routes_to_direct_manager(self, staff):
        route = plan_initial_route(None, staff.employee, lookup_from(staff))

        assert route.approver_id == staff.manager.id
        assert route.approver_name == "Sarah Manager"
        assert route.rule is None

    def test_no_rule_and_no_manager_is_unrouted(self, staff):
        route = plan_initial_route(None, staff.orphan, lookup_from(staff))

        assert not route.is_routed

    def test_levels_take_precedence_over_manager_flag(self, staff):
        rule = make_rule(
            is_manager_approver=True,
            approvers=(ApproverRef(staff.c.id, "Cat Approver"),),
            levels=(
                ApprovalLevel(1, (ApproverRef(staff.a.id, "Ann Approver"), ApproverRef(staff.b.id, "Ben Approver"))),
                ApprovalLevel(2, (ApproverRef(staff.c.id, "Cat Approver"),)),
            ),
        )

        route = plan_initial_route(rule, staff.employee, lookup_from(staff))

        assert route.approver_id == staff.a.id
        assert route.rule is rule

    def test_empty_first_level_is_unrouted(self, staff):
        rule = make_rule(levels=(ApprovalLevel(1, ()), ApprovalLevel(2, (ApproverRef(staff.c.id),))))

        route = plan_initial_route(rule, staff.employee, lookup_from(staff))

        assert not route.is_routed
        assert route.rule is rule

    def test_manager_approver_rule_uses_direct_manager(self, staff):
        rule = make_rule(is_manager_approver=True, approvers=(ApproverRef(staff.a.id, "Ann Approver"),))

        route = plan_initial_route(rule, staff.employee, lookup_from(staff))

        assert route.approver_id == staff.manager.id

    def test_manager_approver_rule_without_manager_is_unrouted(self, staff):
        rule = make_rule(is_manager_approver=True, approvers=(ApproverRef(staff.a.id, "Ann Approver"),))

        route = plan_initial_route(rule, staff.orphan, lookup_from(staff))

        assert not route.is_routed

    def test_custom_approver_list_uses_first_entry(self, staff):
        rule = make_rule(
            is_manager_approver=False,
            approvers=(ApproverRef(staff.b.id, "Ben Approver"), ApproverRef(staff.a.id, "Ann Approver")),
        )

        route = plan_initial_route(rule, staff.employee, lookup_from(staff))

        assert route.approver_id == staff.b.id
        assert route.approver_name == "Ben Approver"

    def test_rule_with_nobody_configured_is_unrouted(self, staff):
        rule = make_rule(is_manager_approver=False)

        route = plan_initial_route(rule, staff.employee, lookup_from(staff))

        assert not route.is_routed
        assert route.to_dict()["rule_id"] == 7
