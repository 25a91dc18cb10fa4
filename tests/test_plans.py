"""Tests for the normalization of parameters into a backup resource graph"""
# Installed
import pytest
# Local
from cdk_aws_backup.errors import BackupConfigurationError
from cdk_aws_backup.parameters import BackupParameters, load_parameters
from cdk_aws_backup.plans import describe, normalize, parse_vault_arn

ACCOUNT = "123456789101"
OTHER_ACCOUNT = "210987654321"


def _copy_rule(destination_vault_arn: str, **rule) -> dict:
    return {
        "name": "copy",
        "schedule": "cron(0 5 * * ? *)",
        "copy_actions": [{"destination_vault_arn": destination_vault_arn}],
        **rule,
    }


def test_simple_plan(simple_plan_file):
    normalized = normalize(load_parameters(simple_plan_file), account=ACCOUNT, region="us-east-1")
    assert normalized.vault.name == "vault-0"
    assert len(normalized.plans) == 1
    plan = normalized.plans[0]
    assert plan.name == "simple-plan"
    assert plan.rules[0].target_vault_name == "vault-0"
    assert plan.rules[0].targets_module_vault is True
    assert plan.selections[0].name == "selection-1"
    assert normalized.needs_service_role is True


def test_shorthand_plan(shorthand_plan_file):
    """The rule_* and selection_* parameters describe a single rule and selection"""
    normalized = normalize(load_parameters(shorthand_plan_file))
    plan = normalized.plans[0]
    assert plan.name == "shorthand-plan"
    assert [rule.name for rule in plan.rules] == ["rule-1"]
    rule = plan.rules[0]
    assert (rule.start_window, rule.completion_window) == (120, 360)
    assert (rule.lifecycle.cold_storage_after, rule.lifecycle.delete_after) == (30, 120)
    assert rule.recovery_point_tags == {"Environment": "prod"}
    assert plan.selections[0].resources == ["arn:aws:dynamodb:us-east-1:123456789101:table/mydynamodb-table"]


def test_shorthand_copy_action():
    parameters = BackupParameters(
        plan_name="plan",
        rule_name="rule",
        rule_copy_action_destination_vault_arn=f"arn:aws:backup:eu-west-1:{ACCOUNT}:backup-vault:dr",
        rule_copy_action_lifecycle={"delete_after": 30},
    )
    copy_action = normalize(parameters, account=ACCOUNT, region="us-east-1").plans[0].rules[0].copy_actions[0]
    assert copy_action.vault_name == "dr"
    assert copy_action.lifecycle.delete_after == 30
    assert copy_action.cross_region is True
    assert copy_action.cross_account is False


def test_invalid_shorthand_rule():
    parameters = BackupParameters(plan_name="plan", rule_name="rule", rule_start_window=10)
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(parameters)
    assert excinfo.value.field == "rule_*"


def test_invalid_shorthand_selection():
    """A shorthand selection without resources or tags is rejected"""
    parameters = BackupParameters(plan_name="plan", rule_name="rule", selection_name="selection")
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(parameters)
    assert excinfo.value.field == "selection_*"


def test_plans_take_precedence(multiple_plans_file, caplog):
    parameters = load_parameters(multiple_plans_file).model_copy(update={"plan_name": "ignored"})
    normalized = normalize(parameters)
    assert [plan.name for plan in normalized.plans] == ["daily", "monthly-archive"]
    assert [plan.key for plan in normalized.plans] == ["daily", "monthly"]
    assert "plans is set" in caplog.text


def test_rule_targets_other_vault(multiple_plans_file):
    monthly = normalize(load_parameters(multiple_plans_file)).plans[1]
    assert monthly.rules[0].target_vault_name == "archive-vault"
    assert monthly.rules[0].targets_module_vault is False
    assert monthly.tags == {"Retention": "long"}


def test_no_vault_targets_default_vault():
    parameters = BackupParameters(plan_name="plan", rules=[{"name": "rule", "schedule": "rate(1 day)"}])
    normalized = normalize(parameters)
    assert normalized.vault is None
    assert normalized.plans[0].rules[0].target_vault_name == "Default"
    assert normalized.plans[0].rules[0].targets_module_vault is False
    assert normalized.needs_service_role is False


def test_no_rules_no_plans():
    assert normalize(BackupParameters(vault_name="vault-only")).plans == []


def test_selections_without_rules(make_parameters):
    with pytest.raises(BackupConfigurationError, match="at least one rule"):
        normalize(make_parameters(rules=[]))


def test_rules_without_plan_name(make_parameters):
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(make_parameters(plan_name=None))
    assert excinfo.value.field == "plan_name"


def test_duplicate_rule_names(make_parameters):
    rules = [{"name": "daily", "schedule": "rate(1 day)"}, {"name": "daily", "schedule": "rate(2 days)"}]
    with pytest.raises(BackupConfigurationError, match="Duplicate name 'daily'") as excinfo:
        normalize(make_parameters(rules=rules))
    assert excinfo.value.field == "rules"


def test_duplicate_plan_names():
    rules = [{"name": "rule", "schedule": "rate(1 day)"}]
    parameters = BackupParameters(plans={"a": {"name": "same", "rules": rules}, "b": {"name": "same", "rules": rules}})
    with pytest.raises(BackupConfigurationError, match="Duplicate name 'same'"):
        normalize(parameters)


def test_existing_role_not_created(make_parameters):
    normalized = normalize(make_parameters(iam_role_arn=f"arn:aws:iam::{ACCOUNT}:role/backup"))
    assert normalized.needs_service_role is False
    assert normalized.iam_role_arn == f"arn:aws:iam::{ACCOUNT}:role/backup"


@pytest.mark.parametrize(
    ("arn", "cross_region", "cross_account"),
    [
        (f"arn:aws:backup:us-east-1:{ACCOUNT}:backup-vault:other", False, False),
        (f"arn:aws:backup:us-west-2:{ACCOUNT}:backup-vault:test-vault", True, False),
        (f"arn:aws:backup:us-east-1:{OTHER_ACCOUNT}:backup-vault:test-vault", False, True),
    ]
)
def test_copy_action_classification(make_parameters, arn, cross_region, cross_account):
    normalized = normalize(make_parameters(rules=[_copy_rule(arn)]), account=ACCOUNT, region="us-east-1")
    copy_action = normalized.plans[0].rules[0].copy_actions[0]
    assert copy_action.cross_region is cross_region
    assert copy_action.cross_account is cross_account


def test_copy_action_unknown_environment(make_parameters):
    """Environment agnostic stacks cannot tell whether a copy crosses regions or accounts"""
    arn = f"arn:aws:backup:us-east-1:{ACCOUNT}:backup-vault:test-vault"
    copy_action = normalize(make_parameters(rules=[_copy_rule(arn)])).plans[0].rules[0].copy_actions[0]
    assert copy_action.cross_region is None
    assert copy_action.cross_account is None


def test_copy_into_own_target_vault(make_parameters):
    arn = f"arn:aws:backup:us-east-1:{ACCOUNT}:backup-vault:test-vault"
    with pytest.raises(BackupConfigurationError, match="its own target vault") as excinfo:
        normalize(make_parameters(rules=[_copy_rule(arn)]), account=ACCOUNT, region="us-east-1")
    assert excinfo.value.field == "rules[0].copy_actions[0]"


def test_continuous_backup(make_parameters):
    rule = {"name": "pitr", "enable_continuous_backup": True, "lifecycle": {"delete_after": 35}}
    assert normalize(make_parameters(rules=[rule])).plans[0].rules[0].enable_continuous_backup is True

    with pytest.raises(BackupConfigurationError, match="at most 35 days"):
        normalize(make_parameters(rules=[{**rule, "lifecycle": {"delete_after": 36}}]))
    with pytest.raises(BackupConfigurationError, match="at most 35 days"):
        normalize(make_parameters(rules=[{"name": "pitr", "enable_continuous_backup": True}]))
    with pytest.raises(BackupConfigurationError, match="cold storage"):
        normalize(make_parameters(
            rules=[{**rule, "lifecycle": {"cold_storage_after": 1, "delete_after": 35 + 90}}]))


def test_rule_retention_below_vault_lock(invalid_lock_file):
    with pytest.raises(BackupConfigurationError, match="locked with min_retention_days 30") as excinfo:
        normalize(load_parameters(invalid_lock_file))
    assert excinfo.value.field == "rules[0].lifecycle.delete_after"


@pytest.mark.parametrize("lifecycle", [None, {"delete_after": 91}])
def test_rule_retention_above_vault_lock(make_parameters, lifecycle):
    rule = {"name": "daily", "schedule": "rate(1 day)", "lifecycle": lifecycle}
    parameters = make_parameters(rules=[rule], locked=True, min_retention_days=7, max_retention_days=90)
    with pytest.raises(BackupConfigurationError, match="max_retention_days 90"):
        normalize(parameters)


def test_vault_lock_only_checks_rules_targeting_module_vault(make_parameters):
    rule = {"name": "daily", "schedule": "rate(1 day)", "target_vault_name": "elsewhere",
            "lifecycle": {"delete_after": 1}}
    parameters = make_parameters(rules=[rule], locked=True, min_retention_days=7)
    assert normalize(parameters).plans[0].rules[0].lifecycle.delete_after == 1


@pytest.mark.parametrize(
    "vault_parameters",
    [
        {"vault_kms_key_arn": f"arn:aws:kms:us-east-1:{ACCOUNT}:key/abc"},
        {"vault_policy": {"Version": "2012-10-17", "Statement": []}},
        {"notifications": {"sns_topic_arn": f"arn:aws:sns:us-east-1:{ACCOUNT}:topic"}},
        {"locked": True, "min_retention_days": 7},
    ]
)
def test_vault_settings_require_vault_name(vault_parameters):
    with pytest.raises(BackupConfigurationError, match="requires vault_name"):
        normalize(BackupParameters(**vault_parameters))


def test_complete_plan(complete_plan_file):
    normalized = normalize(load_parameters(complete_plan_file), account=ACCOUNT, region="us-east-1")
    vault = normalized.vault
    assert vault.locked is True
    assert (vault.changeable_for_days, vault.min_retention_days, vault.max_retention_days) == (3, 7, 360)
    assert vault.force_destroy is True
    assert vault.manage_sns_policy is True
    assert vault.policy["Statement"][0]["Sid"] == "DenyRecoveryPointDeletion"

    plan = normalized.plans[0]
    assert plan.windows_vss is True
    assert plan.tags == {"Plan": "complete"}
    assert plan.rules[0].schedule_expression_timezone == "America/Denver"
    assert plan.rules[0].copy_actions[0].cross_region is True
    assert plan.selections[0].name == "prod-databases"
    assert plan.selections[0].conditions.string_not_like == {"aws:ResourceTag/Stage": "test*"}


def test_empty_conditions_dropped(make_parameters):
    selections = [{"name": "tagged", "resources": ["*"], "conditions": {}}]
    assert normalize(make_parameters(selections=selections)).plans[0].selections[0].conditions is None


def test_compliance_report_needs_framework(audit_framework_file):
    parameters = load_parameters(audit_framework_file)
    normalized = normalize(parameters)
    assert normalized.audit_framework.framework_name == "backup_framework"
    assert [report.name for report in normalized.reports] == ["control_compliance", "backup_jobs"]

    without_framework = parameters.model_copy(update={"audit_framework": BackupParameters().audit_framework})
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(without_framework)
    assert excinfo.value.field == "reports[0].framework_arns"


def test_organization_policy(organization_policy_file):
    normalized = normalize(load_parameters(organization_policy_file))
    policy = normalized.organization_policy
    assert policy.name == "backup-policy"
    assert policy.target_ids == ["ou-ab12-cdefgh34"]
    assert "daily" in policy.content["plans"]
    assert normalized.plans == []


@pytest.mark.parametrize(
    ("missing", "field"),
    [
        ({"org_policy_name": None}, "org_policy_name"),
        ({"org_policy_target_ids": []}, "org_policy_target_ids"),
        ({"backup_policies": {}}, "backup_policies"),
    ]
)
def test_organization_policy_incomplete(organization_policy_file, missing, field):
    parameters = load_parameters(organization_policy_file).model_copy(update=missing)
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(parameters)
    assert excinfo.value.field == field


def test_organization_policy_disabled(organization_policy_file, caplog):
    parameters = load_parameters(organization_policy_file).model_copy(update={"enable_org_policy": False})
    assert normalize(parameters).organization_policy is None
    assert "enable_org_policy is false" in caplog.text


def test_disabled_module(make_parameters):
    normalized = normalize(make_parameters(enabled=False, rules=[]))
    assert normalized.enabled is False
    assert normalized.vault is None
    assert normalized.plans == []


def test_parse_vault_arn():
    parts = parse_vault_arn(f"arn:aws-us-gov:backup:us-gov-west-1:{ACCOUNT}:backup-vault:my_vault")
    assert parts == {"partition": "aws-us-gov", "region": "us-gov-west-1", "account": ACCOUNT, "name": "my_vault"}
    with pytest.raises(BackupConfigurationError):
        parse_vault_arn("arn:aws:s3:::bucket")


def test_describe(complete_plan_file):
    summary = describe(normalize(load_parameters(complete_plan_file)))
    assert summary["vault"]["name"] == "vault-2"
    assert summary["needs_service_role"] is True
    assert summary["copy_destinations"] == [f"arn:aws:backup:us-west-2:{ACCOUNT}:backup-vault:Default"]
    assert "account" not in summary


@pytest.mark.parametrize(
    ("lifecycle", "field"),
    [
        ({"rule_lifecycle_delete_after": 36}, "rule_lifecycle_delete_after"),
        ({"rule_lifecycle_cold_storage_after": 1, "rule_lifecycle_delete_after": 120},
         "rule_lifecycle_cold_storage_after"),
    ]
)
def test_shorthand_continuous_backup_names_parameter(lifecycle, field):
    """Errors in a rule built from rule_* parameters name the parameter that was set"""
    parameters = BackupParameters(plan_name="plan", rule_name="pitr", rule_enable_continuous_backup=True,
                                  **lifecycle)
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(parameters)
    assert excinfo.value.field == field


def test_shorthand_vault_lock_and_copy_name_parameters():
    locked = BackupParameters(vault_name="locked", locked=True, min_retention_days=30, plan_name="plan",
                              rule_name="daily", rule_schedule="rate(1 day)", rule_lifecycle_delete_after=7)
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(locked)
    assert excinfo.value.field == "rule_lifecycle_delete_after"

    copy_to_self = BackupParameters(
        vault_name="primary", plan_name="plan", rule_name="daily", rule_schedule="rate(1 day)",
        rule_copy_action_destination_vault_arn=f"arn:aws:backup:us-east-1:{ACCOUNT}:backup-vault:primary")
    with pytest.raises(BackupConfigurationError) as excinfo:
        normalize(copy_to_self, account=ACCOUNT, region="us-east-1")
    assert excinfo.value.field == "rule_copy_action_destination_vault_arn"
