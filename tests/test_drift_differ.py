"""Tests for declared/actual state diffing and severity classification."""
import pytest

from meridian.core.models import ChangeTypeEnum, SeverityEnum
from meridian.drift.differ import DriftPolicy, SeverityRule, diff_states, worst_severity


def by_path(changes):
    return {c.path: c for c in changes}


class TestDiffStates:
    """Tests for diff_states."""

    def test_identical_states_have_no_changes(self):
        state = {"instance_type": "t3.micro", "tags": {"Name": "web"}, "ports": [80, 443]}
        assert diff_states(state, dict(state)) == []

    def test_changed_scalar(self):
        changes = diff_states({"instance_type": "t3.micro"}, {"instance_type": "t3.large"})

        assert len(changes) == 1
        change = changes[0]
        assert change.path == "instance_type"
        assert change.change_type == ChangeTypeEnum.CHANGED
        assert change.expected == "t3.micro"
        assert change.actual == "t3.large"

    def test_declared_key_missing_from_actual_is_removed(self):
        changes = diff_states({"monitoring": True, "ami": "ami-1"}, {"ami": "ami-1"})

        assert [(c.path, c.change_type) for c in changes] == [("monitoring", ChangeTypeEnum.REMOVED)]
        assert changes[0].expected is True
        assert changes[0].actual is None

    def test_extra_actual_keys_are_ignored(self):
        """Computed attributes only the provider knows about are not drift."""
        changes = diff_states({"ami": "ami-1"}, {"ami": "ami-1", "arn": "arn:aws:ec2:...", "private_ip": "10.0.0.4"})
        assert changes == []

    def test_extra_tags_are_added(self):
        changes = diff_states(
            {"tags": {"Name": "web"}},
            {"tags": {"Name": "web", "Owner": "someone"}},
        )

        assert len(changes) == 1
        assert changes[0].path == "tags.Owner"
        assert changes[0].change_type == ChangeTypeEnum.ADDED
        assert changes[0].actual == "someone"

    def test_nested_paths(self):
        changes = diff_states(
            {"root_block_device": {"volume_size": 20, "encrypted": True}},
            {"root_block_device": {"volume_size": 50, "encrypted": True}},
        )
        assert [c.path for c in changes] == ["root_block_device.volume_size"]

    def test_scalar_lists_ignore_order(self):
        assert diff_states({"cidrs": ["10.0.0.0/8", "192.168.0.0/16"]}, {"cidrs": ["192.168.0.0/16", "10.0.0.0/8"]}) == []

    def test_scalar_list_order_respected_when_configured(self):
        policy = DriftPolicy(ignore_list_order=False)
        changes = diff_states({"cidrs": ["a", "b"]}, {"cidrs": ["b", "a"]}, policy)

        assert len(changes) == 1
        assert changes[0].path == "cidrs"
        assert changes[0].change_type == ChangeTypeEnum.CHANGED

    def test_scalar_list_membership_change(self):
        changes = diff_states({"cidrs": ["a", "b"]}, {"cidrs": ["a", "c"]})
        assert by_path(changes)["cidrs"].expected == ["a", "b"]

    def test_list_of_mappings_compares_by_index(self):
        declared = {"ingress": [{"from_port": 443, "cidr_blocks": ["10.0.0.0/8"]}]}
        actual = {
            "ingress": [
                {"from_port": 443, "cidr_blocks": ["0.0.0.0/0"]},
                {"from_port": 22, "cidr_blocks": ["0.0.0.0/0"]},
            ]
        }
        changes = by_path(diff_states(declared, actual))

        assert changes["ingress[0].cidr_blocks"].change_type == ChangeTypeEnum.CHANGED
        assert changes["ingress[1]"].change_type == ChangeTypeEnum.ADDED
        assert changes["ingress[1]"].actual == {"from_port": 22, "cidr_blocks": ["0.0.0.0/0"]}

    def test_list_of_mappings_missing_element(self):
        changes = diff_states({"rules": [{"a": 1}, {"a": 2}]}, {"rules": [{"a": 1}]})
        assert [(c.path, c.change_type) for c in changes] == [("rules[1]", ChangeTypeEnum.REMOVED)]

    def test_bool_is_not_int(self):
        changes = diff_states({"enabled": True}, {"enabled": 1})
        assert len(changes) == 1
        assert changes[0].change_type == ChangeTypeEnum.CHANGED

    def test_int_equals_float(self):
        assert diff_states({"size": 20}, {"size": 20.0}) == []

    def test_string_is_not_number(self):
        assert len(diff_states({"port": 443}, {"port": "443"})) == 1

    def test_type_change_mapping_to_scalar(self):
        changes = diff_states({"logging": {"enabled": True}}, {"logging": "off"})
        assert by_path(changes)["logging"].change_type == ChangeTypeEnum.CHANGED

    def test_missing_actual_state(self):
        declared = {"versioning": True}
        changes = diff_states(declared, None)

        assert len(changes) == 1
        assert changes[0].path == ""
        assert changes[0].change_type == ChangeTypeEnum.MISSING
        assert changes[0].expected == declared

    def test_unmanaged_resource(self):
        changes = diff_states(None, {"id": "i-123"})
        assert [(c.path, c.change_type) for c in changes] == [("", ChangeTypeEnum.UNMANAGED)]

    def test_both_absent(self):
        assert diff_states(None, None) == []

    def test_empty_declared_state_is_not_missing(self):
        assert diff_states({}, {"anything": 1}) == []


class TestIgnorePaths:
    """Tests for ignore patterns."""

    def test_ignore_exact_path(self):
        policy = DriftPolicy(ignore_paths=["instance_type"])
        assert diff_states({"instance_type": "a"}, {"instance_type": "b"}, policy) == []

    def test_ignore_glob_subtree(self):
        policy = DriftPolicy(ignore_paths=["tags.*"])
        changes = diff_states(
            {"tags": {"Name": "a"}, "ami": "x"},
            {"tags": {"Name": "b", "Extra": "c"}, "ami": "y"},
            policy,
        )
        assert [c.path for c in changes] == ["ami"]

    def test_ignore_indexed_path(self):
        """Square brackets in paths are literal, not a character class."""
        policy = DriftPolicy(ignore_paths=["ingress[0].*"])
        changes = diff_states(
            {"ingress": [{"port": 1}, {"port": 2}]},
            {"ingress": [{"port": 9}, {"port": 8}]},
            policy,
        )
        assert [c.path for c in changes] == ["ingress[1].port"]


class TestSeverity:
    """Tests for DriftPolicy.classify and worst_severity."""

    @pytest.mark.parametrize(
        "path,change_type,expected",
        [
            ("", ChangeTypeEnum.MISSING, SeverityEnum.CRITICAL),
            ("", ChangeTypeEnum.UNMANAGED, SeverityEnum.MEDIUM),
            ("tags.Owner", ChangeTypeEnum.ADDED, SeverityEnum.LOW),
            ("description", ChangeTypeEnum.CHANGED, SeverityEnum.LOW),
            ("ingress[0].cidr_blocks", ChangeTypeEnum.CHANGED, SeverityEnum.HIGH),
            ("vpc_security_group_ids", ChangeTypeEnum.CHANGED, SeverityEnum.HIGH),
            ("storage_encrypted", ChangeTypeEnum.CHANGED, SeverityEnum.HIGH),
            ("publicly_accessible", ChangeTypeEnum.CHANGED, SeverityEnum.HIGH),
            ("instance_type", ChangeTypeEnum.CHANGED, SeverityEnum.MEDIUM),
        ],
    )
    def test_default_rules(self, path, change_type, expected):
        assert DriftPolicy().classify(path, change_type) == expected

    def test_custom_rules_first_match_wins(self):
        policy = DriftPolicy(
            severity_rules=[SeverityRule("instance_type", SeverityEnum.CRITICAL), SeverityRule("*", SeverityEnum.LOW)]
        )
        assert policy.classify("instance_type", ChangeTypeEnum.CHANGED) == SeverityEnum.CRITICAL
        assert policy.classify("ami", ChangeTypeEnum.CHANGED) == SeverityEnum.LOW

    def test_worst_severity(self):
        assert worst_severity([SeverityEnum.LOW, SeverityEnum.HIGH, SeverityEnum.MEDIUM]) == SeverityEnum.HIGH
        assert worst_severity([]) is None

    def test_policy_from_settings(self):
        class FakeSettings:
            DRIFT_IGNORE_PATHS = ["tags_all*"]

        policy = DriftPolicy.from_settings(FakeSettings())
        assert policy.ignore_paths == ["tags_all*"]
        assert policy.is_ignored("tags_all.Name")
