"""Tests for the replacement rule table."""

import pytest

from infrasynth.diff.model import ResourceImpact
from infrasynth.diff.rules import ReplacementRules, RuleTableError


@pytest.fixture
def rules_file(tmp_path):
    """Rule table file for a single resource type."""
    path = tmp_path / "rules.yml"
    path.write_text(
        """
schema_version: "2.0"
resource_types:
  AWS::SQS::Queue:
    replaces:
      always: [QueueName]
      conditional: [KmsMasterKeyId]
  Custom::Widget:
    replaces:
      always: [Name]
"""
    )
    return path


class TestReplacementRules:
    """Tests for ReplacementRules."""

    def test_default_table(self):
        """Test the built-in table covers common resource types."""
        rules = ReplacementRules.default()
        assert "AWS::SQS::Queue" in rules
        assert "AWS::SNS::Topic" in rules
        assert rules.impact_of("AWS::SQS::Queue", ("QueueName",)) == ResourceImpact.REPLACEMENT
        assert rules.impact_of("AWS::SQS::Queue", ("VisibilityTimeout",)) == ResourceImpact.IN_PLACE_UPDATE
        assert rules.defaults_for("AWS::SQS::Queue")["VisibilityTimeout"] == 30

    def test_load(self, rules_file):
        """Test loading a table from YAML."""
        rules = ReplacementRules.load(rules_file)
        assert len(rules) == 2
        assert list(rules) == ["AWS::SQS::Queue", "Custom::Widget"]
        assert rules.schema_version == "2.0"
        assert rules.impact_of("AWS::SQS::Queue", ("KmsMasterKeyId",)) == ResourceImpact.CONDITIONAL_REPLACEMENT

    def test_unknown_type(self):
        """Test types without rules are treated as possibly replacing."""
        rules = ReplacementRules.empty()
        assert not rules.knows("AWS::SQS::Queue")
        assert rules.impact_of("AWS::SQS::Queue", ("Anything",)) == ResourceImpact.CONDITIONAL_REPLACEMENT
        assert rules.defaults_for("AWS::SQS::Queue") == {}

    def test_merged(self, rules_file):
        """Test a loaded table replaces built-in entries for the same type."""
        merged = ReplacementRules.default().merged(ReplacementRules.load(rules_file))
        assert merged.knows("Custom::Widget")
        assert merged.knows("AWS::SNS::Topic")
        # The built-in FifoQueue rule is replaced along with the whole entry
        assert merged.impact_of("AWS::SQS::Queue", ("FifoQueue",)) == ResourceImpact.IN_PLACE_UPDATE

    def test_prefix_matching(self):
        """Test parents and children of a rule path both match."""
        rules = ReplacementRules.from_dict(
            {"resource_types": {"Fn": {"replaces": {"always": ["VpcConfig.SubnetIds"]}}}}
        )
        assert rules.impact_of("Fn", ("VpcConfig",)) == ResourceImpact.REPLACEMENT
        assert rules.impact_of("Fn", ("VpcConfig", "SubnetIds", "0")) == ResourceImpact.REPLACEMENT
        assert rules.impact_of("Fn", ("VpcConfig", "SecurityGroupIds")) == ResourceImpact.IN_PLACE_UPDATE

    def test_invalid_table(self):
        """Test malformed tables are rejected."""
        with pytest.raises(RuleTableError) as exc_info:
            ReplacementRules.from_dict({"resource_types": {"Queue": {"replaces": {"always": "Name"}}}})
        assert "Invalid replacement rule table" in str(exc_info.value)

    def test_path_in_both_lists(self):
        """Test a path cannot be both always and conditionally replacing."""
        with pytest.raises(RuleTableError) as exc_info:
            ReplacementRules.from_dict(
                {"resource_types": {"Queue": {"replaces": {"always": ["Name"], "conditional": ["Name"]}}}}
            )
        assert "Name" in str(exc_info.value)
