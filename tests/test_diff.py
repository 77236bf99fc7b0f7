"""Tests for the template diff engine."""

import json

import pytest

from infrasynth.core.template import Template
from infrasynth.diff import (
    ChangeType,
    ReplacementRules,
    ResourceImpact,
    diff,
    diff_template,
    normalize,
)


@pytest.fixture
def rules():
    """Small rule table for two made-up resource types."""
    return ReplacementRules.from_dict(
        {
            "resource_types": {
                "Queue": {
                    "replaces": {"always": ["name", "Config.Id"]},
                    "defaults": {"Retention": 4},
                },
                "Subscription": {
                    "replaces": {"conditional": ["endpoint", "Filters.*.Name"]},
                },
            }
        }
    )


@pytest.fixture
def template():
    """Template with a queue and a subscription."""
    return {
        "Resources": {
            "R1": {"Type": "Queue", "Properties": {"name": "a", "Size": 1}},
            "R2": {
                "Type": "Subscription",
                "Properties": {"queueRef": {"Ref": "R1"}, "endpoint": "https://example.com"},
                "DependsOn": ["R1"],
            },
        },
        "Outputs": {"QueueName": {"Value": {"Ref": "R1"}}},
    }


def changed(template, logical_id, **properties):
    """Copy of ``template`` with properties of one resource replaced."""
    result = json.loads(json.dumps(template))
    result["Resources"][logical_id]["Properties"].update(properties)
    return result


class TestDiffTemplate:
    """Tests for diff_template."""

    def test_identical(self, template, rules):
        """Test a template does not differ from itself."""
        result = diff_template(template, template, rules)
        assert result.is_empty
        assert result.count == 0

    def test_always_replaces(self, template, rules):
        """Test a change to an always-replacing property."""
        result = diff_template(template, changed(template, "R1", name="b"), rules)

        assert len(result.resources) == 1
        difference = result.get("R1")
        assert difference.change_type == ChangeType.CHANGED
        assert difference.impact == ResourceImpact.REPLACEMENT
        assert difference.is_replacement
        assert [c.dotted_path for c in difference.property_changes] == ["name"]
        assert difference.property_changes[0].old_value == "a"
        assert difference.property_changes[0].new_value == "b"
        assert result.replacements == [difference]

    def test_in_place(self, template, rules):
        """Test a change to a property without a rule updates in place."""
        result = diff_template(template, changed(template, "R1", Size=2), rules)
        assert result.get("R1").impact == ResourceImpact.IN_PLACE_UPDATE
        assert result.replacements == []

    def test_conditional(self, template, rules):
        """Test a change to a conditionally replacing property."""
        result = diff_template(template, changed(template, "R2", endpoint="https://other.example.com"), rules)
        assert result.get("R2").impact == ResourceImpact.CONDITIONAL_REPLACEMENT
        assert result.possible_replacements == [result.get("R2")]

    def test_worst_impact_wins(self, template, rules):
        """Test the resource impact is the most severe of its changes."""
        result = diff_template(template, changed(template, "R1", name="b", Size=2), rules)
        difference = result.get("R1")
        assert [c.impact for c in difference.property_changes] == [
            ResourceImpact.IN_PLACE_UPDATE,
            ResourceImpact.REPLACEMENT,
        ]
        assert difference.impact == ResourceImpact.REPLACEMENT

    def test_added_and_removed(self, template, rules):
        """Test added and removed resources mirror each other."""
        new = json.loads(json.dumps(template))
        new["Resources"]["R3"] = {"Type": "Queue", "Properties": {"name": "c"}}

        forward = diff_template(template, new, rules)
        backward = diff_template(new, template, rules)

        assert [d.logical_id for d in forward.added] == ["R3"]
        assert [d.logical_id for d in backward.removed] == ["R3"]
        assert forward.added[0].resource_type == "Queue"
        assert forward.added[0].impact is None
        assert forward.removed == backward.added == []

    def test_symmetric_changes(self, template, rules):
        """Test swapping the arguments swaps old and new values."""
        new = changed(template, "R1", name="b")
        forward = diff_template(template, new, rules).get("R1").property_changes[0]
        backward = diff_template(new, template, rules).get("R1").property_changes[0]
        assert (forward.old_value, forward.new_value) == (backward.new_value, backward.old_value)

    def test_unknown_type_is_conservative(self, rules):
        """Test property changes of types without rules may replace."""
        old = {"Resources": {"Thing": {"Type": "Custom::Thing", "Properties": {"Size": 1}}}}
        new = {"Resources": {"Thing": {"Type": "Custom::Thing", "Properties": {"Size": 2}}}}
        result = diff_template(old, new, rules)
        assert result.get("Thing").impact == ResourceImpact.CONDITIONAL_REPLACEMENT

    def test_type_change_replaces(self, template, rules):
        """Test a changed resource type always replaces."""
        new = json.loads(json.dumps(template))
        new["Resources"]["R1"]["Type"] = "Subscription"
        difference = diff_template(template, new, rules).get("R1")
        assert difference.type_changed
        assert difference.old_type == "Queue"
        assert difference.impact == ResourceImpact.REPLACEMENT

    def test_nested_property_rule(self, rules):
        """Test rules on nested paths match the sub-property and its parents."""
        old = {"Resources": {"Q": {"Type": "Queue", "Properties": {"Config": {"Id": 1, "Tag": "x"}}}}}

        sub_property = diff_template(old, changed(old, "Q", Config={"Id": 2, "Tag": "x"}), rules)
        sibling = diff_template(old, changed(old, "Q", Config={"Id": 1, "Tag": "y"}), rules)
        whole = diff_template(old, changed(old, "Q", Config="replaced"), rules)

        assert [c.dotted_path for c in sub_property.get("Q").property_changes] == ["Config.Id"]
        assert sub_property.get("Q").impact == ResourceImpact.REPLACEMENT
        assert sibling.get("Q").impact == ResourceImpact.IN_PLACE_UPDATE
        assert whole.get("Q").impact == ResourceImpact.REPLACEMENT

    def test_wildcard_rule(self, rules):
        """Test * in a rule path matches any property name."""
        old = {"Resources": {"S": {"Type": "Subscription", "Properties": {"Filters": {"A": {"Name": "x"}}}}}}
        new = changed(old, "S", Filters={"A": {"Name": "y"}})
        assert diff_template(old, new, rules).get("S").impact == ResourceImpact.CONDITIONAL_REPLACEMENT

    def test_lists_compared_whole(self, rules):
        """Test a changed list is a single difference."""
        old = {"Resources": {"Q": {"Type": "Queue", "Properties": {"Tags": ["a", "b"]}}}}
        new = changed(old, "Q", Tags=["a", "c"])
        changes = diff_template(old, new, rules).get("Q").property_changes
        assert [(c.dotted_path, c.new_value) for c in changes] == [("Tags", ["a", "c"])]

    def test_attribute_changes(self, template, rules):
        """Test changes outside Properties are reported separately."""
        new = json.loads(json.dumps(template))
        new["Resources"]["R2"]["DependsOn"] = []
        new["Resources"]["R1"]["Condition"] = "IsProd"
        new["Conditions"] = {"IsProd": {"Fn::Equals": ["a", "a"]}}

        result = diff_template(template, new, rules)

        r1 = result.get("R1")
        r2 = result.get("R2")
        assert [c.dotted_path for c in r1.other_changes] == ["Condition"]
        assert r1.impact == ResourceImpact.CONDITIONAL_REPLACEMENT
        assert [c.dotted_path for c in r2.other_changes] == ["DependsOn"]
        assert r2.impact == ResourceImpact.IN_PLACE_UPDATE
        assert [d.key for d in result.section("Conditions")] == ["IsProd"]

    def test_other_sections(self, template, rules):
        """Test differences outside Resources."""
        new = json.loads(json.dumps(template))
        new["Description"] = "Orders"
        new["Outputs"]["QueueName"]["Value"] = {"Ref": "R2"}
        new["Parameters"] = {"Env": {"Type": "String"}}

        result = diff_template(template, new, rules)

        assert result.resources == ()
        assert [(d.section, d.key, d.change_type) for d in result.other] == [
            ("Description", None, ChangeType.ADDED),
            ("Parameters", "Env", ChangeType.ADDED),
            ("Outputs", "QueueName", ChangeType.CHANGED),
        ]

    def test_malformed_resource(self, rules):
        """Test entries that are not mappings do not make the diff fail."""
        old = {"Resources": {"Q": "broken"}}
        new = {"Resources": {"Q": {"Type": "Queue", "Properties": {"name": "a"}}}}
        result = diff_template(old, new, rules)
        assert result.get("Q").change_type == ChangeType.CHANGED
        assert result.get("Q").impact == ResourceImpact.REPLACEMENT

    def test_accepts_templates(self, template, rules):
        """Test Template objects can be compared directly."""
        old = Template.from_dict(template, stack_name="Orders")
        new = Template.from_dict(changed(template, "R1", name="b"), stack_name="Orders")
        assert diff(old, new, rules).get("R1").is_replacement

    def test_default_rules(self):
        """Test the built-in rules classify well-known resource types."""
        old = {"Resources": {"Queue": {"Type": "AWS::SQS::Queue", "Properties": {"QueueName": "a"}}}}
        new = {"Resources": {"Queue": {"Type": "AWS::SQS::Queue", "Properties": {"QueueName": "b"}}}}
        assert diff_template(old, new).get("Queue").impact == ResourceImpact.REPLACEMENT

    def test_to_dict(self, template, rules):
        """Test the machine-readable form is JSON serializable."""
        result = diff_template(template, changed(template, "R1", name="b"), rules)
        data = json.loads(json.dumps(result.to_dict()))
        assert data["resources"][0]["logical_id"] == "R1"
        assert data["resources"][0]["impact"] == "replacement"
        assert data["resources"][0]["property_changes"][0]["path"] == "name"
        assert data["other"] == []


class TestNormalize:
    """Tests for differences that do not change the meaning of a template."""

    def test_key_order(self, template, rules):
        """Test key order is ignored."""
        reordered = {"Outputs": template["Outputs"], "Resources": dict(reversed(list(template["Resources"].items())))}
        assert diff_template(template, reordered, rules).is_empty

    def test_depends_on_forms(self, rules):
        """Test a single DependsOn string equals a one-element list."""
        old = {"Resources": {"A": {"Type": "Queue"}, "B": {"Type": "Queue", "DependsOn": "A"}}}
        new = {"Resources": {"A": {"Type": "Queue"}, "B": {"Type": "Queue", "DependsOn": ["A"]}}}
        assert diff_template(old, new, rules).is_empty

    def test_default_deletion_policy(self, rules):
        """Test an explicit Delete policy equals no policy."""
        old = {"Resources": {"A": {"Type": "Queue", "DeletionPolicy": "Delete"}}}
        new = {"Resources": {"A": {"Type": "Queue"}}}
        assert diff_template(old, new, rules).is_empty

    def test_default_property_values(self, rules):
        """Test property values equal to the documented default are elided."""
        old = {"Resources": {"A": {"Type": "Queue", "Properties": {"Retention": 4}}}}
        new = {"Resources": {"A": {"Type": "Queue"}}}
        assert diff_template(old, new, rules).is_empty
        assert not diff_template(old, changed(old, "A", Retention=5), rules).is_empty

    def test_empty_and_null(self, rules):
        """Test null values and empty sections are ignored."""
        old = {"Resources": {"A": {"Type": "Queue", "Properties": {}, "Metadata": None}}, "Outputs": {}}
        new = {"Resources": {"A": {"Type": "Queue"}}}
        assert diff_template(old, new, rules).is_empty

    def test_normalize_sorts(self, rules):
        """Test normalize sorts keys and does not change its input."""
        document = {"Resources": {"B": {"Type": "Queue"}, "A": {"Type": "Queue", "DependsOn": ["B"]}}}
        result = normalize(document, rules)
        assert list(result["Resources"]) == ["A", "B"]
        assert list(document["Resources"]) == ["B", "A"]

    def test_unhashable_depends_on(self, rules):
        """Test DependsOn entries that are not names still normalize."""
        document = {
            "Resources": {
                "A": {"Type": "Queue"},
                "B": {"Type": "Queue", "DependsOn": [{"Ref": "A"}, "A", {"Ref": "A"}]},
            }
        }
        assert diff_template(document, document, rules).is_empty
        assert normalize(document, rules)["Resources"]["B"]["DependsOn"] == ["A", {"Ref": "A"}]

    def test_mixed_type_keys(self, rules):
        """Test mappings whose keys are not all strings, as YAML allows."""
        old = {"Resources": {"Q": {"Type": "Queue", "Properties": {"Tags": {1: "a", "b": "c"}}}}}
        new = {"Resources": {"Q": {"Type": "Queue", "Properties": {"Tags": {1: "x", "b": "c"}}}}}

        assert diff_template(old, old, rules).is_empty
        changes = diff_template(old, new, rules).get("Q").property_changes
        assert [c.dotted_path for c in changes] == ["Tags.1"]
        assert changes[0].impact == ResourceImpact.IN_PLACE_UPDATE

    def test_non_string_type(self, rules):
        """Test a resource type that is not a string compares without rules."""
        document = {"Resources": {"Q": {"Type": ["Queue"], "Properties": {"name": "a"}}}}
        assert diff_template(document, document, rules).is_empty
        result = diff_template(document, changed(document, "Q", name="b"), rules)
        assert result.get("Q").impact == ResourceImpact.CONDITIONAL_REPLACEMENT
