"""Unit tests for the Action model."""

import pytest
from pydantic import ValidationError

from localgpt.models.action import DEFAULT_ACTIONS, Action, Creativity


class TestAction:
    """Test action fields and validation."""

    def test_defaults(self):
        """Test optional fields default to empty/unset."""
        action = Action(name="Plain")

        assert action.prompt == ""
        assert action.system == ""
        assert action.model == ""
        assert action.temperature is None
        assert action.replace_selection is False

    def test_name_required(self):
        """Test an empty name is rejected."""
        with pytest.raises(ValidationError):
            Action(name="")

    @pytest.mark.parametrize("temperature", [-0.1, 2.5])
    def test_temperature_range(self, temperature):
        """Test temperatures outside [0, 2] are rejected."""
        with pytest.raises(ValidationError):
            Action(name="Hot", temperature=temperature)

    def test_immutable(self):
        """Test actions are frozen."""
        action = Action(name="Frozen")
        with pytest.raises(ValidationError):
            action.prompt = "changed"

    def test_default_actions_have_unique_names(self):
        """Test the built-in actions can coexist in one config."""
        names = [action.name for action in DEFAULT_ACTIONS]
        assert len(names) == len(set(names))


class TestSharingString:
    """Test the copy-paste sharing format."""

    def test_to_sharing_string(self):
        """Test non-empty fields are rendered in order."""
        action = Action(
            name="Fix",
            system="You are an editor.",
            prompt="Fix the grammar",
            replace_selection=True,
            model="mistral",
        )

        assert action.to_sharing_string() == (
            "Name: Fix ✂️\n"
            "System: You are an editor. ✂️\n"
            "Prompt: Fix the grammar ✂️\n"
            "Replace: true ✂️\n"
            "Model: mistral"
        )

    def test_empty_fields_omitted(self):
        """Test empty fields produce no part."""
        assert Action(name="Only name").to_sharing_string() == "Name: Only name"

    def test_parse(self):
        """Test a sharing string restores the action."""
        action = Action.from_sharing_string(
            "Name: Haiku ✂️\nPrompt: Rewrite as a haiku ✂️\nReplace: yes"
        )

        assert action.name == "Haiku"
        assert action.prompt == "Rewrite as a haiku"
        assert action.replace_selection is True
        assert action.system == ""

    def test_parse_ignores_unknown_parts(self):
        """Test parts without a known prefix are skipped."""
        action = Action.from_sharing_string("Name: A ✂️\nColor: blue")
        assert action == Action(name="A")

    def test_parse_requires_name(self):
        """Test a string without a name is rejected."""
        with pytest.raises(ValueError):
            Action.from_sharing_string("Prompt: nameless")

    def test_default_actions_survive_sharing(self):
        """Test every built-in action parses back from its sharing string."""
        for action in DEFAULT_ACTIONS:
            assert Action.from_sharing_string(action.to_sharing_string()) == action


class TestCreativity:
    """Test creativity levels."""

    def test_temperatures(self):
        """Test each level maps to its sampling temperature."""
        assert Creativity.NONE.temperature is None
        assert Creativity.LOW.temperature == 0.2
        assert Creativity.MEDIUM.temperature == 0.5
        assert Creativity.HIGH.temperature == 1.0

    def test_from_config_value(self):
        """Test levels parse from their config strings."""
        assert Creativity("medium") is Creativity.MEDIUM
