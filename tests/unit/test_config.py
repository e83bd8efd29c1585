"""
Tests for settings and the YAML configuration manager
"""
import pytest
from pydantic import ValidationError

from helpdesk.config import Settings, TicketPriority
from helpdesk.core import ConfigurationException
from helpdesk.infrastructure.config_manager import HelpdeskConfigManager


VALID_YAML = """
sla:
  rules:
    urgent: {first_response: 15, resolution: 120}
workflows:
  urgent:
    transitions:
      "open:resolved": {guards: [must_be_assigned]}
automation:
  max_depth: 2
response_templates:
  escalated:
    name: Escalated
    body: "Hi {customer_name}"
notifications:
  sla_breach: false
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "helpdesk.yaml"
    path.write_text(VALID_YAML)
    return path


class TestHelpdeskConfigManager:
    """Loading, validation and reload"""

    def test_load_valid_document(self, config_file):
        manager = HelpdeskConfigManager()
        manager.load(config_file)

        assert manager.get_sla_config().rules[TicketPriority.URGENT].first_response == 15
        assert manager.get_automation_config().max_depth == 2
        assert manager.get_notification_switches() == {"sla_breach": False}

    def test_workflows_named_after_keys(self, config_file):
        manager = HelpdeskConfigManager()
        manager.load(config_file)

        workflows = manager.get_workflows()
        assert workflows["urgent"].name == "urgent"
        assert "open:resolved" in workflows["urgent"].transitions

    def test_response_templates_extend_defaults(self, config_file):
        manager = HelpdeskConfigManager()
        manager.load(config_file)

        templates = manager.get_automation_config().response_templates
        assert templates["escalated"].body == "Hi {customer_name}"
        assert "welcome" in templates

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = HelpdeskConfigManager()
        config = manager.load(tmp_path / "absent.yaml")

        assert config.sla.enabled is True
        assert config.automation.max_depth == 3

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "helpdesk.yaml"
        path.write_text("sla: [unclosed")

        with pytest.raises(ConfigurationException):
            HelpdeskConfigManager().load(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "helpdesk.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationException):
            HelpdeskConfigManager().load(path)

    def test_unknown_status_in_workflow(self, tmp_path):
        path = tmp_path / "helpdesk.yaml"
        path.write_text('workflows:\n  broken:\n    transitions:\n      "open:archived": {}\n')

        with pytest.raises(ConfigurationException) as exc_info:
            HelpdeskConfigManager().load(path)
        assert exc_info.value.details["errors"]

    def test_unknown_template_trigger(self):
        with pytest.raises(ConfigurationException):
            HelpdeskConfigManager.parse({
                "automation": {
                    "templates": {
                        "bad": {"name": "Bad", "trigger": "moon_rise", "actions": [{"type": "delete"}]},
                    },
                },
            })

    def test_reload_keeps_previous_config_on_error(self, config_file):
        manager = HelpdeskConfigManager()
        manager.load(config_file)

        config_file.write_text("sla: [unclosed")
        assert manager.reload() is False
        assert manager.get_automation_config().max_depth == 2

        config_file.write_text("automation: {max_depth: 5}\n")
        assert manager.reload() is True
        assert manager.get_automation_config().max_depth == 5

    def test_reload_without_load(self):
        assert HelpdeskConfigManager().reload() is False

    def test_config_before_load_raises(self):
        with pytest.raises(ConfigurationException):
            HelpdeskConfigManager().get_sla_config()

    def test_watch_requires_load(self):
        with pytest.raises(ConfigurationException):
            HelpdeskConfigManager().start_watching()


class TestSettings:
    """Environment settings validation"""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.reopen_window_days == 30
        assert settings.notification_channels == ["log"]

    def test_unknown_environment(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="moon")

    def test_unknown_channel(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, notification_channels=["carrier_pigeon"])
