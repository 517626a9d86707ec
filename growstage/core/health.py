"""GrowStage Health Analyzer — evaluates YAML threshold rules against a metrics snapshot."""

import logging
import operator
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import yaml

from growstage.core.errors import ConfigurationError

logger = logging.getLogger("growstage.health")

_DEFAULT_RULES_DIR = Path(__file__).parent.parent / "rules"

SNAPSHOT_FIELDS = (
    "health_percentage",
    "next_watering_days",
    "next_feeding_days",
    "ph_level",
    "temperature",
    "vpd",
    "vpd_optimal",
)


# operator name -> (reading, rule value) -> bool
OPERATORS = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "outside": lambda actual, bounds: actual < bounds[0] or actual > bounds[1],
    "between": lambda actual, bounds: bounds[0] <= actual <= bounds[1],
}


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class HealthAlert:
    plant_id: uuid.UUID
    plant_name: str
    severity: AlertSeverity
    message: str
    recommended_actions: tuple[str, ...]
    rule_id: str

    @property
    def is_critical(self) -> bool:
        return self.severity == AlertSeverity.CRITICAL


def snapshot_context(snapshot) -> dict:
    """Flatten a metrics snapshot into a rule context; absent readings are None."""
    context = {name: getattr(snapshot, name, None) for name in SNAPSHOT_FIELDS}
    watering = context["next_watering_days"]
    feeding = context["next_feeding_days"]
    context["watering_overdue_days"] = abs(watering) if watering is not None and watering < 0 else 0
    context["feeding_overdue_days"] = abs(feeding) if feeding is not None and feeding < 0 else 0
    return context


class HealthAnalyzer:
    """Evaluates health rules against the latest metrics snapshot of a plant.

    Rules fire independently, so one snapshot can raise several alerts.
    A missing snapshot yields no alerts.
    """

    def __init__(self, rules_dir: str | Path | None = None):
        self.rules_dir = Path(rules_dir) if rules_dir else _DEFAULT_RULES_DIR
        self.rules: list[dict] = []
        self._load_rules()

    def _load_rules(self) -> None:
        """Load all .yaml rule files, merge, and sort by priority descending."""
        all_rules = []
        if not self.rules_dir.exists():
            raise ConfigurationError(f"Health rules directory not found: {self.rules_dir}")
        for path in sorted(self.rules_dir.glob("*.yaml")):
            try:
                data = yaml.safe_load(path.read_text())
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load health rules from {path}: {e}") from e
            if data and "rules" in data:
                for rule in data["rules"]:
                    self._validate_rule(rule, path)
                all_rules.extend(data["rules"])
                logger.debug(f"Loaded {len(data['rules'])} health rules from {path.name}")
        # Stable sort keeps file order among equal priorities
        self.rules = sorted(all_rules, key=lambda r: r.get("priority", 10), reverse=True)
        logger.info(f"Health analyzer loaded: {len(self.rules)} rules")

    @staticmethod
    def _validate_rule(rule: dict, path: Path) -> None:
        rule_id = rule.get("id", "<missing id>")
        try:
            AlertSeverity(rule.get("severity"))
        except ValueError:
            raise ConfigurationError(f"Rule {rule_id} in {path.name} has invalid severity {rule.get('severity')!r}") from None
        if not rule.get("conditions") or not rule.get("message"):
            raise ConfigurationError(f"Rule {rule_id} in {path.name} needs conditions and a message")
        for condition in rule["conditions"]:
            if "field" not in condition or condition.get("operator") not in OPERATORS:
                raise ConfigurationError(f"Rule {rule_id} in {path.name} has an invalid condition: {condition}")

    def analyze(self, plant, snapshot) -> list[HealthAlert]:
        """Return the alerts raised by a plant's latest snapshot."""
        if snapshot is None:
            return []

        context = snapshot_context(snapshot)
        alerts = []
        for rule in self.rules:
            if not self._check_rule(rule, context):
                continue
            alert = HealthAlert(
                plant_id=plant.id,
                plant_name=plant.name,
                severity=AlertSeverity(rule["severity"]),
                message=rule["message"].format(**context),
                recommended_actions=tuple(rule.get("recommended_actions", [])),
                rule_id=rule.get("id", "unknown"),
            )
            alerts.append(alert)
            logger.debug(f"Health rule matched for {plant.name}: {alert.rule_id} → {alert.severity.value}")
        return alerts

    def _check_condition(self, condition: dict, context: dict) -> bool:
        """A condition on an absent reading never matches."""
        actual = context.get(condition["field"])
        if actual is None:
            return False
        return OPERATORS[condition["operator"]](actual, condition.get("value"))

    def _check_rule(self, rule: dict, context: dict) -> bool:
        """All conditions must match (AND logic)."""
        conditions = rule.get("conditions", [])
        if not conditions:
            return False
        return all(self._check_condition(c, context) for c in conditions)

    def get_rule_by_id(self, rule_id: str) -> dict | None:
        """Retrieve a rule by its ID."""
        for rule in self.rules:
            if rule.get("id") == rule_id:
                return rule
        return None
