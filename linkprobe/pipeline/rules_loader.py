"""Load detection rule tables from YAML files."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from linkprobe.pipeline.models.rules import DetectionRules


def load_detection_rules(rules_file: Path | None) -> DetectionRules:
    """Load detection rules, falling back to the built-in tables.

    Keys missing from the file keep their built-in values, so a file may
    override only the network table or only the consent selectors.

    Args:
        rules_file: Path to a YAML rules file, or None for the defaults

    Returns:
        Validated detection rules

    Raises:
        FileNotFoundError: If rules_file doesn't exist
        ValueError: If YAML is invalid or doesn't match schema

    """
    if rules_file is None:
        return DetectionRules()

    if not rules_file.exists():
        raise FileNotFoundError(f"Rules file not found: {rules_file}")

    try:
        with rules_file.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {rules_file}: {e}") from e

    if data is None:
        return DetectionRules()

    if not isinstance(data, dict):
        raise ValueError(f"Rules file must contain a mapping: {rules_file}")

    try:
        return DetectionRules.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid detection rules in {rules_file}: {e}") from e
