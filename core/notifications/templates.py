"""
Push message templates.

messages.yaml maps each message type to a title and a body, both
str.format templates. Every entry must define both fields; the file is
checked once, when it is first loaded.
"""

from pathlib import Path

import yaml

PUSH_FIELDS = ("title", "body")

_templates: dict[str, dict[str, str]] | None = None


def load_templates() -> dict[str, dict[str, str]]:
    """
    Load and cache the push templates.

    Raises:
        ValueError: If an entry is missing its title or body
    """
    global _templates
    if _templates is not None:
        return _templates

    yaml_path = Path(__file__).parent / "messages.yaml"
    with open(yaml_path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}

    incomplete = sorted(
        message_type
        for message_type, entry in loaded.items()
        if not isinstance(entry, dict) or any(f not in entry for f in PUSH_FIELDS)
    )
    if incomplete:
        raise ValueError(f"Push templates missing title/body: {', '.join(incomplete)}")

    _templates = loaded
    return _templates


def render_push(message_type: str, context: dict) -> tuple[str, str]:
    """
    Render the title and body of a push message.

    Raises:
        KeyError: If the message type is unknown or a placeholder is
            missing from context
    """
    entry = load_templates()[message_type]
    return entry["title"].format(**context), entry["body"].format(**context)
