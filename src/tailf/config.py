from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict
import yaml


TRUNCATE_POLICIES = ("reopen", "fail")


@dataclass
class FollowConfig:
    buffer_size: int = 4096
    polling: bool = False
    poll_interval: float = 1.0

    # seconds a removed file may stay missing before the stream fails
    removal_grace: float = 1.0
    truncate_policy: str = "reopen"

    chunk_size: int = 4096

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _positive(name: str, value: Any, cast) -> Any:
    try:
        v = cast(value)
    except (TypeError, ValueError):
        raise ValueError(f"Option '{name}' must be a number, got {value!r}")
    if v <= 0:
        raise ValueError(f"Option '{name}' must be greater than 0, got {v}")
    return v


def build_config(data: Dict[str, Any]) -> FollowConfig:
    """Validate a plain mapping (the ``follow:`` section) into a FollowConfig."""
    defaults = FollowConfig()
    unknown = sorted(set(data) - set(defaults.to_dict()))
    if unknown:
        raise ValueError(
            f"Unknown option(s) in follow section: {', '.join(unknown)}\n"
            f"Valid options are: {', '.join(defaults.to_dict())}"
        )

    policy = str(data.get("truncate_policy", defaults.truncate_policy))
    if policy not in TRUNCATE_POLICIES:
        raise ValueError(
            f"Invalid truncate_policy '{policy}'\n"
            f"Please use one of: {', '.join(TRUNCATE_POLICIES)}"
        )

    try:
        grace = float(data.get("removal_grace", defaults.removal_grace))
    except (TypeError, ValueError):
        raise ValueError(f"Option 'removal_grace' must be a number, got {data['removal_grace']!r}")
    if grace < 0:
        raise ValueError(f"Option 'removal_grace' must not be negative, got {grace}")

    polling = data.get("polling", defaults.polling)
    if not isinstance(polling, bool):
        raise ValueError(
            f"Option 'polling' must be true or false, got {polling!r}\n"
            f"Write it without quotes, e.g. polling: true"
        )

    return FollowConfig(
        buffer_size=_positive("buffer_size", data.get("buffer_size", defaults.buffer_size), int),
        polling=polling,
        poll_interval=_positive("poll_interval", data.get("poll_interval", defaults.poll_interval), float),
        removal_grace=grace,
        truncate_policy=policy,
        chunk_size=_positive("chunk_size", data.get("chunk_size", defaults.chunk_size), int),
    )


def load_config(path: str) -> FollowConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"Please ensure the file exists or specify a different config with --config"
        )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file {path}: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping at the top level")

    section = data.get("follow", {}) or {}
    if not isinstance(section, dict):
        raise ValueError(f"The 'follow' section in {path} must be a mapping")

    return build_config(section)
