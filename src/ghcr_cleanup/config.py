"""Cleanup configuration built from action-style inputs."""

import logging
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from .exceptions import ConfigurationError
from .utils.interval import has_interval_unit, parse_interval

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "True", "TRUE")
FALSE_VALUES = ("false", "False", "FALSE")


class LogLevel(Enum):
    ERROR = logging.ERROR
    WARN = logging.WARNING
    INFO = logging.INFO
    DEBUG = logging.DEBUG

    @classmethod
    def parse(cls, value: str) -> "LogLevel":
        try:
            return cls[value.strip().upper()]
        except KeyError as e:
            raise ConfigurationError(f"invalid log-level value: {value}") from e


@dataclass
class CleanupConfig:
    """Options controlling a cleanup run."""

    token: str = ""
    owner: str = ""
    repository: str = ""
    package: str = ""
    expand_packages: bool | None = None
    default_package_used: bool = False
    is_private_repo: bool = False
    owner_type: str = "Organization"
    delete_tags: str | None = None
    exclude_tags: str | None = None
    older_than: timedelta | None = None
    older_than_readable: str | None = None
    delete_untagged: bool | None = None
    delete_ghost_images: bool | None = None
    delete_partial_images: bool | None = None
    delete_orphaned_images: bool | None = None
    keep_n_untagged: int | None = None
    keep_n_tagged: int | None = None
    dry_run: bool = False
    validate: bool = False
    log_level: LogLevel = LogLevel.INFO
    use_regex: bool = False
    registry_url: str = "https://ghcr.io/"
    github_api_url: str = "https://api.github.com"

    def summary(self) -> Iterator[tuple[str, str]]:
        """Yield (option, value) pairs describing the effective options."""
        yield "private repository", str(self.is_private_repo).lower()
        yield "project owner", self.owner
        yield "repository", self.repository
        yield "package", self.package
        if self.expand_packages is not None:
            yield "expand-packages", str(self.expand_packages).lower()
        if self.delete_tags:
            yield "delete-tags", self.delete_tags
        if self.exclude_tags:
            yield "exclude-tags", self.exclude_tags
        if self.older_than is not None:
            cutoff = datetime.now(timezone.utc) - self.older_than
            yield "older-than", cutoff.strftime("%a, %d %b %Y %H:%M:%S GMT")
        optional_flags = [
            ("delete-untagged", self.delete_untagged),
            ("delete-ghost-images", self.delete_ghost_images),
            ("delete-partial-images", self.delete_partial_images),
            ("delete-orphaned-images", self.delete_orphaned_images),
            ("keep-n-tagged", self.keep_n_tagged),
            ("keep-n-untagged", self.keep_n_untagged),
        ]
        for name, value in optional_flags:
            if value is not None:
                yield name, str(value).lower() if isinstance(value, bool) else str(value)
        yield "dry-run", str(self.dry_run).lower()
        yield "validate", str(self.validate).lower()
        yield "log-level", self.log_level.name.lower()
        yield "use-regex", str(self.use_regex).lower()
        yield "registry-url", self.registry_url
        yield "github-api-url", self.github_api_url

    def log_summary(self) -> None:
        entries = list(self.summary())
        width = max(len(name) for name, _ in entries) + 10
        logger.info("Runtime configuration")
        for name, value in entries:
            logger.info(f"{name.ljust(width)}{value}")


class ActionInputs:
    """Read ``INPUT_<NAME>`` values the way workflow runners export them."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self.environ = os.environ if environ is None else environ

    def get(self, name: str) -> str:
        key = f"INPUT_{name.replace(' ', '_').upper()}"
        return self.environ.get(key, "").strip()

    def get_bool(self, name: str) -> bool:
        value = self.get(name)
        if value in TRUE_VALUES:
            return True
        if value in FALSE_VALUES:
            return False
        raise ConfigurationError(
            f"Input does not meet YAML 1.2 \"Core Schema\": {name}\n"
            "Support boolean input list: `true | True | TRUE | false | False | FALSE`"
        )


def _parse_count(inputs: ActionInputs, name: str) -> int | None:
    raw = inputs.get(name)
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} is not number") from e
    if value < 0:
        raise ConfigurationError(f"{name} is negative")
    return value


def _parse_older_than(text: str) -> timedelta:
    interval = parse_interval(text)
    if interval is None:
        if has_interval_unit(text):
            raise ConfigurationError(f'older-than value "{text}" is not a valid interval')
        raise ConfigurationError(
            f'older-than value "{text}" is not a valid interval, it\'s missing an '
            "interval such as second, minute, hour, day, week or year"
        )
    return interval


def build_config(
    inputs: ActionInputs | None = None, environ: Mapping[str, str] | None = None
) -> CleanupConfig:
    """Build and validate the cleanup configuration.

    Args:
        inputs: Input reader; defaults to ``INPUT_*`` environment variables
        environ: Environment used for ``GITHUB_REPOSITORY``

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If inputs are missing, malformed or conflicting
    """
    environ = os.environ if environ is None else environ
    inputs = inputs or ActionInputs(environ)

    token = inputs.get("token")
    if not token:
        raise ConfigurationError("Input required and not supplied: token")

    config = CleanupConfig(token=token)
    config.owner = inputs.get("owner")
    config.repository = inputs.get("repository")

    if inputs.get("package") and inputs.get("packages"):
        raise ConfigurationError(
            "package and packages cant be used at the same time, use either one"
        )
    config.package = inputs.get("package") or inputs.get("packages")

    github_repository = environ.get("GITHUB_REPOSITORY")
    if not github_repository:
        raise ConfigurationError("GITHUB_REPOSITORY is not set")
    parts = github_repository.split("/")
    if len(parts) != 2:
        raise ConfigurationError(f"Error parsing GITHUB_REPOSITORY: {github_repository}")
    if not config.owner:
        config.owner = parts[0]
    if not config.package:
        config.package = parts[1]
        config.default_package_used = True
    if not config.repository:
        config.repository = parts[1]

    if inputs.get("expand-packages"):
        config.expand_packages = inputs.get_bool("expand-packages")
    elif "*" in config.package or "?" in config.package:
        logger.info(
            f'The packages value "{config.package}" contains a wildcard character but '
            "the expand-packages option has not been set, auto enabling "
            "expand-packages to true"
        )
        config.expand_packages = True

    if inputs.get("tags") and inputs.get("delete-tags"):
        raise ConfigurationError(
            "tags and delete-tags cant be used at the same time, use either one"
        )
    config.delete_tags = inputs.get("tags") or inputs.get("delete-tags") or None
    config.exclude_tags = inputs.get("exclude-tags") or None

    older_than = inputs.get("older-than")
    if older_than:
        config.older_than = _parse_older_than(older_than)
        config.older_than_readable = older_than

    config.keep_n_tagged = _parse_count(inputs, "keep-n-tagged")
    config.keep_n_untagged = _parse_count(inputs, "keep-n-untagged")

    if inputs.get("delete-untagged"):
        config.delete_untagged = inputs.get_bool("delete-untagged")
        if config.keep_n_untagged is not None:
            raise ConfigurationError(
                "delete-untagged and keep-n-untagged can not be set at the same time"
            )
    elif not any(
        inputs.get(name)
        for name in (
            "tags",
            "delete-tags",
            "delete-ghost-images",
            "delete-partial-images",
            "delete-orphaned-images",
            "keep-n-untagged",
            "keep-n-tagged",
        )
    ):
        # Nothing else selected
        config.delete_untagged = True

    if inputs.get("delete-ghost-images"):
        config.delete_ghost_images = inputs.get_bool("delete-ghost-images")
    if inputs.get("delete-partial-images"):
        config.delete_partial_images = inputs.get_bool("delete-partial-images")
    if inputs.get("delete-orphaned-images"):
        config.delete_orphaned_images = inputs.get_bool("delete-orphaned-images")

    if inputs.get("dry-run"):
        config.dry_run = inputs.get_bool("dry-run")
    if inputs.get("validate"):
        config.validate = inputs.get_bool("validate")
    if inputs.get("log-level"):
        config.log_level = LogLevel.parse(inputs.get("log-level"))
    if inputs.get("use-regex"):
        config.use_regex = inputs.get_bool("use-regex")

    if inputs.get("registry-url"):
        config.registry_url = inputs.get("registry-url")
        if not config.registry_url.endswith("/"):
            config.registry_url += "/"
    if inputs.get("github-api-url"):
        config.github_api_url = inputs.get("github-api-url").rstrip("/")

    if not config.owner:
        raise ConfigurationError("owner is not set")
    if not config.package:
        raise ConfigurationError("package is not set")
    if not config.repository:
        raise ConfigurationError("repository is not set")

    return config
