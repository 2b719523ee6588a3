"""
Structured document kinds and manifest classification.

Manifests are recognized by their content, never by file name. Each
document is YAML decoded and matched against an explicit, ordered list of
(group, version, kind) matchers held by a DecoderRegistry.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import yaml

from .types import Release

logger = logging.getLogger(__name__)

KOTS_GROUP = "kots.io"
KOTS_VERSION = "v1beta1"
KOTS_API_VERSION = f"{KOTS_GROUP}/{KOTS_VERSION}"

PLACEHOLDER_APP_NAME = "replicated-kots-app"
PLACEHOLDER_APP_TITLE = "Replicated Kots App"


def _mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


def _sequence(value) -> list:
    return value if isinstance(value, list) else []


def _string(value) -> str:
    if value is None:
        return ""
    return str(value)


def split_api_version(api_version: str) -> tuple[str, str]:
    """
    Split an apiVersion into (group, version).

    >>> split_api_version("kots.io/v1beta1")
    ('kots.io', 'v1beta1')
    >>> split_api_version("v1")
    ('', 'v1')
    """
    group, _, version = api_version.rpartition("/")
    return group, version


# -------------------------------
# Kinds
# -------------------------------


@dataclass
class Application:
    name: str
    title: str = ""
    icon: str = ""

    @classmethod
    def from_document(cls, doc: dict) -> "Application":
        spec = _mapping(doc.get("spec"))
        return cls(
            name=_string(_mapping(doc.get("metadata")).get("name")),
            title=_string(spec.get("title")),
            icon=_string(spec.get("icon")),
        )

    @classmethod
    def placeholder(cls) -> "Application":
        return cls(name=PLACEHOLDER_APP_NAME, title=PLACEHOLDER_APP_TITLE, icon="")


@dataclass
class ConfigItem:
    name: str
    title: str = ""
    type: str = ""
    default: str = ""
    value: str = ""

    @property
    def default_template(self) -> str:
        """The template that produces this item's default value."""
        return self.value or self.default


@dataclass
class ConfigGroup:
    name: str
    title: str = ""
    items: list[ConfigItem] = field(default_factory=list)


@dataclass
class Config:
    name: str
    groups: list[ConfigGroup] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: dict) -> "Config":
        groups = []
        for group in _sequence(_mapping(doc.get("spec")).get("groups")):
            group = _mapping(group)
            items = [
                ConfigItem(
                    name=_string(item.get("name")),
                    title=_string(item.get("title")),
                    type=_string(item.get("type")),
                    default=_string(item.get("default")),
                    value=_string(item.get("value")),
                )
                for item in map(_mapping, _sequence(group.get("items")))
            ]
            groups.append(ConfigGroup(
                name=_string(group.get("name")),
                title=_string(group.get("title")),
                items=items,
            ))
        return cls(name=_string(_mapping(doc.get("metadata")).get("name")), groups=groups)


@dataclass
class ConfigValues:
    name: str
    values: dict[str, str] = field(default_factory=dict)

    def to_document(self) -> dict:
        return {
            "apiVersion": KOTS_API_VERSION,
            "kind": "ConfigValues",
            "metadata": {"name": self.name},
            "spec": {"values": dict(self.values)},
        }

    def to_yaml(self) -> bytes:
        return yaml.safe_dump(self.to_document(), default_flow_style=False, sort_keys=False).encode("utf-8")


@dataclass
class EntitlementField:
    title: str = ""
    value: Any = None
    value_type: str = ""


@dataclass
class License:
    """
    An application license.

    Only the identifier and endpoint are used to talk to the release service;
    the decoded document is kept so the license can be written back unchanged.
    """

    license_id: str
    app_slug: str = ""
    endpoint: str = ""
    entitlements: dict[str, EntitlementField] = field(default_factory=dict)
    document: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_document(cls, doc: dict) -> "License":
        spec = _mapping(doc.get("spec"))
        entitlements = {
            _string(name): EntitlementField(
                title=_string(_mapping(ent).get("title")),
                value=_mapping(ent).get("value"),
                value_type=_string(_mapping(ent).get("valueType")),
            )
            for name, ent in _mapping(spec.get("entitlements")).items()
        }
        return cls(
            license_id=_string(spec.get("licenseID")),
            app_slug=_string(spec.get("appSlug")),
            endpoint=_string(spec.get("endpoint")),
            entitlements=entitlements,
            document=doc,
        )

    def to_yaml(self) -> bytes:
        return yaml.safe_dump(self.document, default_flow_style=False, sort_keys=False).encode("utf-8")


# -------------------------------
# Decoder registry
# -------------------------------


@dataclass(frozen=True)
class KindMatcher:
    group: str
    version: str
    kind: str
    factory: Callable[[dict], Any]

    def matches(self, group: str, version: str, kind: str) -> bool:
        return (self.group, self.version, self.kind) == (group, version, kind)


class DecoderRegistry:
    """Ordered set of kinds that decode() turns into typed objects."""

    def __init__(self, matchers: list[KindMatcher] | None = None):
        self._matchers = list(matchers or [])

    def register(self, group: str, version: str, kind: str, factory: Callable[[dict], Any]):
        self._matchers.append(KindMatcher(group, version, kind, factory))

    def decode(self, content: bytes) -> Any | None:
        """
        Decode one manifest into a typed object.

        Returns None if the content is not a YAML/JSON mapping with apiVersion
        and kind, or if no registered matcher accepts its (group, version, kind).
        The first matcher that accepts the document wins.
        """
        try:
            doc = yaml.safe_load(content)
        except yaml.YAMLError as e:
            logger.debug(f"Skipping undecodable manifest: {e}")
            return None

        if not isinstance(doc, dict):
            return None
        api_version, kind = doc.get("apiVersion"), doc.get("kind")
        if not isinstance(api_version, str) or not isinstance(kind, str):
            return None

        group, version = split_api_version(api_version)
        for matcher in self._matchers:
            if matcher.matches(group, version, kind):
                return matcher.factory(doc)
        return None


def default_registry() -> DecoderRegistry:
    """Build the registry for the kots.io kinds this package understands."""
    registry = DecoderRegistry()
    registry.register(KOTS_GROUP, KOTS_VERSION, "Application", Application.from_document)
    registry.register(KOTS_GROUP, KOTS_VERSION, "Config", Config.from_document)
    registry.register(KOTS_GROUP, KOTS_VERSION, "License", License.from_document)
    return registry


def _find_first(release: Release, registry: DecoderRegistry, cls: type):
    for path, content in release.manifests.items():
        obj = registry.decode(content)
        if isinstance(obj, cls):
            logger.debug(f"Found {cls.__name__} in {path}")
            return obj
    return None


def find_app_in_release(release: Release, registry: DecoderRegistry) -> Application:
    """
    Return the first Application in the release, or a placeholder.

    Several Application documents are not an error; the first one in
    manifest iteration order is used.
    """
    app = _find_first(release, registry, Application)
    if app is None or not app.name:
        logger.info(f"No application descriptor in release, using {PLACEHOLDER_APP_NAME}")
        return Application.placeholder()
    return app


def find_config_in_release(release: Release, registry: DecoderRegistry) -> Config | None:
    """Return the first Config in the release, or None."""
    return _find_first(release, registry, Config)
