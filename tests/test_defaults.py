"""Tests for default config values and template rendering."""

import base64
import json

import pytest

from tests.conftest import config_yaml
from upstream.defaults import create_config_values
from upstream.errors import TemplateRenderFailure
from upstream.kinds import Config, ConfigGroup, ConfigItem, EntitlementField, License
from upstream.template import Builder, LicenseContext, StaticContext, static_builder


def test_single_literal_default(registry):
    config = registry.decode(config_yaml([{"name": "item", "type": "text", "value": "foo"}]))
    values = create_config_values("my-app", config)
    assert values.name == "my-app"
    assert values.values == {"item": "foo"}


def test_items_without_default_are_skipped():
    config = Config(name="c", groups=[
        ConfigGroup(name="g1", items=[ConfigItem(name="empty"), ConfigItem(name="a", default="x")]),
        ConfigGroup(name="g2", items=[ConfigItem(name="b", value="{{ ToUpper('y') }}")]),
    ])
    assert create_config_values("app", config).values == {"a": "x", "b": "Y"}


def test_value_takes_precedence_over_default():
    item = ConfigItem(name="i", default="from-default", value="from-value")
    assert item.default_template == "from-value"


def test_render_failure_propagates():
    config = Config(name="c", groups=[ConfigGroup(name="g", items=[ConfigItem(name="bad", value="{{ NoSuchFunc() }}")])])
    with pytest.raises(TemplateRenderFailure) as ei:
        create_config_values("app", config)
    assert ei.value.item == "bad"


def test_license_functions_are_not_available_for_defaults():
    with pytest.raises(TemplateRenderFailure):
        static_builder().render_template("x", "{{ LicenseFieldValue('seats') }}")


@pytest.mark.parametrize("template", [
    "{{ ToLower.__globals__ }}",
    "{{ ToLower.__globals__['__builtins__']['__import__']('os').getcwd() }}",
    "{{ range(3) | list }}",
    "{{ lipsum() }}",
    "{{ Split('a,b', ',').append('c') }}",
])
def test_templates_cannot_escape_helper_functions(template):
    with pytest.raises(TemplateRenderFailure):
        static_builder().render_template("x", template)


@pytest.mark.parametrize("template,expected", [
    ("{{ ToLower('ABC') }}", "abc"),
    ("{{ TrimSpace('  a  ') }}", "a"),
    ("{{ Trim('--a--', '-') }}", "a"),
    ("{{ UrlEncode('a b&c') }}", "a+b%26c"),
    ("{{ Base64Encode('hi') }}", "aGk="),
    ("{{ Base64Decode('aGk=') }}", "hi"),
    ("{{ Split('a,b', ',')[1] }}", "b"),
    ("{{ Add(2, 3) }} {{ Sub(5, 3) }} {{ Mult(2, 4) }} {{ Div(7, 2) }}", "5 2 8 3"),
    ("{{ ParseBool('true') }}", "True"),
    ("{{ ParseInt('ff', 16) }}", "255"),
    ("{{ RandomString(12) | length }}", "12"),
])
def test_static_functions(template, expected):
    assert static_builder().render_template("t", template) == expected


def test_random_string_charset():
    value = StaticContext.random_string(20, "ab")
    assert len(value) == 20
    assert set(value) <= {"a", "b"}


def test_license_context():
    license = License(license_id="abc", entitlements={"seats": EntitlementField(title="Seats", value=10)})
    builder = Builder()
    builder.add_ctx(LicenseContext(license))

    assert builder.render_template("t", "{{ LicenseFieldValue('seats') }}") == "10"
    assert builder.render_template("t", "{{ LicenseFieldValue('missing') }}") == ""

    dockercfg = json.loads(base64.b64decode(builder.render_template("t", "{{ LicenseDockerCfg() }}")))
    auth = base64.b64encode(b"abc:abc").decode()
    assert dockercfg["auths"]["registry.replicated.com"]["auth"] == auth
    assert dockercfg["auths"]["proxy.replicated.com"]["auth"] == auth


def test_license_context_without_license():
    ctx = LicenseContext(None)
    assert ctx.license_field_value("seats") == ""
    assert ctx.license_dockercfg() == ""
