"""
Template rendering for config item values.

Templates are Jinja2 expressions, e.g. ``{{ RandomString(16) }}`` or
``{{ ToUpper("abc") }}``. The functions available to a template come from
the contexts added to a Builder: StaticContext needs no credentials,
LicenseContext reads values from a license.
"""

import base64
import json
import logging
import random
import string
import time
from datetime import datetime, timezone
from urllib.parse import quote_plus

import jinja2
from jinja2.sandbox import ImmutableSandboxedEnvironment

from .errors import TemplateRenderFailure
from .kinds import License

logger = logging.getLogger(__name__)

_RANDOM_CHARS = string.ascii_letters + string.digits
_sysrand = random.SystemRandom()


class StaticContext:
    """Functions whose result does not depend on a license or user."""

    def func_map(self) -> dict:
        return {
            "Now": self.now,
            "NowFmt": self.now_fmt,
            "ToLower": lambda s: str(s).lower(),
            "ToUpper": lambda s: str(s).upper(),
            "TrimSpace": lambda s: str(s).strip(),
            "Trim": self.trim,
            "UrlEncode": lambda s: quote_plus(str(s)),
            "Base64Encode": lambda s: base64.b64encode(str(s).encode()).decode(),
            "Base64Decode": lambda s: base64.b64decode(str(s)).decode(),
            "Split": lambda s, sep: str(s).split(sep),
            "RandomString": self.random_string,
            "Add": lambda a, b: a + b,
            "Sub": lambda a, b: a - b,
            "Mult": lambda a, b: a * b,
            "Div": self.div,
            "ParseBool": self.parse_bool,
            "ParseInt": lambda s, base=10: int(str(s), base),
            "ParseFloat": lambda s: float(s),
        }

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def now_fmt(fmt: str) -> str:
        return time.strftime(fmt, time.gmtime())

    @staticmethod
    def trim(s, cutset: str = " ") -> str:
        return str(s).strip(cutset)

    @staticmethod
    def random_string(length: int, charset: str | None = None) -> str:
        chars = charset or _RANDOM_CHARS
        return "".join(_sysrand.choice(chars) for _ in range(int(length)))

    @staticmethod
    def div(a, b):
        if isinstance(a, int) and isinstance(b, int):
            return a // b
        return a / b

    @staticmethod
    def parse_bool(s) -> bool:
        value = str(s).strip().lower()
        if value in ("1", "t", "true", "y", "yes"):
            return True
        if value in ("0", "f", "false", "n", "no"):
            return False
        raise ValueError(f"invalid boolean: {s!r}")


class LicenseContext:
    """Functions that read from a license. Unset license yields empty strings."""

    def __init__(self, license: License | None):
        self.license = license

    def func_map(self) -> dict:
        return {
            "LicenseFieldValue": self.license_field_value,
            "LicenseDockerCfg": self.license_dockercfg,
        }

    def license_field_value(self, name: str) -> str:
        if self.license is None:
            return ""
        entitlement = self.license.entitlements.get(name)
        if entitlement is None or entitlement.value is None:
            return ""
        return str(entitlement.value)

    def license_dockercfg(self) -> str:
        if self.license is None:
            return ""
        license_id = self.license.license_id
        auth = base64.b64encode(f"{license_id}:{license_id}".encode()).decode()
        dockercfg = {
            "auths": {
                "proxy.replicated.com": {"auth": auth},
                "registry.replicated.com": {"auth": auth},
            },
        }
        return base64.b64encode(json.dumps(dockercfg).encode()).decode()


class Builder:
    """
    Renders templates with the functions of every added context.

    Templates come from release content, so they run in a sandbox whose only
    globals are the context functions.
    """

    def __init__(self):
        self.env = ImmutableSandboxedEnvironment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.globals.clear()

    def add_ctx(self, ctx):
        self.env.globals.update(ctx.func_map())

    def render_template(self, name: str, text: str) -> str:
        """
        Render a single template.

        Raises:
            TemplateRenderFailure: if the template does not parse or fails to render
        """
        try:
            return self.env.from_string(text).render()
        except (jinja2.TemplateError, ValueError, TypeError, ArithmeticError) as e:
            logger.warning(f"Failed to render template {name}: {e}")
            raise TemplateRenderFailure(f"failed to render template {name}: {e}", item=name) from e


def static_builder() -> Builder:
    builder = Builder()
    builder.add_ctx(StaticContext())
    return builder
