"""
Default config values derived from an application's Config.
"""

import logging

from .kinds import Config, ConfigValues
from .template import static_builder

logger = logging.getLogger(__name__)


def create_config_values(application_name: str, config: Config) -> ConfigValues:
    """
    Render the default value of every config item.

    Only static template functions are available, so the result does not
    depend on which license pulled the release. Items without a default
    template are left out.

    Args:
        application_name: Name of the application the values belong to
        config: Config found in the release

    Returns:
        ConfigValues named after the application

    Raises:
        TemplateRenderFailure: if any item's template fails to render
    """
    builder = static_builder()
    values = {}

    for group in config.groups:
        for item in group.items:
            if not item.default_template:
                continue
            values[item.name] = builder.render_template(item.name, item.default_template)
            logger.debug(f"Rendered default for config item {item.name}")

    logger.info(f"Created {len(values)} default config values for {application_name}")
    return ConfigValues(name=application_name, values=values)
