"""Runtime settings for the Preço da Hora acquisition service.

Portal URLs, selectors, the city table and cache TTLs all come from
``GlobalConfig``; call ``get_config()`` rather than instantiating it.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
