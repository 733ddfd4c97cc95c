"""
Shared module for common utilities used by the relay gateway.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging

- shared.infrastructure: Cross-cutting runtime helpers
  - correlation.py: Connection correlation IDs for log records

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger, setup_logging
    from shared.infrastructure.correlation import connection_id_var
"""
