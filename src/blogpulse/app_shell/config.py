import logging
import os
import sys
from pathlib import Path

from blogpulse.rules.models import Rules

logger = logging.getLogger(__name__)


def validate_ops_rules(rules: Rules, data_dir: Path) -> None:
    """
    Validate operational requirements before startup.

    Exits the process when a requirement is not met.
    """
    ops = rules.ops

    # 1. Check Data Dir
    if ops.data_dir_required and not data_dir.is_dir():
        logger.critical("Data directory does not exist: %s", data_dir)
        sys.exit(1)

    # 2. Check Required Env
    missing = [env_var for env_var in ops.required_env if env_var not in os.environ]
    if missing:
        logger.critical("Missing required environment variables: %s", ", ".join(missing))
        sys.exit(1)

    logger.info("Configuration validated")
