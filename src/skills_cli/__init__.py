from loguru import logger

# Disable logging by default for library usage.
# Application entry points (e.g., skills_cli.cli) should call logger.enable("skills_cli")
# to enable logging.
logger.disable("skills_cli")
