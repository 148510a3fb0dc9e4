from __future__ import annotations

import importlib.metadata

NAME = importlib.metadata.metadata("skills-cli")["Name"]
VERSION = importlib.metadata.version("skills-cli")
USER_AGENT = f"skills-cli/{VERSION}"
