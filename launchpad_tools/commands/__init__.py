"""CLI command implementations for launchpad_tools.

- install / update / verify: run the patch engine on a module
- status: server reachability and local module state
- manifest: generate, show and check manifest files
"""

from launchpad_tools.commands.manifest import manifest_group
from launchpad_tools.commands.module import install, status, update, verify

__all__ = ["install", "manifest_group", "status", "update", "verify"]
