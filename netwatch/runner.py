"""External command execution for netwatch."""

import logging
import os
import subprocess
from typing import Optional, Protocol

from netwatch.config import ToolsConfig

logger = logging.getLogger(__name__)

NETTOP = "nettop"
LSOF = "lsof"
NETSTAT = "netstat"


class ExecutionFailed(Exception):
    """An external reporting tool could not be run."""

    def __init__(self, tool: str, detail: str):
        self.tool = tool
        self.detail = detail
        super().__init__(f"Failed to execute {tool}: {detail}")


class CommandRunner(Protocol):
    """Runs a named reporting tool and returns its stdout."""

    def run(self, tool: str) -> str:
        ...


class SubprocessRunner:
    """Command runner backed by subprocess.

    Tool identifiers are resolved to argv lists through ToolsConfig.
    stderr is discarded; stdout is returned whatever the exit status.
    """

    def __init__(self, tools: Optional[ToolsConfig] = None, timeout: int = 10):
        self.tools = tools or ToolsConfig()
        self.timeout = timeout

    def run(self, tool: str) -> str:
        cmd = self.tools.command_for(tool)
        if not cmd:
            raise ExecutionFailed(tool, "unknown tool")

        logger.debug(f"Running: {' '.join(cmd)}")

        env = {**os.environ, 'LANG': 'C', 'LC_ALL': 'C'}

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                errors='replace',
                timeout=self.timeout,
                env=env
            )
        except FileNotFoundError:
            raise ExecutionFailed(tool, f"{cmd[0]} not found")
        except PermissionError:
            raise ExecutionFailed(tool, f"permission denied: {cmd[0]}")
        except subprocess.TimeoutExpired:
            raise ExecutionFailed(tool, f"timed out after {self.timeout}s")
        except OSError as e:
            raise ExecutionFailed(tool, str(e)) from e

        if result.returncode != 0:
            logger.debug(f"{tool} exited with status {result.returncode}")

        return result.stdout
