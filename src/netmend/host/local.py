"""Executor for the machine netmend runs on."""
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from .base import HostExecutor, CommandResult, DEFAULT_COMMAND_TIMEOUT

logger = logging.getLogger(__name__)


class LocalExecutor(HostExecutor):
    """Run commands with subprocess and touch files directly."""

    def __init__(self, timeout: int = DEFAULT_COMMAND_TIMEOUT):
        super().__init__("localhost", timeout)

    def _run(self, argv: list[str], env: dict[str, str], timeout: int) -> CommandResult:
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
                env={**os.environ, **env},
            )
        except FileNotFoundError:
            return CommandResult(argv, 127, "", f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired:
            return CommandResult(argv, 124, "", f"timed out after {timeout}s")
        return CommandResult(argv, proc.returncode, proc.stdout, proc.stderr)

    def read_file(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so an interrupted run never leaves a half file
        tmp = target.with_name(f".{target.name}.netmend")
        tmp.write_text(content, encoding="utf-8")
        tmp.chmod(mode)
        os.replace(tmp, target)
        logger.debug(f"[{self.host_id}] wrote {path}")

    def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(os.listdir(path))
        except (FileNotFoundError, NotADirectoryError):
            return []

    def which(self, name: str) -> bool:
        return shutil.which(name) is not None
