"""Driver firmware adapter.

The Broadcom NetXtreme II chips (BCM5709/5716) need a non-free firmware blob.
When the kernel log shows the driver failed to load it, the firmware package
is installed from the non-free-firmware component, enabling that component
in APT's sources first if needed.
"""
import logging
import posixpath
import re
from typing import Optional

from ..config import FirmwareSettings
from ..engine import Verdict
from ..errors import CommandError, RemediationError
from ..host import HostExecutor
from ..utils.connection import with_retry
from .base import SubsystemAdapter

logger = logging.getLogger(__name__)

_DEB_LINE = re.compile(r"^(deb)\s+(\[[^\]]*\]\s+)?(\S+)\s+(\S+)\s+(.*?)\s*$")


class FirmwarePresence(SubsystemAdapter):
    """Ensure the driver's firmware package is installed when it is needed."""

    def __init__(self, executor: HostExecutor, settings: Optional[FirmwareSettings] = None):
        super().__init__(executor)
        self.settings = settings or FirmwareSettings()
        self._signature = re.compile(
            rf"{re.escape(self.settings.driver)}.*firmware.*failed to load", re.I
        )

    @property
    def name(self) -> str:
        return f"firmware:{self.settings.driver}"

    def probe(self) -> Verdict:
        if self.package_installed():
            return Verdict.holds(f"{self.settings.package} installed")

        dmesg = self.inspect(["dmesg"])
        for line in dmesg.stdout.splitlines():
            if self._signature.search(line):
                return Verdict.unsatisfied(
                    f"{self.settings.driver} firmware failed to load and "
                    f"{self.settings.package} is not installed"
                )
        return Verdict.holds("no firmware load failure logged")

    def package_installed(self) -> bool:
        result = self.executor.run(
            ["dpkg-query", "-W", "-f=${Status}", self.settings.package]
        )
        return result.ok and "install ok installed" in result.stdout

    def remediate(self) -> None:
        logger.info(f"Installing {self.settings.package} from non-free-firmware")
        self.enable_components()
        self.refresh_index()
        self.executor.run(
            ["apt-get", "install", "-y", self.settings.package],
            check=True,
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )

    @with_retry(max_attempts=3, min_wait=2, max_wait=15, exceptions=(CommandError,))
    def refresh_index(self) -> None:
        self.executor.run(["apt-get", "update"], check=True)

    # APT sources

    def source_files(self) -> list[str]:
        files = [self.settings.sources_list]
        for entry in self.executor.list_dir(self.settings.sources_dir):
            if entry.endswith((".list", ".sources")):
                files.append(posixpath.join(self.settings.sources_dir, entry))
        return files

    def component_enabled(self) -> bool:
        for path in self.source_files():
            content = self.executor.read_file(path) or ""
            for line in content.splitlines():
                if line.lstrip().startswith("#"):
                    continue
                if "non-free-firmware" in line:
                    return True
        return False

    def enable_components(self) -> None:
        """Add the firmware components to the release's main source entries."""
        if self.component_enabled():
            logger.debug("non-free-firmware already enabled")
            return

        codename = self.codename()
        if self._rewrite_sources_list(codename):
            return
        if self._rewrite_deb822(codename):
            return
        raise RemediationError(
            f"No '{codename} main' APT source found to add non-free-firmware to"
        )

    def codename(self) -> str:
        if self.settings.codename:
            return self.settings.codename
        for line in self.read_lines("/etc/os-release") or []:
            key, _, value = line.partition("=")
            if key.strip() == "VERSION_CODENAME" and value.strip():
                return value.strip().strip("'\"")
        raise RemediationError("Cannot determine the release codename; set firmware.codename")

    def _missing(self, components: list[str]) -> list[str]:
        return [c for c in self.settings.components if c not in components]

    def _rewrite_sources_list(self, codename: str) -> bool:
        path = self.settings.sources_list
        lines = self.read_lines(path)
        if lines is None:
            return False

        changed = False
        for i, line in enumerate(lines):
            match = _DEB_LINE.match(line)
            if not match or match.group(4) != codename:
                continue
            components = match.group(5).split()
            if "main" not in components:
                continue
            missing = self._missing(components)
            if missing:
                lines[i] = f"{line.rstrip()} {' '.join(missing)}"
                changed = True

        if changed:
            self.executor.write_file(path, "\n".join(lines) + "\n")
            logger.info(f"Enabled {', '.join(self.settings.components)} in {path}")
        return changed

    def _rewrite_deb822(self, codename: str) -> bool:
        changed_any = False
        for path in self.source_files()[1:]:
            if not path.endswith(".sources"):
                continue
            lines = self.read_lines(path) or []
            changed = False
            for start, end in _stanzas(lines):
                fields = {}
                for i in range(start, end):
                    key, sep, value = lines[i].partition(":")
                    if sep:
                        fields[key.strip().lower()] = (i, value.split())
                suites = fields.get("suites", (None, []))[1]
                index, components = fields.get("components", (None, []))
                if codename not in suites or index is None or "main" not in components:
                    continue
                missing = self._missing(components)
                if missing:
                    lines[index] = f"Components: {' '.join(components + missing)}"
                    changed = True
            if changed:
                self.executor.write_file(path, "\n".join(lines) + "\n")
                logger.info(f"Enabled {', '.join(self.settings.components)} in {path}")
                changed_any = True
        return changed_any


def _stanzas(lines: list[str]) -> list[tuple[int, int]]:
    """Line ranges of deb822 paragraphs (separated by blank lines)."""
    spans = []
    start = None
    for i, line in enumerate(lines):
        if line.strip() and start is None:
            start = i
        elif not line.strip() and start is not None:
            spans.append((start, i))
            start = None
    if start is not None:
        spans.append((start, len(lines)))
    return spans
