"""
Package lifecycle hooks

Hooks run around installer and uninstall steps and report success with a
bool. LifecycleHooks does nothing; ScriptHooks runs the shell scripts a
package ships in its tools/ directory:

    <package dir>/tools/post_install.sh
    <package dir>/tools/pre_uninstall.sh
    ...
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

from .reference import PackageReference

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_TIMEOUT = 300


class LifecycleHooks:
    """No-op hooks: every step succeeds."""

    def pre_install(self, package: PackageReference) -> bool:
        return True

    def post_install(self, package: PackageReference) -> bool:
        return True

    def pre_uninstall(self, package: PackageReference) -> bool:
        return True

    def post_uninstall(self, package: PackageReference) -> bool:
        return True


class ScriptHooks(LifecycleHooks):
    """Runs tools/<hook>.sh from the package directory when present."""

    def __init__(self, shell: str = "sh", timeout: int = DEFAULT_SCRIPT_TIMEOUT):
        self.shell = shell
        self.timeout = timeout

    def script_path(self, package: PackageReference, hook: str) -> Optional[Path]:
        if package.install_path is None:
            return None
        script = Path(package.install_path) / "tools" / f"{hook}.sh"
        return script if script.is_file() else None

    def run(self, package: PackageReference, hook: str) -> bool:
        script = self.script_path(package, hook)
        if script is None:
            return True

        env = dict(os.environ)
        env.update({
            'NUPM_HOOK': hook,
            'NUPM_PACKAGE_ID': package.id,
            'NUPM_PACKAGE_VERSION': package.version,
            'NUPM_PACKAGE_DIR': str(package.install_path),
        })
        logger.info(f"Running {hook} script for {package}")
        try:
            result = subprocess.run([self.shell, str(script)], cwd=str(package.install_path),
                                    env=env, capture_output=True, text=True,
                                    timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"{hook} script for {package} timed out after {self.timeout}s")
            return False
        except OSError as e:
            logger.error(f"Cannot run {hook} script for {package}: {e}")
            return False

        for line in result.stdout.splitlines():
            logger.debug(f"{hook}: {line}")
        for line in result.stderr.splitlines():
            logger.warning(f"{hook}: {line}")
        if result.returncode != 0:
            logger.error(f"{hook} script for {package} failed (exit {result.returncode})")
            return False
        return True

    def pre_install(self, package: PackageReference) -> bool:
        return self.run(package, 'pre_install')

    def post_install(self, package: PackageReference) -> bool:
        return self.run(package, 'post_install')

    def pre_uninstall(self, package: PackageReference) -> bool:
        return self.run(package, 'pre_uninstall')

    def post_uninstall(self, package: PackageReference) -> bool:
        return self.run(package, 'post_uninstall')
