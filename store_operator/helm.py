"""
Helm wrapper — the workload deployer.

Stateless: everything it knows comes from Helm's own release history. Install
and upgrade run with ``--wait`` so they return only once the release's
workloads are ready, or fail after HELM_TIMEOUT.
"""
import json
import logging
import os
import subprocess
import tempfile
from typing import Optional

from store_operator.config import Settings, settings as default_settings
from store_operator.errors import DeployError

logger = logging.getLogger("store-operator.helm")


def _is_not_found(stderr: str) -> bool:
    return "not found" in (stderr or "").lower()


class HelmDeployer:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def run(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess:
        """Execute a Helm CLI command. Raises DeployError on failure if check=True."""
        cmd = [self.settings.HELM_BINARY] + args
        logger.info(f"helm> {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                # Helm enforces --timeout itself; this only catches a wedged CLI.
                timeout=self.settings.HELM_TIMEOUT + 60,
            )
        except subprocess.TimeoutExpired as e:
            raise DeployError(f"Helm command timed out: {' '.join(cmd)}") from e
        except OSError as e:
            raise DeployError(f"Helm could not be executed: {e}") from e
        if result.stdout:
            logger.debug(f"helm stdout: {result.stdout[:800]}")
        if result.stderr:
            logger.warning(f"helm stderr: {result.stderr[:800]}")
        if check and result.returncode != 0:
            raise DeployError(
                f"Helm command failed (rc={result.returncode}): {result.stderr[:500]}",
                returncode=result.returncode,
            )
        return result

    def get_revision(self, release: str, namespace: str) -> int:
        """Latest revision number of ``release``, or -1 if it was never installed."""
        r = self.run(["history", release, "-n", namespace, "--max", "1", "-o", "json"], check=False)
        if r.returncode != 0:
            if _is_not_found(r.stderr):
                return -1
            raise DeployError(
                f"Helm history failed for {release} (rc={r.returncode}): {r.stderr[:500]}",
                returncode=r.returncode,
            )
        try:
            history = json.loads(r.stdout or "[]")
        except ValueError as e:
            raise DeployError(f"Unreadable helm history for {release}: {e}") from e
        if not history:
            return -1
        return int(history[-1]["revision"])

    def install_or_upgrade(self, release: str, namespace: str, chart_path: str, values: dict):
        """Upgrade ``release`` if it has history, install it otherwise."""
        revision = self.get_revision(release, namespace)
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as f:
            # JSON is valid YAML, which is all Helm needs from a values file.
            json.dump(values, f)
            values_file = f.name
        try:
            common = [
                "-n", namespace,
                "-f", values_file,
                "--wait",
                "--timeout", f"{self.settings.HELM_TIMEOUT}s",
            ]
            if revision >= 0:
                logger.info(f"Helm release {release} at revision {revision} — upgrading")
                self.run(["upgrade", release, chart_path] + common)
            else:
                logger.info(f"Installing Helm release {release}")
                self.run(["install", release, chart_path] + common)
        finally:
            os.unlink(values_file)

    def uninstall(self, release: str, namespace: str):
        """Uninstall ``release``. A release that is already gone counts as success."""
        r = self.run(
            ["uninstall", release, "-n", namespace, "--wait",
             "--timeout", f"{self.settings.HELM_TIMEOUT}s"],
            check=False,
        )
        if r.returncode == 0:
            logger.info(f"Helm release {release} uninstalled")
            return
        if _is_not_found(r.stderr):
            logger.info(f"Helm release {release} not found — skipping uninstall")
            return
        raise DeployError(
            f"Helm uninstall failed for {release} (rc={r.returncode}): {r.stderr[:500]}",
            returncode=r.returncode,
        )
