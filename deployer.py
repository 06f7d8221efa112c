import json
import logging
import os
import re
import subprocess
from typing import List, Optional, Tuple

from config import mask_secret
from models import DeploymentResult

logger = logging.getLogger("vercel-deployer")

DESCRIPTOR = "vercel.json"
ERROR_URL_RE = re.compile(r"https?://err\.sh/\S+")
URL_RE = re.compile(r"https?://[a-z0-9-]+\.vercel\.(?:app|com)(?=[\s)\]}\"',.]|$)", re.I)
LOOSE_URL_RE = re.compile(r"https?://[a-z0-9-]+\.vercel\.(?:app|com)(?:/[^\s)\]}\"',]*)?", re.I)
DOMAIN_RE = re.compile(r"https?://[a-z0-9-]+\.vercel\.(?:app|com)", re.I)
AUTH_WORDS = ("no credentials", "authentication", "token")


class DeploymentError(RuntimeError):
    pass


def ensure_descriptor(project_dir: str) -> str:
    """Write a minimal vercel.json unless one already exists."""
    path = os.path.join(project_dir, DESCRIPTOR)
    if not os.path.exists(path):
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"version": 2}, f, indent=2)
    return path


def _run(cmd: List[str], cwd: str, env: dict, timeout: int,
         log: logging.Logger = logger) -> Tuple[int, str, str]:
    """Run the CLI and hand back output whatever the exit code. Undecodable bytes are replaced."""
    shown = cmd[:-1] + ["***"] if "--token" in cmd else cmd
    log.info("Run: %s", " ".join(shown))
    try:
        r = subprocess.run(cmd, cwd=cwd, env=env, capture_output=True, timeout=timeout,
                           encoding="utf-8", errors="replace")
    except subprocess.TimeoutExpired as e:
        out = e.stdout.decode("utf-8", errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        err = e.stderr.decode("utf-8", errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        return -1, out, err or f"Timed out after {timeout}s"
    return r.returncode, r.stdout or "", r.stderr or ""


def extract_url(output: str) -> Optional[str]:
    """Pull the deployment URL out of CLI output, raising on Vercel's error links."""
    err = ERROR_URL_RE.search(output)
    if err:
        raise DeploymentError(f"Vercel deployment failed: {err.group(0)}. Check that VERCEL_TOKEN is valid.")

    m = URL_RE.search(output) or LOOSE_URL_RE.search(output)
    if not m:
        return None
    url = m.group(0).strip().rstrip("/")
    if not re.search(r"\.vercel\.(?:app|com)$", url, re.I):
        clean = DOMAIN_RE.match(url)
        if clean:
            url = clean.group(0)
    return url


def deploy_to_vercel(project_dir: str, project_name: str, token: Optional[str], timeout: int = 600,
                     log: logging.Logger = logger) -> DeploymentResult:
    if not token:
        return DeploymentResult(success=False, skipped=True,
                                error="VERCEL_TOKEN not set in environment variables. Please add it to your .env file.")
    try:
        log.info("Starting deployment for %s...", project_name)
        ensure_descriptor(project_dir)

        # token goes in both the flag and the environment; the CLI reads either depending on version
        cmd = ["npx", "--yes", "vercel", "deploy", "--prod", "--yes", "--token", token]
        env = dict(os.environ, VERCEL_TOKEN=token)
        log.info("Deploying from %s using Vercel CLI (token %s)", project_dir, mask_secret(token))

        try:
            code, stdout, stderr = _run(cmd, project_dir, env, timeout, log)
        except OSError as e:
            raise DeploymentError(f"Could not start Vercel CLI: {e}") from e
        if code != 0:
            log.warning("Vercel CLI exited with code %s; inspecting its output anyway", code)
        if not stdout and not stderr:
            raise DeploymentError(f"Vercel CLI exited with code {code} and produced no output")

        output = stdout + stderr
        url = extract_url(output)
        if not url:
            if any(w in output.lower() for w in AUTH_WORDS):
                raise DeploymentError("Vercel authentication failed. Please check your VERCEL_TOKEN environment variable.")
            raise DeploymentError(f"Could not parse deployment URL from Vercel output. Output: {output[:500]}")

        log.info("Deployed to %s", url)
        log.info("CLI output: %s", stdout[:500])
        return DeploymentResult(success=True, deployed_url=url)
    except DeploymentError as e:
        log.error("Deployment failed: %s", e)
        return DeploymentResult(success=False, error=str(e))
    except Exception as e:
        log.exception("Unexpected deployment error")
        return DeploymentResult(success=False, error=f"Deployment failed: {e}")
