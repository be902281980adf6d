"""
A job running a shell command, so jobs can be scheduled from the CLI
without writing any code:

    jobctl enqueue command "curl -s https://example.com/ping" --frequency "+5 minutes"
"""
import logging
import subprocess

from config import Config
from job import Job
from registry import register

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    pass


@register(name="command")
class CommandJob(Job):
    def perform(self, command, timeout=None):
        timeout = timeout or Config().get("job_timeout")
        try:
            r = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise CommandError(f"{command!r} timed out after {timeout} seconds")

        if r.stdout:
            logger.info("job#%s stdout: %s", self.id, r.stdout.strip())
        if r.returncode != 0:
            raise CommandError(f"{command!r} exited with code {r.returncode}: {r.stderr.strip()}")
        return r.stdout
