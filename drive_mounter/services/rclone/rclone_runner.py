"""rclone CLI runner - one-shot rclone commands with captured output."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional


@dataclass
class RcloneResult:
    success: bool
    output: str = ""
    error: str = ""
    exit_code: int = -1


class RcloneRunner:
    """
    Runs short-lived rclone commands (config, obscure, lsd, version).

    Long-lived mount processes are launched by the adapters, not here.
    """

    def __init__(
        self,
        rclone_path: Callable[[], str],
        config_path: Path,
        default_timeout: float = 60,
    ):
        # Callable so a changed custom_rclone_path takes effect without restart
        self._rclone_path = rclone_path
        self._config_path = config_path
        self._default_timeout = default_timeout

    @property
    def executable(self) -> str:
        return self._rclone_path()

    @property
    def config_path(self) -> Path:
        return self._config_path

    def base_command(self) -> List[str]:
        """Executable plus the --config flag shared by every invocation."""
        return [self.executable, "--config", str(self._config_path)]

    async def run(self, *args: str, timeout: Optional[float] = None) -> RcloneResult:
        cmd = self.base_command() + list(args)
        timeout = timeout or self._default_timeout
        # Only the subcommand: arguments may carry secrets
        logging.debug(f"Running rclone {args[0] if args else ''}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            logging.error(f"Could not start rclone ({self.executable}): {e}")
            return RcloneResult(success=False, error=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logging.error(f"rclone {args[0] if args else ''} timed out after {timeout}s")
            process.kill()
            await process.wait()
            return RcloneResult(success=False, error="Command timed out", exit_code=-1)

        result = RcloneResult(
            success=process.returncode == 0,
            output=stdout.decode(errors="replace") if stdout else "",
            error=stderr.decode(errors="replace") if stderr else "",
            exit_code=process.returncode,
        )
        if not result.success:
            logging.warning(f"rclone {args[0] if args else ''} failed ({result.exit_code}): {result.error.strip()}")
        return result

    async def version(self) -> str:
        result = await self.run("version")
        if result.success and result.output:
            return result.output.splitlines()[0].strip()
        return "Unknown"

    async def obscure_secret(self, plaintext: str) -> str:
        """
        One-way cosmetic transform of a secret, reversible only by rclone.

        Not encryption: it only keeps secrets out of plain sight in config files.
        """
        result = await self.run("obscure", plaintext)
        if not result.success:
            raise RuntimeError(f"rclone obscure failed: {result.error.strip() or 'unknown error'}")
        return result.output.strip()

    async def create_remote(self, remote_name: str, remote_type: str, options: List[str]) -> bool:
        """Create (or overwrite) a remote definition. Secrets must already be obscured."""
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        result = await self.run(
            "config", "create", remote_name, remote_type, *options, "--no-obscure"
        )
        return result.success

    async def delete_remote(self, remote_name: str) -> bool:
        result = await self.run("config", "delete", remote_name)
        return result.success

    async def list_directories(self, remote_spec: str, timeout: Optional[float] = None) -> RcloneResult:
        return await self.run("lsd", remote_spec, "--max-depth", "1", timeout=timeout)
