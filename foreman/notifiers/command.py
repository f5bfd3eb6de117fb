import asyncio
import json
import os

from foreman.events import Update
from foreman.notifiers.base import Notifier


class CommandNotifier(Notifier):
    """Runs a shell command per update. The update is passed as env vars and as JSON on stdin."""

    channel = "command"

    def __init__(self, command: str):
        self._command = command

    def environment(self, update: Update) -> dict[str, str]:
        env = {
            **os.environ,
            "FOREMAN_UPDATE_TYPE": update.type.value,
            "FOREMAN_UPDATE_USER_ID": update.user_id,
            "FOREMAN_UPDATE_MESSAGE": update.message,
        }
        if update.approval_id:
            env["FOREMAN_UPDATE_APPROVAL_ID"] = update.approval_id
        return env

    async def send(self, update: Update) -> None:
        proc = await asyncio.create_subprocess_shell(
            self._command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self.environment(update),
        )
        _, stderr = await proc.communicate(input=json.dumps(update.to_dict()).encode())
        if proc.returncode != 0:
            raise RuntimeError(f"Command notifier {self._command!r} exited {proc.returncode}: {stderr.decode().strip()}")
