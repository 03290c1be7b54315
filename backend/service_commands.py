"""
Command queue coordination.

A command moves `pending -> running -> completed` and never backwards.
This service decides *which* command to move; the repository does the
single-row writes.

Concurrency: selecting and updating are separate repository calls with no
lock in between. The update only applies to a row that is still pending,
so a command completed or claimed in the gap is never moved back to
running and only one claim wins it.

Completion without a command id falls back to the newest running command
for the device. That only links correctly while a device has at most one
command in flight.
"""

from typing import Optional

import structlog

from errors import ValidationError
from models import Command
from repo_commands import CommandRepo

logger = structlog.get_logger(__name__)

MAX_COMMAND_ID_LENGTH = 128


def clean_command_id(command_id: Optional[str]) -> Optional[str]:
    """Normalize an optional command id from a form field.

    Empty or whitespace-only values count as "not supplied".
    """

    if command_id is None:
        return None
    command_id = command_id.strip()
    if not command_id:
        return None
    if len(command_id) > MAX_COMMAND_ID_LENGTH:
        raise ValidationError(f"commandId longer than {MAX_COMMAND_ID_LENGTH} characters")
    return command_id


class CommandService:
    def __init__(self, repo: CommandRepo):
        self.repo = repo

    def claim_next(self, device_id: str) -> Optional[Command]:
        """Mark the oldest pending command running and return it, or None.

        If the selected command stops being pending before the update lands,
        the next oldest pending one is tried.
        """

        while True:
            pending = self.repo.find_oldest_pending(device_id)
            if pending is None:
                return None

            claimed = self.repo.mark_running(pending.id)
            if claimed is not None:
                logger.info("command_claimed", device_id=device_id, command_id=claimed.id)
                return claimed
            logger.info("command_claim_lost", device_id=device_id, command_id=pending.id)

    def complete_by_id(self, command_id: str, device_id: str, result_ref: Optional[str]) -> Command:
        command = self.repo.mark_completed(command_id, device_id, result_ref)
        logger.info(
            "command_completed",
            device_id=device_id,
            command_id=command_id,
            result_ref=result_ref,
            strategy="explicit",
        )
        return command

    def complete_newest_running(self, device_id: str, result_ref: Optional[str]) -> Optional[Command]:
        running = self.repo.find_newest_running(device_id)
        if running is None:
            logger.info("command_completion_skipped", device_id=device_id, result_ref=result_ref)
            return None

        command = self.repo.mark_completed(running.id, device_id, result_ref)
        logger.info(
            "command_completed",
            device_id=device_id,
            command_id=running.id,
            result_ref=result_ref,
            strategy="newest_running",
        )
        return command

    def complete(
        self, device_id: str, result_ref: Optional[str], command_id: Optional[str] = None
    ) -> Optional[str]:
        """Complete the command a result belongs to. Returns its id, if any."""

        if command_id:
            return self.complete_by_id(command_id, device_id, result_ref).id
        command = self.complete_newest_running(device_id, result_ref)
        return command.id if command else None
