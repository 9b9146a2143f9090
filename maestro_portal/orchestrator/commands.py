import time
import uuid
from typing import Awaitable, Callable, Optional, Union

from maestro_portal.orchestrator.cache import ResourceCache
from maestro_portal.orchestrator.contracts import CancelConfirmation, CommandName
from maestro_portal.orchestrator.errors import CommandError, ValidationError
from maestro_portal.orchestrator.navigation import resolve_folder_key
from maestro_portal.orchestrator.records import OperationResult
from maestro_portal.orchestrator.resources import INSTANCES_KEY, PROCESSES_KEY, instance_key
from maestro_portal.orchestrator.status import classify

DEFAULT_COMMENTS = {
    "pause": "Paused from Maestro Portal",
    "resume": "Resumed from Maestro Portal",
    "cancel": "Cancelled from Maestro Portal",
}


class CommandDispatcher:
    """Pause / resume / cancel against the registry.

    Eligibility is checked on the cached status before anything is sent. A
    successful command only invalidates cache keys; the new status always
    comes from the registry on the next fetch.

    Cancel is two-phase: request_cancel() hands out a confirmation token once
    the operator's intent is known, and cancel() refuses to run without it.
    """

    def __init__(
        self,
        registry,
        cache: ResourceCache,
        status_store,
        default_folder_key: Optional[str] = None,
        confirmation_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.cache = cache
        self.status = status_store
        self.default_folder_key = default_folder_key
        self.confirmation_ttl = confirmation_ttl
        self._clock = clock
        self._pending: dict[str, CancelConfirmation] = {}

    def current_status(self, instance_id: str, folder_key: str) -> Optional[str]:
        live = self.cache.get(instance_key(instance_id, folder_key)).payload
        if live is not None:
            return live.latest_run_status
        for inst in self.cache.get(INSTANCES_KEY).payload or ():
            if inst.instance_id == instance_id:
                return inst.latest_run_status
        return None

    def _folder_key_for(self, instance_id: str) -> Optional[str]:
        # same resolution the detail view uses, so commands hit the key on screen
        instance = next(
            (inst for inst in self.cache.get(INSTANCES_KEY).payload or () if inst.instance_id == instance_id),
            None,
        )
        return resolve_folder_key(instance, self.cache.get(PROCESSES_KEY).payload, self.default_folder_key)

    def _check(self, command: CommandName, instance_id: str, folder_key: Optional[str]) -> str:
        if not instance_id:
            raise ValidationError("instance id is required")
        folder_key = folder_key or self._folder_key_for(instance_id)
        if not folder_key:
            raise ValidationError("folder key is required")
        raw = self.current_status(instance_id, folder_key)
        if raw is None:
            raise ValidationError(f"status of instance {instance_id} is not known yet")
        info = classify(raw)
        allowed = {"pause": info.can_pause, "resume": info.can_resume, "cancel": info.can_cancel}[command]
        if not allowed:
            raise ValidationError(f"cannot {command} instance {instance_id} in status {raw!r}")
        return folder_key

    async def pause(self, instance_id: str, folder_key: Optional[str] = None, comment: Optional[str] = None) -> OperationResult:
        folder_key = self._check("pause", instance_id, folder_key)
        return await self._dispatch("pause", instance_id, folder_key, comment, self.registry.pause_instance)

    async def resume(self, instance_id: str, folder_key: Optional[str] = None, comment: Optional[str] = None) -> OperationResult:
        folder_key = self._check("resume", instance_id, folder_key)
        return await self._dispatch("resume", instance_id, folder_key, comment, self.registry.resume_instance)

    def request_cancel(self, instance_id: str, folder_key: Optional[str] = None) -> CancelConfirmation:
        """Phase one of cancel: issue a single-use token for this instance."""
        folder_key = self._check("cancel", instance_id, folder_key)
        self._expire_confirmations()
        confirmation = CancelConfirmation(
            token=uuid.uuid4().hex,
            instance_id=instance_id,
            folder_key=folder_key,
            expires_at=self._clock() + self.confirmation_ttl,
        )
        self._pending[confirmation.token] = confirmation
        self.status.log(f"commands: cancel requested for {instance_id}")
        return confirmation

    async def cancel(
        self,
        instance_id: str,
        folder_key: Optional[str] = None,
        comment: Optional[str] = None,
        *,
        confirmation: Union[CancelConfirmation, str, None],
    ) -> OperationResult:
        folder_key = self._check("cancel", instance_id, folder_key)
        self._consume_confirmation(confirmation, instance_id, folder_key)
        return await self._dispatch("cancel", instance_id, folder_key, comment, self.registry.cancel_instance)

    def _consume_confirmation(self, confirmation: Union[CancelConfirmation, str, None], instance_id: str, folder_key: str):
        self._expire_confirmations()
        token = confirmation.token if isinstance(confirmation, CancelConfirmation) else confirmation
        if not token:
            raise ValidationError("cancel needs a confirmation token")
        issued = self._pending.get(token)
        if issued is None:
            raise ValidationError("confirmation token is unknown, used or expired")
        if issued.instance_id != instance_id or issued.folder_key != folder_key:
            raise ValidationError(f"confirmation token was issued for instance {issued.instance_id}")
        del self._pending[token]

    def _expire_confirmations(self):
        now = self._clock()
        for token in [t for t, c in self._pending.items() if c.expires_at <= now]:
            del self._pending[token]

    async def _dispatch(
        self,
        command: CommandName,
        instance_id: str,
        folder_key: str,
        comment: Optional[str],
        send: Callable[..., Awaitable[OperationResult]],
    ) -> OperationResult:
        comment = comment or DEFAULT_COMMENTS[command]
        self.status.last_command = f"{command} {instance_id}"
        self.status.log(f"commands: {command} {instance_id} folder={folder_key}")
        try:
            result = await send(instance_id, folder_key, comment)
        except CommandError as e:
            self.status.error(f"{command} {instance_id}: {e}")
            raise
        except Exception as e:
            self.status.error(f"{command} {instance_id}: {type(e).__name__}: {e}")
            raise CommandError(f"failed to {command} instance {instance_id}: {e}") from e

        self.cache.invalidate(instance_key(instance_id, folder_key))
        if self.cache.subscriber_count(INSTANCES_KEY):
            self.cache.invalidate(INSTANCES_KEY)
        self.status.log(f"commands: {command} {instance_id} ok status={result.status}")
        return result
