"""
Paid virtual try-on flow with safety invariants:
- Debit before submission, submission before polling
- Every non-completed outcome after a debit is refunded exactly once
- Completed tasks are published exactly once and never refunded
- Cancelled tasks stop silently and keep the charge (the provider may still finish)
"""
import math
from typing import Any, Callable, Dict, List, Optional

from tryon.config import Settings, get_settings
from tryon.errors import (
    InsufficientFunds,
    PersistenceError,
    ProviderFailure,
    RefundError,
    SubmissionError,
    TaskTimeout,
)
from tryon.integrations.base import TryOnProvider
from tryon.messages import feature_name, t
from tryon.models import TaskState, TryOnRequest, TryOnTask
from tryon.payments.compensation import CompensationManager
from tryon.payments.ledger import BalanceLedger
from tryon.services.callbacks import invoke_safely
from tryon.services.notifications import NotificationChannel
from tryon.services.polling import CancellationToken, PollingScheduler, max_attempts_for
from tryon.services.preview import PreviewCollection
from tryon.services.results import ResultHandler
from tryon.services.submitter import TaskSubmitter
from tryon.storage.base import BaseStorage
from tryon.utils.correlation import bind_correlation_id, correlation_tag, reset_correlation_id
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], Any]


class Orchestrator:
    """Single entry point for the UI: start, cancel, cancel_all."""

    def __init__(
        self,
        ledger: BalanceLedger,
        provider: TryOnProvider,
        store: Optional[BaseStorage] = None,
        settings: Optional[Settings] = None,
        notifier: Optional[NotificationChannel] = None,
        preview: Optional[PreviewCollection] = None,
        result_handler: Optional[ResultHandler] = None,
        compensation: Optional[CompensationManager] = None,
        submitter: Optional[TaskSubmitter] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            ledger: Balance ledger (the only writer of balances)
            provider: Try-on provider (PiAPI client or stub)
            store: Storage for task snapshots, saved results and notifications
            settings: Settings (global settings if None)
            notifier: Notification channel (built over ``store`` if None)
            preview: "Your Preview" collection
            result_handler: Result publisher (built from the above if None)
            compensation: Refund manager (built over ``ledger`` if None)
            submitter: Task submitter (built over ``provider`` if None)
        """
        self.settings = settings or get_settings()
        self.ledger = ledger
        self.provider = provider
        self.store = store
        self.notifier = notifier or NotificationChannel(store)
        self.preview = preview or PreviewCollection()
        self.result_handler = result_handler or ResultHandler(
            store,
            self.preview,
            self.notifier,
            preferred_source_pattern=self.settings.preferred_source_pattern,
        )
        self.compensation = compensation or CompensationManager(ledger)
        self.submitter = submitter or TaskSubmitter(provider)

        self._tasks: Dict[str, TryOnTask] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    # ==================== PUBLIC API ====================

    def get_task(self, task_id: str) -> Optional[TryOnTask]:
        return self._tasks.get(task_id)

    def active_tasks(self) -> List[TryOnTask]:
        return list(self._tasks.values())

    def cancel(self, task_id: str) -> bool:
        """
        Stop tracking a task. No refund is made and no further events fire.

        Returns:
            True if an active task was cancelled
        """
        token = self._tokens.get(task_id)
        if token is None or token.is_cancelled:
            return False
        token.cancel()
        logger.warning(f"[ORCH] task={task_id} cancelled by caller (no refund)")
        return True

    def cancel_all(self) -> int:
        """Cancel every active task (session end). Returns the number cancelled."""
        return sum(1 for task_id in list(self._tokens) if self.cancel(task_id))

    async def start(self, request: TryOnRequest, on_event: Optional[EventCallback] = None) -> Dict[str, Any]:
        """
        Run one try-on end to end.

        Args:
            request: Confirmed try-on request
            on_event: Optional ``on_event(event, payload)`` (sync or async) for
                started / progress / completed / failed

        Returns:
            Outcome dict: success, status, error_code, message, task_id,
            provider_task_id, result_media, preview_item, payment_status, balance
        """
        task = TryOnTask(request=request)
        corr_token = bind_correlation_id(task.id)
        try:
            return await self._run(task, on_event)
        finally:
            self._tasks.pop(task.id, None)
            self._tokens.pop(task.id, None)
            reset_correlation_id(corr_token)

    # ==================== FLOW ====================

    async def _run(self, task: TryOnTask, on_event: Optional[EventCallback]) -> Dict[str, Any]:
        request = task.request
        feature = feature_name(request.kind)
        logger.info(
            f"{correlation_tag()} [ORCH] start kind={request.kind.value} user={request.user_id} "
            f"product={request.product_id} cost={request.cost}"
        )

        missing = request.missing_fields()
        if missing:
            logger.warning(f"{correlation_tag()} [ORCH] invalid request, missing={missing}")
            return self._outcome(
                task, 'INVALID_REQUEST',
                t("invalid_request", feature=feature, missing=", ".join(missing)),
                payment_status='not_charged', status='rejected',
            )

        # Pre-check; the debit below stays authoritative
        try:
            balance = await self.ledger.get_balance(request.user_id)
        except PersistenceError as e:
            logger.error(f"{correlation_tag()} [ORCH] balance read failed: {e}")
            return self._outcome(
                task, 'BALANCE_UPDATE_FAILED', t("balance_update_failed"),
                payment_status='not_charged', status='rejected',
            )
        if balance < request.cost:
            return self._insufficient(task, feature, balance)

        token = CancellationToken()
        self._tasks[task.id] = task
        self._tokens[task.id] = token
        await self._snapshot(task)

        try:
            balance = await self.ledger.debit(request.user_id, request.cost, ref=f"debit_{task.id}")
        except InsufficientFunds as e:
            return self._insufficient(task, feature, e.balance)
        except PersistenceError as e:
            logger.error(f"{correlation_tag()} [ORCH] debit failed: {e}")
            return self._outcome(
                task, 'BALANCE_UPDATE_FAILED', t("balance_update_failed"),
                payment_status='not_charged', status='rejected', balance=e.balance,
            )
        task.transition(TaskState.DEBITED)
        await self._snapshot(task)

        if token.is_cancelled:
            # Nothing reached the provider yet, so the charge goes back
            refund = await self.compensation.refund(task, reason='cancelled_before_submit')
            await self._snapshot(task)
            if refund.get('status') not in ('refunded', 'already_refunded'):
                return self._refund_outcome(
                    task, refund, 'CANCELLED', t("cancelled", feature=feature), feature,
                    status='cancelled',
                )
            return self._cancelled(task, feature, refund.get('balance'), payment_status='refunded')

        try:
            provider_task_id = await self._submit(task)
        except SubmissionError as e:
            task.error_message = str(e)
            refund = await self.compensation.refund(task, reason='submission_failed')
            await self._snapshot(task)
            message = t("submission_failed", feature=feature, error=task.error_message)
            outcome = self._refund_outcome(task, refund, SubmissionError.error_code, message, feature)
            if not token.is_cancelled:
                await self._notify_failed(task, feature, outcome['message'])
                await self._emit(on_event, 'failed', outcome)
            return outcome

        task.provider_task_id = provider_task_id
        task.transition(TaskState.SUBMITTED)
        await self._snapshot(task)

        if token.is_cancelled:
            return self._cancelled(task, feature, balance)

        await self._emit(on_event, 'started', {
            'task_id': task.id,
            'provider_task_id': provider_task_id,
            'kind': request.kind.value,
            'balance': balance,
        })
        await self.notifier.notify(
            'started',
            request.user_id,
            t("notify_started_title", feature=feature),
            t("notify_started_subtitle", feature_lower=feature.lower()),
            image=request.subject_media_ref,
        )

        task.transition(TaskState.POLLING)
        await self._snapshot(task)

        max_attempts = max_attempts_for(request.kind, self.settings)

        async def on_progress(polled: TryOnTask) -> None:
            await self._snapshot(polled)
            if not token.is_cancelled:
                await self._emit(on_event, 'progress', {
                    'task_id': polled.id,
                    'attempt': polled.attempts,
                    'max_attempts': max_attempts,
                    'state': polled.state.value,
                })

        scheduler = PollingScheduler(
            task,
            self.provider,
            max_attempts=max_attempts,
            interval=self.settings.poll_interval_seconds,
            token=token,
            on_progress=on_progress,
        )
        state = await scheduler.run()
        await self._snapshot(task)

        if state == TaskState.POLLING:
            return self._cancelled(task, feature, self.ledger.visible_balance(request.user_id))

        if state == TaskState.COMPLETED:
            item = await self.result_handler.publish(task)
            await self._snapshot(task)
            outcome = self._outcome(
                task, None, t("completed", feature=feature),
                payment_status='charged', success=True,
                preview_item=item.to_dict(), balance=self.ledger.visible_balance(request.user_id),
            )
            await self._emit(on_event, 'completed', outcome)
            return outcome

        if state == TaskState.FAILED:
            refund = await self.compensation.refund(task, reason='provider_failed')
            message = t("provider_failed", feature=feature, error=task.error_message)
            error_code = ProviderFailure.error_code
        else:
            refund = await self.compensation.refund(task, reason='timeout')
            minutes = max(1, math.ceil(max_attempts * self.settings.poll_interval_seconds / 60))
            message = t("timeout", feature=feature, minutes=minutes)
            error_code = TaskTimeout.error_code

        await self._snapshot(task)
        outcome = self._refund_outcome(task, refund, error_code, message, feature)
        await self._notify_failed(task, feature, outcome['message'])
        await self._emit(on_event, 'failed', outcome)
        return outcome

    async def _submit(self, task: TryOnTask) -> str:
        attempts = max(1, self.settings.submit_attempts)
        last_error: Optional[SubmissionError] = None
        for attempt in range(1, attempts + 1):
            try:
                return await self.submitter.submit(task.request)
            except SubmissionError as e:
                last_error = e
                if attempt < attempts:
                    logger.warning(
                        f"{correlation_tag()} [ORCH] submission attempt {attempt}/{attempts} failed: {e}"
                    )
        raise last_error

    # ==================== HELPERS ====================

    async def _snapshot(self, task: TryOnTask) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_task_record(task.id, task.to_record())
        except Exception as e:
            logger.warning(f"{correlation_tag()} [ORCH] failed to snapshot task {task.id}: {e}")

    async def _emit(self, on_event: Optional[EventCallback], event: str, payload: Dict[str, Any]) -> None:
        await invoke_safely(on_event, event, payload, logger=logger, tag=f"[ORCH] event={event}")

    async def _notify_failed(self, task: TryOnTask, feature: str, message: str) -> None:
        await self.notifier.notify(
            'failed',
            task.request.user_id,
            t("notify_failed_title", feature=feature),
            message,
        )

    def _insufficient(self, task: TryOnTask, feature: str, balance: int) -> Dict[str, Any]:
        logger.info(
            f"{correlation_tag()} [ORCH] insufficient funds balance={balance} cost={task.cost}"
        )
        return self._outcome(
            task, InsufficientFunds.error_code, t("insufficient_funds", cost=task.cost, feature=feature),
            payment_status='not_charged', status='rejected', balance=balance,
        )

    def _cancelled(self, task: TryOnTask, feature: str, balance: Optional[int],
                   payment_status: str = 'charged') -> Dict[str, Any]:
        logger.warning(
            f"{correlation_tag()} [ORCH] task={task.id} stopped in state {task.state.value} "
            f"(payment_status={payment_status})"
        )
        return self._outcome(
            task, 'CANCELLED', t("cancelled", feature=feature),
            payment_status=payment_status, status='cancelled', balance=balance,
        )

    def _refund_outcome(self, task: TryOnTask, refund: Dict[str, Any], error_code: str,
                        message: str, feature: str,
                        status: Optional[str] = None) -> Dict[str, Any]:
        if refund.get('status') in ('refunded', 'already_refunded'):
            return self._outcome(
                task, error_code, message,
                payment_status='refunded', status=status, balance=refund.get('balance'),
            )
        logger.error(
            f"{correlation_tag()} [ORCH] task={task.id} refund not confirmed: {refund.get('message')}"
        )
        return self._outcome(
            task, RefundError.error_code,
            t("refund_failed", feature=feature, cost=task.cost, task_id=task.id),
            payment_status='refund_failed', status=status, balance=refund.get('balance'),
            cause=error_code,
        )

    def _outcome(
        self,
        task: TryOnTask,
        error_code: Optional[str],
        message: str,
        payment_status: str,
        success: bool = False,
        status: Optional[str] = None,
        preview_item: Optional[Dict[str, Any]] = None,
        balance: Optional[int] = None,
        cause: Optional[str] = None,
    ) -> Dict[str, Any]:
        outcome = {
            'success': success,
            'status': status or task.state.value,
            'error_code': error_code if error_code else 'COMPLETED',
            'message': message,
            'task_id': task.id,
            'provider_task_id': task.provider_task_id,
            'result_media': list(task.result_media),
            'preview_item': preview_item,
            'payment_status': payment_status,
            'balance': balance,
        }
        if cause:
            outcome['cause'] = cause
        if task.error_message:
            outcome['error'] = task.error_message
        logger.info(
            f"{correlation_tag()} [ORCH] outcome task={task.id} status={outcome['status']} "
            f"error_code={outcome['error_code']} payment={payment_status}"
        )
        return outcome
