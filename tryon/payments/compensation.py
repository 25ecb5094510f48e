"""
Refunds for try-on tasks that never completed.

Idempotent per task id: the in-memory set is backed by the ledger's
``refund_<task_id>`` reference, so a repeated refund never credits twice.
"""
from typing import Any, Dict, Set

from tryon.errors import PersistenceError
from tryon.models import REFUNDABLE_STATES, TaskState, TryOnTask
from tryon.payments.ledger import BalanceLedger
from tryon.utils.correlation import correlation_tag
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)


def refund_ref(task_id: str) -> str:
    return f"refund_{task_id}"


class CompensationManager:
    """Credits the task cost back exactly once per task."""

    def __init__(self, ledger: BalanceLedger):
        self.ledger = ledger
        self._refunded: Set[str] = set()

    def is_refunded(self, task_id: str) -> bool:
        return task_id in self._refunded or self.ledger.has_entry(refund_ref(task_id))

    async def refund(self, task: TryOnTask, reason: str = "task_failed") -> Dict[str, Any]:
        """
        Refund the task cost and mark the task refunded.

        Args:
            task: Task in debited (submission error), failed or timed_out state
            reason: Refund reason for logs (submission_failed, provider_failed, timeout, ...)

        Returns:
            Status dict: status in refunded | already_refunded | refund_failed | not_refundable
        """
        ref = refund_ref(task.id)
        user_id = task.request.user_id

        if self.is_refunded(task.id):
            self._refunded.add(task.id)
            logger.info(f"{correlation_tag()} [REFUND] task={task.id} already refunded (idempotent)")
            return {
                'status': 'already_refunded',
                'task_id': task.id,
                'message': 'Refund already processed',
                'idempotent': True,
                'balance': self.ledger.visible_balance(user_id),
            }

        if task.state not in REFUNDABLE_STATES:
            logger.warning(
                f"{correlation_tag()} [REFUND] task={task.id} state={task.state.value} is not refundable"
            )
            return {
                'status': 'not_refundable',
                'task_id': task.id,
                'message': f'Task in state {task.state.value} cannot be refunded',
                'idempotent': False,
                'balance': self.ledger.visible_balance(user_id),
            }

        # Claim before the await so a concurrent refund sees it
        self._refunded.add(task.id)
        try:
            balance = await self.ledger.credit(user_id, task.cost, ref=ref)
        except PersistenceError as e:
            if not self.ledger.has_entry(ref):
                # Nothing was credited; a later refund may retry
                self._refunded.discard(task.id)
                logger.error(
                    f"{correlation_tag()} [REFUND] task={task.id} credit not applied reason={reason}: {e}"
                )
                return {
                    'status': 'refund_failed',
                    'task_id': task.id,
                    'message': 'Refund could not be applied, contact support',
                    'idempotent': False,
                    'balance': self.ledger.visible_balance(user_id),
                    'error': str(e),
                }

            task.transition(TaskState.REFUNDED)
            logger.error(
                f"{correlation_tag()} [REFUND] task={task.id} amount={task.cost} not persisted "
                f"reason={reason}: {e}"
            )
            return {
                'status': 'refund_failed',
                'task_id': task.id,
                'message': 'Refund was not confirmed by storage, contact support',
                'idempotent': False,
                'balance': e.balance,
                'error': str(e),
            }

        task.transition(TaskState.REFUNDED)
        logger.info(
            f"{correlation_tag()} [REFUND] task={task.id} user={user_id} amount={task.cost} "
            f"reason={reason} balance={balance}"
        )
        return {
            'status': 'refunded',
            'task_id': task.id,
            'message': 'Coins refunded',
            'idempotent': False,
            'balance': balance,
        }
