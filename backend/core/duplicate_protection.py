"""
DUPLICATE TRANSACTION PROTECTION

A provider transaction may pay for exactly one biodata record:
- Lookup-before-write on transaction_id
- Backed by the unique partial index created by BiodataStore.ensure_indexes
"""

from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


class DuplicateTransactionError(Exception):
    """Raised when a transaction id is already attached to another record"""
    def __init__(self, transaction_id: str, existing_record_id: Optional[str]):
        self.transaction_id = transaction_id
        self.existing_record_id = existing_record_id
        super().__init__(
            f"Duplicate transaction detected: Transaction={transaction_id}. "
            f"Existing record: {existing_record_id or 'unknown'}"
        )


class DuplicateTransactionProtection:
    """
    Service for preventing one transaction from confirming two records.
    """

    def __init__(self, store):
        self.store = store

    async def find_transaction_holder(self, transaction_id: str) -> Optional[str]:
        """Id of the record already holding this transaction, if any"""
        existing = await self.store.find_by_transaction_id(transaction_id)
        return existing["id"] if existing else None

    async def check_duplicate_transaction(
        self,
        transaction_id: str,
        record_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Check whether a transaction id is already claimed.

        Args:
            transaction_id: Provider transaction id
            record_id: The record about to claim it, if known

        Returns:
            None if nobody holds the transaction, or the existing record when
            it is `record_id` itself (already confirmed with this transaction)

        Raises:
            DuplicateTransactionError if a different record holds it
        """
        existing = await self.store.find_by_transaction_id(transaction_id)
        if existing is None:
            logger.debug(f"No record holds transaction {transaction_id}")
            return None

        if record_id is not None and existing["id"] == record_id:
            return existing

        raise DuplicateTransactionError(
            transaction_id=transaction_id,
            existing_record_id=existing["id"]
        )
