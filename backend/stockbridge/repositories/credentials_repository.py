"""
Credentials Repository - Data access for the ml_credentials table

The table is keyed by account_id. Reads pick the most recently updated row
for the key; refresh writes are versioned so a concurrent writer cannot be
silently overwritten.
"""
import logging
from typing import Optional

from supabase import Client

from stockbridge.domain.credentials import CredentialRecord

logger = logging.getLogger(__name__)


class CredentialsRepository:
    """
    Repository for Mercado Libre OAuth credentials

    Handles:
    - Latest record per account (ordered by updated_at)
    - Upsert by account_id (initial authorization, manual entry)
    - Compare-and-swap update on version (token refresh)
    """

    TABLE = "ml_credentials"

    def __init__(self, client: Client):
        self._client = client

    def get_latest(self, account_id: str) -> Optional[CredentialRecord]:
        """
        Most recently updated credential record for an account

        Returns:
            CredentialRecord if found, None otherwise
        """
        response = (
            self._client.table(self.TABLE)
            .select("*")
            .eq("account_id", account_id)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )

        rows = response.data or []
        if not rows:
            return None
        return CredentialRecord(**rows[0])

    def upsert(self, record: CredentialRecord) -> CredentialRecord:
        """Insert or overwrite the record for record.account_id"""
        self._client.table(self.TABLE).upsert(record.to_row(), on_conflict="account_id").execute()
        logger.info(f"Upserted ML credentials for account {record.account_id} (version {record.version})")
        return record

    def compare_and_swap(self, record: CredentialRecord, expected_version: int) -> bool:
        """
        Overwrite the stored record only if its version is still expected_version

        Returns:
            True if the write was applied, False if another writer got there first
        """
        response = (
            self._client.table(self.TABLE)
            .update(record.to_row())
            .eq("account_id", record.account_id)
            .eq("version", expected_version)
            .execute()
        )
        applied = bool(response.data)
        if not applied:
            logger.warning(
                f"ML credentials for account {record.account_id} moved past version {expected_version}"
            )
        return applied
