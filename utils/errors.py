"""Error taxonomy for a reconciliation cycle.

Every failure inside a cycle surfaces as one of these and is caught at the
reconcile boundary; none of them reach the scheduler.
"""

from __future__ import annotations


class UntisNotifyError(Exception):
    pass


class ProviderError(UntisNotifyError):
    """Fetch, authentication or network failure against WebUntis."""


class PayloadError(ProviderError):
    """Provider returned a record that cannot be normalized."""


class StoreError(UntisNotifyError):
    """Snapshot read or write failed."""


class NotifyError(UntisNotifyError):
    """Downstream notification dispatch failed."""
