from hotwallet_refill.models.refill_transaction import RefillStatus

FIREBLOCKS_STATUS_MAP = {
    "SUBMITTED": RefillStatus.PROCESSING,
    "PENDING_AML_SCREENING": RefillStatus.PROCESSING,
    "PENDING_ENRICHMENT": RefillStatus.PROCESSING,
    "PENDING_AUTHORIZATION": RefillStatus.PROCESSING,
    "QUEUED": RefillStatus.PROCESSING,
    "PENDING_SIGNATURE": RefillStatus.PROCESSING,
    "PENDING_3RD_PARTY_MANUAL_APPROVAL": RefillStatus.PROCESSING,
    "PENDING_3RD_PARTY": RefillStatus.PROCESSING,
    "BROADCASTING": RefillStatus.PROCESSING,
    "CONFIRMING": RefillStatus.PROCESSING,
    "CANCELLING": RefillStatus.PROCESSING,
    "COMPLETED": RefillStatus.COMPLETED,
    "CANCELLED": RefillStatus.CANCELLED,
    "BLOCKED": RefillStatus.FAILED,
    "REJECTED": RefillStatus.FAILED,
    "FAILED": RefillStatus.FAILED,
}

LIMINAL_STATUS_MAP = {
    "1": RefillStatus.PROCESSING,
    "2": RefillStatus.PROCESSING,
    "4": RefillStatus.COMPLETED,
    "5": RefillStatus.FAILED,
}

STATUS_MAPS = {
    "fireblocks": FIREBLOCKS_STATUS_MAP,
    "liminal": LIMINAL_STATUS_MAP,
}


def map_provider_status(provider: str, provider_status) -> RefillStatus:
    """Translate a provider's status vocabulary to RefillStatus.

    Anything unrecognised is treated as still in flight.
    """
    status_map = STATUS_MAPS.get((provider or "").lower())
    if not status_map or provider_status is None:
        return RefillStatus.PROCESSING
    key = str(provider_status).upper()
    return status_map.get(key, RefillStatus.PROCESSING)
