"""
Application Store: durable cancellation and extension applications.

Inserts re-check the "one active application per lead-merchant pair"
invariant inside the write transaction; the conditional unique constraints on
both tables back that check up at the database level.
"""
import logging
from datetime import datetime
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from cancellations.models import (
    ACTIVE_APPLICATION_STATUSES,
    ApplicationStatus,
    CancellationApplication,
    DeliveryRecord,
    ExtensionApplication,
)
from cancellations.services.errors import DuplicateApplication, NotFound

logger = logging.getLogger(__name__)

CANCELLATION = 'cancellation'
EXTENSION = 'extension'

_MODELS = {
    CANCELLATION: CancellationApplication,
    EXTENSION: ExtensionApplication,
}

_ID_PREFIXES = {
    CANCELLATION: 'CN',
    EXTENSION: 'DE',
}

ID_COLLISION_MAX_ATTEMPTS = 3


def generate_application_id(kind: str, now: Optional[datetime] = None) -> str:
    """
    Build an application id such as ``CN240120103000123456``.

    Prefix plus local timestamp down to microseconds.
    """
    now = timezone.localtime(now or timezone.now())
    return f"{_ID_PREFIXES[kind]}{now:%y%m%d%H%M%S%f}"


def _model_for(kind: str):
    try:
        return _MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown application kind: {kind}")


def _has_active(model, lead_id: str, merchant_id: str) -> bool:
    return model.objects.filter(
        lead_id=lead_id,
        merchant_id=merchant_id,
        status__in=ACTIVE_APPLICATION_STATUSES,
    ).exists()


def _duplicate(kind: str, lead_id: str, merchant_id: str) -> DuplicateApplication:
    return DuplicateApplication(
        f"An active {kind} application already exists for lead {lead_id} "
        f"and merchant {merchant_id}"
    )


def _insert(kind: str, lead_id: str, merchant_id: str, fields: dict):
    model = _model_for(kind)
    for attempt in range(1, ID_COLLISION_MAX_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                # Serializes concurrent submissions for the same pair on backends with row locks
                delivery = DeliveryRecord.objects.select_for_update().filter(
                    lead_id=lead_id, merchant_id=merchant_id
                ).first()
                if delivery is None:
                    raise NotFound(f"Lead {lead_id} was not delivered to merchant {merchant_id}")

                if _has_active(model, lead_id, merchant_id):
                    raise _duplicate(kind, lead_id, merchant_id)

                application = model.objects.create(
                    id=generate_application_id(kind),
                    lead_id=lead_id,
                    merchant_id=merchant_id,
                    status=ApplicationStatus.PENDING,
                    **fields
                )
        except IntegrityError as e:
            # The active-pair constraint and the generated primary key can both trip here
            if _has_active(model, lead_id, merchant_id):
                logger.warning(
                    f"Rejected concurrent {kind} application for lead {lead_id}, "
                    f"merchant {merchant_id}: {e}"
                )
                raise _duplicate(kind, lead_id, merchant_id) from e
            if attempt == ID_COLLISION_MAX_ATTEMPTS:
                logger.error(
                    f"Could not store {kind} application for lead {lead_id}, "
                    f"merchant {merchant_id} after {attempt} attempts: {e}"
                )
                raise
            logger.warning(
                f"Application id collision storing {kind} for lead {lead_id}, "
                f"merchant {merchant_id} (attempt {attempt}/{ID_COLLISION_MAX_ATTEMPTS}): {e}"
            )
        else:
            break

    logger.info(f"Stored {kind} application {application.id} for lead {lead_id}, merchant {merchant_id}")
    return application


def insert_cancellation(lead_id: str, merchant_id: str, **fields) -> CancellationApplication:
    """
    Persist a new pending cancellation application.

    Raises:
        DuplicateApplication: A pending or approved cancellation exists for the pair
        NotFound: No delivery record for the pair
    """
    return _insert(CANCELLATION, lead_id, merchant_id, fields)


def insert_extension(lead_id: str, merchant_id: str, **fields) -> ExtensionApplication:
    """
    Persist a new pending extension application.

    Raises:
        DuplicateApplication: A pending or approved extension exists for the pair
        NotFound: No delivery record for the pair
    """
    return _insert(EXTENSION, lead_id, merchant_id, fields)


def find_by_id(kind: str, application_id: str):
    model = _model_for(kind)
    try:
        return model.objects.select_related('lead').get(pk=application_id)
    except model.DoesNotExist:
        raise NotFound(f"{kind.capitalize()} application {application_id} not found")


def find_cancellation(application_id: str) -> CancellationApplication:
    return find_by_id(CANCELLATION, application_id)


def find_extension(application_id: str) -> ExtensionApplication:
    return find_by_id(EXTENSION, application_id)


def list_applications(kind: str, status: Optional[str] = None) -> List:
    """Applications of one kind, newest first, optionally filtered by status."""
    queryset = _model_for(kind).objects.select_related('lead')
    if status:
        queryset = queryset.filter(status=ApplicationStatus(status))
    return list(queryset)


def list_pending(kind: str) -> List:
    """Applications waiting for an administrator decision, oldest first."""
    return list(
        _model_for(kind).objects.select_related('lead')
        .filter(status=ApplicationStatus.PENDING)
        .order_by('created_at', 'id')
    )
