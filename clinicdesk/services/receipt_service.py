"""
Receipt Service
Payment receipts issued by clinical staff
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from clinicdesk.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, Receipt, User
from clinicdesk.models.appointment import STATUS_COMPLETED
from clinicdesk.models.user import ROLE_ADMIN, ROLE_CLINICAL_STAFF, ROLE_PATIENT
from clinicdesk.utils.audit import audit_after_commit
from clinicdesk.utils.parsing import parse_decimal, require_text

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ('cash', 'card', 'bank_transfer', 'insurance', 'mobile')
TOTAL_TOLERANCE = Decimal('0.01')


def _validate_items(items) -> List[Dict[str, Any]]:
    """Normalise receipt line items; each needs description, quantity, unit_price and amount"""
    if not isinstance(items, list) or not items:
        raise ValidationError('At least one item is required', field='items')

    cleaned = []
    for index, item in enumerate(items):
        field = f'items[{index}]'
        if not isinstance(item, dict) or not {'description', 'quantity', 'unit_price', 'amount'} <= set(item):
            raise ValidationError('Invalid item format', field=field)
        description = str(item['description'] or '').strip()
        quantity = parse_decimal(item['quantity'], f'{field}.quantity')
        unit_price = parse_decimal(item['unit_price'], f'{field}.unit_price')
        amount = parse_decimal(item['amount'], f'{field}.amount')
        if not description or quantity <= 0 or unit_price < 0:
            raise ValidationError('Invalid item values', field=field)
        cleaned.append({
            'description': description,
            'quantity': str(quantity),
            'unit_price': str(unit_price),
            'amount': str(amount),
        })
    return cleaned


def create_receipt(
    ctx,
    uow,
    patient_id: int,
    amount,
    payment_method: str,
    items: List[Dict[str, Any]],
    payment_date: Optional[datetime] = None,
    appointment_id: Optional[int] = None,
) -> Receipt:
    """
    Issue a receipt.

    The stated amount must equal the sum of the item amounts (within one
    cent). A referenced appointment must belong to the patient, be
    completed and not have a receipt yet.
    """
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)

    amount = parse_decimal(amount, 'amount')
    if amount < 0:
        raise ValidationError('amount cannot be negative', field='amount')
    payment_method = require_text(payment_method, 'payment_method')
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f'payment_method must be one of: {", ".join(PAYMENT_METHODS)}', field='payment_method')

    cleaned = _validate_items(items)
    total = sum((Decimal(item['amount']) for item in cleaned), Decimal('0'))
    if abs(total - amount) > TOTAL_TOLERANCE:
        raise ValidationError(
            f'Total amount {amount} does not match item totals {total}',
            field='amount',
        )

    with uow:
        patient = uow.session.get(User, patient_id)
        if not patient or patient.role != ROLE_PATIENT:
            raise NotFoundError('Patient', patient_id)

        if appointment_id is not None:
            appointment = uow.session.get(Appointment, appointment_id)
            if not appointment or appointment.deleted_at is not None or appointment.patient_id != patient_id:
                raise NotFoundError('Appointment', appointment_id)
            if appointment.status != STATUS_COMPLETED:
                raise InvalidStateError(
                    'Receipts can only be issued for completed appointments',
                    current=appointment.status,
                    expected=STATUS_COMPLETED,
                )
            existing = uow.session.query(Receipt).filter_by(appointment_id=appointment_id).first()
            if existing:
                raise InvalidStateError(
                    f'Appointment {appointment.reference_number} already has receipt {existing.receipt_number}',
                    current='receipted',
                )

        receipt = Receipt(
            receipt_number=Receipt.generate_receipt_number(),
            patient_id=patient_id,
            appointment_id=appointment_id,
            amount=amount,
            payment_method=payment_method,
            payment_date=payment_date or datetime.utcnow(),
            description=', '.join(item['description'] for item in cleaned),
            items=cleaned,
            created_by=ctx.user_id,
        )
        uow.session.add(receipt)
        uow.session.flush()
        audit_after_commit(uow, 'receipt', 'create', ctx, receipt.id, {
            'receipt_number': receipt.receipt_number,
            'amount': str(amount),
        })

    logger.info("Receipt %s issued for patient %s (%s)", receipt.receipt_number, patient_id, amount)
    return receipt


def get_receipt(ctx, receipt_id: int) -> Receipt:
    receipt = db.session.get(Receipt, receipt_id)
    if not receipt or (ctx.is_patient and receipt.patient_id != ctx.user_id):
        raise NotFoundError('Receipt', receipt_id)
    if ctx.is_doctor:
        raise PermissionDeniedError('Receipts are handled by clinical staff')
    return receipt


def list_receipts(ctx, patient_id: Optional[int] = None, page: int = 1, per_page: int = 15):
    if ctx.is_doctor:
        raise PermissionDeniedError('Receipts are handled by clinical staff')
    query = Receipt.query
    if ctx.is_patient:
        query = query.filter(Receipt.patient_id == ctx.user_id)
    elif patient_id is not None:
        query = query.filter(Receipt.patient_id == patient_id)
    query = query.order_by(Receipt.payment_date.desc(), Receipt.id.desc())
    return query.paginate(page=page, per_page=per_page, error_out=False)
