import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentRecord, PaymentStatus, ProcessingState
from domain.payment.references import ReferenceType, classify_reference, validate_reference
from shared.codes.payment_codes import map_downstream_status


@pytest.mark.parametrize(
    "gateway_status,expected",
    [
        ("approved", "confirmed"),
        ("pending", "pending"),
        ("cancelled", "cancelled"),
        ("rejected", "cancelled"),
        ("refunded", None),
        ("in_process", None),
        (None, None),
        ("", None),
    ],
)
def test_downstream_status_mapping(gateway_status, expected):
    assert map_downstream_status(gateway_status) == expected


@pytest.mark.parametrize(
    "reference,expected",
    [
        ("COURSE_1", ReferenceType.COURSE),
        ("PRODUCT_9", ReferenceType.PRODUCT),
        ("SERVICE_abc", ReferenceType.SERVICE),
        ("SUBSCRIPTION_7", ReferenceType.SUBSCRIPTION),
        ("ORDER_1", ReferenceType.DEFAULT),
        ("product_9", ReferenceType.DEFAULT),
        (None, ReferenceType.DEFAULT),
    ],
)
def test_classify_reference(reference, expected):
    assert classify_reference(reference) is expected


@pytest.mark.parametrize("reference", ["", "../etc", "a/b", ".hidden", "a..b"])
def test_validate_reference_rejects_unsafe_names(reference):
    with pytest.raises(DomainValidationException):
        validate_reference(reference)


def test_status_parse_unknown_is_none():
    assert PaymentStatus.parse("approved") is PaymentStatus.APPROVED
    assert PaymentStatus.parse("weird") is None


def test_needs_processing():
    record = PaymentRecord(external_reference="PRODUCT_1", status="approved")
    assert record.needs_processing(3) is True

    done = PaymentRecord(
        external_reference="PRODUCT_1",
        status="approved",
        processing_state=ProcessingState(
            processing_completed_at="2024-05-01T10:00:00Z",
            business_activation_succeeded=True,
            downstream_sync_succeeded=True,
            processing_attempts=1,
        ),
    )
    assert done.needs_processing(3) is False

    partial = done.model_copy(
        update={"processing_state": done.processing_state.model_copy(update={"downstream_sync_succeeded": False})}
    )
    assert partial.needs_processing(3) is True
    exhausted = partial.model_copy(
        update={"processing_state": partial.processing_state.model_copy(update={"processing_attempts": 3})}
    )
    assert exhausted.needs_processing(3) is False

    pending = PaymentRecord(external_reference="PRODUCT_1", status="pending")
    assert pending.needs_processing(3) is False


def test_storage_shape_is_camel_case():
    record = PaymentRecord(external_reference="PRODUCT_1", payment_id="1", payer_email="a@b.c")
    data = record.to_storage()
    assert data["externalReference"] == "PRODUCT_1"
    assert data["payerEmail"] == "a@b.c"
    assert data["processingState"]["notificationSent"] is False
    assert PaymentRecord.from_storage(data).external_reference == "PRODUCT_1"
