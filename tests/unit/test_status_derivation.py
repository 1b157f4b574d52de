import pytest
from datetime import datetime, timezone

from orderhub.domain.status import OrderSignals, cod_amount, delivery_confirmed, derive_status, payment_method
from orderhub.domain.vocabulary import DEFAULT_VOCABULARY, GENIKI_VOCABULARY, vocabulary_for
from orderhub.models.enums import OrderStatus


@pytest.mark.parametrize(
    "signals, expected",
    [
        (OrderSignals(voucher_number=None), OrderStatus.UNFULFILLED),
        (OrderSignals(voucher_number="AWB123"), OrderStatus.AWB_CREATED),
        (OrderSignals(voucher_number="AWB123", delivery_status="IN TRANSIT"), OrderStatus.IN_TRANSIT),
        (OrderSignals(voucher_number="AWB123", delivery_status="DELIVERED"), OrderStatus.DELIVERED),
        (OrderSignals(voucher_number="AWB123", delivery_status="RETURNED TO SENDER"), OrderStatus.RETURNED),
        (
            OrderSignals(
                voucher_number="AWB123",
                delivery_status="DELIVERED",
                invoice_id="INV1",
                fulfillment_status="fulfilled",
                financial_status="paid",
            ),
            OrderStatus.COMPLETED,
        ),
    ],
)
def test_status_examples(signals, expected):
    assert derive_status(signals) is expected


@pytest.mark.parametrize(
    "signals",
    [
        OrderSignals(cancelled=True),
        OrderSignals(cancelled=True, voucher_number="AWB123", delivery_status="DELIVERED"),
        OrderSignals(
            cancelled=True,
            voucher_number="AWB123",
            delivery_status="DELIVERED",
            invoice_id="INV1",
            fulfillment_status="fulfilled",
            financial_status="paid",
        ),
    ],
)
def test_cancelled_overrides_everything(signals):
    assert derive_status(signals) is OrderStatus.CANCELLED


def test_derivation_is_deterministic():
    signals = OrderSignals(voucher_number="AWB1", delivery_status="Παραδόθηκε", invoice_id="X")
    assert derive_status(signals) is derive_status(signals)


def test_blank_voucher_counts_as_missing():
    assert derive_status(OrderSignals(voucher_number="  ", delivery_status="DELIVERED")) is OrderStatus.UNFULFILLED


def test_completed_needs_every_signal():
    base = dict(voucher_number="A", delivery_status="DELIVERED", invoice_id="I", fulfillment_status="fulfilled")
    assert derive_status(OrderSignals(**base, financial_status="pending")) is OrderStatus.DELIVERED
    assert derive_status(OrderSignals(**base, financial_status="PAID")) is OrderStatus.COMPLETED


def test_returned_is_never_delivery_confirmed():
    order = OrderSignals(
        voucher_number="A",
        delivery_status="RETURNED",
        delivered_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
        invoice_id="I",
        fulfillment_status="fulfilled",
        financial_status="paid",
    )
    assert not delivery_confirmed(order, DEFAULT_VOCABULARY)
    assert derive_status(order) is OrderStatus.RETURNED


def test_delivered_at_confirms_delivery_without_status_text():
    order = OrderSignals(voucher_number="A", delivered_at=datetime(2026, 1, 2, tzinfo=timezone.utc))
    assert delivery_confirmed(order, DEFAULT_VOCABULARY)


def test_greek_status_texts():
    assert derive_status(OrderSignals(voucher_number="A", delivery_status="ΠΑΡΑΔΟΘΗΚΕ"), GENIKI_VOCABULARY) is OrderStatus.DELIVERED
    assert derive_status(OrderSignals(voucher_number="A", delivery_status="Επιστροφή στον αποστολέα")) is OrderStatus.RETURNED


def test_negative_phrases_are_not_delivered():
    assert derive_status(OrderSignals(voucher_number="A", delivery_status="NOT DELIVERED")) is OrderStatus.IN_TRANSIT
    assert derive_status(OrderSignals(voucher_number="A", delivery_status="UNDELIVERED")) is OrderStatus.IN_TRANSIT


def test_workspace_vocabulary_override():
    vocab = vocabulary_for("meest", {"delivered": ["livrat"]})
    assert derive_status(OrderSignals(voucher_number="A", delivery_status="Colet livrat"), vocab) is OrderStatus.DELIVERED
    # extends, does not replace
    assert vocab.is_delivered("DELIVERED")

    replaced = vocabulary_for("meest", {"delivered": ["livrat"], "replace": True})
    assert not replaced.is_delivered("DELIVERED")


@pytest.mark.parametrize(
    "financial, gateway, expected",
    [
        ("pending", None, "cod"),
        ("paid", "Cash on Delivery (COD)", "cod"),
        ("paid", "Ramburs", "cod"),
        ("paid", "shopify_payments", "card"),
    ],
)
def test_payment_method(financial, gateway, expected):
    class _O:
        financial_status = financial
        payment_gateway = gateway
        total_price = "42.50"

    assert payment_method(_O()) == expected
    assert (cod_amount(_O()) > 0) is (expected == "cod")
