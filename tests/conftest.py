"""Pytest fixtures: a coordinator wired with spy collaborators that share one call log."""

import pytest

from checkout.coordinator import assemble
from checkout.inventory import InventoryTracker
from checkout.invoice import InvoiceGenerator
from checkout.payment import FixedPaymentPolicy
from checkout.processor import OrderProcessor
from checkout.stock import StockService


class SpyStock(StockService):
    def __init__(self, calls, levels=None, policy=None):
        super().__init__(levels, policy)
        self.calls = calls

    def check(self, order):
        self.calls.append(("check", order.items))
        return super().check(order)

    def reduce(self, order):
        self.calls.append(("reduce", order.items))
        super().reduce(order)


class SpyInventory(InventoryTracker):
    def __init__(self, calls):
        super().__init__()
        self.calls = calls

    async def update(self, order):
        self.calls.append(("update", order.items))
        await super().update(order)


class SpyInvoices(InvoiceGenerator):
    def __init__(self, calls, unit_prices=None):
        super().__init__(unit_prices)
        self.calls = calls
        self.generated = []

    def generate(self, order):
        self.calls.append(("generate", order.items))
        invoice = super().generate(order)
        self.generated.append(invoice)
        return invoice


class SpyProcessor(OrderProcessor):
    def __init__(self, calls):
        super().__init__()
        self.calls = calls
        self.completed_with = []

    def process(self, order):
        self.calls.append(("process", order.items))
        super().process(order)

    def complete(self, order, invoice):
        self.calls.append(("complete", order.items))
        self.completed_with.append(invoice)
        super().complete(order, invoice)


class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish(self, event_type, data):
        self.published.append((event_type, data))


@pytest.fixture
def calls():
    return []


@pytest.fixture
def make_coordinator(calls):
    """Build a coordinator with spy collaborators and a fixed payment outcome."""

    def _make(
        levels=None, approve=True, inventory=None, processor=None, stock_policy=None, **kwargs
    ):
        return assemble(
            stock=SpyStock(calls, levels, stock_policy),
            inventory=inventory or SpyInventory(calls),
            invoices=SpyInvoices(calls, {"X": "10.00", "Y": "2.50"}),
            processor=processor or SpyProcessor(calls),
            payment_policy=FixedPaymentPolicy(approve),
            **kwargs,
        )

    return _make
