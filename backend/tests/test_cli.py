from datetime import timedelta

from homebase.models import Invoice, InvoiceShare
from homebase.services import invoice_service
from homebase.time_utils import utcnow


class TestDocumentCommands:
    def test_recalc_totals_repairs_stored_cents(self, app, db_session, owner_a, sample_items):
        invoice = invoice_service.create_invoice(owner_a, year=2025, line_items=sample_items)
        invoice.total_cents = 1
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["documents", "recalc-totals", "--owner-id", str(owner_a)])

        assert result.exit_code == 0
        assert "1 invoice(s)" in result.output
        assert db_session.get(Invoice, invoice.id).total_cents == 125000

    def test_clean_expired_shares(self, app, db_session, owner_a):
        invoice = invoice_service.create_invoice(owner_a, year=2025)
        db_session.add(InvoiceShare(
            owner_id=owner_a,
            invoice_id=invoice.id,
            share_token="old",
            valid_until=utcnow() - timedelta(days=1),
        ))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["documents", "clean-expired-shares"])

        assert result.exit_code == 0
        assert "Deleted 1 expired share(s)" in result.output
