import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import PaymentTransaction, ReviewRequest, Seller, TaxInvoice
from config import ENV, get_env
from services.errors import NotFound
from services.pricing import split_gst
from utils.clock import utcnow
from utils.refs import make_invoice_number


class InvoiceService:
    def __init__(self, session: AsyncSession, env: ENV | None = None):
        self.session = session
        self.env = env or get_env()

    async def issue_invoice(
        self,
        request: ReviewRequest,
        seller: Seller,
        transaction: PaymentTransaction | None,
    ) -> TaxInvoice:
        """Add a tax invoice for a paid request to the current transaction. Does not commit."""
        cgst, sgst, igst = split_gst(request.gst_amount_minor, seller.state_code, self.env.PLATFORM_STATE_CODE)
        invoice = TaxInvoice(
            invoice_number=make_invoice_number(utcnow().date()),
            seller_id=seller.id,
            review_request_id=request.id,
            payment_transaction_id=transaction.id if transaction else None,
            seller_gst=seller.gst_number,
            seller_legal_name=seller.company_name or seller.name,
            seller_address=seller.billing_address,
            platform_gst=self.env.PLATFORM_GST_NUMBER or None,
            platform_legal_name=self.env.PLATFORM_LEGAL_NAME,
            platform_address=self.env.PLATFORM_ADDRESS or None,
            base_amount_minor=request.total_amount_minor,
            cgst_minor=cgst,
            sgst_minor=sgst,
            igst_minor=igst,
            total_gst_minor=request.gst_amount_minor,
            grand_total_minor=request.grand_total_minor,
            sac_code=self.env.GST_SAC_CODE,
            invoice_date=utcnow().date(),
        )
        self.session.add(invoice)
        await self.session.flush()
        logging.info(f"Issued invoice {invoice.invoice_number} for request {request.id}")
        return invoice

    async def list_invoices(self, seller_id: uuid.UUID) -> list[TaxInvoice]:
        query = select(TaxInvoice).where(TaxInvoice.seller_id == seller_id).order_by(TaxInvoice.created_at.desc())
        return list((await self.session.execute(query)).scalars().all())

    async def get_invoice(self, seller_id: uuid.UUID, invoice_number: str) -> TaxInvoice:
        query = select(TaxInvoice).where(
            TaxInvoice.seller_id == seller_id, TaxInvoice.invoice_number == invoice_number
        )
        invoice = (await self.session.execute(query)).scalar_one_or_none()
        if not invoice:
            raise NotFound("Invoice not found")
        return invoice
