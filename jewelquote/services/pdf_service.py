"""Quote document rendering (PDF)."""

from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Dict, Any
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER, TA_RIGHT

from sqlalchemy.orm import Session

from jewelquote.models import Quote
from jewelquote.services.quote_service import get_quote
from jewelquote.services.settings_service import DEFAULT_SETTINGS, get_all_settings
from jewelquote.utils.formatters import date_long, money

PRIMARY = colors.HexColor('#1A365D')
SECONDARY = colors.HexColor('#4A5568')
LIGHT_GRAY = colors.HexColor('#E2E8F0')

COMPANY_KEYS = (
    'company_name', 'company_address', 'company_phone', 'company_email',
    'company_vat', 'currency_symbol', 'quote_terms'
)


def get_company_settings(session: Session) -> Dict[str, str]:
    """Company block for the document; empty stored values fall back to the defaults."""
    stored = get_all_settings(session)
    company = {}
    for key in COMPANY_KEYS:
        company[key] = stored.get(key) or DEFAULT_SETTINGS[key]['value']
    return company


def _text(value: Any) -> str:
    return escape(str(value)) if value is not None else ''


def _render_quote_pdf(quote: Quote, company: Dict[str, str]) -> BytesIO:
    """
    Lay out a quote as an A4 document.

    Sections: company header, quote details, customer (bill to), line
    table, totals (markup and discount only when non-zero), notes, terms.
    """
    symbol = company.get('currency_symbol') or 'R'

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch,
        title=f'Quote {quote.quote_number}',
        author=company.get('company_name', '')
    )

    elements = []
    styles = getSampleStyleSheet()

    company_style = ParagraphStyle(
        'CompanyName',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=PRIMARY,
        spaceAfter=6,
        fontName='Helvetica-Bold'
    )
    detail_style = ParagraphStyle(
        'CompanyDetail',
        parent=styles['Normal'],
        fontSize=10,
        textColor=SECONDARY,
        spaceAfter=2
    )
    title_style = ParagraphStyle(
        'QuoteTitle',
        parent=styles['Heading2'],
        fontSize=18,
        textColor=PRIMARY,
        alignment=TA_RIGHT,
        fontName='Helvetica-Bold'
    )
    section_style = ParagraphStyle(
        'Section',
        parent=styles['Normal'],
        fontSize=11,
        textColor=PRIMARY,
        fontName='Helvetica-Bold',
        spaceBefore=6,
        spaceAfter=4
    )
    cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontSize=9)

    # 1. Company header
    elements.append(Paragraph(_text(company.get('company_name')), company_style))
    if company.get('company_address'):
        elements.append(Paragraph(_text(company['company_address']), detail_style))
    if company.get('company_phone'):
        elements.append(Paragraph(f"Tel: {_text(company['company_phone'])}", detail_style))
    if company.get('company_email'):
        elements.append(Paragraph(f"Email: {_text(company['company_email'])}", detail_style))
    if company.get('company_vat'):
        elements.append(Paragraph(f"VAT: {_text(company['company_vat'])}", detail_style))

    elements.append(Spacer(1, 0.2*inch))

    # 2. Quote details
    elements.append(Paragraph('QUOTATION', title_style))
    details = [['Quote #:', quote.quote_number], ['Date:', date_long(quote.created_at or datetime.now())]]
    if quote.valid_until:
        details.append(['Valid Until:', date_long(quote.valid_until)])
    details.append(['Status:', quote.display_status])

    details_table = Table(details, colWidths=[1.2*inch, 2*inch], hAlign='RIGHT')
    details_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), SECONDARY),
    ]))
    elements.append(details_table)
    elements.append(Spacer(1, 0.2*inch))

    # 3. Bill to
    customer = quote.customer
    elements.append(Paragraph('BILL TO:', section_style))
    if customer is not None:
        elements.append(Paragraph(f"<b>{_text(customer.name)}</b>", styles['Normal']))
        for value in (customer.company, customer.email, customer.phone, customer.address):
            if value:
                elements.append(Paragraph(_text(value), detail_style))
    elements.append(Spacer(1, 0.3*inch))

    # 4. Lines
    table_data = [['Description', 'Qty', 'Unit Price', 'Total']]
    for item in quote.items:
        description = _text(item.description)
        if item.metal_type:
            karat = f" {item.metal_karat}ct" if item.metal_karat else ''
            description += f'<br/><font size="8" color="#4A5568">{_text(item.metal_type)}{karat}</font>'
        table_data.append([
            Paragraph(description, cell_style),
            str(item.quantity),
            money(item.unit_price, symbol),
            money(item.line_total, symbol)
        ])

    items_table = Table(table_data, colWidths=[3.7*inch, 0.6*inch, 1.2*inch, 1.2*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), PRIMARY),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('ALIGN', (1, 0), (1, -1), 'CENTER'),
        ('ALIGN', (2, 0), (3, -1), 'RIGHT'),
        ('VALIGN', (0, 1), (-1, -1), 'TOP'),
        ('FONTSIZE', (0, 1), (-1, -1), 9),
        ('LINEBELOW', (0, -1), (-1, -1), 0.5, LIGHT_GRAY),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F7FAFC')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 5. Totals
    totals = [['Subtotal:', money(quote.subtotal, symbol)]]
    if Decimal(quote.markup_pct or 0) > 0:
        totals.append([f"Markup ({Decimal(quote.markup_pct).normalize():f}%):", money(quote.markup_amount, symbol)])
    if Decimal(quote.discount or 0) > 0:
        totals.append(['Discount:', f"-{money(quote.discount, symbol)}"])
    totals.append(['TOTAL:', money(quote.total, symbol)])

    totals_table = Table(totals, colWidths=[1.6*inch, 1.5*inch], hAlign='RIGHT')
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -2), 10),
        ('TEXTCOLOR', (0, 0), (0, -2), SECONDARY),
        ('LINEABOVE', (0, -1), (-1, -1), 1, PRIMARY),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 13),
        ('TEXTCOLOR', (0, -1), (-1, -1), PRIMARY),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.3*inch))

    # 6. Notes and terms
    if quote.notes:
        elements.append(Paragraph('Notes:', section_style))
        elements.append(Paragraph(_text(quote.notes), detail_style))
    if company.get('quote_terms'):
        elements.append(Paragraph('Terms &amp; Conditions:', section_style))
        elements.append(Paragraph(_text(company['quote_terms']), detail_style))

    footer_style = ParagraphStyle(
        'Footer', parent=styles['Normal'], fontSize=8, textColor=SECONDARY, alignment=TA_CENTER
    )
    elements.append(Spacer(1, 0.4*inch))
    elements.append(Paragraph(
        f"Generated on {date_long(date.today())} | {_text(company.get('company_name'))}", footer_style
    ))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_quote_pdf(session: Session, quote_id: int) -> BytesIO:
    """Render a persisted quote with the company's current settings."""
    quote = get_quote(session, quote_id)
    return _render_quote_pdf(quote, get_company_settings(session))
