import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List

from loanledger.core.config import settings

logger = logging.getLogger(__name__)


def _send_email(to_email: str, subject: str, plain_text: str, html_text: str) -> None:
    """Low-level helper to send one email via SMTP."""
    if not all([settings.SMTP_HOST, settings.SMTP_USER, settings.SMTP_PASSWORD, settings.FROM_EMAIL]):
        logger.warning("SMTP not fully configured; skipping email to %s.", to_email)
        return

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.FROM_EMAIL
    msg["To"] = to_email
    if settings.REPLY_TO_EMAIL:
        msg["Reply-To"] = settings.REPLY_TO_EMAIL

    msg.attach(MIMEText(plain_text, "plain"))
    msg.attach(MIMEText(html_text, "html"))

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT or 587) as server:
        server.ehlo()
        server.starttls()
        server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.sendmail(settings.FROM_EMAIL, to_email, msg.as_string())


def build_overdue_report(examined: int, defaulted_loans: List[dict]) -> tuple:
    """Render the overdue sweep report as (plain_text, html_text).

    Each defaulted_loans dict: {"loan_id": str, "days_overdue": int, "remaining_balance": Decimal}
    """
    # ---- plain text --------------------------------------------------------
    lines = ["Loan Ledger - Overdue Sweep Report", "", f"Active loans past due examined: {examined}", ""]
    if defaulted_loans:
        lines.append(f"LOANS DEFAULTED ({len(defaulted_loans)}):")
        for item in defaulted_loans:
            lines.append(
                f"  - {item['loan_id']}: {item['days_overdue']} day(s) overdue, "
                f"balance {item['remaining_balance']:,.2f}"
            )
        lines.append("")
    lines.append("This is an automated notification from the loan ledger.")
    plain_text = "\n".join(lines)

    # ---- HTML --------------------------------------------------------------
    loan_rows = ""
    for item in defaulted_loans:
        loan_rows += (
            f'<tr><td style="padding:6px 12px;border-bottom:1px solid #e2e8f0;">{item["loan_id"]}</td>'
            f'<td style="padding:6px 12px;border-bottom:1px solid #e2e8f0;text-align:right;">{item["days_overdue"]}</td>'
            f'<td style="padding:6px 12px;border-bottom:1px solid #e2e8f0;text-align:right;">{item["remaining_balance"]:,.2f}</td></tr>'
        )

    loan_section = ""
    if defaulted_loans:
        loan_section = f"""
        <h3 style="color:#b91c1c;margin-top:24px;">Loans Defaulted ({len(defaulted_loans)})</h3>
        <table style="width:100%;border-collapse:collapse;font-size:14px;">
          <tr style="background:#fef2f2;">
            <th style="padding:8px 12px;text-align:left;">Loan</th>
            <th style="padding:8px 12px;text-align:right;">Days Overdue</th>
            <th style="padding:8px 12px;text-align:right;">Remaining Balance</th>
          </tr>
          {loan_rows}
        </table>"""

    html_text = f"""
    <html>
    <body style="font-family:Arial,sans-serif;color:#1e3a5f;background:#f0f4ff;padding:24px;">
      <div style="max-width:560px;margin:0 auto;background:#ffffff;border-radius:12px;
                  border:2px solid #bfdbfe;padding:32px;">
        <h2 style="color:#1d4ed8;margin-bottom:4px;">Overdue Sweep Report</h2>
        <p style="font-size:13px;color:#64748b;margin-top:0;">Active loans past due examined: {examined}</p>
        {loan_section}
        <p style="font-size:12px;color:#94a3b8;margin-top:24px;">
          This is an automated notification. No action is required unless you spot a discrepancy.
        </p>
      </div>
    </body>
    </html>
    """
    return plain_text, html_text


def send_overdue_report(to_emails: List[str], examined: int, defaulted_loans: List[dict]) -> None:
    """Email the overdue sweep summary to every administrator address.

    Only call this when at least one loan was defaulted. A failed send is
    logged per recipient and does not stop the others.
    """
    if not to_emails:
        return

    subject = "Loan Ledger - Overdue Sweep Report"
    plain_text, html_text = build_overdue_report(examined, defaulted_loans)

    for email_addr in to_emails:
        try:
            _send_email(email_addr, subject, plain_text, html_text)
            logger.info("Overdue report email sent to %s", email_addr)
        except Exception:
            logger.exception("Failed to send overdue report to %s", email_addr)
