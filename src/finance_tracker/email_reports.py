"""
Finance Tracker - Email Reports

Monthly, annual and custom-period reports rendered as HTML and sent over SMTP.
send_scheduled_email_report() is meant to run once a day from the CLI
(cron / systemd timer) and decides by itself whether a report is due.

License: MIT
"""

import calendar
import datetime
import html
import logging
import smtplib
from email.message import EmailMessage

from finance_tracker import APP_NAME, config
from finance_tracker.utils import MONTH_NAMES, add_months, format_currency, format_date_br, today

logger = logging.getLogger(__name__)

REPORT_TYPES = ('monthly', 'annual', 'custom')


class MailerError(Exception):
    pass


class Mailer:
    """Thin smtplib wrapper. SMTP settings come from the environment by default."""

    def __init__(self, settings=None):
        self.settings = settings or config.get_smtp_settings()

    def is_configured(self):
        s = self.settings
        return bool(s.get('host') and s.get('sender'))

    def send(self, to_email, subject, text, html_body=None):
        if not self.is_configured():
            raise MailerError("Email service not configured (SMTP_HOST / SMTP_SENDER).")
        s = self.settings

        message = EmailMessage()
        message['Subject'] = subject
        message['From'] = f"{APP_NAME} <{s['sender']}>"
        message['To'] = to_email
        message.set_content(text)
        if html_body:
            message.add_alternative(html_body, subtype='html')

        if s.get('use_ssl'):
            with smtplib.SMTP_SSL(s['host'], s['port']) as server:
                if s.get('username'):
                    server.login(s['username'], s['password'])
                server.send_message(message)
            return

        with smtplib.SMTP(s['host'], s['port']) as server:
            server.ehlo()
            if s.get('use_tls'):
                server.starttls()
                server.ehlo()
            if s.get('username'):
                server.login(s['username'], s['password'])
            server.send_message(message)


# =============================================================================
# HTML RENDERING
# =============================================================================

def _page(title, subtitle, body):
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; background-color: #f3f4f6; margin: 0; padding: 0;">
  <div style="max-width: 640px; margin: 0 auto; background-color: white;">
    <div style="background-color: #667eea; padding: 24px; text-align: center;">
      <h1 style="margin: 0; color: white; font-size: 22px;">{html.escape(title)}</h1>
      <p style="margin: 8px 0 0 0; color: #e0e7ff;">{html.escape(subtitle)}</p>
    </div>
    <div style="padding: 24px;">{body}</div>
    <div style="background-color: #f9fafb; padding: 16px; text-align: center; color: #6b7280; font-size: 12px;">
      {html.escape(APP_NAME)}<br>
      Email enviado automaticamente em {datetime.datetime.now().strftime('%d/%m/%Y %H:%M')}
    </div>
  </div>
</body>
</html>"""


def _summary_block(summary):
    color = '#10b981' if summary['balance'] >= 0 else '#ef4444'
    return f"""
      <h2 style="font-size: 18px; color: #1f2937;">Resumo do Período</h2>
      <p>Entradas: <strong style="color: #10b981;">{format_currency(summary['total_credits'])}</strong></p>
      <p>Saídas: <strong style="color: #ef4444;">{format_currency(summary['total_debits'])}</strong></p>
      <p>Saldo: <strong style="color: {color};">{format_currency(summary['balance'])}</strong></p>
      <p style="color: #6b7280;">Total de {summary['transaction_count']} transações no período.</p>"""


def render_period_report_html(report, title):
    rows = ''.join(
        f"<tr><td style=\"padding: 6px;\">{html.escape(c['category'])}</td>"
        f"<td style=\"padding: 6px; text-align: right;\">{format_currency(c['total'])}</td>"
        f"<td style=\"padding: 6px; text-align: center;\">{c['count']}</td></tr>"
        for c in report['by_category'][:5]
    )
    period = report['period']
    body = _summary_block(report['summary']) + f"""
      <h2 style="font-size: 18px; color: #1f2937;">Top 5 Categorias</h2>
      <table style="width: 100%; border-collapse: collapse;">
        <thead><tr><th style="text-align: left;">Categoria</th><th style="text-align: right;">Total</th>
        <th>Transações</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>"""
    subtitle = f"{format_date_br(period['start_date'])} a {format_date_br(period['end_date'])}"
    return _page(title, subtitle, body)


def render_annual_report_html(report):
    rows = ''.join(
        f"<tr><td style=\"padding: 6px;\">{m['month_name']}</td>"
        f"<td style=\"padding: 6px; text-align: right;\">{format_currency(m['total_credits'])}</td>"
        f"<td style=\"padding: 6px; text-align: right;\">{format_currency(m['total_debits'])}</td>"
        f"<td style=\"padding: 6px; text-align: right;\">{format_currency(m['balance'])}</td></tr>"
        for m in report['by_month']
    )
    body = _summary_block(report['summary']) + f"""
      <h2 style="font-size: 18px; color: #1f2937;">Resumo Mensal</h2>
      <table style="width: 100%; border-collapse: collapse;">
        <thead><tr><th style="text-align: left;">Mês</th><th style="text-align: right;">Entradas</th>
        <th style="text-align: right;">Saídas</th><th style="text-align: right;">Saldo</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>"""
    return _page(f"Relatório Anual {report['year']}", "Resumo completo do ano", body)


def render_report_text(summary, subject):
    return (
        f"{subject}\n\n"
        f"Entradas: {format_currency(summary['total_credits'])}\n"
        f"Saídas: {format_currency(summary['total_debits'])}\n"
        f"Saldo: {format_currency(summary['balance'])}\n"
        f"Transações: {summary['transaction_count']}\n"
    )


class EmailReportMixin:

    def _get_mailer(self):
        if self.mailer is None:
            self.mailer = Mailer()
        return self.mailer

    def build_email_report(self, report_type, options=None):
        """
        Generate the report and its subject/body without sending anything.

        Returns:
            tuple: (payload dict or None, message str) where payload has
                   subject, text and html
        """
        if report_type not in REPORT_TYPES:
            return None, "Invalid report type."
        options = options or {}
        if report_type == 'monthly':
            previous = add_months(today().replace(day=1), -1)
            year = options.get('year') or previous.year
            month = options.get('month') or previous.month
            report, message = self.generate_monthly_report(year, month)
            if report is None:
                return None, message
            subject = f"Relatório Financeiro - {MONTH_NAMES[report['month'] - 1]}/{report['year']}"
            body = render_period_report_html(report, subject)
        elif report_type == 'annual':
            year = options.get('year') or today().year
            report, message = self.generate_annual_report(year)
            if report is None:
                return None, message
            subject = f"Relatório Anual - {report['year']}"
            body = render_annual_report_html(report)
        else:
            start_date, end_date = options.get('start_date'), options.get('end_date')
            if not start_date or not end_date:
                return None, "Start and end dates are required for a custom report."
            report, message = self.generate_report_by_period(start_date, end_date)
            if report is None:
                return None, message
            subject = f"Relatório Personalizado - {format_date_br(start_date)} a {format_date_br(end_date)}"
            body = render_period_report_html(report, subject)

        return {
            'subject': subject,
            'text': render_report_text(report['summary'], subject),
            'html': body,
        }, "Report built."

    def send_email_report(self, report_type, options=None):
        """
        Send a monthly, annual or custom report to the configured email.

        Returns:
            tuple: (success bool, message str, payload dict or None)
        """
        email = self.get_setting('email')
        if not email:
            return False, "No email address configured in settings.", None

        payload, message = self.build_email_report(report_type, options)
        if payload is None:
            return False, message, None

        try:
            self._get_mailer().send(email, payload['subject'], payload['text'], payload['html'])
        except (MailerError, smtplib.SMTPException, OSError) as e:
            self.log_error('EMAIL', 'send_email_report', e)
            return False, f"Error sending email: {e}", None

        sent_at = self._now()
        self.set_setting('last_report_sent_date', sent_at)
        self.log_info('EMAIL', 'send_email_report', f"{report_type} report sent to {email}")
        return True, "Report sent by email successfully.", {
            'email': email,
            'report_type': report_type,
            'subject': payload['subject'],
            'sent_at': sent_at,
        }

    def send_scheduled_email_report(self, today_date=None):
        """
        Send the periodic report if one is due today.

        daily   -> yesterday
        weekly  -> the last 7 days, on the configured weekday (1=Monday)
        monthly -> the previous month, on the configured day of month

        Returns:
            tuple: (sent bool, message str)
        """
        today_date = today_date or today()
        settings = self.get_settings()
        if not settings.get('email_reports_enabled'):
            return False, "Email reports are disabled."
        if str(settings.get('last_report_sent_date') or '')[:10] == today_date.isoformat():
            return False, "A report was already sent today."

        frequency = settings.get('email_reports_frequency') or 'monthly'
        day = int(settings.get('email_reports_day') or 1)

        if frequency == 'daily':
            yesterday = (today_date - datetime.timedelta(days=1)).isoformat()
            ok, message, _ = self.send_email_report('custom', {'start_date': yesterday, 'end_date': yesterday})
        elif frequency == 'weekly':
            if today_date.isoweekday() != day:
                return False, "No report due today."
            start = (today_date - datetime.timedelta(days=7)).isoformat()
            ok, message, _ = self.send_email_report('custom', {'start_date': start, 'end_date': today_date.isoformat()})
        else:
            if today_date.day != min(day, calendar.monthrange(today_date.year, today_date.month)[1]):
                return False, "No report due today."
            previous = add_months(today_date.replace(day=1), -1)
            ok, message, _ = self.send_email_report('monthly', {'year': previous.year, 'month': previous.month})

        if not ok:
            logger.error("[EMAIL] Scheduled report failed: %s", message)
        return ok, message
