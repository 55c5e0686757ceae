"""Email Notifier Adapter

SendGrid で新しい教区秘書にパスワード設定リンクを届ける。
リンクは本文にのみ含め、ログには宛先と件名だけを残す。
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass

import sendgrid
from sendgrid.helpers.mail import Email, Mail, To

logger = logging.getLogger(__name__)

_SUBJECT = "[VISITA] Set up your parish secretary account"


@dataclass
class EmailConfig:
    """SendGrid の送信設定"""

    api_key: str
    from_email: str = "noreply@visita.app"
    from_name: str = "VISITA"


@dataclass(frozen=True)
class CredentialSetupMessage:
    subject: str
    text: str
    html: str


def build_credential_setup_message(to_email: str, setup_link: str) -> CredentialSetupMessage:
    """パスワード設定メールの件名と本文（テキスト / HTML）を組み立てる"""
    text = "\n".join(
        [
            "A parish secretary account has been created for you.",
            "",
            f"Sign-in email: {to_email}",
            "",
            "Open the link below to choose your password:",
            setup_link,
            "",
            "If you did not expect this email, contact your chancery office.",
        ]
    )
    link = html.escape(setup_link, quote=True)
    body = (
        "<p>A parish secretary account has been created for you.</p>"
        f"<p>Sign-in email: <strong>{html.escape(to_email)}</strong></p>"
        f'<p><a href="{link}">Choose your password</a></p>'
        "<p>If you did not expect this email, contact your chancery office.</p>"
    )
    return CredentialSetupMessage(subject=_SUBJECT, text=text, html=body)


class SendGridCredentialMailer:
    """CredentialMailer の SendGrid 実装"""

    def __init__(self, config: EmailConfig) -> None:
        self._client = sendgrid.SendGridAPIClient(api_key=config.api_key)
        self._sender = Email(config.from_email, config.from_name)

    def send_credential_setup(self, to_email: str, setup_link: str) -> None:
        """
        パスワード設定メールを送信する。

        Raises:
            SendGrid 側の例外はそのまま送出する（呼び出し側で IdentityIssuanceError に変換）
        """
        message = build_credential_setup_message(to_email, setup_link)
        mail = Mail(
            from_email=self._sender,
            to_emails=To(to_email),
            subject=message.subject,
            plain_text_content=message.text,
            html_content=message.html,
        )
        try:
            response = self._client.send(mail)
        except Exception:
            logger.exception("Credential setup email failed: to=%s", to_email)
            raise
        logger.info(
            "Credential setup email sent: to=%s, status=%d", to_email, response.status_code
        )
