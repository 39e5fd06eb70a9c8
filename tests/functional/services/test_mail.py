# tests/functional/services/test_mail.py
import pytest
import smtplib
from unittest.mock import MagicMock

from pytest_mock import MockerFixture

from accounts_api.core.config import settings
from accounts_api.core.exceptions import MailDeliveryError
from accounts_api.services.mail import Mailer

pytestmark = pytest.mark.asyncio


@pytest.fixture
def mailer() -> Mailer:
    return Mailer(host="smtp.example.com", port=587, sender="no-reply@example.com", username="bot", password="pw")

@pytest.fixture
def mock_smtp(mocker: MockerFixture) -> MagicMock:
    smtp_class = mocker.patch("accounts_api.services.mail.smtplib.SMTP")
    return smtp_class.return_value.__enter__.return_value


async def test_verification_email_links_verification_token(mailer: Mailer, mock_smtp: MagicMock, make_user):
    user = make_user(verification={"token": "v-tok"}, reset_password={"token": "r-tok"})

    await mailer.send_verification_email(user)

    mock_smtp.starttls.assert_called_once()
    mock_smtp.login.assert_called_once_with("bot", "pw")
    msg = mock_smtp.send_message.call_args.args[0]
    assert msg["Subject"] == "Verification Email"
    assert msg["To"] == "jdoe@example.com"
    assert f"{settings.APP_BASE_URL.rstrip('/')}/verifyEmail;token=v-tok" in msg.get_content()


async def test_reset_email_links_reset_token(mailer: Mailer, mock_smtp: MagicMock, make_user):
    user = make_user(verification={"token": "v-tok"}, reset_password={"token": "r-tok"})

    await mailer.send_password_reset_email(user)

    msg = mock_smtp.send_message.call_args.args[0]
    assert msg["Subject"] == "Change Password"
    assert "reset-password;token=r-tok" in msg.get_content()
    assert "v-tok" not in msg.get_content()


async def test_smtp_failure_raises_mail_delivery_error(mailer: Mailer, mock_smtp: MagicMock):
    mock_smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

    with pytest.raises(MailDeliveryError):
        await mailer.send_mail("jdoe@example.com", "Subject", "Body")


async def test_missing_host_raises_mail_delivery_error():
    mailer = Mailer(host=None, port=587, sender="no-reply@example.com")

    with pytest.raises(MailDeliveryError):
        await mailer.send_mail("jdoe@example.com", "Subject", "Body")
