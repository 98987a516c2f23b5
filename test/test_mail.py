import threading

from src.mail.mail_dispatcher import MailDispatcher
from src.mail.mail_service import MailService
from src.mail.template_loader import template_loader


def test_templates_render_links():
    html = template_loader.render_verification_email("http://shop/verify-registration?token=abc", 10)
    assert "http://shop/verify-registration?token=abc" in html
    assert "{{" not in html

    html = template_loader.render_reset_password_email("http://shop/reset-password?token=xyz", 15)
    assert "http://shop/reset-password?token=xyz" in html
    assert "15" in html


def test_disabled_mail_service_skips_sending():
    service = MailService()
    service.enabled = False

    result = service.send_verification_email("reader@example.com", "http://shop/verify", 10)

    assert result["status"] == "skipped"


def test_dispatcher_runs_tasks():
    dispatcher = MailDispatcher(pool_size=2, queue_capacity=2)
    done = threading.Event()

    assert dispatcher.submit(done.set) is True
    assert done.wait(timeout=5)
    dispatcher.shutdown()


def test_dispatcher_rejects_when_queue_full():
    dispatcher = MailDispatcher(pool_size=1, queue_capacity=1)
    release = threading.Event()

    assert dispatcher.submit(release.wait, 5) is True
    assert dispatcher.submit(release.wait, 5) is True
    assert dispatcher.submit(release.wait, 5) is False

    release.set()
    dispatcher.shutdown()


def test_dispatcher_rejects_after_shutdown():
    dispatcher = MailDispatcher(pool_size=1, queue_capacity=1)
    dispatcher.shutdown()

    assert dispatcher.submit(print) is False
