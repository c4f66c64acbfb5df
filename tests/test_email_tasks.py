import pytest

from infrastructure.tasks.tasks import email as email_tasks


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def info(self, event: str, **kwargs) -> None:
        self.events.append((event, kwargs))


@pytest.fixture
def task_logger(monkeypatch):
    recorder = _RecordingLogger()
    monkeypatch.setattr(email_tasks, "logger", recorder)
    return recorder


def test_ticket_confirmation_logs_a_render_not_a_delivery(task_logger):
    details = {"ticketNumber": "TKT-1-ABCDEF", "eventTitle": "Lagos Jazz Night", "quantity": 2}

    summary = email_tasks.send_ticket_confirmation_email.apply(args=["buyer@example.com", details]).get()

    assert "TKT-1-ABCDEF" in summary
    assert [event for event, _ in task_logger.events] == ["ticket_confirmation_email_rendered"]


def test_refund_confirmation_logs_a_render_not_a_delivery(task_logger):
    details = {"ticketNumber": "TKT-1-ABCDEF", "amount": 250000, "currency": "NGN", "percentage": 50}

    summary = email_tasks.send_refund_confirmation_email.apply(args=["buyer@example.com", details]).get()

    assert "2500.00 NGN" in summary
    assert [event for event, _ in task_logger.events] == ["refund_confirmation_email_rendered"]
