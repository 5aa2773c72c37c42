import pytest

from registrar.config import settings
from registrar.errors import StorageFailure
from registrar.services.request_service import RequestService


class ScriptedRandom:
    """Stands in for random.Random, returning queue suffixes from a script."""

    def __init__(self, *numbers):
        self._numbers = list(numbers)

    def randrange(self, start, stop):
        return self._numbers.pop(0)


class TestQueueNumbers:
    def test_collision_is_retried(self, store, history, notifier, student, free_type):
        service = RequestService(store, history, notifier, rng=ScriptedRandom(4242, 4242, 4242, 1717))
        first = service.submit_request(student.user_id, free_type.document_type_id)
        second = service.submit_request(student.user_id, free_type.document_type_id)

        assert first.queue_number.endswith("-4242")
        assert second.queue_number.endswith("-1717")
        assert len(store.list_requests(user_id=student.user_id)) == 2

    def test_gives_up_after_max_attempts(self, store, history, notifier, student, free_type):
        attempts = settings.queue_number_max_attempts
        service = RequestService(store, history, notifier, rng=ScriptedRandom(*([5555] * (attempts + 1))))
        service.submit_request(student.user_id, free_type.document_type_id)

        with pytest.raises(StorageFailure, match="unique queue number"):
            service.submit_request(student.user_id, free_type.document_type_id)
        assert len(store.list_requests(user_id=student.user_id)) == 1

    def test_prefix_from_settings(self, monkeypatch, request_service):
        monkeypatch.setattr(settings, "queue_number_prefix", "REG")
        assert request_service.new_queue_number().startswith("REG-")

    def test_suffix_is_four_digits_below_9999(self, store, history, notifier):
        class Bounds:
            def randrange(self, start, stop):
                self.args = (start, stop)
                return stop - 1

        bounds = Bounds()
        service = RequestService(store, history, notifier, rng=bounds)
        assert service.new_queue_number().endswith("-9998")
        assert bounds.args == (1000, 9999)
