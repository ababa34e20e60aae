from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from app.core.exceptions import NotFoundException, OptimisticLockException
from app.models.lesson import Lesson
from app.services.optimistic_lock import OptimisticLockGuard, run_with_retry


def make_repository(rowcount: int, stored) -> Mock:
    repository = Mock()
    repository.model = Lesson
    repository.conditional_update.return_value = rowcount
    repository.get_by_id.return_value = stored
    return repository


class TestOptimisticLockGuard:
    def test_applies_patch_when_version_matches(self):
        refreshed = SimpleNamespace(id="L1", version=3, status="CANCELLED")
        repository = make_repository(1, refreshed)

        result = OptimisticLockGuard().update(repository, "L1", 2, {"status": "CANCELLED"})

        assert result is refreshed
        repository.conditional_update.assert_called_once_with("L1", 2, {"status": "CANCELLED"})
        repository.get_by_id.assert_called_once_with("L1", populate_existing=True)

    def test_version_mismatch_carries_both_versions(self):
        repository = make_repository(0, SimpleNamespace(id="L1", version=5))

        with pytest.raises(OptimisticLockException) as exc_info:
            OptimisticLockGuard().update(repository, "L1", 4, {"status": "CANCELLED"})

        exc = exc_info.value
        assert exc.entity == "Lesson"
        assert exc.expected_version == 4
        assert exc.current_version == 5
        assert exc.to_http_exception().status_code == 409

    def test_missing_row_is_not_found(self):
        repository = make_repository(0, None)

        with pytest.raises(NotFoundException):
            OptimisticLockGuard().update(repository, "gone", 1, {"status": "CANCELLED"})


def conflict() -> OptimisticLockException:
    return OptimisticLockException("Lesson", "L1", expected_version=1, current_version=2)


class TestRunWithRetry:
    def test_reruns_whole_operation_until_it_succeeds(self):
        attempts = []
        sleeps = []

        def operation():
            attempts.append(len(attempts))
            if len(attempts) < 3:
                raise conflict()
            return "saved"

        assert run_with_retry(operation, max_retries=3, base_delay=0.1, sleep=sleeps.append) == "saved"
        assert len(attempts) == 3
        assert sleeps == pytest.approx([0.1, 0.2])

    def test_gives_up_after_bounded_retries(self):
        operation = Mock(side_effect=conflict())
        sleeps = []

        with pytest.raises(OptimisticLockException):
            run_with_retry(operation, max_retries=3, base_delay=0.1, sleep=sleeps.append)

        assert operation.call_count == 4
        assert sleeps == pytest.approx([0.1, 0.2, 0.4])

    def test_other_errors_are_not_retried(self):
        operation = Mock(side_effect=ValueError("boom"))

        with pytest.raises(ValueError):
            run_with_retry(operation, sleep=Mock())
        assert operation.call_count == 1
