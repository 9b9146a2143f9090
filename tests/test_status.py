import pytest

from maestro_portal.orchestrator.contracts import StatusCategory, StatusInfo
from maestro_portal.orchestrator.status import allowed_commands, categorize, classify, is_allowed


def test_classify_known_statuses() -> None:
    assert classify("Running") == StatusInfo(StatusCategory.RUNNING, True, False, True)
    assert classify("Paused") == StatusInfo(StatusCategory.PAUSED, False, True, True)
    assert classify("Completed") == StatusInfo(StatusCategory.COMPLETED, False, False, False)
    assert classify("SomeWeirdValue") == StatusInfo(StatusCategory.UNKNOWN, False, False, True)


@pytest.mark.parametrize(
    "raw, category",
    [
        ("RUNNING", StatusCategory.RUNNING),
        ("active", StatusCategory.RUNNING),
        ("Successful", StatusCategory.COMPLETED),
        ("Faulted", StatusCategory.FAULTED),
        ("Error", StatusCategory.FAULTED),
        ("Failed", StatusCategory.FAULTED),
        ("Cancelled", StatusCategory.CANCELLED),
        ("Canceled", StatusCategory.CANCELLED),
        # priority: complete beats fault, running beats pause
        ("Completed with errors", StatusCategory.COMPLETED),
        ("Running (pause requested)", StatusCategory.RUNNING),
    ],
)
def test_categorize_keywords_and_priority(raw, category) -> None:
    assert categorize(raw) is category


@pytest.mark.parametrize("raw", [None, "", 42, ["Running"]])
def test_classify_is_total(raw) -> None:
    info = classify(raw)
    assert info.category is StatusCategory.UNKNOWN
    assert (info.can_pause, info.can_resume, info.can_cancel) == (False, False, True)


def test_faulted_and_cancelled_eligibility() -> None:
    faulted = classify("Faulted")
    assert (faulted.can_pause, faulted.can_resume, faulted.can_cancel) == (False, False, True)
    cancelled = classify("Cancelled")
    assert (cancelled.can_pause, cancelled.can_resume, cancelled.can_cancel) == (False, False, False)


def test_category_compares_as_text() -> None:
    assert classify("Paused").category == "Paused"


def test_allowed_commands() -> None:
    assert allowed_commands("Running") == ["pause", "cancel"]
    assert allowed_commands("Paused") == ["resume", "cancel"]
    assert allowed_commands("Completed") == []
    assert is_allowed("Paused", "resume")
    assert not is_allowed("Completed", "cancel")
