from maestro_portal.orchestrator.contracts import CommandName, StatusCategory, StatusInfo

# Checked in order; the first keyword found in the lowercased status wins.
_RULES = [
    (("complete", "success"), StatusCategory.COMPLETED),
    (("running", "active"), StatusCategory.RUNNING),
    (("fault", "error", "failed"), StatusCategory.FAULTED),
    (("pause",), StatusCategory.PAUSED),
    (("cancel",), StatusCategory.CANCELLED),
]

_FINISHED = (StatusCategory.COMPLETED, StatusCategory.CANCELLED)


def categorize(raw_status) -> StatusCategory:
    if not isinstance(raw_status, str):
        return StatusCategory.UNKNOWN
    lowered = raw_status.lower()
    for keywords, category in _RULES:
        if any(k in lowered for k in keywords):
            return category
    return StatusCategory.UNKNOWN


def classify(raw_status) -> StatusInfo:
    """Map a raw registry status to its category and the commands it allows.

    Never raises: None, non-strings and unrecognised values are Unknown,
    which only allows cancel.
    """
    category = categorize(raw_status)
    return StatusInfo(
        category=category,
        can_pause=category is StatusCategory.RUNNING,
        can_resume=category is StatusCategory.PAUSED,
        can_cancel=category not in _FINISHED,
    )


def allowed_commands(raw_status) -> list[CommandName]:
    info = classify(raw_status)
    allowed: list[CommandName] = []
    if info.can_pause:
        allowed.append("pause")
    if info.can_resume:
        allowed.append("resume")
    if info.can_cancel:
        allowed.append("cancel")
    return allowed


def is_allowed(raw_status, command: CommandName) -> bool:
    return command in allowed_commands(raw_status)
