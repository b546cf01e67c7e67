"""Read-only dashboard and vault queries over a profile."""

from ielts_tutor.models.profile import ActivityRecord, Skill, UserProfile, VocabularyItem

RECENT_ACTIVITY_LIMIT = 5


def skill_completion(profile: UserProfile) -> dict[str, int]:
    """Completion percentage of every skill, 0 for skills never practiced."""
    completion = {}
    for skill in Skill:
        progress = profile.progress_for(skill)
        completion[skill.value] = progress.completion_percent if progress else 0
    return completion


def recent_activity(profile: UserProfile, limit: int = RECENT_ACTIVITY_LIMIT) -> list[ActivityRecord]:
    """Latest activity records, newest first."""
    return list(reversed(profile.activity_log[-limit:])) if limit > 0 else []


def filter_vault(
    profile: UserProfile,
    search: str = "",
    skill: Skill | None = None,
) -> list[VocabularyItem]:
    """Vault entries matching a case-insensitive substring and source skill.

    Results are ordered by ``date_added``, newest first.
    """
    needle = search.strip().lower()
    items = [
        item
        for item in profile.vocab_vault
        if needle in item.key and (skill is None or item.source_skill == skill)
    ]
    return sorted(items, key=lambda item: item.date_added, reverse=True)


def vault_stats(profile: UserProfile) -> dict[str, int]:
    mastered = sum(1 for item in profile.vocab_vault if item.mastered)
    return {
        "total": len(profile.vocab_vault),
        "mastered": mastered,
        "learning": len(profile.vocab_vault) - mastered,
    }


def dashboard(profile: UserProfile) -> dict:
    """Summary shown on the learner's dashboard."""
    return {
        "name": profile.name,
        "exam_track": profile.exam_track.value,
        "target_band": profile.target_band,
        "current_level": profile.current_level,
        "estimated_band": profile.estimated_band,
        "skills": skill_completion(profile),
        "recent_activity": [r.model_dump(mode="json") for r in recent_activity(profile)],
        "vault": vault_stats(profile),
    }
