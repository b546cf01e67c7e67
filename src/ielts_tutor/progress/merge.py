"""Fold a completed session into the per-skill progress ledger."""

from datetime import datetime

import structlog

from ielts_tutor.models.profile import ActivityRecord, SkillProgress, UserProfile
from ielts_tutor.models.session import SessionOutcome

logger = structlog.get_logger()


def union_ordered(existing: list[str], incoming: list[str]) -> list[str]:
    """Exact-string set union that keeps first-seen order."""
    return list(dict.fromkeys([*existing, *incoming]))


def merge_skill_progress(progress: SkillProgress | None, outcome: SessionOutcome) -> SkillProgress:
    """New ledger entry for ``outcome.skill`` with one more completed session."""
    if progress is None:
        progress = SkillProgress(skill=outcome.skill)
    return SkillProgress(
        skill=progress.skill,
        sessions_completed=progress.sessions_completed + 1,
        last_feedback_summary=outcome.feedback,
        learned_vocab=union_ordered(progress.learned_vocab, outcome.vocabulary),
        learned_grammar=union_ordered(progress.learned_grammar, outcome.grammar),
    )


def apply_session(
    profile: UserProfile,
    outcome: SessionOutcome,
    now: datetime | None = None,
) -> UserProfile:
    """Return a new profile with ``outcome`` merged in.

    The skill's ledger is created on first completion, its session count is
    incremented by exactly one, vocabulary and grammar are unioned, the
    feedback summary is replaced and one activity record is appended.
    ``profile`` itself is left unchanged.
    """
    now = now or datetime.now()
    updated = merge_skill_progress(profile.progress_for(outcome.skill), outcome)

    progress = [updated if p.skill == outcome.skill else p for p in profile.progress]
    if profile.progress_for(outcome.skill) is None:
        progress.append(updated)

    record = ActivityRecord(
        timestamp=now,
        skill=outcome.skill,
        title=outcome.module_title,
        score=outcome.score,
    )
    logger.info(
        "session_merged",
        skill=outcome.skill.value,
        sessions_completed=updated.sessions_completed,
        vocab=len(updated.learned_vocab),
        grammar=len(updated.learned_grammar),
    )
    return profile.model_copy(
        update={"progress": progress, "activity_log": [*profile.activity_log, record]}
    )
