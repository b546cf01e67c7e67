"""Cross-skill vocabulary vault, deduplicated case-insensitively."""

from datetime import datetime

import structlog

from ielts_tutor.models.profile import Skill, UserProfile, VocabularyItem
from ielts_tutor.models.session import SessionOutcome
from ielts_tutor.progress.merge import apply_session

logger = structlog.get_logger()


def merge_vocabulary(
    profile: UserProfile,
    words: list[str],
    skill: Skill,
    now: datetime | None = None,
) -> UserProfile:
    """Return a new profile with unseen ``words`` added to the vault.

    A word is known when its lower-cased form matches an existing entry;
    known words are skipped and keep their original ``date_added``.
    """
    now = now or datetime.now()
    seen = {item.key for item in profile.vocab_vault}
    added: list[VocabularyItem] = []
    for word in words:
        if not word.strip() or word.lower() in seen:
            continue
        seen.add(word.lower())
        added.append(VocabularyItem(word=word, source_skill=skill, date_added=now))
    if not added:
        return profile
    logger.info("vault_words_added", skill=skill.value, count=len(added))
    return profile.model_copy(update={"vocab_vault": [*profile.vocab_vault, *added]})


def toggle_mastery(profile: UserProfile, word: str) -> UserProfile:
    """Flip ``mastered`` of the entry whose word equals ``word`` exactly.

    Unknown words leave the profile unchanged.
    """
    vault = []
    found = False
    for item in profile.vocab_vault:
        if item.word == word:
            item = item.model_copy(update={"mastered": not item.mastered})
            found = True
        vault.append(item)
    if not found:
        logger.debug("vault_word_not_found", word=word)
        return profile
    return profile.model_copy(update={"vocab_vault": vault})


def complete_session(
    profile: UserProfile,
    outcome: SessionOutcome,
    now: datetime | None = None,
) -> UserProfile:
    """Progress merge and vault merge of a completed session as one new profile."""
    now = now or datetime.now()
    merged = apply_session(profile, outcome, now=now)
    return merge_vocabulary(merged, outcome.vocabulary, outcome.skill, now=now)
